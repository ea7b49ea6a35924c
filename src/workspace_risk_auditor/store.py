"""SQLite store for raw per-source records and sync state."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from workspace_risk_auditor.constants import STORE_DB_PATH, STORE_PAGE_SIZE
from workspace_risk_auditor.models import PageInfo, RawRecord, SourceKind

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS raw_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_kind TEXT NOT NULL,
    external_key TEXT NOT NULL,
    search_text TEXT,
    group_key TEXT,
    payload_json TEXT,
    synced_at TEXT,
    UNIQUE (source_kind, external_key)
);

CREATE INDEX IF NOT EXISTS idx_raw_records_group ON raw_records (source_kind, group_key);

CREATE TABLE IF NOT EXISTS sync_state (
    source_kind TEXT PRIMARY KEY,
    last_synced_at TEXT
);
"""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class RecordStore:
    """Persistent SQLite store of raw records, one row per source item.

    Local ids are the row ids and stay stable across upserts of the same
    ``(source_kind, external_key)``.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or STORE_DB_PATH
        self.db_path = Path(self.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.db_path))
        self._conn.row_factory = sqlite3.Row
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript(_CREATE_TABLES_SQL)

    @staticmethod
    def _to_record(row: sqlite3.Row) -> RawRecord:
        try:
            payload = json.loads(row["payload_json"]) if row["payload_json"] else None
        except json.JSONDecodeError:
            payload = None  # surfaced as a malformed record by the adapter
        synced_at = datetime.fromisoformat(row["synced_at"]) if row["synced_at"] else None
        return RawRecord(
            local_id=row["id"],
            source_kind=SourceKind(row["source_kind"]),
            external_key=row["external_key"],
            payload=payload,
            synced_at=synced_at,
        )

    # --- public API ---

    def list_records(
        self,
        kind: SourceKind,
        page: int = 0,
        page_size: int = STORE_PAGE_SIZE,
        search: str | None = None,
        flags: dict[str, tuple[bool, bool]] | None = None,
    ) -> tuple[list[RawRecord], PageInfo]:
        """Return one page of records for a source, in insertion order.

        ``search`` is a casefolded substring match on the record's
        search text. ``flags`` maps a payload key to ``(wanted, default)``;
        the default applies when the key is missing from the payload.
        """
        clauses = ["source_kind = ?"]
        params: list = [kind.value]

        if search:
            clauses.append("search_text LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(search.casefold())}%")

        for key, (wanted, default) in (flags or {}).items():
            clauses.append("COALESCE(json_extract(payload_json, ?), ?) = ?")
            params.extend([f"$.{key}", int(default), int(wanted)])

        where = " AND ".join(clauses)
        total = self._conn.execute(
            f"SELECT COUNT(*) AS c FROM raw_records WHERE {where}", params
        ).fetchone()["c"]
        rows = self._conn.execute(
            f"SELECT * FROM raw_records WHERE {where} ORDER BY id LIMIT ? OFFSET ?",
            [*params, page_size, page * page_size],
        ).fetchall()

        records = [self._to_record(r) for r in rows]
        has_more = (page + 1) * page_size < total
        return records, PageInfo(page=page, page_size=page_size, total=total, has_more=has_more)

    def get_record(self, kind: SourceKind, local_id) -> RawRecord | None:
        try:
            row_id = int(local_id)
        except (TypeError, ValueError):
            return None
        row = self._conn.execute(
            "SELECT * FROM raw_records WHERE source_kind = ? AND id = ?",
            (kind.value, row_id),
        ).fetchone()
        return self._to_record(row) if row else None

    def find_by_key(self, kind: SourceKind, external_key: str) -> RawRecord | None:
        row = self._conn.execute(
            "SELECT * FROM raw_records WHERE source_kind = ? AND external_key = ?",
            (kind.value, external_key),
        ).fetchone()
        return self._to_record(row) if row else None

    def find_by_group(self, kind: SourceKind, group_key: str) -> list[RawRecord]:
        """Return every record of a source sharing ``group_key``, in insertion order."""
        rows = self._conn.execute(
            "SELECT * FROM raw_records WHERE source_kind = ? AND group_key = ? ORDER BY id",
            (kind.value, group_key),
        ).fetchall()
        return [self._to_record(r) for r in rows]

    def upsert_record(
        self,
        kind: SourceKind,
        external_key: str,
        payload: dict,
        search_text: str = "",
        group_key: str | None = None,
    ) -> tuple[int, bool]:
        """Insert or refresh one record. Returns ``(local_id, created)``."""
        synced_at = _now_iso()
        with self._conn:
            existing = self._conn.execute(
                "SELECT id FROM raw_records WHERE source_kind = ? AND external_key = ?",
                (kind.value, external_key),
            ).fetchone()
            if existing:
                self._conn.execute(
                    "UPDATE raw_records SET search_text = ?, group_key = ?, payload_json = ?, "
                    "synced_at = ? WHERE id = ?",
                    (search_text.casefold(), group_key, json.dumps(payload), synced_at, existing["id"]),
                )
                return existing["id"], False

            cursor = self._conn.execute(
                "INSERT INTO raw_records "
                "(source_kind, external_key, search_text, group_key, payload_json, synced_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (kind.value, external_key, search_text.casefold(), group_key, json.dumps(payload), synced_at),
            )
            return cursor.lastrowid, True

    def delete_record(self, kind: SourceKind, local_id) -> bool:
        with self._conn:
            cursor = self._conn.execute(
                "DELETE FROM raw_records WHERE source_kind = ? AND id = ?",
                (kind.value, int(local_id)),
            )
        return cursor.rowcount > 0

    def delete_group(self, kind: SourceKind, group_key: str) -> int:
        with self._conn:
            cursor = self._conn.execute(
                "DELETE FROM raw_records WHERE source_kind = ? AND group_key = ?",
                (kind.value, group_key),
            )
        return cursor.rowcount

    def mark_synced(self, kind: SourceKind, when: datetime | None = None) -> None:
        stamp = when.isoformat() if when else _now_iso()
        with self._conn:
            self._conn.execute(
                "INSERT INTO sync_state (source_kind, last_synced_at) VALUES (?, ?) "
                "ON CONFLICT(source_kind) DO UPDATE SET last_synced_at = excluded.last_synced_at",
                (kind.value, stamp),
            )

    def last_synced(self, kind: SourceKind) -> datetime | None:
        row = self._conn.execute(
            "SELECT last_synced_at FROM sync_state WHERE source_kind = ?", (kind.value,)
        ).fetchone()
        return datetime.fromisoformat(row["last_synced_at"]) if row else None

    def clear(self) -> None:
        """Drop and recreate all tables."""
        self._conn.executescript(
            "DROP TABLE IF EXISTS raw_records;"
            "DROP TABLE IF EXISTS sync_state;"
        )
        self._create_tables()

    def get_info(self) -> dict:
        """Return store statistics."""
        file_size = self.db_path.stat().st_size if self.db_path.exists() else 0

        counts = {kind.value: 0 for kind in SourceKind}
        for row in self._conn.execute(
            "SELECT source_kind, COUNT(*) AS c FROM raw_records GROUP BY source_kind"
        ):
            counts[row["source_kind"]] = row["c"]

        synced = {
            row["source_kind"]: row["last_synced_at"]
            for row in self._conn.execute("SELECT * FROM sync_state")
        }

        return {
            "db_file_size": file_size,
            "record_counts": counts,
            "last_synced": synced,
        }

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # --- context manager ---

    def __enter__(self) -> RecordStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()
