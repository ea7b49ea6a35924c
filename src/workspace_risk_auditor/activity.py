"""Bounded audit log of scans and remediation actions."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from workspace_risk_auditor.constants import ACTIVITY_LOG_LIMIT, STORE_DB_PATH
from workspace_risk_auditor.models import ActivityEntry

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS activity_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    action TEXT NOT NULL,
    details TEXT
);
"""


class ActivityLog:
    """SQLite-backed activity log keeping only the newest ``max_entries`` rows."""

    def __init__(self, db_path: Path | None = None, max_entries: int = ACTIVITY_LOG_LIMIT) -> None:
        self.db_path = Path(db_path or STORE_DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.max_entries = max_entries
        self._conn = sqlite3.connect(str(self.db_path))
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_CREATE_TABLE_SQL)

    def add(self, action: str, details: str) -> None:
        """Append an entry and drop everything beyond the retention limit."""
        with self._conn:
            self._conn.execute(
                "INSERT INTO activity_log (timestamp, action, details) VALUES (?, ?, ?)",
                (datetime.now(timezone.utc).isoformat(), action, details),
            )
            self._conn.execute(
                "DELETE FROM activity_log WHERE id NOT IN "
                "(SELECT id FROM activity_log ORDER BY id DESC LIMIT ?)",
                (self.max_entries,),
            )

    def entries(self) -> list[ActivityEntry]:
        """Return entries newest first."""
        rows = self._conn.execute("SELECT * FROM activity_log ORDER BY id DESC").fetchall()
        return [
            ActivityEntry(id=r["id"], timestamp=r["timestamp"], action=r["action"], details=r["details"])
            for r in rows
        ]

    def clear(self) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM activity_log")

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> ActivityLog:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()
