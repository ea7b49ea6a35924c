"""Tests for the SQLite record store."""

from datetime import datetime, timezone

from workspace_risk_auditor.models import SourceKind
from workspace_risk_auditor.store import RecordStore


def test_upsert_keeps_local_id(store):
    local_id, created = store.upsert_record(SourceKind.DRIVE, "f1", {"name": "a"})
    assert created is True

    again, created = store.upsert_record(SourceKind.DRIVE, "f1", {"name": "b"})
    assert again == local_id
    assert created is False
    assert store.get_record(SourceKind.DRIVE, local_id).payload == {"name": "b"}


def test_get_record_scoped_to_kind(store):
    local_id, _ = store.upsert_record(SourceKind.DRIVE, "f1", {})
    assert store.get_record(SourceKind.SENDER, local_id) is None
    assert store.get_record(SourceKind.DRIVE, "not-a-number") is None


def test_list_records_pages(store):
    for i in range(5):
        store.upsert_record(SourceKind.DRIVE, f"f{i}", {"i": i})
    store.upsert_record(SourceKind.SENDER, "s", {})

    first, info = store.list_records(SourceKind.DRIVE, page=0, page_size=2)
    assert [r.payload["i"] for r in first] == [0, 1]
    assert info.total == 5
    assert info.has_more is True

    last, info = store.list_records(SourceKind.DRIVE, page=2, page_size=2)
    assert [r.payload["i"] for r in last] == [4]
    assert info.has_more is False


def test_list_records_search_is_case_insensitive_and_literal(store):
    store.upsert_record(SourceKind.DRIVE, "f1", {}, search_text="Quarterly Report")
    store.upsert_record(SourceKind.DRIVE, "f2", {}, search_text="100% done")
    store.upsert_record(SourceKind.DRIVE, "f3", {}, search_text="1000 done")

    records, _ = store.list_records(SourceKind.DRIVE, search="REPORT")
    assert [r.external_key for r in records] == ["f1"]

    records, _ = store.list_records(SourceKind.DRIVE, search="100%")
    assert [r.external_key for r in records] == ["f2"]


def test_list_records_flags_use_default_when_missing(store):
    store.upsert_record(SourceKind.SENDER, "a", {"isVerified": False})
    store.upsert_record(SourceKind.SENDER, "b", {"isVerified": True})
    store.upsert_record(SourceKind.SENDER, "c", {})

    verified, info = store.list_records(SourceKind.SENDER, flags={"isVerified": (True, True)})
    assert [r.external_key for r in verified] == ["b", "c"]
    assert info.total == 2

    unverified, _ = store.list_records(SourceKind.SENDER, flags={"isVerified": (False, True)})
    assert [r.external_key for r in unverified] == ["a"]


def test_groups(store):
    store.upsert_record(SourceKind.MESSAGE, "m1", {}, group_key="a@example.com")
    store.upsert_record(SourceKind.MESSAGE, "m2", {}, group_key="a@example.com")
    store.upsert_record(SourceKind.MESSAGE, "m3", {}, group_key="b@example.com")

    assert [r.external_key for r in store.find_by_group(SourceKind.MESSAGE, "a@example.com")] == ["m1", "m2"]
    assert store.delete_group(SourceKind.MESSAGE, "a@example.com") == 2
    assert store.find_by_group(SourceKind.MESSAGE, "a@example.com") == []
    assert store.find_by_key(SourceKind.MESSAGE, "m3") is not None


def test_unreadable_payload_loads_as_none(store):
    local_id, _ = store.upsert_record(SourceKind.DRIVE, "f1", {})
    with store._conn:
        store._conn.execute("UPDATE raw_records SET payload_json = '{broken' WHERE id = ?", (local_id,))
    assert store.get_record(SourceKind.DRIVE, local_id).payload is None


def test_sync_state(store):
    assert store.last_synced(SourceKind.DRIVE) is None
    when = datetime(2026, 1, 1, tzinfo=timezone.utc)
    store.mark_synced(SourceKind.DRIVE, when)
    assert store.last_synced(SourceKind.DRIVE) == when


def test_info_and_clear(tmp_path):
    with RecordStore(db_path=tmp_path / "s.db") as store:
        store.upsert_record(SourceKind.DRIVE, "f1", {})
        store.mark_synced(SourceKind.DRIVE)

        info = store.get_info()
        assert info["record_counts"] == {"drive": 1, "sender": 0, "message": 0}
        assert "drive" in info["last_synced"]
        assert info["db_file_size"] > 0

        store.clear()
        info = store.get_info()
        assert info["record_counts"]["drive"] == 0
        assert info["last_synced"] == {}


def test_search_folds_case_beyond_ascii(store):
    store.upsert_record(SourceKind.DRIVE, "f1", {}, search_text="Straße Plan")
    store.upsert_record(SourceKind.DRIVE, "f2", {}, search_text="ÉQUIPE")

    for term in ("STRASSE", "straße", "Strasse plan"):
        records, _ = store.list_records(SourceKind.DRIVE, search=term)
        assert [r.external_key for r in records] == ["f1"], term

    records, _ = store.list_records(SourceKind.DRIVE, search="équipe")
    assert [r.external_key for r in records] == ["f2"]
