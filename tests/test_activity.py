"""Tests for the activity log."""

from workspace_risk_auditor.activity import ActivityLog


def test_entries_newest_first(tmp_path):
    with ActivityLog(tmp_path / "a.db") as log:
        log.add("scan", "drive: processed 10")
        log.add("delete", "drive_1: ok")
        entries = log.entries()

    assert [e.action for e in entries] == ["delete", "scan"]
    assert entries[0].details == "drive_1: ok"


def test_retention_keeps_newest(tmp_path):
    with ActivityLog(tmp_path / "a.db", max_entries=3) as log:
        for i in range(5):
            log.add("refresh", f"item {i}")
        entries = log.entries()

    assert [e.details for e in entries] == ["item 4", "item 3", "item 2"]


def test_clear(tmp_path):
    with ActivityLog(tmp_path / "a.db") as log:
        log.add("connect", "gmail: me@example.com")
        log.clear()
        assert log.entries() == []


def test_persists_across_instances(tmp_path):
    with ActivityLog(tmp_path / "a.db") as log:
        log.add("scan", "sender: processed 500")
    with ActivityLog(tmp_path / "a.db") as log:
        assert len(log.entries()) == 1
