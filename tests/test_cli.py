"""Tests for the CLI module."""

import json

import pytest
from click.testing import CliRunner

import workspace_risk_auditor.cli as cli_module
import workspace_risk_auditor.service as service_module
from workspace_risk_auditor.activity import ActivityLog
from workspace_risk_auditor.auth import FileCredentialProvider
from workspace_risk_auditor.cli import cli
from workspace_risk_auditor.models import DiscoveryPage, SourceKind
from workspace_risk_auditor.scan import ScanController
from workspace_risk_auditor.store import RecordStore

from conftest import ScriptedSource, drive_file, sender_payload


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """A config file pointing at a temporary store, with no credentials on disk."""

    def provider(delegated_user=None):
        return FileCredentialProvider(
            client_secrets_path=tmp_path / "credentials.json",
            gmail_token_path=tmp_path / "gmail_token.json",
            drive_token_path=tmp_path / "drive_token.json",
            service_account_path=tmp_path / "service_account.json",
            accounts_path=tmp_path / "accounts.json",
            delegated_user=delegated_user,
        )

    monkeypatch.setattr(cli_module, "FileCredentialProvider", provider)
    monkeypatch.setattr(service_module, "FileCredentialProvider", provider)

    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"store_path": str(tmp_path / "store.db")}))
    return tmp_path


def _invoke(workdir, *args, **kwargs):
    runner = CliRunner()
    return runner.invoke(cli, ["--config", str(workdir / "config.json"), *args], **kwargs)


def test_cli_help():
    """CLI --help should work and show commands."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    for command in ("assets", "stats", "action", "batch", "scan", "connections", "auth", "activity", "store"):
        assert command in result.output


def test_cli_version():
    """CLI --version should show version."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_invalid_config_is_reported(tmp_path):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"max_records_per_source": -5}))

    result = CliRunner().invoke(cli, ["--config", str(config_path), "stats"])

    assert result.exit_code != 0
    assert "max_records_per_source" in result.output


def test_assets_empty_store(workdir):
    result = _invoke(workdir, "assets")
    assert result.exit_code == 0
    assert "of 0" in result.output


def test_assets_lists_stored_records(workdir):
    with RecordStore(workdir / "store.db") as store:
        store.upsert_record(SourceKind.DRIVE, "f1", drive_file("f1", "Budget"))
        store.upsert_record(SourceKind.SENDER, "news@shop.example", sender_payload("news@shop.example"))

    everything = _invoke(workdir, "assets")
    senders = _invoke(workdir, "assets", "--type", "email_sender")

    assert everything.exit_code == 0
    assert "of 2" in everything.output
    assert senders.exit_code == 0
    assert "of 1" in senders.output


def test_stats_empty_store(workdir):
    result = _invoke(workdir, "stats")
    assert result.exit_code == 0
    assert "Total assets" in result.output


def test_malformed_action_id(workdir):
    result = _invoke(workdir, "action", "not-an-id", "refresh")
    assert result.exit_code == 1
    assert "failed" in result.output


def test_action_on_disconnected_source(workdir):
    with RecordStore(workdir / "store.db") as store:
        local_id, _ = store.upsert_record(
            SourceKind.SENDER, "news@shop.example", sender_payload("news@shop.example")
        )

    result = _invoke(workdir, "action", f"sender_{local_id}", "unsubscribe")

    assert result.exit_code == 1
    assert "failed" in result.output
    with ActivityLog(workdir / "store.db") as activity:
        assert activity.entries()[0].action == "unsubscribe"


def test_delete_asks_for_confirmation(workdir):
    result = _invoke(workdir, "action", "drive_1", "delete", input="n\n")
    assert result.exit_code != 0
    assert "Aborted" in result.output


def test_batch_reports_failures(workdir):
    result = _invoke(workdir, "batch", "refresh", "drive_1", "bogus")
    assert result.exit_code == 1


def test_connections_without_credentials(workdir):
    result = _invoke(workdir, "connections")
    assert result.exit_code == 0
    assert "drive" in result.output


def test_auth_without_client_secrets(workdir):
    result = _invoke(workdir, "auth", "gmail")
    assert result.exit_code != 0
    assert "Credentials file not found" in result.output


def test_activity_show_and_clear(workdir):
    with ActivityLog(workdir / "store.db") as activity:
        activity.add("scan", "drive (full): processed 3")

    shown = _invoke(workdir, "activity", "show")
    cleared = _invoke(workdir, "activity", "clear")
    empty = _invoke(workdir, "activity", "show")

    assert shown.exit_code == 0
    assert "processed 3" in shown.output
    assert cleared.exit_code == 0
    assert "No activity recorded" in empty.output


def test_store_info_empty(workdir):
    result = _invoke(workdir, "store", "info")
    assert result.exit_code == 0
    assert "Store is empty." in result.output


def test_store_clear(workdir):
    with RecordStore(workdir / "store.db") as store:
        store.upsert_record(SourceKind.DRIVE, "f1", drive_file("f1", "Budget"))

    result = _invoke(workdir, "store", "clear", "-y")

    assert result.exit_code == 0
    assert "cleared" in result.output
    with RecordStore(workdir / "store.db") as store:
        assert store.find_by_key(SourceKind.DRIVE, "f1") is None


def _scripted_scans(monkeypatch, pages):
    source = ScriptedSource(pages)

    def scan_controller(self, kind, page_size=None, on_page=None):
        return ScanController(source, on_page=on_page, activity=self.activity)

    monkeypatch.setattr(service_module.WorkspaceAuditor, "scan_controller", scan_controller)
    return source


def _pages(n):
    return [
        DiscoveryPage(processed_count=200, discovered_count=200, next_token=f"t{i + 1}", has_more=True)
        for i in range(n)
    ]


def test_scan_limit_defaults_to_config(workdir, monkeypatch):
    config_path = workdir / "config.json"
    config_path.write_text(json.dumps({"store_path": str(workdir / "store.db"), "auto_continue_limit": 400}))
    source = _scripted_scans(monkeypatch, _pages(5))

    result = _invoke(workdir, "scan", "drive")

    assert result.exit_code == 0
    assert source.tokens_seen == [None, "t1"]
    assert "--token t2" in result.output


def test_scan_limit_option_overrides_config(workdir, monkeypatch):
    source = _scripted_scans(monkeypatch, _pages(5))

    result = _invoke(workdir, "scan", "drive", "--limit", "600")

    assert result.exit_code == 0
    assert source.tokens_seen == [None, "t1", "t2"]
