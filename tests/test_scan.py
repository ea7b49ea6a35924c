"""Tests for the scan continuation controller."""

import pytest

from workspace_risk_auditor.activity import ActivityLog
from workspace_risk_auditor.errors import ScanStateError, SourceUnavailableError, ValidationError
from workspace_risk_auditor.models import DiscoveryPage, ScanPhase
from workspace_risk_auditor.scan import CancellationToken, ScanController

from conftest import ScriptedSource


def _page(processed, token, discovered=0):
    return DiscoveryPage(
        processed_count=processed,
        discovered_count=discovered,
        next_token=token,
        has_more=token is not None,
    )


def _pages(n, processed=200):
    return [_page(processed, f"t{i + 1}", discovered=processed // 2) for i in range(n)]


def test_no_auto_continue_fetches_one_page():
    source = ScriptedSource(_pages(5))
    controller = ScanController(source)

    progress = controller.start(auto_continue=False)

    assert controller.phase is ScanPhase.DONE
    assert progress.pages_completed == 1
    assert progress.has_more is True
    assert progress.continuation_token == "t1"


def test_stops_once_limit_reached():
    source = ScriptedSource(_pages(10))
    controller = ScanController(source)

    progress = controller.start(auto_continue=True, auto_continue_limit=500)

    assert controller.phase is ScanPhase.DONE
    assert progress.pages_completed == 3
    assert progress.processed_count == 600
    assert progress.discovered_count == 300
    assert source.tokens_seen == [None, "t1", "t2"]


def test_runs_until_exhausted():
    source = ScriptedSource([_page(100, "a"), _page(100, "b"), _page(40, None)])
    controller = ScanController(source)

    progress = controller.start(auto_continue_limit=10_000)

    assert controller.phase is ScanPhase.DONE
    assert progress.pages_completed == 3
    assert progress.has_more is False
    assert progress.continuation_token is None
    with pytest.raises(ScanStateError, match="exhausted"):
        controller.resume()


def test_cancel_during_fetch_finishes_that_page_only():
    controller = None
    source = ScriptedSource(_pages(5), on_fetch=lambda: controller.cancel())
    controller = ScanController(source)

    progress = controller.start()

    assert controller.phase is ScanPhase.STOPPED
    assert progress.pages_completed == 1
    assert progress.processed_count == 200
    assert len(source.tokens_seen) == 1


def test_external_cancellation_token():
    token = CancellationToken()
    source = ScriptedSource(_pages(5), on_fetch=token.cancel)
    controller = ScanController(source)

    controller.start(cancel_token=token)

    assert token.cancelled is True
    assert controller.phase is ScanPhase.STOPPED


def test_resume_after_stop_keeps_totals_and_token():
    controller = None
    calls = {"n": 0}

    def cancel_first_time():
        calls["n"] += 1
        if calls["n"] == 1:
            controller.cancel()

    source = ScriptedSource([_page(200, "t1"), _page(200, "t2"), _page(50, None)], on_fetch=cancel_first_time)
    controller = ScanController(source)
    controller.start()

    progress = controller.resume()

    assert controller.phase is ScanPhase.DONE
    assert progress.pages_completed == 3
    assert progress.processed_count == 450
    assert source.tokens_seen == [None, "t1", "t2"]


def test_resume_after_limit_continues():
    source = ScriptedSource(_pages(6))
    controller = ScanController(source)
    controller.start(auto_continue_limit=400)
    assert controller.progress().pages_completed == 2

    progress = controller.resume()

    assert progress.pages_completed == 4
    assert progress.processed_count == 800
    assert source.tokens_seen == [None, "t1", "t2", "t3"]


def test_failure_keeps_totals_and_last_good_token():
    failure = SourceUnavailableError("rate limited")
    source = ScriptedSource([_page(200, "t1"), _page(200, "t2"), failure, _page(10, None)])
    controller = ScanController(source)

    progress = controller.start()

    assert controller.phase is ScanPhase.DONE
    assert controller.error is failure
    assert progress.pages_completed == 2
    assert progress.processed_count == 400
    assert progress.continuation_token == "t2"

    retried = controller.resume()
    assert controller.error is None
    assert retried.pages_completed == 3
    assert source.tokens_seen == [None, "t1", "t2", "t2"]


def test_start_resets_counters():
    source = ScriptedSource(_pages(2) + [_page(5, None)])
    controller = ScanController(source)
    controller.start(auto_continue=False)

    progress = controller.start(auto_continue=False)

    assert progress.pages_completed == 1
    assert source.tokens_seen == [None, None]


def test_start_replays_given_token():
    source = ScriptedSource([_page(10, None)])
    ScanController(source).start(continuation_token="saved")
    assert source.tokens_seen == ["saved"]


def test_cannot_start_while_running():
    controller = None
    errors = []

    def reenter():
        with pytest.raises(ScanStateError):
            controller.start()
        with pytest.raises(ScanStateError):
            controller.resume()
        errors.append(controller.phase)

    controller = ScanController(ScriptedSource([_page(1, None)], on_fetch=reenter))
    controller.start()
    assert errors == [ScanPhase.RUNNING]


def test_resume_requires_a_previous_scan():
    with pytest.raises(ScanStateError):
        ScanController(ScriptedSource([])).resume()


def test_negative_limit_rejected():
    with pytest.raises(ValidationError):
        ScanController(ScriptedSource([])).start(auto_continue_limit=-1)


def test_on_page_receives_snapshots():
    snapshots = []
    controller = ScanController(ScriptedSource(_pages(2) + [_page(1, None)]), on_page=snapshots.append)
    controller.start()

    assert [s.pages_completed for s in snapshots] == [1, 2, 3]
    snapshots[0].processed_count = -1
    assert controller.progress().processed_count == 401


def test_run_is_logged(tmp_path):
    with ActivityLog(tmp_path / "a.db") as activity:
        controller = ScanController(ScriptedSource([_page(3, None, discovered=2)]), activity=activity)
        controller.start()
        entries = activity.entries()

    assert entries[0].action == "scan"
    assert "processed 3" in entries[0].details
    assert "discovered 2" in entries[0].details
