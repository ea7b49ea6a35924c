"""Resumable, cancellable multi-page discovery scans."""

from __future__ import annotations

import dataclasses
import logging
import sqlite3
import threading
from typing import Callable

from .activity import ActivityLog
from .constants import AUTO_CONTINUE_LIMIT, DISCOVERY_PAGE_SIZE
from .errors import AuditError, ScanStateError, ValidationError
from .models import ScanMode, ScanPhase, ScanProgress
from .sources import SourceAdapter

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe cancel flag, checked by the scan loop between pages only."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ScanController:
    """Drives one source's discovery endpoint page by page.

    A page fetch is never interrupted: ``cancel()`` only prevents the next
    page from being requested. A failed page ends the run in ``DONE`` with
    ``error`` set, keeping the totals and the last good continuation token so
    ``resume()`` can retry from there.
    """

    def __init__(
        self,
        source: SourceAdapter,
        page_size: int = DISCOVERY_PAGE_SIZE,
        on_page: Callable[[ScanProgress], None] | None = None,
        activity: ActivityLog | None = None,
    ) -> None:
        self.source = source
        self.page_size = page_size
        self.on_page = on_page
        self.activity = activity

        self.phase = ScanPhase.IDLE
        self.error: Exception | None = None
        self.mode = ScanMode.FULL
        self.auto_continue = True
        self.auto_continue_limit = AUTO_CONTINUE_LIMIT
        self._progress = ScanProgress()
        self._token = CancellationToken()
        self._run_baseline = 0

    def progress(self) -> ScanProgress:
        """Snapshot of the running totals."""
        return dataclasses.replace(self._progress)

    def cancel(self) -> None:
        self._token.cancel()

    def start(
        self,
        mode: ScanMode = ScanMode.FULL,
        auto_continue: bool = True,
        auto_continue_limit: int = AUTO_CONTINUE_LIMIT,
        continuation_token: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ScanProgress:
        """Begin a fresh scan, optionally replaying a retained continuation token."""
        if self.phase is ScanPhase.RUNNING:
            raise ScanStateError("A scan is already running")
        if auto_continue_limit < 0:
            raise ValidationError(f"auto_continue_limit must be >= 0, got {auto_continue_limit}")

        self.mode = mode
        self.auto_continue = auto_continue
        self.auto_continue_limit = auto_continue_limit
        self.error = None
        self._progress = ScanProgress(continuation_token=continuation_token)
        self._token = cancel_token or CancellationToken()
        return self._run()

    def resume(
        self,
        auto_continue_limit: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ScanProgress:
        """Continue a finished or stopped scan from its last continuation token.

        Totals carry over. The auto-continue limit applies to what this run
        processes, so a scan that stopped at its limit can go on.
        """
        if self.phase is ScanPhase.RUNNING:
            raise ScanStateError("A scan is already running")
        if self.phase is ScanPhase.IDLE:
            raise ScanStateError("No scan to resume; start one first")
        if not self._progress.has_more and self.error is None:
            raise ScanStateError("Scan is exhausted; nothing left to resume")
        if auto_continue_limit is not None:
            if auto_continue_limit < 0:
                raise ValidationError(f"auto_continue_limit must be >= 0, got {auto_continue_limit}")
            self.auto_continue_limit = auto_continue_limit

        self.error = None
        self._token = cancel_token or CancellationToken()
        return self._run()

    def _fetch_next(self) -> None:
        page = self.source.fetch_discovery_page(
            self._progress.continuation_token,
            self.page_size,
            mode=self.mode,
        )
        self._progress.processed_count += page.processed_count
        self._progress.discovered_count += page.discovered_count
        self._progress.continuation_token = page.next_token
        self._progress.has_more = page.has_more
        self._progress.pages_completed += 1

        logger.info(
            "%s page %d: processed %d, discovered %d, more: %s",
            self.source.kind.value,
            self._progress.pages_completed,
            page.processed_count,
            page.discovered_count,
            page.has_more,
        )
        if self.on_page:
            self.on_page(self.progress())

    def _next_phase(self) -> ScanPhase | None:
        """Phase to stop in after a page, or None to keep going."""
        if self._token.cancelled:
            return ScanPhase.STOPPED
        if not self.auto_continue:
            return ScanPhase.DONE
        if self._progress.processed_count - self._run_baseline >= self.auto_continue_limit:
            return ScanPhase.DONE
        if not self._progress.has_more:
            return ScanPhase.DONE
        return None

    def _run(self) -> ScanProgress:
        self.phase = ScanPhase.RUNNING
        self._run_baseline = self._progress.processed_count

        try:
            while True:
                self._fetch_next()
                next_phase = self._next_phase()
                if next_phase is not None:
                    self.phase = next_phase
                    break
        except AuditError as exc:
            logger.warning("%s scan failed after %d pages: %s", self.source.kind.value, self._progress.pages_completed, exc)
            self.error = exc
            self.phase = ScanPhase.DONE
        except Exception as exc:
            self.error = exc
            self.phase = ScanPhase.DONE
            raise
        finally:
            self._log_run()

        return self.progress()

    def _log_run(self) -> None:
        if self.activity is None:
            return
        p = self._progress
        details = (
            f"{self.source.kind.value} ({self.mode.value}): processed {p.processed_count}, "
            f"discovered {p.discovered_count}, pages {p.pages_completed}"
        )
        if self.phase is ScanPhase.STOPPED:
            details += ", cancelled"
        if self.error is not None:
            details += f", failed: {self.error}"
        try:
            self.activity.add("scan", details)
        except sqlite3.Error as exc:
            logger.warning("Could not write activity entry: %s", exc)
