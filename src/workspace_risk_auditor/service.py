"""Library facade wiring store, adapters, queries, actions and scans together."""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from .actions import ActionRouter
from .activity import ActivityLog
from .auth import FileCredentialProvider
from .config import AuditorConfig
from .constants import DEFAULT_LIMIT
from .connections import ConnectionResolver
from .drive_source import DriveFileAdapter
from .errors import UnsupportedActionError
from .gmail_source import EmailMessageAdapter, EmailSenderAdapter
from .models import (
    ActionResult,
    AssetFilters,
    AssetListResult,
    AssetSort,
    AssetStats,
    BatchItemResult,
    PlatformConnection,
    ScanProgress,
    SourceKind,
)
from .query import QueryEngine
from .scan import ScanController
from .sources import SourceAdapter
from .store import RecordStore

logger = logging.getLogger(__name__)


class WorkspaceAuditor:
    """Single entry point for queries, actions, scans and connection status."""

    def __init__(
        self,
        store: RecordStore,
        adapters: Iterable[SourceAdapter],
        resolver: ConnectionResolver | None = None,
        activity: ActivityLog | None = None,
        config: AuditorConfig | None = None,
    ) -> None:
        self.config = config or AuditorConfig()
        self.store = store
        self.adapters = {a.kind: a for a in adapters}
        self.resolver = resolver
        self.activity = activity
        self.query = QueryEngine(
            self.adapters.values(),
            max_records_per_source=self.config.max_records_per_source,
            recent_activity_days=self.config.recent_activity_days,
        )
        self.router = ActionRouter(self.adapters.values(), resolver=resolver, activity=activity)

    def adapter(self, kind: SourceKind) -> SourceAdapter:
        try:
            return self.adapters[kind]
        except KeyError:
            raise UnsupportedActionError(f"No source handles {kind.value} assets") from None

    def get_assets(
        self,
        filters: AssetFilters | None = None,
        sort: AssetSort | None = None,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
    ) -> AssetListResult:
        return self.query.get_assets(filters, sort, limit=limit, offset=offset)

    def get_stats(self) -> AssetStats:
        return self.query.get_stats()

    def perform_action(self, asset_id: str, action) -> ActionResult:
        return self.router.perform_action(asset_id, action)

    def perform_batch(self, asset_ids: Iterable[str], action) -> list[BatchItemResult]:
        return self.router.perform_batch(asset_ids, action)

    def get_connection_status(self, kind: SourceKind) -> PlatformConnection:
        if self.resolver is None:
            return PlatformConnection(source_kind=kind, is_connected=False)
        return self.resolver.status(kind)

    def connections(self) -> list[PlatformConnection]:
        return [self.get_connection_status(kind) for kind in SourceKind]

    def scan_controller(
        self,
        kind: SourceKind,
        page_size: int | None = None,
        on_page: Callable[[ScanProgress], None] | None = None,
    ) -> ScanController:
        return ScanController(
            self.adapter(kind),
            page_size=page_size or self.config.discovery_page_size,
            on_page=on_page,
            activity=self.activity,
        )

    def close(self) -> None:
        if self.activity is not None:
            self.activity.close()
        self.store.close()

    def __enter__(self) -> WorkspaceAuditor:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()


def build_auditor(config: AuditorConfig, provider: FileCredentialProvider | None = None) -> WorkspaceAuditor:
    """Build an auditor over the configured store and file-based credentials."""
    provider = provider or FileCredentialProvider(delegated_user=config.delegated_user)
    store = RecordStore(config.store_path)
    activity = ActivityLog(config.store_path, max_entries=config.activity_log_limit)

    def gmail_service():
        return provider.build_service(SourceKind.SENDER)

    adapters = [
        DriveFileAdapter(
            store,
            service_factory=lambda: provider.build_service(SourceKind.DRIVE),
            directory_factory=provider.build_directory_service,
            policy=config.scoring,
        ),
        EmailSenderAdapter(store, service_factory=gmail_service, policy=config.scoring),
        EmailMessageAdapter(store, service_factory=gmail_service, policy=config.scoring),
    ]
    logger.debug("Using store %s", config.store_path)
    return WorkspaceAuditor(
        store,
        adapters,
        resolver=ConnectionResolver(provider, store),
        activity=activity,
        config=config,
    )
