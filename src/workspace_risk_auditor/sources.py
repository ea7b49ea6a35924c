"""Base class shared by every source adapter."""

from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable

from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError

from .constants import HIGH_RISK_MIN, MAX_RECORDS_PER_SOURCE, STORE_PAGE_SIZE
from .errors import AssetNotFoundError, SourceUnavailableError
from .models import (
    SOURCE_ASSET_TYPES,
    AssetAction,
    AssetFilters,
    AssetId,
    AssetMetadata,
    AssetType,
    DiscoveryPage,
    PageInfo,
    RawRecord,
    RiskLevel,
    ScanMode,
    SourceKind,
    UnifiedAsset,
)
from .scorer import DEFAULT_POLICY, ScoringPolicy, calculate_score
from .store import RecordStore

logger = logging.getLogger(__name__)


class MalformedRecordError(ValueError):
    """A stored record cannot be normalized."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> datetime | None:
    """Parse an ISO-8601 / RFC 3339 timestamp; naive values are taken as UTC."""
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise MalformedRecordError(f"timestamp is not a string: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise MalformedRecordError(f"unparseable timestamp {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def require_payload(record: RawRecord) -> dict:
    if not isinstance(record.payload, dict):
        raise MalformedRecordError(f"payload of record {record.local_id} is not an object")
    return record.payload


class SourceAdapter(ABC):
    """Maps one source's raw records onto unified assets and back.

    Reads go through the record store; discovery and writes go to the
    upstream API built by ``service_factory``.
    """

    kind: SourceKind
    # AssetFilters attribute -> payload key that the store can filter on
    pushdown_flags: dict[str, str] = {}
    # Payload value assumed when the key is missing (lowest-risk default)
    flag_defaults: dict[str, bool] = {}

    def __init__(
        self,
        store: RecordStore,
        service_factory: Callable[[], object] | None = None,
        policy: ScoringPolicy = DEFAULT_POLICY,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.service_factory = service_factory
        self.policy = policy
        self.clock = clock

    @property
    def asset_type(self) -> AssetType:
        return SOURCE_ASSET_TYPES[self.kind]

    # --- errors and upstream access ---

    @contextmanager
    def source_errors(self, doing: str):
        """Translate upstream and storage failures into SourceUnavailableError."""
        try:
            yield
        except (HttpError, GoogleAuthError, sqlite3.Error, OSError) as exc:
            raise SourceUnavailableError(
                f"{self.kind.value}: failed to {doing}: {exc}", source_kind=self.kind
            ) from exc

    def service(self):
        if self.service_factory is None:
            raise SourceUnavailableError(
                f"{self.kind.value}: no API client configured", source_kind=self.kind
            )
        try:
            with self.source_errors("build API client"):
                return self.service_factory()
        except ValueError as exc:
            # google-auth rejects malformed token and key files with ValueError
            raise SourceUnavailableError(
                f"{self.kind.value}: unreadable credentials: {exc}", source_kind=self.kind
            ) from exc

    # --- reads ---

    def list(self, native_filters: dict, page: int, page_size: int = STORE_PAGE_SIZE) -> tuple[list[RawRecord], PageInfo]:
        with self.source_errors(f"list page {page}"):
            return self.store.list_records(
                self.kind,
                page=page,
                page_size=page_size,
                search=native_filters.get("search"),
                flags=native_filters.get("flags"),
            )

    def native_filters(self, filters: AssetFilters) -> dict:
        """Translate the part of ``filters`` this source can apply itself."""
        native: dict = {}
        if filters.search:
            native["search"] = filters.search

        flags = {}
        for attr, key in self.pushdown_flags.items():
            wanted = getattr(filters, attr)
            if wanted is not None:
                flags[key] = (wanted, self.flag_defaults.get(key, False))
        if flags:
            native["flags"] = flags

        if filters.risk_levels == {RiskLevel.HIGH}:
            native["high_risk"] = True
        return native

    def _normalize_or_skip(self, record: RawRecord) -> UnifiedAsset | None:
        try:
            return self.normalize(record)
        except (MalformedRecordError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping malformed %s record %s: %s", self.kind.value, record.local_id, exc)
            return None

    def fetch_assets(self, filters: AssetFilters, max_records: int = MAX_RECORDS_PER_SOURCE) -> list[UnifiedAsset]:
        """Page through the store and normalize up to ``max_records`` assets.

        A page that cannot be read fails the whole call; a malformed record
        is skipped and the rest of its page is still used.
        """
        native = self.native_filters(filters)
        assets: list[UnifiedAsset] = []
        page = 0

        while len(assets) < max_records:
            records, info = self.list(native, page)
            for record in records:
                asset = self._normalize_or_skip(record)
                if asset is None:
                    continue
                if native.get("high_risk") and asset.risk_score < HIGH_RISK_MIN:
                    continue
                assets.append(asset)

            if not info.has_more:
                break
            page += 1

        logger.debug("Fetched %d %s assets", len(assets), self.kind.value)
        return assets[:max_records]

    def get_record(self, local_id) -> RawRecord:
        with self.source_errors("read record"):
            record = self.store.get_record(self.kind, local_id)
        if record is None:
            raise AssetNotFoundError(f"No {self.kind.value} asset with id {local_id!r}")
        return record

    def get_asset(self, local_id) -> UnifiedAsset | None:
        with self.source_errors("read record"):
            record = self.store.get_record(self.kind, local_id)
        if record is None:
            return None
        return self._normalize_or_skip(record)

    def mark_synced(self) -> None:
        with self.source_errors("record sync time"):
            self.store.mark_synced(self.kind, self.clock())

    def build_asset(self, record: RawRecord, metadata: AssetMetadata, **fields) -> UnifiedAsset:
        """Create the unified asset for ``record``, scoring it on the way."""
        return UnifiedAsset(
            id=AssetId(self.kind, str(record.local_id)),
            risk_score=calculate_score(metadata, self.policy),
            metadata=metadata,
            last_synced_at=record.synced_at,
            **fields,
        )

    # --- per-source contract ---

    @abstractmethod
    def normalize(self, record: RawRecord) -> UnifiedAsset:
        """Map one raw record onto a scored unified asset."""

    @abstractmethod
    def allowed_actions(self, asset: UnifiedAsset) -> set[AssetAction]:
        """Actions valid for this asset in its current state."""

    @abstractmethod
    def write(self, action: AssetAction, local_id: str) -> dict:
        """Apply ``action`` upstream and to the stored record; return a payload."""

    @abstractmethod
    def fetch_discovery_page(
        self,
        continuation_token: str | None,
        page_size: int,
        mode: ScanMode = ScanMode.FULL,
    ) -> DiscoveryPage:
        """Fetch and store one page of the source's discovery listing."""
