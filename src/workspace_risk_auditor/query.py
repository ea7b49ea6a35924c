"""Merged, filtered, sorted and paginated views over every source."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from .constants import DEFAULT_LIMIT, HIGH_RISK_MIN, MAX_RECORDS_PER_SOURCE, RECENT_ACTIVITY_DAYS
from .errors import SourceUnavailableError, ValidationError
from .models import (
    AssetFilters,
    AssetListResult,
    AssetSort,
    AssetStats,
    FileMetadata,
    MessageMetadata,
    SenderMetadata,
    SortField,
    SortOrder,
    SourceKind,
    UnifiedAsset,
)
from .sources import SourceAdapter, utcnow

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Filter attribute -> metadata classes that carry it
_PREDICATE_CARRIERS = {
    "is_orphaned": (FileMetadata,),
    "is_inactive": (FileMetadata,),
    "is_public": (FileMetadata,),
    "is_verified": (SenderMetadata, MessageMetadata),
    "has_unsubscribe": (SenderMetadata,),
}


def matches(asset: UnifiedAsset, filters: AssetFilters) -> bool:
    """Whether ``asset`` satisfies every constraint in ``filters``."""
    if filters.types is not None and asset.asset_type not in filters.types:
        return False
    if filters.risk_levels is not None and asset.risk_level not in filters.risk_levels:
        return False
    if filters.search:
        needle = filters.search.casefold()
        if needle not in asset.name.casefold() and needle not in asset.owner.casefold():
            return False

    for attr, carriers in _PREDICATE_CARRIERS.items():
        wanted = getattr(filters, attr)
        if wanted is None or not isinstance(asset.metadata, carriers):
            continue
        if getattr(asset.metadata, attr) != wanted:
            return False
    return True


def _sort_key(sort_field: SortField) -> Callable[[UnifiedAsset], object]:
    if sort_field is SortField.NAME:
        return lambda a: a.name.casefold()
    if sort_field is SortField.OWNER:
        return lambda a: a.owner.casefold()
    if sort_field is SortField.RISK_SCORE:
        return lambda a: a.risk_score
    if sort_field is SortField.CREATED_AT:
        return lambda a: a.created_at or _EPOCH
    if sort_field is SortField.LAST_ACTIVITY_AT:
        return lambda a: a.last_activity_at or _EPOCH
    raise TypeError(f"Unknown sort field: {sort_field!r}")


def sort_assets(assets: list[UnifiedAsset], sort: AssetSort) -> list[UnifiedAsset]:
    """Stable sort; ties keep their merged-input order in both directions."""
    return sorted(assets, key=_sort_key(sort.field), reverse=sort.order is SortOrder.DESC)


class QueryEngine:
    """Answers asset queries by merging what every source adapter returns.

    Adapters are called one after another in the order given. A source that
    raises ``SourceUnavailableError`` is logged and left out; the result then
    lists it in ``failed_sources``.
    """

    def __init__(
        self,
        adapters: Iterable[SourceAdapter],
        max_records_per_source: int = MAX_RECORDS_PER_SOURCE,
        recent_activity_days: int = RECENT_ACTIVITY_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.adapters = list(adapters)
        self.max_records_per_source = max_records_per_source
        self.recent_activity_days = recent_activity_days
        self.clock = clock

    def _merge(self, filters: AssetFilters) -> tuple[list[UnifiedAsset], tuple[SourceKind, ...]]:
        merged: list[UnifiedAsset] = []
        failed: list[SourceKind] = []

        for adapter in self.adapters:
            if filters.types is not None and adapter.asset_type not in filters.types:
                continue
            try:
                merged.extend(adapter.fetch_assets(filters, self.max_records_per_source))
            except SourceUnavailableError as exc:
                logger.warning("Source %s unavailable, continuing without it: %s", adapter.kind.value, exc)
                failed.append(adapter.kind)

        return merged, tuple(failed)

    def get_assets(
        self,
        filters: AssetFilters | None = None,
        sort: AssetSort | None = None,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
    ) -> AssetListResult:
        if limit < 0:
            raise ValidationError(f"limit must be >= 0, got {limit}")
        if offset < 0:
            raise ValidationError(f"offset must be >= 0, got {offset}")
        filters = filters or AssetFilters()
        sort = sort or AssetSort()

        merged, failed = self._merge(filters)
        filtered = [a for a in merged if matches(a, filters)]
        ordered = sort_assets(filtered, sort)

        page = ordered[offset:offset + limit]
        total = len(ordered)
        return AssetListResult(
            assets=page,
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + len(page) < total,
            failed_sources=failed,
        )

    def get_stats(self) -> AssetStats:
        merged, failed = self._merge(AssetFilters())
        stats = AssetStats(total=len(merged), failed_sources=failed)
        recent_since = self.clock() - timedelta(days=self.recent_activity_days)

        for asset in merged:
            stats.by_type[asset.asset_type] += 1
            stats.by_risk_level[asset.risk_level] += 1
            if asset.risk_score >= HIGH_RISK_MIN:
                stats.high_risk_count += 1
            if asset.last_activity_at is not None and asset.last_activity_at >= recent_since:
                stats.recent_activity_count += 1
        return stats
