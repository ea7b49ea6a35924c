"""Route remediation actions to the source that owns an asset."""

from __future__ import annotations

import logging
import sqlite3
from typing import Iterable

from .activity import ActivityLog
from .connections import ConnectionResolver, can_read, can_write
from .errors import AssetNotFoundError, AuditError, SourceUnavailableError, UnsupportedActionError
from .models import ActionResult, AssetAction, AssetId, BatchItemResult, SourceKind
from .sources import SourceAdapter

logger = logging.getLogger(__name__)


def parse_action(action) -> AssetAction:
    if isinstance(action, AssetAction):
        return action
    try:
        return AssetAction(str(action).lower())
    except ValueError:
        raise UnsupportedActionError(f"Unknown action {action!r}") from None


class ActionRouter:
    """Decodes asset ids and dispatches actions to the owning adapter.

    ``perform_action`` never raises an ``AuditError``: every failure comes back
    as an unsuccessful ``ActionResult``.
    """

    def __init__(
        self,
        adapters: Iterable[SourceAdapter],
        resolver: ConnectionResolver | None = None,
        activity: ActivityLog | None = None,
    ) -> None:
        self.adapters: dict[SourceKind, SourceAdapter] = {a.kind: a for a in adapters}
        self.resolver = resolver
        self.activity = activity

    def _check_capability(self, kind: SourceKind, action: AssetAction) -> None:
        if self.resolver is None:
            return
        connection = self.resolver.status(kind)
        if action is AssetAction.REFRESH:
            allowed = can_read(connection.capabilities, kind)
        else:
            allowed = can_write(connection.capabilities, kind)
        if not allowed:
            auth = connection.auth_type.value if connection.auth_type else "no credentials"
            raise SourceUnavailableError(
                f"{kind.value}: {action.value} is not permitted with {auth}", source_kind=kind
            )

    def _dispatch(self, asset_id: str, action) -> dict:
        decoded = AssetId.decode(asset_id)
        adapter = self.adapters.get(decoded.source_kind)
        if adapter is None:
            raise UnsupportedActionError(f"No source handles {decoded.source_kind.value} assets")

        parsed = parse_action(action)
        asset = adapter.get_asset(decoded.local_id)
        if asset is None:
            raise AssetNotFoundError(f"Asset {asset_id} not found")

        if parsed not in adapter.allowed_actions(asset):
            raise UnsupportedActionError(
                f"Cannot {parsed.value} {asset.asset_type.value} {asset_id} in its current state"
            )

        self._check_capability(decoded.source_kind, parsed)
        return adapter.write(parsed, decoded.local_id)

    def _record(self, asset_id: str, action, result: ActionResult) -> None:
        if self.activity is None:
            return
        name = action.value if isinstance(action, AssetAction) else str(action)
        if result.success:
            details = f"{asset_id}: ok"
        else:
            details = f"{asset_id}: failed ({result.error})"
        try:
            self.activity.add(name, details)
        except sqlite3.Error as exc:
            logger.warning("Could not write activity entry: %s", exc)

    def perform_action(self, asset_id: str, action) -> ActionResult:
        try:
            payload = self._dispatch(asset_id, action)
        except AuditError as exc:
            logger.info("Action %s on %s failed: %s", action, asset_id, exc)
            result = ActionResult(success=False, error=exc)
        else:
            logger.info("Action %s on %s succeeded", action, asset_id)
            result = ActionResult(success=True, payload=payload or {})

        self._record(asset_id, action, result)
        return result

    def perform_batch(self, asset_ids: Iterable[str], action) -> list[BatchItemResult]:
        """Apply one action to many assets, each independently."""
        return [
            BatchItemResult(asset_id=asset_id, result=self.perform_action(asset_id, action))
            for asset_id in asset_ids
        ]
