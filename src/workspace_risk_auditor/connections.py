"""Per-source connection status and capabilities."""

from __future__ import annotations

import logging
import sqlite3
from typing import Protocol

from google.auth.exceptions import GoogleAuthError

from .models import AuthType, Capabilities, PlatformConnection, SourceKind
from .store import RecordStore

logger = logging.getLogger(__name__)

CAPABILITIES = {
    AuthType.OAUTH: Capabilities(
        can_read_drive=True,
        can_read_gmail=True,
        can_write_gmail=True,
    ),
    AuthType.SERVICE_ACCOUNT: Capabilities(
        can_read_drive=True,
        can_write_drive=True,
        can_read_directory=True,
    ),
}


class CredentialProvider(Protocol):
    def credential_for(self, kind: SourceKind): ...


def can_read(capabilities: Capabilities, kind: SourceKind) -> bool:
    if kind is SourceKind.DRIVE:
        return capabilities.can_read_drive
    return capabilities.can_read_gmail


def can_write(capabilities: Capabilities, kind: SourceKind) -> bool:
    if kind is SourceKind.DRIVE:
        return capabilities.can_write_drive
    return capabilities.can_write_gmail


class ConnectionResolver:
    """Works out whether each source can be used, and for what."""

    def __init__(self, provider: CredentialProvider, store: RecordStore | None = None) -> None:
        self.provider = provider
        self.store = store

    def _last_synced(self, kind: SourceKind):
        if self.store is None:
            return None
        try:
            return self.store.last_synced(kind)
        except sqlite3.Error as exc:
            logger.warning("Could not read last sync time for %s: %s", kind.value, exc)
            return None

    def status(self, kind: SourceKind) -> PlatformConnection:
        try:
            stored = self.provider.credential_for(kind)
        except (GoogleAuthError, OSError, ValueError) as exc:
            logger.warning("Could not load %s credentials: %s", kind.value, exc)
            stored = None

        if stored is None:
            return PlatformConnection(source_kind=kind, is_connected=False, last_synced_at=self._last_synced(kind))

        capabilities = CAPABILITIES.get(stored.auth_type, Capabilities())
        return PlatformConnection(
            source_kind=kind,
            is_connected=can_read(capabilities, kind),
            auth_type=stored.auth_type,
            email=stored.email,
            capabilities=capabilities,
            last_synced_at=self._last_synced(kind),
        )

    def all_statuses(self) -> list[PlatformConnection]:
        return [self.status(kind) for kind in SourceKind]
