"""Source adapter for Google Drive files."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Callable

from . import drive_client
from .constants import DRIVE_PAGE_SIZE, FILE_TYPE_KEYWORDS, MIME_FILE_TYPES, QUICK_SCAN_DAYS
from .errors import AssetNotFoundError, SourceUnavailableError, UnsupportedActionError
from .models import (
    AssetAction,
    DiscoveryPage,
    DrivePermission,
    FileMetadata,
    RawRecord,
    ScanMode,
    SourceKind,
    UnifiedAsset,
)
from .sources import SourceAdapter, parse_timestamp, require_payload

logger = logging.getLogger(__name__)

_EDITOR_ROLES = ("owner", "organizer", "fileOrganizer", "writer")
_SHARING_KEYS = ("isOrphaned", "externalShareCount", "hasExternalEditor")


def classify_file_type(mime_type: str, asset_type: str | None = None) -> str:
    """Classify a MIME type (or free-text type label) into a fixed file type."""
    if mime_type in MIME_FILE_TYPES:
        return MIME_FILE_TYPES[mime_type]
    text = (asset_type or mime_type or "").lower()
    for keyword, file_type in FILE_TYPE_KEYWORDS:
        if keyword in text:
            return file_type
    return "other"


def _to_permission(raw: dict) -> DrivePermission:
    return DrivePermission(
        id=str(raw.get("id", "")),
        type=raw.get("type", "user"),
        role=raw.get("role", "reader"),
        email=raw.get("emailAddress"),
        display_name=raw.get("displayName"),
    )


def _owner_email(payload: dict) -> str | None:
    owners = payload.get("owners") or []
    if owners and isinstance(owners[0], dict) and owners[0].get("emailAddress"):
        return owners[0]["emailAddress"]
    return payload.get("ownerEmail")


def _display_fields(payload: dict) -> tuple[str, str]:
    """Name and owner as shown on the asset (and searched in the store)."""
    return payload.get("name") or "Untitled", _owner_email(payload) or "Unknown"


def _annotate_sharing(payload: dict, directory: set[str]) -> None:
    """Mark orphaning and sharing with people outside the workspace directory."""
    owner_email = (_owner_email(payload) or "").lower()
    payload["isOrphaned"] = bool(owner_email) and owner_email not in directory

    external = [
        p for p in payload.get("permissions") or []
        if isinstance(p, dict)
        and p.get("emailAddress")
        and p["emailAddress"].lower() not in directory
    ]
    payload["externalShareCount"] = len(external)
    payload["hasExternalEditor"] = any(p.get("role") in _EDITOR_ROLES for p in external)


class DriveFileAdapter(SourceAdapter):
    """Drive files, stored as v3 file resources plus directory-based annotations.

    ``isOrphaned``, ``externalShareCount`` and ``hasExternalEditor`` are only
    known when the Admin Directory can be read; otherwise earlier values are kept.
    """

    kind = SourceKind.DRIVE
    pushdown_flags = {"is_orphaned": "isOrphaned"}

    def __init__(self, store, service_factory=None, directory_factory: Callable[[], object] | None = None, **kwargs) -> None:
        super().__init__(store, service_factory=service_factory, **kwargs)
        self.directory_factory = directory_factory
        self._directory: set[str] | None = None
        self._directory_failed = False

    def normalize(self, record: RawRecord) -> UnifiedAsset:
        payload = require_payload(record)

        mime_type = payload.get("mimeType") or ""
        raw_permissions = payload.get("permissions")
        permissions = tuple(
            _to_permission(p) for p in (raw_permissions or []) if isinstance(p, dict)
        )
        if raw_permissions is None:
            permission_count = int(payload.get("permissionCount") or 0)
        else:
            permission_count = len(permissions)

        created_at = parse_timestamp(payload.get("createdTime"))
        modified_at = parse_timestamp(payload.get("modifiedTime"))
        inactive_before = self.clock() - timedelta(days=self.policy.inactive_days)
        owner_email = _owner_email(payload)
        name, owner = _display_fields(payload)

        metadata = FileMetadata(
            mime_type=mime_type,
            file_type=classify_file_type(mime_type, payload.get("assetType")),
            external_id=payload.get("id") or record.external_key,
            permission_count=permission_count,
            is_orphaned=bool(payload.get("isOrphaned", False)),
            is_inactive=modified_at is not None and modified_at < inactive_before,
            is_public=any(p.type == "anyone" for p in permissions),
            is_domain_shared=any(p.type == "domain" for p in permissions),
            external_share_count=int(payload.get("externalShareCount") or 0),
            has_external_editor=bool(payload.get("hasExternalEditor", False)),
            permissions=permissions,
        )
        return self.build_asset(
            record,
            metadata,
            name=name,
            owner=owner,
            owner_email=owner_email,
            created_at=created_at,
            last_activity_at=modified_at or created_at,
            url=payload.get("webViewLink"),
        )

    # --- discovery ---

    def _directory_emails(self) -> set[str] | None:
        """Workspace user emails, or None when the directory cannot be read.

        A failed listing is not retried for the lifetime of the adapter.
        """
        if self.directory_factory is None or self._directory_failed:
            return None
        if self._directory is None:
            try:
                with self.source_errors("list directory users"):
                    service = self.directory_factory()
                    if service is None:
                        return None
                    self._directory = drive_client.list_directory_emails(service)
            except SourceUnavailableError as exc:
                logger.warning("Directory unavailable, orphan and external sharing checks skipped: %s", exc)
                self._directory_failed = True
                return None
            logger.info("Loaded %d directory users", len(self._directory))
        return self._directory

    def _store_file(self, file: dict, directory: set[str] | None) -> bool:
        payload = dict(file)
        if directory is not None:
            _annotate_sharing(payload, directory)
        else:
            # Keep whatever an earlier directory-aware pass decided
            existing = self.store.find_by_key(self.kind, file["id"])
            if existing and isinstance(existing.payload, dict):
                for key in _SHARING_KEYS:
                    if key in existing.payload:
                        payload[key] = existing.payload[key]

        _, created = self.store.upsert_record(
            self.kind,
            file["id"],
            payload,
            search_text=" ".join(_display_fields(payload)),
        )
        return created

    def _discovery_query(self, mode: ScanMode) -> str:
        query = "trashed = false"
        if mode is ScanMode.QUICK:
            since = self.clock() - timedelta(days=QUICK_SCAN_DAYS)
            query += f" and modifiedTime > '{since.strftime('%Y-%m-%dT%H:%M:%S')}'"
        return query

    def fetch_discovery_page(self, continuation_token, page_size=DRIVE_PAGE_SIZE, mode=ScanMode.FULL) -> DiscoveryPage:
        service = self.service()
        with self.source_errors("list files"):
            files, next_token = drive_client.list_files_page(
                service,
                query=self._discovery_query(mode),
                page_token=continuation_token,
                page_size=page_size,
            )
        directory = self._directory_emails()

        discovered = 0
        with self.source_errors("store files"):
            for file in files:
                if not isinstance(file, dict) or not file.get("id"):
                    logger.warning("Skipping Drive file without id: %r", file)
                    continue
                discovered += self._store_file(file, directory)
        self.mark_synced()

        return DiscoveryPage(
            processed_count=len(files),
            discovered_count=discovered,
            next_token=next_token,
            has_more=bool(next_token),
        )

    # --- actions ---

    def allowed_actions(self, asset: UnifiedAsset) -> set[AssetAction]:
        return {AssetAction.REFRESH, AssetAction.DELETE}

    def write(self, action: AssetAction, local_id: str) -> dict:
        record = self.get_record(local_id)
        service = self.service()

        if action is AssetAction.REFRESH:
            with self.source_errors("refresh file"):
                file = drive_client.get_file(service, record.external_key)
                if file is None:
                    self.store.delete_record(self.kind, record.local_id)
                else:
                    self._store_file(file, None)
            if file is None:
                raise AssetNotFoundError(f"Drive file {record.external_key} no longer exists")
            return {"refreshed": True}

        if action is AssetAction.DELETE:
            with self.source_errors("trash file"):
                drive_client.trash_file(service, record.external_key)
                self.store.delete_record(self.kind, record.local_id)
            return {"trashed": True}

        raise UnsupportedActionError(f"Drive files do not support {action.value!r}")
