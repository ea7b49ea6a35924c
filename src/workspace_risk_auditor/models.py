"""Data models for Workspace Risk Auditor."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union

from .constants import HIGH_RISK_MIN, MEDIUM_RISK_MIN
from .errors import DecodeError, ValidationError

ID_SEPARATOR = "_"  # never part of a SourceKind value


class SourceKind(str, Enum):
    """Backing system that produced a raw record."""

    DRIVE = "drive"
    SENDER = "sender"
    MESSAGE = "message"


class AssetType(str, Enum):
    DRIVE_FILE = "drive_file"
    EMAIL_SENDER = "email_sender"
    EMAIL_MESSAGE = "email_message"


SOURCE_ASSET_TYPES = {
    SourceKind.DRIVE: AssetType.DRIVE_FILE,
    SourceKind.SENDER: AssetType.EMAIL_SENDER,
    SourceKind.MESSAGE: AssetType.EMAIL_MESSAGE,
}


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AssetAction(str, Enum):
    DELETE = "delete"
    UNSUBSCRIBE = "unsubscribe"
    REFRESH = "refresh"


class AuthType(str, Enum):
    OAUTH = "oauth"
    SERVICE_ACCOUNT = "service_account"


class ScanMode(str, Enum):
    FULL = "full"
    QUICK = "quick"


class ScanPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    DONE = "done"


def risk_level_for(score: int) -> RiskLevel:
    """Map a risk score onto its level using the fixed thresholds."""
    if score >= HIGH_RISK_MIN:
        return RiskLevel.HIGH
    if score >= MEDIUM_RISK_MIN:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


@dataclass(frozen=True)
class AssetId:
    """Composite identity of an asset: which source, and its id there."""

    source_kind: SourceKind
    local_id: str

    def encode(self) -> str:
        return f"{self.source_kind.value}{ID_SEPARATOR}{self.local_id}"

    @classmethod
    def decode(cls, token: str) -> AssetId:
        """Parse a token like ``"drive_482"`` back into its parts.

        Only the first separator splits: local ids may contain it, source
        kinds never do.
        """
        if not isinstance(token, str) or ID_SEPARATOR not in token:
            raise DecodeError(f"Unsupported or malformed id: {token!r}")
        kind_value, _, local_id = token.partition(ID_SEPARATOR)
        if not local_id:
            raise DecodeError(f"Unsupported or malformed id: {token!r}")
        try:
            kind = SourceKind(kind_value)
        except ValueError:
            raise DecodeError(f"Unsupported or malformed id: {token!r}") from None
        return cls(source_kind=kind, local_id=local_id)

    def __str__(self) -> str:
        return self.encode()


@dataclass(frozen=True)
class DrivePermission:
    id: str
    type: str  # user, group, domain, anyone
    role: str
    email: str | None = None
    display_name: str | None = None


@dataclass(frozen=True)
class FileMetadata:
    mime_type: str
    file_type: str
    external_id: str
    permission_count: int = 0
    is_orphaned: bool = False
    is_inactive: bool = False
    is_public: bool = False
    is_domain_shared: bool = False
    external_share_count: int = 0
    has_external_editor: bool = False
    permissions: tuple[DrivePermission, ...] = ()


@dataclass(frozen=True)
class SenderMetadata:
    sender_email: str
    sender_name: str | None = None
    email_count: int = 0
    attachment_count: int = 0
    unread_count: int = 0
    first_email_date: datetime | None = None
    last_email_date: datetime | None = None
    has_unsubscribe: bool = False
    unsubscribe_link: str | None = None
    is_verified: bool = True
    is_unsubscribed: bool = False
    unsubscribed_at: datetime | None = None


@dataclass(frozen=True)
class MessageMetadata:
    message_id: str
    thread_id: str
    sender_email: str
    subject: str = ""
    sender_name: str | None = None
    snippet: str = ""
    is_read: bool = True
    has_attachment: bool = False
    label_ids: tuple[str, ...] = ()
    received_at: datetime | None = None
    is_verified: bool = True


AssetMetadata = Union[FileMetadata, SenderMetadata, MessageMetadata]

_METADATA_TYPES = {
    FileMetadata: AssetType.DRIVE_FILE,
    SenderMetadata: AssetType.EMAIL_SENDER,
    MessageMetadata: AssetType.EMAIL_MESSAGE,
}


@dataclass(frozen=True)
class UnifiedAsset:
    """Normalized, source-agnostic view of one risky item.

    ``risk_score`` is filled in by the source adapter from the scorer when the
    asset is built; ``risk_level`` is always derived from it.
    """

    id: AssetId
    name: str
    owner: str
    risk_score: int
    metadata: AssetMetadata
    owner_email: str | None = None
    created_at: datetime | None = None
    last_activity_at: datetime | None = None
    last_synced_at: datetime | None = None
    url: str | None = None
    description: str | None = None

    @property
    def asset_type(self) -> AssetType:
        try:
            return _METADATA_TYPES[type(self.metadata)]
        except KeyError:
            raise TypeError(f"Unknown asset metadata: {type(self.metadata).__name__}") from None

    @property
    def source_kind(self) -> SourceKind:
        return self.id.source_kind

    @property
    def risk_level(self) -> RiskLevel:
        return risk_level_for(self.risk_score)


def _parse_enum_set(enum_cls, values, label: str) -> frozenset | None:
    if values is None:
        return None
    parsed = set()
    for value in values:
        try:
            parsed.add(enum_cls(value))
        except ValueError:
            allowed = ", ".join(e.value for e in enum_cls)
            raise ValidationError(f"Unknown {label} {value!r}. Must be one of: {allowed}") from None
    return frozenset(parsed)


@dataclass(frozen=True)
class AssetFilters:
    """Query constraints. ``None`` means no constraint on that dimension."""

    types: frozenset[AssetType] | None = None
    risk_levels: frozenset[RiskLevel] | None = None
    search: str | None = None
    is_orphaned: bool | None = None
    is_inactive: bool | None = None
    is_public: bool | None = None
    is_verified: bool | None = None
    has_unsubscribe: bool | None = None

    @classmethod
    def parse(cls, types=None, risk_levels=None, **kwargs: Any) -> AssetFilters:
        """Build filters from plain strings, validating enum names."""
        return cls(
            types=_parse_enum_set(AssetType, types, "asset type"),
            risk_levels=_parse_enum_set(RiskLevel, risk_levels, "risk level"),
            **kwargs,
        )


class SortField(str, Enum):
    NAME = "name"
    RISK_SCORE = "riskScore"
    CREATED_AT = "createdAt"
    LAST_ACTIVITY_AT = "lastActivityAt"
    OWNER = "owner"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class AssetSort:
    field: SortField = SortField.RISK_SCORE
    order: SortOrder = SortOrder.DESC

    @classmethod
    def parse(cls, field_name: str, order: str = "desc") -> AssetSort:
        try:
            sort_field = SortField(field_name)
        except ValueError:
            allowed = ", ".join(f.value for f in SortField)
            raise ValidationError(f"Unknown sort field {field_name!r}. Must be one of: {allowed}") from None
        try:
            sort_order = SortOrder(order.lower())
        except ValueError:
            raise ValidationError(f"Unknown sort order {order!r}. Must be 'asc' or 'desc'") from None
        return cls(field=sort_field, order=sort_order)


@dataclass
class AssetListResult:
    assets: list[UnifiedAsset]
    total: int
    limit: int
    offset: int
    has_more: bool
    failed_sources: tuple[SourceKind, ...] = ()

    @property
    def is_partial(self) -> bool:
        return bool(self.failed_sources)


@dataclass
class AssetStats:
    total: int = 0
    by_type: dict[AssetType, int] = field(default_factory=lambda: {t: 0 for t in AssetType})
    by_risk_level: dict[RiskLevel, int] = field(default_factory=lambda: {r: 0 for r in RiskLevel})
    high_risk_count: int = 0
    recent_activity_count: int = 0
    failed_sources: tuple[SourceKind, ...] = ()

    @property
    def is_partial(self) -> bool:
        return bool(self.failed_sources)


@dataclass
class ScanProgress:
    """Running totals of one scan session. Never persisted."""

    processed_count: int = 0
    discovered_count: int = 0
    pages_completed: int = 0
    has_more: bool = False
    continuation_token: str | None = None


@dataclass(frozen=True)
class DiscoveryPage:
    """One page returned by a source's discovery endpoint."""

    processed_count: int
    discovered_count: int
    next_token: str | None = None
    has_more: bool = False


@dataclass(frozen=True)
class PageInfo:
    page: int
    page_size: int
    total: int
    has_more: bool


@dataclass(frozen=True)
class RawRecord:
    """A record as persisted for one source, before normalization."""

    local_id: int
    source_kind: SourceKind
    external_key: str
    payload: Any  # decoded JSON, normally a dict
    synced_at: datetime | None = None


@dataclass(frozen=True)
class Capabilities:
    can_read_drive: bool = False
    can_write_drive: bool = False
    can_read_gmail: bool = False
    can_write_gmail: bool = False
    can_read_directory: bool = False


@dataclass(frozen=True)
class PlatformConnection:
    source_kind: SourceKind
    is_connected: bool
    auth_type: AuthType | None = None
    email: str | None = None
    capabilities: Capabilities = field(default_factory=Capabilities)
    last_synced_at: datetime | None = None


@dataclass
class ActionResult:
    success: bool
    error: Exception | None = None
    payload: dict = field(default_factory=dict)


@dataclass
class BatchItemResult:
    asset_id: str
    result: ActionResult


@dataclass(frozen=True)
class ActivityEntry:
    id: int
    timestamp: str
    action: str  # scan, delete, unsubscribe, refresh, connect, ...
    details: str
