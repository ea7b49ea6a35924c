"""Error types raised by the auditor core."""

from __future__ import annotations


class AuditError(Exception):
    """Base class for every error the auditor reports to its callers."""


class DecodeError(AuditError):
    """A composite asset id could not be decoded."""


class UnsupportedActionError(AuditError):
    """The action is not valid for the asset's type or current state."""


class SourceUnavailableError(AuditError):
    """A source adapter call failed (network, auth, quota, storage)."""

    def __init__(self, message: str, source_kind=None) -> None:
        super().__init__(message)
        self.source_kind = source_kind


class ValidationError(AuditError):
    """Malformed filter, sort, pagination or configuration input."""


class AssetNotFoundError(AuditError):
    """The id decoded fine but no such asset exists in its source."""


class ScanStateError(AuditError):
    """A scan operation was requested in a phase that does not allow it."""
