"""Risk scoring of normalized assets."""

from __future__ import annotations

from dataclasses import dataclass

from .constants import (
    INACTIVE_DAYS,
    MANY_PERMISSIONS_THRESHOLD,
    MAX_SCORE,
    SENDER_HIGH_VOLUME_THRESHOLD,
    SENDER_NO_UNSUBSCRIBE_THRESHOLD,
    WEIGHT_FILE_DOMAIN_SHARED,
    WEIGHT_FILE_EXTERNAL_EDITOR,
    WEIGHT_FILE_EXTERNAL_SHARE,
    WEIGHT_FILE_INACTIVE,
    WEIGHT_FILE_MANY_PERMISSIONS,
    WEIGHT_FILE_ORPHANED,
    WEIGHT_FILE_PUBLIC,
    WEIGHT_MESSAGE_ATTACHMENT,
    WEIGHT_MESSAGE_SPAM,
    WEIGHT_MESSAGE_UNREAD,
    WEIGHT_MESSAGE_UNVERIFIED,
    WEIGHT_SENDER_HIGH_VOLUME,
    WEIGHT_SENDER_NO_UNSUBSCRIBE,
    WEIGHT_SENDER_UNVERIFIED,
)
from .models import AssetMetadata, FileMetadata, MessageMetadata, SenderMetadata


@dataclass(frozen=True)
class ScoringPolicy:
    """Configurable weights and thresholds for every rule set.

    Scores are additive and capped, so each weight can be tuned on its own.
    """

    file_public: int = WEIGHT_FILE_PUBLIC
    file_domain_shared: int = WEIGHT_FILE_DOMAIN_SHARED
    file_orphaned: int = WEIGHT_FILE_ORPHANED
    file_inactive: int = WEIGHT_FILE_INACTIVE
    file_many_permissions: int = WEIGHT_FILE_MANY_PERMISSIONS
    file_external_share: int = WEIGHT_FILE_EXTERNAL_SHARE
    file_external_editor: int = WEIGHT_FILE_EXTERNAL_EDITOR
    many_permissions_threshold: int = MANY_PERMISSIONS_THRESHOLD
    inactive_days: int = INACTIVE_DAYS

    sender_unverified: int = WEIGHT_SENDER_UNVERIFIED
    sender_high_volume: int = WEIGHT_SENDER_HIGH_VOLUME
    sender_no_unsubscribe: int = WEIGHT_SENDER_NO_UNSUBSCRIBE
    high_volume_threshold: int = SENDER_HIGH_VOLUME_THRESHOLD
    no_unsubscribe_threshold: int = SENDER_NO_UNSUBSCRIBE_THRESHOLD

    message_spam: int = WEIGHT_MESSAGE_SPAM
    message_unverified: int = WEIGHT_MESSAGE_UNVERIFIED
    message_attachment: int = WEIGHT_MESSAGE_ATTACHMENT
    message_unread: int = WEIGHT_MESSAGE_UNREAD


DEFAULT_POLICY = ScoringPolicy()


def _clamp(total: int) -> int:
    return max(0, min(total, MAX_SCORE))


def score_file(meta: FileMetadata, policy: ScoringPolicy = DEFAULT_POLICY) -> int:
    total = 0

    if meta.is_public:
        total += policy.file_public

    if meta.is_domain_shared:
        total += policy.file_domain_shared

    if meta.external_share_count > 0:
        total += policy.file_external_share

    if meta.has_external_editor:
        total += policy.file_external_editor

    if meta.is_orphaned:
        total += policy.file_orphaned

    if meta.is_inactive:
        total += policy.file_inactive

    if meta.permission_count >= policy.many_permissions_threshold:
        total += policy.file_many_permissions

    return _clamp(total)


def score_sender(meta: SenderMetadata, policy: ScoringPolicy = DEFAULT_POLICY) -> int:
    total = 0

    if not meta.is_verified:
        total += policy.sender_unverified

    if meta.email_count > policy.high_volume_threshold:
        total += policy.sender_high_volume

    if not meta.has_unsubscribe and meta.email_count > policy.no_unsubscribe_threshold:
        total += policy.sender_no_unsubscribe

    return _clamp(total)


def score_message(meta: MessageMetadata, policy: ScoringPolicy = DEFAULT_POLICY) -> int:
    total = 0

    if "SPAM" in meta.label_ids:
        total += policy.message_spam

    if not meta.is_verified:
        total += policy.message_unverified

    if meta.has_attachment:
        total += policy.message_attachment

    if not meta.is_read:
        total += policy.message_unread

    return _clamp(total)


def calculate_score(metadata: AssetMetadata, policy: ScoringPolicy = DEFAULT_POLICY) -> int:
    """Score any asset variant with its rule set.

    Returns an int between 0 and 100.
    """
    if isinstance(metadata, FileMetadata):
        return score_file(metadata, policy)
    if isinstance(metadata, SenderMetadata):
        return score_sender(metadata, policy)
    if isinstance(metadata, MessageMetadata):
        return score_message(metadata, policy)
    raise TypeError(f"No scoring rules for {type(metadata).__name__}")
