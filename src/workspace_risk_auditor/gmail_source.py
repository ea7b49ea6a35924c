"""Source adapters for Gmail senders and messages.

Both adapters discover through the same walk over the inbox: every page of
message ids is fetched as metadata, stored as message records, and the senders
touched by that page are re-aggregated from their stored messages. Counts are
therefore recomputed rather than incremented, so rescanning a page never
double counts.
"""

from __future__ import annotations

import logging
from datetime import datetime

from . import gmail_client
from .constants import INBOX_QUERY, LIST_PAGE_SIZE, QUICK_SCAN_DAYS, SENDER_REFRESH_LIMIT
from .errors import AssetNotFoundError, UnsupportedActionError
from .gmail_client import MessageMeta, parse_unsubscribe_link
from .models import (
    AssetAction,
    DiscoveryPage,
    MessageMetadata,
    RawRecord,
    ScanMode,
    SenderMetadata,
    SourceKind,
    UnifiedAsset,
)
from .sources import MalformedRecordError, SourceAdapter, parse_timestamp, require_payload

logger = logging.getLogger(__name__)


def message_payload(meta: MessageMeta) -> dict:
    """Raw record stored for one Gmail message."""
    return {
        "messageId": meta.message_id,
        "threadId": meta.thread_id,
        "senderEmail": meta.sender_email,
        "senderName": meta.sender_name,
        "subject": meta.subject,
        "snippet": meta.snippet,
        "labelIds": list(meta.labels),
        "hasAttachment": meta.has_attachment,
        "listUnsubscribe": meta.list_unsubscribe,
        "isVerified": meta.is_verified,
        "receivedAt": meta.received_at.isoformat() if meta.received_at else None,
    }


def _message_display(payload: dict) -> tuple[str, str]:
    """Name and owner shown for a stored message."""
    return payload.get("subject") or "(no subject)", payload.get("senderEmail") or "Unknown"


def _sender_display(payload: dict) -> tuple[str, str]:
    email = payload.get("senderEmail") or ""
    return payload.get("senderName") or email, email


def _search_text(display: tuple[str, str]) -> str:
    return " ".join(display)


def _received(payload: dict) -> datetime | None:
    try:
        return parse_timestamp(payload.get("receivedAt"))
    except MalformedRecordError:
        return None


def aggregate_sender(email: str, messages: list[dict], previous: dict | None = None) -> dict:
    """Build a sender record from the stored payloads of its messages.

    State that only exists on the sender (unsubscribe status) is carried over
    from ``previous``.
    """
    previous = previous or {}
    dated = [(m, _received(m)) for m in messages]
    dates = [d for _, d in dated if d is not None]

    name = next((m.get("senderName") for m in messages if m.get("senderName")), None)

    # The newest message with a List-Unsubscribe header wins
    unsubscribe_link = None
    newest_first = sorted(dated, key=lambda pair: pair[1].timestamp() if pair[1] else 0, reverse=True)
    for message, _ in newest_first:
        unsubscribe_link = parse_unsubscribe_link(message.get("listUnsubscribe", ""))
        if unsubscribe_link:
            break

    return {
        "senderEmail": email,
        "senderName": name or previous.get("senderName"),
        "emailCount": len(messages),
        "attachmentCount": sum(1 for m in messages if m.get("hasAttachment")),
        "unreadCount": sum(1 for m in messages if "UNREAD" in (m.get("labelIds") or [])),
        "firstEmailDate": min(dates).isoformat() if dates else None,
        "lastEmailDate": max(dates).isoformat() if dates else None,
        "hasUnsubscribe": unsubscribe_link is not None,
        "unsubscribeLink": unsubscribe_link,
        "isVerified": all(m.get("isVerified", True) for m in messages),
        "isUnsubscribed": previous.get("isUnsubscribed", False),
        "unsubscribedAt": previous.get("unsubscribedAt"),
    }


class _GmailAdapter(SourceAdapter):
    """Shared discovery and storage for the Gmail-backed sources."""

    def _discovery_query(self, mode: ScanMode) -> str:
        if mode is ScanMode.QUICK:
            return f"{INBOX_QUERY} newer_than:{QUICK_SCAN_DAYS}d"
        return INBOX_QUERY

    def store_message(self, meta: MessageMeta) -> bool:
        payload = message_payload(meta)
        _, created = self.store.upsert_record(
            SourceKind.MESSAGE,
            meta.message_id,
            payload,
            search_text=_search_text(_message_display(payload)),
            group_key=meta.sender_email,
        )
        return created

    def reaggregate_sender(self, email: str) -> bool:
        """Recompute one sender record from its messages. Returns True if it was created."""
        messages = [
            r.payload for r in self.store.find_by_group(SourceKind.MESSAGE, email)
            if isinstance(r.payload, dict)
        ]
        existing = self.store.find_by_key(SourceKind.SENDER, email)
        if not messages:
            if existing:
                self.store.delete_record(SourceKind.SENDER, existing.local_id)
            return False

        previous = existing.payload if existing and isinstance(existing.payload, dict) else None
        payload = aggregate_sender(email, messages, previous)
        _, created = self.store.upsert_record(
            SourceKind.SENDER,
            email,
            payload,
            search_text=_search_text(_sender_display(payload)),
        )
        return created

    def ingest(self, metas: list[MessageMeta]) -> tuple[int, int]:
        """Store messages and re-aggregate their senders.

        Returns ``(new_messages, new_senders)``.
        """
        new_messages = 0
        touched: list[str] = []
        with self.source_errors("store messages"):
            for meta in metas:
                new_messages += self.store_message(meta)
                if meta.sender_email and meta.sender_email not in touched:
                    touched.append(meta.sender_email)
            new_senders = sum(self.reaggregate_sender(email) for email in touched)
        return new_messages, new_senders

    def _discover(self, continuation_token, page_size, mode) -> tuple[list[MessageMeta], str | None]:
        service = self.service()
        with self.source_errors("list messages"):
            ids, next_token = gmail_client.list_message_ids_page(
                service,
                query=self._discovery_query(mode),
                page_token=continuation_token,
                page_size=page_size,
            )
            metas = gmail_client.fetch_message_metadata(service, ids)
        logger.info("Fetched %d of %d messages (more: %s)", len(metas), len(ids), bool(next_token))
        return metas, next_token


class EmailSenderAdapter(_GmailAdapter):
    """Senders aggregated from stored Gmail messages."""

    kind = SourceKind.SENDER
    pushdown_flags = {"has_unsubscribe": "hasUnsubscribe", "is_verified": "isVerified"}
    flag_defaults = {"isVerified": True}

    def normalize(self, record: RawRecord) -> UnifiedAsset:
        payload = require_payload(record)
        email = payload.get("senderEmail")
        if not email:
            raise MalformedRecordError(f"sender record {record.local_id} has no senderEmail")

        first = parse_timestamp(payload.get("firstEmailDate"))
        last = parse_timestamp(payload.get("lastEmailDate"))
        email_count = int(payload.get("emailCount") or 0)

        metadata = SenderMetadata(
            sender_email=email,
            sender_name=payload.get("senderName"),
            email_count=email_count,
            attachment_count=int(payload.get("attachmentCount") or 0),
            unread_count=int(payload.get("unreadCount") or 0),
            first_email_date=first,
            last_email_date=last,
            has_unsubscribe=bool(payload.get("hasUnsubscribe", False)),
            unsubscribe_link=payload.get("unsubscribeLink"),
            is_verified=bool(payload.get("isVerified", True)),
            is_unsubscribed=bool(payload.get("isUnsubscribed", False)),
            unsubscribed_at=parse_timestamp(payload.get("unsubscribedAt")),
        )
        name, owner = _sender_display(payload)
        return self.build_asset(
            record,
            metadata,
            name=name,
            owner=owner,
            owner_email=email,
            created_at=first,
            last_activity_at=last,
            description=f"{email_count} emails",
        )

    def fetch_discovery_page(self, continuation_token, page_size=LIST_PAGE_SIZE, mode=ScanMode.FULL) -> DiscoveryPage:
        metas, next_token = self._discover(continuation_token, page_size, mode)
        _, new_senders = self.ingest(metas)
        self.mark_synced()
        return DiscoveryPage(
            processed_count=len(metas),
            discovered_count=new_senders,
            next_token=next_token,
            has_more=bool(next_token),
        )

    def allowed_actions(self, asset: UnifiedAsset) -> set[AssetAction]:
        actions = {AssetAction.DELETE, AssetAction.REFRESH}
        meta = asset.metadata
        if isinstance(meta, SenderMetadata) and meta.has_unsubscribe and not meta.is_unsubscribed:
            actions.add(AssetAction.UNSUBSCRIBE)
        return actions

    def write(self, action: AssetAction, local_id: str) -> dict:
        record = self.get_record(local_id)
        payload = require_payload(record)
        email = record.external_key
        service = self.service()

        if action is AssetAction.DELETE:
            with self.source_errors("trash sender messages"):
                ids = gmail_client.list_message_ids(service, query=f"from:{email}")
                trashed = gmail_client.trash_messages(service, ids)
                self.store.delete_group(SourceKind.MESSAGE, email)
                self.store.delete_record(self.kind, record.local_id)
            return {"trashed": trashed}

        if action is AssetAction.UNSUBSCRIBE:
            with self.source_errors("create unsubscribe filter"):
                filter_id = gmail_client.create_trash_filter(service, email)
                updated = dict(payload, isUnsubscribed=True, unsubscribedAt=self.clock().isoformat())
                self.store.upsert_record(
                    self.kind,
                    email,
                    updated,
                    search_text=_search_text(_sender_display(updated)),
                )
            return {"unsubscribeLink": payload.get("unsubscribeLink"), "filterId": filter_id}

        if action is AssetAction.REFRESH:
            with self.source_errors("refresh sender"):
                ids = gmail_client.list_message_ids(
                    service, query=f"from:{email}", max_results=SENDER_REFRESH_LIMIT
                )
                metas = gmail_client.fetch_message_metadata(service, ids)
            self.ingest(metas)
            return {"emailCount": len(metas)}

        raise UnsupportedActionError(f"Senders do not support {action.value!r}")


class EmailMessageAdapter(_GmailAdapter):
    """Individual Gmail messages."""

    kind = SourceKind.MESSAGE
    pushdown_flags = {"is_verified": "isVerified"}
    flag_defaults = {"isVerified": True}

    def normalize(self, record: RawRecord) -> UnifiedAsset:
        payload = require_payload(record)
        message_id = payload.get("messageId")
        if not message_id:
            raise MalformedRecordError(f"message record {record.local_id} has no messageId")

        received = parse_timestamp(payload.get("receivedAt"))
        labels = tuple(payload.get("labelIds") or ())
        sender_email = payload.get("senderEmail") or ""

        metadata = MessageMetadata(
            message_id=message_id,
            thread_id=payload.get("threadId") or "",
            sender_email=sender_email,
            subject=payload.get("subject") or "",
            sender_name=payload.get("senderName") or None,
            snippet=payload.get("snippet") or "",
            is_read="UNREAD" not in labels,
            has_attachment=bool(payload.get("hasAttachment", False)),
            label_ids=labels,
            received_at=received,
            is_verified=bool(payload.get("isVerified", True)),
        )
        name, owner = _message_display(payload)
        return self.build_asset(
            record,
            metadata,
            name=name,
            owner=owner,
            owner_email=sender_email or None,
            created_at=received,
            last_activity_at=received,
            url=f"https://mail.google.com/mail/u/0/#all/{message_id}",
        )

    def fetch_discovery_page(self, continuation_token, page_size=LIST_PAGE_SIZE, mode=ScanMode.FULL) -> DiscoveryPage:
        metas, next_token = self._discover(continuation_token, page_size, mode)
        new_messages, _ = self.ingest(metas)
        self.mark_synced()
        return DiscoveryPage(
            processed_count=len(metas),
            discovered_count=new_messages,
            next_token=next_token,
            has_more=bool(next_token),
        )

    def allowed_actions(self, asset: UnifiedAsset) -> set[AssetAction]:
        return {AssetAction.DELETE, AssetAction.REFRESH}

    def write(self, action: AssetAction, local_id: str) -> dict:
        record = self.get_record(local_id)
        payload = require_payload(record)
        sender_email = payload.get("senderEmail") or ""
        service = self.service()

        if action is AssetAction.DELETE:
            with self.source_errors("trash message"):
                gmail_client.trash_messages(service, [record.external_key])
                self.store.delete_record(self.kind, record.local_id)
                if sender_email:
                    self.reaggregate_sender(sender_email)
            return {"trashed": 1}

        if action is AssetAction.REFRESH:
            with self.source_errors("refresh message"):
                meta = gmail_client.get_message_metadata(service, record.external_key)
                if meta is None:
                    self.store.delete_record(self.kind, record.local_id)
                    if sender_email:
                        self.reaggregate_sender(sender_email)
            if meta is None:
                raise AssetNotFoundError(f"Gmail message {record.external_key} no longer exists")
            self.ingest([meta])
            return {"refreshed": True}

        raise UnsupportedActionError(f"Messages do not support {action.value!r}")
