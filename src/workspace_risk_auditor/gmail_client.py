"""Gmail API client functions for discovering and managing messages."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable

from googleapiclient.errors import HttpError
from googleapiclient.http import BatchHttpRequest
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from workspace_risk_auditor.constants import BATCH_SIZE, LIST_PAGE_SIZE, METADATA_HEADERS, TRASH_BATCH_SIZE

_FROM_RE = re.compile(r"^(.*?)\s*<([^>]+)>$")
_UNSUBSCRIBE_RE = re.compile(r"<([^>]+)>")


@dataclass
class MessageMeta:
    """Metadata extracted from a single Gmail message."""

    message_id: str
    thread_id: str
    sender_email: str  # Extracted, lowercased email address
    sender_name: str = ""
    subject: str = ""
    snippet: str = ""
    labels: list[str] = field(default_factory=list)
    list_unsubscribe: str = ""  # raw List-Unsubscribe header
    has_attachment: bool = False
    is_verified: bool = True
    received_at: datetime | None = None


def _is_retryable_http_error(exc: BaseException) -> bool:
    return isinstance(exc, HttpError) and exc.resp.status in (429, 500, 503)


_google_retry = retry(
    retry=retry_if_exception(_is_retryable_http_error),
    wait=wait_exponential(multiplier=1, min=1, max=60),
    stop=stop_after_attempt(5),
    reraise=True,
)


def _parse_from_header(from_value: str) -> tuple[str, str]:
    """Parse a From header into (display name, email address).

    Handles formats like:
      "John Doe <john@example.com>" -> ("John Doe", "john@example.com")
      "<john@example.com>"          -> ("", "john@example.com")
      "john@example.com"            -> ("", "john@example.com")
    """
    if not from_value:
        return ("", "")
    m = _FROM_RE.match(from_value.strip())
    if m:
        name = m.group(1).strip().strip('"').strip("'")
        return (name, m.group(2).strip())
    email = from_value.strip().strip("<>")
    return ("", email)


def parse_unsubscribe_link(header_value: str) -> str | None:
    """Pick the best link out of a List-Unsubscribe header.

    HTTPS links win over mailto: links; a header without angle brackets is
    returned as-is.
    """
    if not header_value:
        return None
    links = _UNSUBSCRIBE_RE.findall(header_value) or [header_value.strip()]
    for link in links:
        if link.lower().startswith("https://"):
            return link
    return links[0] or None


def is_authenticated(auth_results: str | None) -> bool:
    """Whether an Authentication-Results header shows a passing SPF or DKIM check.

    A missing header means nothing was checked and counts as authenticated.
    """
    if auth_results is None:
        return True
    lowered = auth_results.lower()
    return "dkim=pass" in lowered or "spf=pass" in lowered


def _parse_date(internal_date: str | None, date_header: str) -> datetime | None:
    if internal_date:
        try:
            return datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc)
        except (TypeError, ValueError):
            pass
    if date_header:
        try:
            parsed = parsedate_to_datetime(date_header)
        except (TypeError, ValueError):
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def _to_message_meta(msg_id: str, response: dict) -> MessageMeta:
    payload = response.get("payload", {})
    headers = {}
    for h in payload.get("headers", []):
        headers[h["name"]] = h["value"]

    name, email = _parse_from_header(headers.get("From", ""))
    return MessageMeta(
        message_id=msg_id,
        thread_id=response.get("threadId", ""),
        sender_email=email.lower(),
        sender_name=name,
        subject=headers.get("Subject", ""),
        snippet=response.get("snippet", ""),
        labels=response.get("labelIds", []),
        list_unsubscribe=headers.get("List-Unsubscribe", ""),
        has_attachment=payload.get("mimeType", "") == "multipart/mixed",
        is_verified=is_authenticated(headers.get("Authentication-Results")),
        received_at=_parse_date(response.get("internalDate"), headers.get("Date", "")),
    )


@_google_retry
def list_message_ids_page(
    service,
    query: str | None = None,
    page_token: str | None = None,
    page_size: int = LIST_PAGE_SIZE,
) -> tuple[list[str], str | None]:
    """List one page of message IDs. Returns ``(ids, next_page_token)``."""
    kwargs: dict = {
        "userId": "me",
        "maxResults": min(page_size, LIST_PAGE_SIZE),
        "fields": "messages/id,nextPageToken",
    }
    if query:
        kwargs["q"] = query
    if page_token:
        kwargs["pageToken"] = page_token

    resp = service.users().messages().list(**kwargs).execute()
    ids = [msg["id"] for msg in resp.get("messages", [])]
    return ids, resp.get("nextPageToken")


def list_message_ids(
    service,
    query: str | None = None,
    max_results: int | None = None,
) -> list[str]:
    """List all message IDs matching the query, handling pagination."""
    ids: list[str] = []
    page_token: str | None = None

    while True:
        page_ids, page_token = list_message_ids_page(service, query=query, page_token=page_token)
        for msg_id in page_ids:
            ids.append(msg_id)
            if max_results and len(ids) >= max_results:
                return ids[:max_results]

        if not page_token:
            break

    return ids


@_google_retry
def _execute_batch(batch: BatchHttpRequest) -> None:
    batch.execute()


def fetch_message_metadata(
    service,
    message_ids: list[str],
    callback: Callable[[int, int], None] | None = None,
) -> list[MessageMeta]:
    """Fetch metadata for messages in batches using BatchHttpRequest.

    Messages that fail individually are left out of the result.
    """
    results: list[MessageMeta] = []
    total_batches = (len(message_ids) + BATCH_SIZE - 1) // BATCH_SIZE

    for batch_num in range(total_batches):
        start = batch_num * BATCH_SIZE
        end = min(start + BATCH_SIZE, len(message_ids))
        chunk = message_ids[start:end]

        batch = service.new_batch_http_request()

        def _make_callback(msg_id: str):
            def _cb(request_id, response, exception):
                if exception is not None:
                    return
                results.append(_to_message_meta(msg_id, response))

            return _cb

        for msg_id in chunk:
            batch.add(
                service.users().messages().get(
                    userId="me",
                    id=msg_id,
                    format="metadata",
                    metadataHeaders=METADATA_HEADERS,
                ),
                callback=_make_callback(msg_id),
            )

        _execute_batch(batch)

        if callback:
            callback(batch_num + 1, total_batches)

    return results


@_google_retry
def get_message_metadata(service, message_id: str) -> MessageMeta | None:
    """Fetch one message's metadata, or None when Gmail no longer has it."""
    try:
        response = service.users().messages().get(
            userId="me",
            id=message_id,
            format="metadata",
            metadataHeaders=METADATA_HEADERS,
        ).execute()
    except HttpError as exc:
        if exc.resp.status == 404:
            return None
        raise
    return _to_message_meta(message_id, response)


@_google_retry
def _execute_batch_modify(service, msg_ids: list[str]) -> None:
    service.users().messages().batchModify(
        userId="me",
        body={
            "ids": msg_ids,
            "addLabelIds": ["TRASH"],
            "removeLabelIds": ["INBOX"],
        },
    ).execute()


def trash_messages(
    service,
    message_ids: list[str],
    callback: Callable[[int, int], None] | None = None,
) -> int:
    """Move messages to trash in batches using batchModify."""
    total_batches = max(1, (len(message_ids) + TRASH_BATCH_SIZE - 1) // TRASH_BATCH_SIZE)
    trashed = 0

    for batch_num in range(total_batches):
        start = batch_num * TRASH_BATCH_SIZE
        end = min(start + TRASH_BATCH_SIZE, len(message_ids))
        chunk = message_ids[start:end]
        if not chunk:
            break

        _execute_batch_modify(service, chunk)
        trashed += len(chunk)

        if callback:
            callback(batch_num + 1, total_batches)

    return trashed


@_google_retry
def create_trash_filter(service, sender_email: str) -> str:
    """Create a filter that sends all future mail from a sender to trash."""
    created = service.users().settings().filters().create(
        userId="me",
        body={
            "criteria": {"from": sender_email},
            "action": {"addLabelIds": ["TRASH"], "removeLabelIds": ["INBOX"]},
        },
    ).execute()
    return created.get("id", "")


@_google_retry
def get_profile_email(service) -> str:
    return service.users().getProfile(userId="me").execute()["emailAddress"]
