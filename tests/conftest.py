"""Shared fixtures for tests."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from workspace_risk_auditor.drive_source import DriveFileAdapter
from workspace_risk_auditor.gmail_source import EmailMessageAdapter, EmailSenderAdapter
from workspace_risk_auditor.models import DiscoveryPage, SourceKind
from workspace_risk_auditor.sources import SourceAdapter
from workspace_risk_auditor.store import RecordStore

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return NOW


def drive_file(file_id: str, name: str, permissions=(), modified="2025-12-01T10:00:00Z", **extra) -> dict:
    """A Drive v3 file resource as returned by files.list."""
    payload = {
        "id": file_id,
        "name": name,
        "mimeType": "application/vnd.google-apps.spreadsheet",
        "createdTime": "2024-03-01T09:00:00Z",
        "modifiedTime": modified,
        "webViewLink": f"https://docs.google.com/spreadsheets/d/{file_id}",
        "owners": [{"emailAddress": "owner@corp.example", "displayName": "Owner"}],
        "permissions": [
            {"id": f"p{i}", "type": t, "role": "reader"} for i, t in enumerate(permissions)
        ],
    }
    payload.update(extra)
    return payload


def sender_payload(email: str, **extra) -> dict:
    """An aggregated sender record."""
    payload = {
        "senderEmail": email,
        "senderName": email.split("@")[0].title(),
        "emailCount": 5,
        "attachmentCount": 0,
        "unreadCount": 0,
        "firstEmailDate": "2025-11-01T08:00:00+00:00",
        "lastEmailDate": "2026-01-10T08:00:00+00:00",
        "hasUnsubscribe": True,
        "unsubscribeLink": f"https://{email.split('@')[1]}/unsubscribe",
        "isVerified": True,
        "isUnsubscribed": False,
        "unsubscribedAt": None,
    }
    payload.update(extra)
    return payload


def message_payload(message_id: str, sender: str, **extra) -> dict:
    payload = {
        "messageId": message_id,
        "threadId": f"t-{message_id}",
        "senderEmail": sender,
        "senderName": "",
        "subject": f"Subject {message_id}",
        "snippet": "",
        "labelIds": ["INBOX"],
        "hasAttachment": False,
        "listUnsubscribe": "",
        "isVerified": True,
        "receivedAt": "2026-01-10T08:00:00+00:00",
    }
    payload.update(extra)
    return payload


class ScriptedSource(SourceAdapter):
    """Discovery source replaying a fixed list of pages (or exceptions)."""

    kind = SourceKind.DRIVE

    def __init__(self, pages, on_fetch=None) -> None:
        super().__init__(store=None)
        self.pages = list(pages)
        self.on_fetch = on_fetch
        self.tokens_seen: list = []

    def fetch_discovery_page(self, continuation_token, page_size, mode=None) -> DiscoveryPage:
        self.tokens_seen.append(continuation_token)
        if self.on_fetch:
            self.on_fetch()
        page = self.pages.pop(0)
        if isinstance(page, Exception):
            raise page
        return page

    def normalize(self, record):
        raise NotImplementedError

    def allowed_actions(self, asset):
        return set()

    def write(self, action, local_id):
        raise NotImplementedError


@pytest.fixture
def store(tmp_path):
    with RecordStore(db_path=tmp_path / "store.db") as s:
        yield s


@pytest.fixture
def drive_service() -> MagicMock:
    return MagicMock(name="drive_service")


@pytest.fixture
def gmail_service() -> MagicMock:
    return MagicMock(name="gmail_service")


@pytest.fixture
def drive_adapter(store, drive_service) -> DriveFileAdapter:
    return DriveFileAdapter(store, service_factory=lambda: drive_service, clock=fixed_clock)


@pytest.fixture
def sender_adapter(store, gmail_service) -> EmailSenderAdapter:
    return EmailSenderAdapter(store, service_factory=lambda: gmail_service, clock=fixed_clock)


@pytest.fixture
def message_adapter(store, gmail_service) -> EmailMessageAdapter:
    return EmailMessageAdapter(store, service_factory=lambda: gmail_service, clock=fixed_clock)


@pytest.fixture
def seeded_store(store) -> RecordStore:
    """One risky public file (score 70) and one high-volume sender (score 20)."""
    store.upsert_record(
        SourceKind.DRIVE,
        "f-public",
        drive_file(
            "f-public",
            "Payroll 2024",
            permissions=["anyone"],
            modified="2025-01-01T00:00:00Z",
            isOrphaned=True,
        ),
        search_text="payroll 2024 owner@corp.example",
    )
    store.upsert_record(
        SourceKind.SENDER,
        "news@shop.example",
        sender_payload("news@shop.example", emailCount=150),
        search_text="news news@shop.example",
    )
    return store
