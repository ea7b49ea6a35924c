"""Drive and Admin Directory API client functions."""

from __future__ import annotations

from googleapiclient.errors import HttpError

from workspace_risk_auditor.constants import DIRECTORY_PAGE_SIZE, DRIVE_FILE_FIELDS, DRIVE_PAGE_SIZE
from workspace_risk_auditor.gmail_client import _google_retry


@_google_retry
def list_files_page(
    service,
    query: str | None = None,
    page_token: str | None = None,
    page_size: int = DRIVE_PAGE_SIZE,
) -> tuple[list[dict], str | None]:
    """List one page of Drive files. Returns ``(files, next_page_token)``."""
    kwargs: dict = {
        "pageSize": page_size,
        "fields": f"nextPageToken, files({DRIVE_FILE_FIELDS})",
        "supportsAllDrives": True,
        "includeItemsFromAllDrives": True,
    }
    if query:
        kwargs["q"] = query
    if page_token:
        kwargs["pageToken"] = page_token

    resp = service.files().list(**kwargs).execute()
    return resp.get("files", []), resp.get("nextPageToken")


@_google_retry
def get_file(service, file_id: str) -> dict | None:
    """Fetch one file resource, or None when Drive no longer has it."""
    try:
        return service.files().get(
            fileId=file_id,
            fields=DRIVE_FILE_FIELDS,
            supportsAllDrives=True,
        ).execute()
    except HttpError as exc:
        if exc.resp.status == 404:
            return None
        raise


@_google_retry
def trash_file(service, file_id: str) -> None:
    service.files().update(
        fileId=file_id,
        body={"trashed": True},
        supportsAllDrives=True,
    ).execute()


@_google_retry
def _list_users_page(service, page_token: str | None) -> dict:
    kwargs: dict = {
        "customer": "my_customer",
        "maxResults": DIRECTORY_PAGE_SIZE,
        "fields": "nextPageToken, users(primaryEmail)",
    }
    if page_token:
        kwargs["pageToken"] = page_token
    return service.users().list(**kwargs).execute()


def list_directory_emails(service) -> set[str]:
    """Return the lowercased primary emails of every workspace user."""
    emails: set[str] = set()
    page_token: str | None = None

    while True:
        resp = _list_users_page(service, page_token)
        for user in resp.get("users", []):
            if user.get("primaryEmail"):
                emails.add(user["primaryEmail"].lower())

        page_token = resp.get("nextPageToken")
        if not page_token:
            break

    return emails


@_google_retry
def get_about_email(service) -> str:
    about = service.about().get(fields="user(emailAddress)").execute()
    return about["user"]["emailAddress"]
