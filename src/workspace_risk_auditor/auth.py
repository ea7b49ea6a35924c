"""Credential loading and Google API service construction."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import Resource, build

from workspace_risk_auditor import drive_client, gmail_client
from workspace_risk_auditor.constants import (
    ACCOUNTS_PATH,
    CLIENT_SECRETS_PATH,
    DRIVE_OAUTH_SCOPES,
    DRIVE_TOKEN_PATH,
    GMAIL_SCOPES,
    GMAIL_TOKEN_PATH,
    SERVICE_ACCOUNT_PATH,
    SERVICE_ACCOUNT_SCOPES,
)
from workspace_risk_auditor.errors import SourceUnavailableError
from workspace_risk_auditor.models import AuthType, SourceKind

logger = logging.getLogger(__name__)


@dataclass
class StoredCredential:
    auth_type: AuthType
    credentials: object  # google.auth credentials
    email: str | None = None


def _account_key(kind: SourceKind) -> str:
    return "drive" if kind is SourceKind.DRIVE else "gmail"


class FileCredentialProvider:
    """Credentials kept as files in the config directory.

    Gmail always uses an OAuth user token. Drive prefers a service-account key
    (which also grants Admin Directory access) and falls back to an OAuth
    token with read-only scope.
    """

    def __init__(
        self,
        client_secrets_path: Path = CLIENT_SECRETS_PATH,
        gmail_token_path: Path = GMAIL_TOKEN_PATH,
        drive_token_path: Path = DRIVE_TOKEN_PATH,
        service_account_path: Path = SERVICE_ACCOUNT_PATH,
        accounts_path: Path = ACCOUNTS_PATH,
        delegated_user: str | None = None,
    ) -> None:
        self.client_secrets_path = Path(client_secrets_path)
        self.gmail_token_path = Path(gmail_token_path)
        self.drive_token_path = Path(drive_token_path)
        self.service_account_path = Path(service_account_path)
        self.accounts_path = Path(accounts_path)
        self.delegated_user = delegated_user

    # --- account emails ---

    def _accounts(self) -> dict:
        if not self.accounts_path.exists():
            return {}
        try:
            data = json.loads(self.accounts_path.read_text())
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable accounts file %s", self.accounts_path)
            return {}
        return data if isinstance(data, dict) else {}

    def _save_account(self, kind: SourceKind, email: str) -> None:
        accounts = self._accounts()
        accounts[_account_key(kind)] = email
        self.accounts_path.parent.mkdir(parents=True, exist_ok=True)
        self.accounts_path.write_text(json.dumps(accounts, indent=2))

    # --- loading ---

    def _token_path(self, kind: SourceKind) -> Path:
        return self.drive_token_path if kind is SourceKind.DRIVE else self.gmail_token_path

    def _scopes(self, kind: SourceKind) -> list[str]:
        return DRIVE_OAUTH_SCOPES if kind is SourceKind.DRIVE else GMAIL_SCOPES

    def _service_account(self) -> StoredCredential | None:
        if not self.service_account_path.exists():
            return None
        creds = service_account.Credentials.from_service_account_file(
            str(self.service_account_path), scopes=SERVICE_ACCOUNT_SCOPES
        )
        if self.delegated_user:
            creds = creds.with_subject(self.delegated_user)
        return StoredCredential(
            auth_type=AuthType.SERVICE_ACCOUNT,
            credentials=creds,
            email=self.delegated_user or creds.service_account_email,
        )

    def _oauth(self, kind: SourceKind) -> StoredCredential | None:
        token_path = self._token_path(kind)
        if not token_path.exists():
            return None

        creds = Credentials.from_authorized_user_file(str(token_path), self._scopes(kind))
        if creds.expired and creds.refresh_token:
            creds.refresh(Request())
            token_path.write_text(creds.to_json())
        if not creds.valid:
            logger.info("Stored %s token is no longer valid", _account_key(kind))
            return None

        return StoredCredential(
            auth_type=AuthType.OAUTH,
            credentials=creds,
            email=self._accounts().get(_account_key(kind)),
        )

    def credential_for(self, kind: SourceKind) -> StoredCredential | None:
        """Return usable credentials for a source, or None when there are none."""
        if kind is SourceKind.DRIVE:
            return self._service_account() or self._oauth(kind)
        return self._oauth(kind)

    # --- services ---

    def build_service(self, kind: SourceKind) -> Resource:
        """Return an authenticated Drive or Gmail API service object."""
        stored = self.credential_for(kind)
        if stored is None:
            raise SourceUnavailableError(
                f"{kind.value}: not connected. Run 'workspace-risk-auditor auth {_account_key(kind)}' first.",
                source_kind=kind,
            )
        if kind is SourceKind.DRIVE:
            return build("drive", "v3", credentials=stored.credentials, cache_discovery=False)
        return build("gmail", "v1", credentials=stored.credentials, cache_discovery=False)

    def build_directory_service(self) -> Resource | None:
        """Admin Directory service, available only through a service account."""
        stored = self._service_account()
        if stored is None:
            return None
        return build("admin", "directory_v1", credentials=stored.credentials, cache_discovery=False)

    # --- interactive authorization ---

    def authorize(self, kind: SourceKind) -> str:
        """Run the OAuth browser flow for a source and store the token.

        Returns the email address of the authorized account. Requires the
        OAuth client secrets at ``client_secrets_path``.
        """
        if not self.client_secrets_path.exists():
            raise FileNotFoundError(
                f"Credentials file not found at {self.client_secrets_path}.\n"
                "Download your OAuth client credentials from the Google Cloud Console "
                "and save them as:\n"
                f"  {self.client_secrets_path}"
            )

        flow = InstalledAppFlow.from_client_secrets_file(str(self.client_secrets_path), self._scopes(kind))
        creds = flow.run_local_server(port=0)

        token_path = self._token_path(kind)
        token_path.parent.mkdir(parents=True, exist_ok=True)
        token_path.write_text(creds.to_json())

        if kind is SourceKind.DRIVE:
            email = drive_client.get_about_email(build("drive", "v3", credentials=creds, cache_discovery=False))
        else:
            email = gmail_client.get_profile_email(build("gmail", "v1", credentials=creds, cache_discovery=False))
        self._save_account(kind, email)
        logger.info("Authorized %s as %s", _account_key(kind), email)
        return email
