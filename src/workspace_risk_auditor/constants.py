"""Constants for Workspace Risk Auditor."""

from pathlib import Path

# --- Config paths ---
CONFIG_DIR = Path.home() / ".workspace-risk-auditor"
CONFIG_PATH = CONFIG_DIR / "config.json"
CLIENT_SECRETS_PATH = CONFIG_DIR / "credentials.json"
GMAIL_TOKEN_PATH = CONFIG_DIR / "gmail_token.json"
DRIVE_TOKEN_PATH = CONFIG_DIR / "drive_token.json"
SERVICE_ACCOUNT_PATH = CONFIG_DIR / "service_account.json"
ACCOUNTS_PATH = CONFIG_DIR / "accounts.json"
STORE_DB_PATH = CONFIG_DIR / "store.db"

# --- Google API scopes ---
GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/gmail.settings.basic",
]
DRIVE_OAUTH_SCOPES = ["https://www.googleapis.com/auth/drive.readonly"]
SERVICE_ACCOUNT_SCOPES = [
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/admin.directory.user.readonly",
]

# --- Gmail API ---
BATCH_SIZE = 50  # messages per BatchHttpRequest
LIST_PAGE_SIZE = 500  # Gmail caps messages.list at 500
TRASH_BATCH_SIZE = 1000  # messages per batchModify call
METADATA_HEADERS = ["From", "Subject", "Date", "List-Unsubscribe", "Authentication-Results"]
INBOX_QUERY = "in:inbox"
QUICK_SCAN_DAYS = 30
SENDER_REFRESH_LIMIT = 500

# --- Drive API ---
DRIVE_PAGE_SIZE = 100
DRIVE_FILE_FIELDS = (
    "id,name,mimeType,createdTime,modifiedTime,webViewLink,"
    "owners(emailAddress,displayName),"
    "permissions(id,type,role,emailAddress,displayName)"
)
DIRECTORY_PAGE_SIZE = 500

# --- Query engine ---
STORE_PAGE_SIZE = 200  # raw records per store page
MAX_RECORDS_PER_SOURCE = 1000
DEFAULT_LIMIT = 50
RECENT_ACTIVITY_DAYS = 7

# --- Scans ---
DISCOVERY_PAGE_SIZE = 500
AUTO_CONTINUE_LIMIT = 5000

# --- Activity log ---
ACTIVITY_LOG_LIMIT = 20

# --- Risk levels (fixed, not configuration) ---
HIGH_RISK_MIN = 61
MEDIUM_RISK_MIN = 31
MAX_SCORE = 100

# --- File scoring ---
WEIGHT_FILE_PUBLIC = 40
WEIGHT_FILE_DOMAIN_SHARED = 25
WEIGHT_FILE_ORPHANED = 20
WEIGHT_FILE_INACTIVE = 10
WEIGHT_FILE_MANY_PERMISSIONS = 10
WEIGHT_FILE_EXTERNAL_SHARE = 20
WEIGHT_FILE_EXTERNAL_EDITOR = 15
MANY_PERMISSIONS_THRESHOLD = 50
INACTIVE_DAYS = 180

# --- Sender scoring ---
WEIGHT_SENDER_UNVERIFIED = 40
WEIGHT_SENDER_HIGH_VOLUME = 20
WEIGHT_SENDER_NO_UNSUBSCRIBE = 15
SENDER_HIGH_VOLUME_THRESHOLD = 100  # emails, exclusive
SENDER_NO_UNSUBSCRIBE_THRESHOLD = 10  # emails, exclusive

# --- Message scoring ---
WEIGHT_MESSAGE_SPAM = 40
WEIGHT_MESSAGE_UNVERIFIED = 30
WEIGHT_MESSAGE_ATTACHMENT = 20
WEIGHT_MESSAGE_UNREAD = 10

# --- Drive file type classification ---
MIME_FILE_TYPES = {
    "application/vnd.google-apps.spreadsheet": "spreadsheet",
    "application/vnd.google-apps.document": "document",
    "application/vnd.google-apps.presentation": "presentation",
    "application/vnd.google-apps.form": "form",
    "application/vnd.google-apps.folder": "folder",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "spreadsheet",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "document",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": "presentation",
    "application/pdf": "pdf",
}
# Fallback substring rules, checked in order
FILE_TYPE_KEYWORDS = [
    ("spreadsheet", "spreadsheet"),
    ("document", "document"),
    ("presentation", "presentation"),
    ("form", "form"),
    ("folder", "folder"),
    ("image", "image"),
    ("pdf", "pdf"),
]
