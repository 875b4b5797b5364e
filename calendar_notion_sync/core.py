"""
Core functionality for Calendar Notion Sync.

This module contains the logger, configuration loading and Google
credential helpers shared by the webhook handlers, the CLI and the
Lambda renewal handler.
"""

import os
from enum import Enum, auto
from typing import Any, Dict, List, Optional

from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

# If modifying these scopes, re-run the authorize command.
SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

# Values of the "origin" private extended property
ORIGIN_CALENDAR = "calendar"
ORIGIN_NOTION = "notion"

# Private extended property keys written on calendar events
PAGE_ID_PROPERTY = "notion_page_id"
ORIGIN_PROPERTY = "origin"
SYNC_HASH_PROPERTY = "sync_hash"

DEFAULT_TITLE = "Sin título"
DEFAULT_TITLE_PROPERTY = "Título"
DEFAULT_DATE_PROPERTY = "Fecha de entrega"

# Calendar events updated within this window are considered for a notification
LOOKBACK_MINUTES = 2
MAX_RECENT_EVENTS = 20

REQUIRED_ENV = [
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "GOOGLE_REFRESH_TOKEN",
    "GOOGLE_CALENDAR_ID",
    "NOTION_API_KEY",
    "NOTION_DATABASE_ID",
    "WEBHOOK_URL",
]


class LogLevel(Enum):
    """Logging levels for the bridge."""
    NORMAL = auto()
    WARN = auto()
    DEBUG = auto()


class Logger:
    """Simple logger with configurable levels."""

    def __init__(self, level: LogLevel = LogLevel.NORMAL):
        self.level = level

    def log(self, message: str, level: LogLevel = LogLevel.NORMAL) -> None:
        """
        Log a message if the current level is sufficient.

        Args:
            message: Message to log
            level: Level of the message
        """
        if level.value <= self.level.value:
            print(message, flush=True)

    def normal(self, message: str) -> None:
        """Log a normal priority message."""
        self.log(message, LogLevel.NORMAL)

    def warn(self, message: str) -> None:
        """Log a warning priority message."""
        self.log(message, LogLevel.WARN)

    def debug(self, message: str) -> None:
        """Log a debug priority message."""
        self.log(message, LogLevel.DEBUG)


# Shared logger, level adjusted by the CLI or LOG_LEVEL
logger = Logger(LogLevel.WARN)


def parse_log_level(name: Optional[str], default: LogLevel = LogLevel.WARN) -> LogLevel:
    """Map a LOG_LEVEL string to a LogLevel, falling back to ``default``."""
    if not name:
        return default
    try:
        return LogLevel[name.strip().upper()]
    except KeyError:
        logger.warn(f"Invalid LOG_LEVEL '{name}'. Defaulting to {default.name}.")
        return default


class ConfigError(Exception):
    """Raised when required configuration is missing or malformed."""

    def __init__(self, missing: List[str], message: Optional[str] = None):
        self.missing = missing
        super().__init__(
            message or f"Missing required environment variables: {', '.join(missing)}"
        )


class BridgeConfig:
    """
    Runtime configuration of the bridge.

    Attributes:
        google_client_id: OAuth client ID
        google_client_secret: OAuth client secret
        google_refresh_token: Refresh token handed to google-auth
        calendar_id: Calendar whose events are synced
        notion_api_key: Notion integration token
        notion_database_id: Database receiving pages for calendar events
        webhook_url: Public HTTPS URL of the calendar webhook
        notion_verification_token: Shared secret for Notion signatures
        title_property: Title property used when creating pages
        date_property: Date property read and written on pages
        respond_first: Acknowledge notifications before processing them
        recent_window_seconds: Lifetime of the recently-written guard
    """

    def __init__(
        self,
        google_client_id: str,
        google_client_secret: str,
        google_refresh_token: str,
        calendar_id: str,
        notion_api_key: str,
        notion_database_id: str,
        webhook_url: str,
        google_redirect_uri: Optional[str] = None,
        notion_verification_token: Optional[str] = None,
        title_property: str = DEFAULT_TITLE_PROPERTY,
        date_property: str = DEFAULT_DATE_PROPERTY,
        log_level: LogLevel = LogLevel.WARN,
        port: int = 3000,
        respond_first: bool = False,
        recent_window_seconds: float = 120.0,
    ):
        self.google_client_id = google_client_id
        self.google_client_secret = google_client_secret
        self.google_refresh_token = google_refresh_token
        self.google_redirect_uri = google_redirect_uri
        self.calendar_id = calendar_id
        self.notion_api_key = notion_api_key
        self.notion_database_id = notion_database_id
        self.webhook_url = webhook_url
        self.notion_verification_token = notion_verification_token
        self.title_property = title_property
        self.date_property = date_property
        self.log_level = log_level
        self.port = port
        self.respond_first = respond_first
        self.recent_window_seconds = recent_window_seconds


def _env_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def load_config(environ: Optional[Dict[str, str]] = None) -> BridgeConfig:
    """
    Load the bridge configuration from environment variables.

    Args:
        environ: Mapping to read from, defaults to ``os.environ``

    Returns:
        Populated BridgeConfig

    Raises:
        ConfigError: If any required variable is missing or a number is invalid
    """
    env = os.environ if environ is None else environ
    missing = [name for name in REQUIRED_ENV if not env.get(name, "").strip()]
    if missing:
        raise ConfigError(missing)

    try:
        port = int(env.get("PORT", "3000"))
        recent_window = float(env.get("RECENT_WINDOW_SECONDS", "120"))
    except ValueError as e:
        raise ConfigError([], f"Invalid numeric configuration: {e}")

    return BridgeConfig(
        google_client_id=env["GOOGLE_CLIENT_ID"].strip(),
        google_client_secret=env["GOOGLE_CLIENT_SECRET"].strip(),
        google_refresh_token=env["GOOGLE_REFRESH_TOKEN"].strip(),
        google_redirect_uri=env.get("GOOGLE_REDIRECT_URI") or None,
        calendar_id=env["GOOGLE_CALENDAR_ID"].strip(),
        notion_api_key=env["NOTION_API_KEY"].strip(),
        notion_database_id=env["NOTION_DATABASE_ID"].strip(),
        webhook_url=env["WEBHOOK_URL"].strip(),
        notion_verification_token=env.get("NOTION_VERIFICATION_TOKEN") or None,
        title_property=env.get("NOTION_TITLE_PROPERTY") or DEFAULT_TITLE_PROPERTY,
        date_property=env.get("NOTION_DATE_PROPERTY") or DEFAULT_DATE_PROPERTY,
        log_level=parse_log_level(env.get("LOG_LEVEL")),
        port=port,
        respond_first=_env_flag(env.get("RESPOND_FIRST")),
        recent_window_seconds=recent_window,
    )


def get_google_credentials(config: BridgeConfig) -> Credentials:
    """
    Build Google Calendar API credentials from the configured refresh token.

    The access token is fetched and refreshed by google-auth on first use.

    Args:
        config: Bridge configuration

    Returns:
        Credentials object for Google Calendar API
    """
    return Credentials(
        token=None,
        refresh_token=config.google_refresh_token,
        token_uri=GOOGLE_TOKEN_URI,
        client_id=config.google_client_id,
        client_secret=config.google_client_secret,
        scopes=SCOPES,
    )


def build_calendar_service(config: BridgeConfig) -> Any:
    """Build a Google Calendar API v3 service for the configured account."""
    creds = get_google_credentials(config)
    return build("calendar", "v3", credentials=creds, cache_discovery=False)


def authorize_installed_app(credentials_path: str, port: int = 0) -> Credentials:
    """
    Run the installed-app OAuth flow to obtain a refresh token.

    Args:
        credentials_path: Path to the OAuth client secrets JSON file
        port: Local port for the redirect listener, 0 picks a free one

    Returns:
        Credentials including the refresh token to export as
        GOOGLE_REFRESH_TOKEN
    """
    flow = InstalledAppFlow.from_client_secrets_file(credentials_path, SCOPES)
    return flow.run_local_server(port=port, access_type="offline", prompt="consent")
