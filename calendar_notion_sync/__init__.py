"""
Calendar Notion Sync Package

This package keeps a Google Calendar and a Notion database in sync in
both directions through their webhooks.
"""

from .core import (
    BridgeConfig,
    ConfigError,
    LogLevel,
    Logger,
    load_config,
)
from .notion import NotionAPI, verify_signature
from .server import create_app
from .sync import SyncBridge, SyncStats

__version__ = "0.1.0"
