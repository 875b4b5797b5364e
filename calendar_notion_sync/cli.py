"""
Command-line interface for Calendar Notion Sync.

This module provides commands to run the webhook server, register the
Google Calendar watch channel and obtain a refresh token.
"""

import argparse
import json
import sys
from typing import List, Optional

from googleapiclient.errors import HttpError

from .core import (
    ConfigError,
    LogLevel,
    authorize_installed_app,
    load_config,
    logger,
)
from .google_calendar import create_watch
from .server import create_app
from .sync import SyncBridge


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Sync Google Calendar events and Notion pages both ways"
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (use -v for warnings, -vv for debug)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the webhook server")
    serve.add_argument(
        "--host",
        default="0.0.0.0",
        help="Interface to listen on"
    )
    serve.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to listen on (defaults to PORT or 3000)"
    )

    subparsers.add_parser(
        "create-watch",
        help="Register a push notification channel for the calendar"
    )

    authorize = subparsers.add_parser(
        "authorize",
        help="Run the OAuth flow and print a refresh token"
    )
    authorize.add_argument(
        "--credentials",
        default="credentials.json",
        help="Path to Google OAuth client secrets file"
    )
    return parser.parse_args(argv)


def get_log_level(verbose_count: int, configured: LogLevel) -> LogLevel:
    """
    Convert verbose count to log level.

    Args:
        verbose_count: Number of -v flags
        configured: Level from LOG_LEVEL, used without -v flags

    Returns:
        Appropriate log level
    """
    if verbose_count >= 2:
        return LogLevel.DEBUG
    elif verbose_count == 1:
        return LogLevel.WARN
    return configured


def run_serve(args: argparse.Namespace) -> int:
    config = load_config()
    logger.level = get_log_level(args.verbose, config.log_level)
    app = create_app(config)
    port = args.port or config.port
    logger.normal(f"Server listening on port {port}")
    app.run(host=args.host, port=port, threaded=True)
    return 0


def run_create_watch(args: argparse.Namespace) -> int:
    config = load_config()
    logger.level = get_log_level(args.verbose, config.log_level)
    bridge = SyncBridge(config)
    try:
        channel = create_watch(bridge.service, config.calendar_id, config.webhook_url)
    except HttpError as error:
        if "insufficientPermissions" in str(error):
            logger.warn(
                "Error: Insufficient permissions to watch the calendar. "
                "Please check your Google Calendar API scopes."
            )
        else:
            logger.warn(f"An error occurred: {error}")
        return 1

    print(json.dumps(channel, indent=2))
    return 0


def run_authorize(args: argparse.Namespace) -> int:
    logger.level = get_log_level(args.verbose, LogLevel.WARN)
    try:
        creds = authorize_installed_app(args.credentials)
    except FileNotFoundError:
        logger.warn(
            f"OAuth client secrets file not found: {args.credentials}\n"
            "Download it from the Google Cloud console."
        )
        return 1

    logger.normal("Export this value as GOOGLE_REFRESH_TOKEN:")
    print(creds.refresh_token)
    return 0


COMMANDS = {
    "serve": run_serve,
    "create-watch": run_create_watch,
    "authorize": run_authorize,
}


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.
    """
    args = parse_args(argv)
    try:
        return COMMANDS[args.command](args)
    except ConfigError as e:
        logger.warn(str(e))
        return 2


if __name__ == "__main__":
    sys.exit(main())
