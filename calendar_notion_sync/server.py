"""
HTTP endpoints of the bridge.

Routes:
    GET  /google-calendar/create-watch  register a push notification channel
    POST /google-calendar/webhook       Google Calendar notifications
    POST /notion                        Notion webhook deliveries

Notifications are always acknowledged with 200 once accepted, whatever
happens downstream, so that neither provider disables the subscription.
"""

import json
import threading
from typing import Callable, Optional

from flask import Flask, jsonify, request
from googleapiclient.errors import HttpError

from .core import BridgeConfig, load_config, logger
from .google_calendar import create_watch
from .notion import SIGNATURE_HEADER, verify_signature
from .sync import OUTBOUND_ERRORS, SyncBridge


def _run_in_background(target: Callable, *args) -> None:
    thread = threading.Thread(target=target, args=args, daemon=True)
    thread.start()


def _error_detail(error: Exception):
    if isinstance(error, HttpError):
        try:
            return json.loads(error.content.decode("utf-8"))
        except (ValueError, AttributeError):
            pass
    return str(error)


def create_app(
    config: Optional[BridgeConfig] = None,
    bridge: Optional[SyncBridge] = None
) -> Flask:
    """
    Create the Flask application.

    Args:
        config: Bridge configuration, loaded from the environment if omitted
        bridge: Sync bridge, built from ``config`` if omitted

    Returns:
        Configured Flask app

    Raises:
        ConfigError: If required environment variables are missing
    """
    if config is None:
        config = bridge.config if bridge is not None else load_config()
    if bridge is None:
        bridge = SyncBridge(config)

    app = Flask(__name__)
    app.config["BRIDGE"] = bridge

    def dispatch(target: Callable, *args) -> None:
        if config.respond_first:
            _run_in_background(target, *args)
        else:
            target(*args)

    @app.route("/google-calendar/create-watch", methods=["GET"])
    def google_calendar_create_watch():
        try:
            channel = create_watch(bridge.service, config.calendar_id, config.webhook_url)
        except OUTBOUND_ERRORS as error:
            logger.warn(f"Error creating watch channel: {error}")
            return jsonify({"error": _error_detail(error)}), 500

        logger.normal(
            f"Watch channel created: {channel.get('id')} "
            f"(expires {channel.get('expiration')})"
        )
        return jsonify({"message": "Watch channel created", "data": channel}), 200

    @app.route("/google-calendar/webhook", methods=["POST"])
    def google_calendar_webhook():
        dispatch(
            bridge.handle_calendar_notification,
            request.headers.get("X-Goog-Resource-State"),
            request.headers.get("X-Goog-Resource-Id"),
            request.headers.get("X-Goog-Channel-Id"),
        )
        return "", 200

    @app.route("/notion", methods=["POST"])
    @app.route("/notion/", methods=["POST"])
    def notion_webhook():
        raw_body = request.get_data(cache=True)
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            logger.warn("Notion webhook body is not a JSON object")
            return "Invalid JSON body", 400

        # Subscription handshake, sent once before any secret is known
        if payload.get("verification_token"):
            logger.normal("Received Notion webhook verification request")
            return jsonify({"verification_token": payload["verification_token"]}), 200

        signature = request.headers.get(SIGNATURE_HEADER)
        if not signature:
            return "Missing signature header", 400
        if not config.notion_verification_token:
            logger.warn("NOTION_VERIFICATION_TOKEN is not configured")
            return "Missing NOTION_VERIFICATION_TOKEN", 500
        if not verify_signature(config.notion_verification_token, raw_body, signature):
            logger.warn("Rejected Notion webhook with an invalid signature")
            return "Invalid signature", 403

        dispatch(bridge.handle_notion_event, payload)
        return "", 200

    return app
