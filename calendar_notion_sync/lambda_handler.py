"""
AWS Lambda handler for Calendar Notion Sync.

Google Calendar push channels expire, so a scheduled Lambda (weekly,
``cron(0 0 ? * SUN *)``) calls the bridge's create-watch endpoint to
open a fresh channel.
"""

import json
import os
from typing import Any, Dict

import requests

from .core import logger, parse_log_level

DEFAULT_BASE_URL = "http://localhost:3000"
WATCH_PATH = "/google-calendar/create-watch"


def get_base_url() -> str:
    """
    Resolve the public base URL of the bridge.

    BRIDGE_BASE_URL wins; a bare host name is given an https scheme.
    """
    base_url = os.environ.get("BRIDGE_BASE_URL", "").strip()
    if not base_url:
        return DEFAULT_BASE_URL
    if not base_url.startswith(("http://", "https://")):
        base_url = f"https://{base_url}"
    return base_url.rstrip("/")


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    AWS Lambda handler function.

    Args:
        event: Lambda event data (the scheduled event, unused)
        context: Lambda context

    Returns:
        Response dictionary with status and the channel data
    """
    logger.level = parse_log_level(os.environ.get("LOG_LEVEL"))
    url = f"{get_base_url()}{WATCH_PATH}"

    try:
        response = requests.get(url, timeout=30)
        response.raise_for_status()
        data = response.json()
    except requests.exceptions.RequestException as e:
        error_msg = f"Error calling create-watch: {e}"
        logger.warn(error_msg)
        return {
            "statusCode": 500,
            "body": json.dumps({"error": error_msg})
        }
    except ValueError as e:
        error_msg = f"Error parsing JSON: {e}"
        logger.warn(error_msg)
        return {
            "statusCode": 500,
            "body": json.dumps({"error": error_msg})
        }

    logger.normal(f"Watch channel renewed: {json.dumps(data)}")
    return {
        "statusCode": 200,
        "body": json.dumps(data)
    }
