"""
Shared pytest fixtures and event builders.
"""

import json

import pytest

from calendar_notion_sync.core import BridgeConfig, LogLevel
from calendar_notion_sync.guard import SyncGuard
from calendar_notion_sync.notion import compute_signature
from calendar_notion_sync.server import create_app
from calendar_notion_sync.sync import SyncBridge
from tests.fakes import FakeCalendarService, FakeNotionAPI

CALENDAR_ID = "team@group.calendar.google.com"
DATABASE_ID = "0f1e2d3c-4b5a-6978-8796-a5b4c3d2e1f0"
SECRET = "secret_verification_token"


def all_day_event(event_id, summary, start, end, **private):
    """Return an all-day calendar event resource (``end`` is exclusive)."""
    event = {
        "id": event_id,
        "status": "confirmed",
        "summary": summary,
        "start": {"date": start},
        "end": {"date": end},
    }
    if private:
        event["extendedProperties"] = {"private": dict(private)}
    return event


def timed_event(event_id, summary, start, end, **private):
    event = {
        "id": event_id,
        "status": "confirmed",
        "summary": summary,
        "start": {"dateTime": start, "timeZone": "UTC"},
        "end": {"dateTime": end, "timeZone": "UTC"},
    }
    if private:
        event["extendedProperties"] = {"private": dict(private)}
    return event


def sign(body: bytes, secret: str = SECRET) -> str:
    return compute_signature(secret, body)


def notion_delivery(event_type, page_id, entity_type="page"):
    return {
        "id": "delivery-1",
        "timestamp": "2026-10-19T10:00:00.000Z",
        "workspace_id": "ws-1",
        "type": event_type,
        "entity": {"id": page_id, "type": entity_type},
        "data": {"parent": {"id": DATABASE_ID, "type": "database"}},
    }


@pytest.fixture
def config():
    return BridgeConfig(
        google_client_id="client-id",
        google_client_secret="client-secret",
        google_refresh_token="refresh-token",
        calendar_id=CALENDAR_ID,
        notion_api_key="secret-test",
        notion_database_id=DATABASE_ID,
        webhook_url="https://bridge.example.com/google-calendar/webhook",
        notion_verification_token=SECRET,
        log_level=LogLevel.DEBUG,
    )


@pytest.fixture
def calendar():
    return FakeCalendarService()


@pytest.fixture
def notion():
    return FakeNotionAPI(DATABASE_ID)


@pytest.fixture
def clock():
    now = {"t": 1000.0}

    def tick(seconds=0.0):
        now["t"] += seconds
        return now["t"]

    return tick


@pytest.fixture
def bridge(config, calendar, notion, clock):
    return SyncBridge(
        config,
        calendar_service=calendar,
        notion=notion,
        guard=SyncGuard(config.recent_window_seconds, clock=clock),
    )


@pytest.fixture
def client(config, bridge):
    app = create_app(config, bridge)
    app.testing = True
    return app.test_client()


@pytest.fixture
def post_notion(client):
    def post(payload, signature=None, secret=SECRET):
        body = json.dumps(payload).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if signature is None:
            signature = sign(body, secret)
        if signature:
            headers["X-Notion-Signature"] = signature
        return client.post("/notion", data=body, headers=headers)

    return post
