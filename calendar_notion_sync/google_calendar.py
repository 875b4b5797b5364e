"""
Google Calendar API helpers.

Thin functions over a ``googleapiclient`` calendar service. They raise
``googleapiclient.errors.HttpError`` on failure and leave error handling
to the webhook handlers.
"""

import datetime
import time
from typing import Any, Dict, List, Optional, Tuple

from .core import (
    LOOKBACK_MINUTES,
    MAX_RECENT_EVENTS,
    PAGE_ID_PROPERTY,
)
from .dates import SyncFields, add_days, calendar_event_to_fields, normalize_fields


def new_channel_id() -> str:
    """Channel IDs must be unique per watch request."""
    return f"channel-{int(time.time() * 1000)}"


def create_watch(
    service: Any,
    calendar_id: str,
    webhook_url: str,
    channel_id: Optional[str] = None
) -> Dict:
    """
    Register a push notification channel for the calendar's events.

    Args:
        service: Google Calendar API service instance
        calendar_id: Calendar to watch
        webhook_url: Public HTTPS address receiving notifications
        channel_id: Optional channel ID, generated when omitted

    Returns:
        The channel resource returned by Google
    """
    body = {
        "id": channel_id or new_channel_id(),
        "type": "web_hook",
        "address": webhook_url,
    }
    return service.events().watch(calendarId=calendar_id, body=body).execute()


def list_recently_updated_events(
    service: Any,
    calendar_id: str,
    now: Optional[datetime.datetime] = None,
    minutes: int = LOOKBACK_MINUTES,
    max_results: int = MAX_RECENT_EVENTS
) -> List[Dict]:
    """
    List events updated within the last few minutes, deleted ones included.

    Push notifications carry no payload, so this is how the webhook
    finds out what changed.
    """
    if now is None:
        now = datetime.datetime.now(datetime.timezone.utc)
    updated_min = now - datetime.timedelta(minutes=minutes)
    events_result = (
        service.events()
        .list(
            calendarId=calendar_id,
            updatedMin=updated_min.isoformat(),
            showDeleted=True,
            singleEvents=True,
            orderBy="updated",
            maxResults=max_results,
        )
        .execute()
    )
    return events_result.get("items", [])


def find_event_by_page_id(
    service: Any,
    calendar_id: str,
    page_id: str
) -> Optional[Dict]:
    """Find the live event linked to a Notion page, if any."""
    events_result = (
        service.events()
        .list(
            calendarId=calendar_id,
            privateExtendedProperty=f"{PAGE_ID_PROPERTY}={page_id}",
            showDeleted=False,
            maxResults=1,
            singleEvents=True,
        )
        .execute()
    )
    items = events_result.get("items", [])
    return items[0] if items else None


def _search_bounds(value: str) -> Tuple[str, str]:
    # One day of slack on each side covers any UTC offset
    day = value[:10]
    return f"{add_days(day, -1)}T00:00:00Z", f"{add_days(day, 2)}T00:00:00Z"


def find_events_by_title_and_start(
    service: Any,
    calendar_id: str,
    fields: SyncFields
) -> List[Dict]:
    """
    Find live events whose title and start equal the given fields.

    The query is narrowed around the start day by ``timeMin``/``timeMax``
    and a free-text match on the title, then compared exactly.
    """
    if not fields.start:
        return []
    wanted = normalize_fields(fields)
    time_min, time_max = _search_bounds(fields.start)
    events_result = (
        service.events()
        .list(
            calendarId=calendar_id,
            q=fields.title,
            timeMin=time_min,
            timeMax=time_max,
            singleEvents=True,
            showDeleted=False,
        )
        .execute()
    )
    matches = []
    for event in events_result.get("items", []):
        if event.get("status") == "cancelled":
            continue
        found = normalize_fields(calendar_event_to_fields(event))
        if (found.title, found.start) == (wanted.title, wanted.start):
            matches.append(event)
    return matches


def insert_event(service: Any, calendar_id: str, body: Dict) -> Dict:
    return service.events().insert(calendarId=calendar_id, body=body).execute()


def patch_event(service: Any, calendar_id: str, event_id: str, body: Dict) -> Dict:
    return (
        service.events()
        .patch(calendarId=calendar_id, eventId=event_id, body=body)
        .execute()
    )


def delete_event(service: Any, calendar_id: str, event_id: str) -> None:
    service.events().delete(calendarId=calendar_id, eventId=event_id).execute()


def private_properties(event: Dict) -> Dict[str, str]:
    """Return the private extended properties of an event."""
    return dict(
        (event.get("extendedProperties") or {}).get("private") or {}
    )
