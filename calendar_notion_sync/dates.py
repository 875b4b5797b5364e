"""
Field reconciliation between Google Calendar events and Notion pages.

Google Calendar stores all-day events with an exclusive end date while
Notion date ranges are inclusive, so converting in either direction
shifts the end by one day. Timed values are passed through unchanged and
only normalized to UTC instants when the two sides are compared.
"""

import datetime
import hashlib
from typing import Any, Dict, NamedTuple, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .core import DEFAULT_TITLE


class SyncFields(NamedTuple):
    """The fields kept in sync, in Notion's representation."""
    title: str
    start: Optional[str]
    end: Optional[str]


def add_days(date_str: str, days: int) -> str:
    """Shift a YYYY-MM-DD date string by a number of days."""
    day = datetime.date.fromisoformat(date_str[:10])
    return (day + datetime.timedelta(days=days)).isoformat()


def parse_datetime(value: str) -> datetime.datetime:
    """Parse an RFC 3339 / ISO 8601 datetime, accepting a trailing Z."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.datetime.fromisoformat(value)


def localize(value: Optional[str], time_zone: Optional[str]) -> Optional[str]:
    """
    Attach a time zone to a timed value written without an offset.

    Notion returns times in a page's ``time_zone`` without an offset, and
    Google returns them with one. Dates, values that already carry an
    offset and unknown zones are returned unchanged.
    """
    if not value or "T" not in value or not time_zone:
        return value
    try:
        parsed = parse_datetime(value)
        zone = ZoneInfo(time_zone)
    except (ValueError, ZoneInfoNotFoundError):
        return value
    if parsed.tzinfo is not None:
        return value
    return parsed.replace(tzinfo=zone).isoformat()


def is_all_day_event(event: Dict[str, Any]) -> bool:
    start = event.get("start") or {}
    return bool(start.get("date")) and not start.get("dateTime")


def calendar_event_to_fields(
    event: Dict[str, Any],
    default_title: str = DEFAULT_TITLE
) -> SyncFields:
    """
    Convert a Google Calendar event to Notion-style sync fields.

    All-day events get their exclusive end date moved back one day; an
    event covering a single day ends up with no end date at all.

    Args:
        event: Calendar event resource
        default_title: Title used when the event has no summary

    Returns:
        SyncFields for the event
    """
    title = event.get("summary") or default_title
    start = event.get("start") or {}
    end = event.get("end") or {}

    if is_all_day_event(event):
        start_date = start["date"]
        end_date = end.get("date")
        if end_date:
            end_date = add_days(end_date, -1)
            if end_date <= start_date:
                end_date = None
        return SyncFields(title, start_date, end_date)

    return SyncFields(
        title,
        localize(start.get("dateTime"), start.get("timeZone")),
        localize(end.get("dateTime"), end.get("timeZone") or start.get("timeZone")),
    )


def notion_date_to_calendar(
    date: Optional[Dict[str, Any]]
) -> Optional[Tuple[Dict[str, str], Dict[str, str]]]:
    """
    Convert a Notion date property value to calendar start/end objects.

    Args:
        date: The ``date`` object of a Notion date property

    Returns:
        (start, end) dicts for the Calendar API, or None when the page
        has no start date
    """
    if not date or not date.get("start"):
        return None

    start_raw = date["start"]
    end_raw = date.get("end")

    if "T" in start_raw:
        time_zone = date.get("time_zone") or "UTC"
        start_raw = localize(start_raw, date.get("time_zone"))
        end_raw = localize(end_raw, date.get("time_zone"))
        if not end_raw:
            end_raw = (
                parse_datetime(start_raw) + datetime.timedelta(hours=1)
            ).isoformat()
        return (
            {"dateTime": start_raw, "timeZone": time_zone},
            {"dateTime": end_raw, "timeZone": time_zone},
        )

    # Calendar end dates are exclusive
    end_date = add_days(end_raw or start_raw, 1)
    return {"date": start_raw[:10]}, {"date": end_date}


def fields_to_notion_date(fields: SyncFields) -> Optional[Dict[str, Optional[str]]]:
    if not fields.start:
        return None
    date = {"start": fields.start}
    if fields.end:
        date["end"] = fields.end
    return date


def _normalize_value(value: Optional[str]) -> Optional[str]:
    if not value or "T" not in value:
        return value[:10] if value else value
    try:
        parsed = parse_datetime(value)
    except ValueError:
        return value
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(datetime.timezone.utc)
    return parsed.replace(microsecond=0).isoformat()


def normalize_fields(fields: SyncFields) -> SyncFields:
    """Normalize fields so equal instants compare equal."""
    return SyncFields(
        fields.title.strip(),
        _normalize_value(fields.start),
        _normalize_value(fields.end),
    )


def fields_match(left: SyncFields, right: SyncFields) -> bool:
    return normalize_fields(left) == normalize_fields(right)


def compute_sync_hash(fields: SyncFields) -> str:
    """
    Fingerprint the synced fields of a record.

    Stored on calendar events whenever the bridge writes them so a later
    notification can tell its own write apart from a user edit.
    """
    normalized = normalize_fields(fields)
    content = "\x1f".join(value or "" for value in normalized)
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]
