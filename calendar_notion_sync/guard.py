"""
In-memory guards against duplicate records and update loops.

All state lives for the lifetime of the process only. A restart, or a
second instance, starts from empty guards.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from .core import ORIGIN_PROPERTY, SYNC_HASH_PROPERTY
from .notion import normalize_id


class InFlightSet:
    """IDs currently being processed by a webhook handler."""

    def __init__(self):
        self._ids = set()
        self._lock = threading.Lock()

    def claim(self, item_id: str) -> bool:
        """
        Mark an ID as in flight.

        Returns:
            False if the ID was already being processed
        """
        with self._lock:
            if item_id in self._ids:
                return False
            self._ids.add(item_id)
            return True

    def release(self, item_id: str) -> None:
        with self._lock:
            self._ids.discard(item_id)

    def __contains__(self, item_id: str) -> bool:
        with self._lock:
            return item_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)


class RecentWindow:
    """
    IDs seen within the last ``window_seconds``, each with an optional value.

    Attributes:
        window_seconds: How long an ID stays recent
        clock: Time source, replaceable in tests
    """

    def __init__(
        self,
        window_seconds: float = 120.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.window_seconds = window_seconds
        self.clock = clock
        self._seen: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        expired = [
            item_id for item_id, (seen_at, _) in self._seen.items()
            if now - seen_at > self.window_seconds
        ]
        for item_id in expired:
            del self._seen[item_id]

    def mark(self, item_id: str, value: Any = True) -> None:
        with self._lock:
            now = self.clock()
            self._prune(now)
            self._seen[item_id] = (now, value)

    def get(self, item_id: str) -> Any:
        """Return the value marked for an ID, or None once it has expired."""
        with self._lock:
            self._prune(self.clock())
            entry = self._seen.get(item_id)
            return entry[1] if entry else None

    def seen_recently(self, item_id: str) -> bool:
        return self.get(item_id) is not None

    def __len__(self) -> int:
        with self._lock:
            self._prune(self.clock())
            return len(self._seen)


class SyncGuard:
    """
    Loop and duplicate protection shared by both webhook handlers.

    Links created by this process are kept for ``window_seconds``, long
    enough for the new record to show up in the other system's queries.

    Attributes:
        in_flight: Calendar event IDs being processed
        pages_in_flight: Notion page IDs being processed
        created_links: Calendar event ID to page ID created by this process
        created_events: Page ID to calendar event ID created by this process
        written_pages: Page IDs the bridge created from calendar events
    """

    def __init__(
        self,
        window_seconds: float = 120.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.in_flight = InFlightSet()
        self.pages_in_flight = InFlightSet()
        self.created_links = RecentWindow(window_seconds, clock)
        self.created_events = RecentWindow(window_seconds, clock)
        self.written_pages = RecentWindow(window_seconds, clock)

    def remember_link(self, event_id: str, page_id: str) -> None:
        self.created_links.mark(event_id, page_id)

    def linked_page(self, event_id: str) -> Optional[str]:
        return self.created_links.get(event_id)

    def remember_event(self, page_id: str, event_id: str) -> None:
        self.created_events.mark(normalize_id(page_id), event_id)

    def linked_event(self, page_id: str) -> Optional[str]:
        return self.created_events.get(normalize_id(page_id))


def is_own_write(
    props: Dict[str, str],
    current_hash: str,
    destination: str
) -> bool:
    """
    Decide whether a record's latest change was written by the bridge.

    A record whose origin tag names the destination system was last
    written by the path syncing into that system. It stays an echo for
    as long as its fields still match the recorded sync hash; records
    tagged before hashes were recorded are treated as echoes on origin
    alone.

    Args:
        props: Private extended properties of the calendar event
        current_hash: Sync hash of the event's current fields
        destination: The system a notification would be propagated to

    Returns:
        True if the change should not be propagated
    """
    recorded = props.get(SYNC_HASH_PROPERTY)
    if props.get(ORIGIN_PROPERTY) == destination:
        return recorded is None or recorded == current_hash
    return recorded == current_hash
