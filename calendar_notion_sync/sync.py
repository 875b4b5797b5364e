"""
Change propagation between Google Calendar and Notion.

``SyncBridge`` holds the two API clients and the in-memory guards, and
implements what each webhook does once a notification has been accepted:

- Calendar to Notion: list the events updated in the last minutes and
  create, update or archive the linked pages.
- Notion to Calendar: create, patch or delete the event linked to the
  page named in the delivery.

Every outbound failure is caught and logged here. Callers always get a
SyncStats back, never an exception from Google or Notion.
"""

from typing import Any, Callable, Dict, Optional

import requests
from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError

from .core import (
    DEFAULT_TITLE,
    ORIGIN_CALENDAR,
    ORIGIN_NOTION,
    ORIGIN_PROPERTY,
    PAGE_ID_PROPERTY,
    SYNC_HASH_PROPERTY,
    BridgeConfig,
    build_calendar_service,
    logger,
)
from .dates import (
    calendar_event_to_fields,
    compute_sync_hash,
    fields_match,
    notion_date_to_calendar,
)
from .google_calendar import (
    delete_event,
    find_event_by_page_id,
    find_events_by_title_and_start,
    insert_event,
    list_recently_updated_events,
    patch_event,
    private_properties,
)
from .guard import SyncGuard, is_own_write
from .notion import (
    NotionAPI,
    build_page_properties,
    extract_date,
    normalize_id,
    page_parent_database,
    page_to_fields,
)

# Failures of outbound calls that must never reach the notification sender
OUTBOUND_ERRORS = (
    HttpError,
    GoogleAuthError,
    requests.exceptions.RequestException,
    OSError,
)

PROCESSABLE_STATES = ("exists", "not_exists")
PAGE_SYNC_TYPES = ("page.created", "page.undeleted", "page.properties_updated")


class SyncStats:
    """Counters for what a single notification caused."""

    FIELDS = ("created", "updated", "linked", "archived", "deleted", "skipped", "errors")

    def __init__(self):
        for name in self.FIELDS:
            setattr(self, name, 0)

    def as_dict(self) -> Dict[str, int]:
        return {name: getattr(self, name) for name in self.FIELDS}

    def __repr__(self) -> str:
        counts = ", ".join(f"{k}={v}" for k, v in self.as_dict().items())
        return f"SyncStats({counts})"


def _switchable(when: Dict[str, Any]) -> Dict[str, Any]:
    """Clear the other representation so a patch can switch all-day/timed."""
    when = dict(when)
    if "date" in when:
        when.setdefault("dateTime", None)
        when.setdefault("timeZone", None)
    else:
        when.setdefault("date", None)
    return when


class SyncBridge:
    """
    Bidirectional sync between one calendar and one Notion database.

    Attributes:
        config: Bridge configuration
        notion: Notion API client
        guard: In-memory loop and duplicate guards
    """

    def __init__(
        self,
        config: BridgeConfig,
        calendar_service: Any = None,
        notion: Optional[NotionAPI] = None,
        guard: Optional[SyncGuard] = None,
        service_factory: Callable[[BridgeConfig], Any] = build_calendar_service,
    ):
        self.config = config
        self.notion = notion or NotionAPI(config.notion_api_key)
        self.guard = guard or SyncGuard(config.recent_window_seconds)
        self._service = calendar_service
        self._service_factory = service_factory

    @property
    def service(self) -> Any:
        """Google Calendar service, built on first use."""
        if self._service is None:
            self._service = self._service_factory(self.config)
        return self._service

    @property
    def calendar_id(self) -> str:
        return self.config.calendar_id

    # ------------------------------------------------------------------ #
    # Calendar -> Notion                                                   #
    # ------------------------------------------------------------------ #

    def handle_calendar_notification(
        self,
        state: Optional[str],
        resource_id: Optional[str] = None,
        channel_id: Optional[str] = None
    ) -> SyncStats:
        """
        Process a Google Calendar push notification.

        Args:
            state: Value of X-Goog-Resource-State
            resource_id: Value of X-Goog-Resource-Id
            channel_id: Value of X-Goog-Channel-Id

        Returns:
            Counters of what was done
        """
        stats = SyncStats()
        logger.normal(
            f"Calendar notification: state={state} "
            f"resource={resource_id} channel={channel_id}"
        )

        if state == "sync":
            logger.normal("Initial sync message for the channel, nothing to do.")
            return stats
        if state not in PROCESSABLE_STATES:
            logger.normal(f"Ignoring resource state: {state}")
            return stats

        try:
            events = list_recently_updated_events(self.service, self.calendar_id)
        except OUTBOUND_ERRORS as error:
            logger.warn(f"Error listing updated calendar events: {error}")
            stats.errors += 1
            return stats

        if not events:
            logger.normal("No recently updated events.")
        for event in events:
            self.process_calendar_event(event, stats)

        logger.normal(f"Calendar notification done: {stats}")
        return stats

    def process_calendar_event(self, event: Dict, stats: SyncStats) -> None:
        """Sync one calendar event to Notion unless it is already in flight."""
        event_id = event.get("id")
        if not event_id:
            return
        if not self.guard.in_flight.claim(event_id):
            logger.debug(f"Event {event_id} is already being processed")
            stats.skipped += 1
            return

        try:
            self._sync_event_to_notion(event, stats)
        except OUTBOUND_ERRORS as error:
            logger.warn(f"Error processing event {event_id}: {error}")
            stats.errors += 1
        finally:
            self.guard.in_flight.release(event_id)

    def _sync_event_to_notion(self, event: Dict, stats: SyncStats) -> None:
        event_id = event["id"]
        props = private_properties(event)
        page_id = props.get(PAGE_ID_PROPERTY)

        if event.get("status") == "cancelled":
            if not page_id:
                logger.normal(f"Cancelled event {event_id} has no linked page.")
                stats.skipped += 1
            elif self.notion.archive_page(page_id):
                logger.normal(f"Archived Notion page {page_id} for event {event_id}")
                stats.archived += 1
            else:
                logger.debug(f"Notion page {page_id} already archived")
                stats.skipped += 1
            return

        fields = calendar_event_to_fields(event, DEFAULT_TITLE)
        current_hash = compute_sync_hash(fields)
        if is_own_write(props, current_hash, ORIGIN_NOTION):
            logger.debug(
                f"Skipping event {event_id}: no change since the bridge wrote it"
            )
            stats.skipped += 1
            return

        if page_id:
            page = self.notion.retrieve_page(page_id)
            if page.get("archived"):
                logger.normal(f"Notion page {page_id} is archived, ignoring event.")
                stats.skipped += 1
                return
            if fields_match(page_to_fields(page, self.config.date_property), fields):
                logger.debug(f"Notion page {page_id} already matches event {event_id}")
            else:
                self.notion.update_page(page_id, properties=self._page_properties(fields))
                logger.normal(
                    f"Updated Notion page {page_id} from event {event_id} "
                    f"({fields.title})"
                )
                stats.updated += 1
        else:
            page_id = self._link_or_create_page(event_id, fields, stats)

        self._tag_event(event, props, page_id, current_hash)

    def _page_properties(self, fields) -> Dict:
        return build_page_properties(
            fields, self.config.title_property, self.config.date_property
        )

    def _link_or_create_page(self, event_id: str, fields, stats: SyncStats) -> str:
        page_id = self.guard.linked_page(event_id)
        if page_id:
            logger.normal(
                f"Event {event_id} already has page {page_id} created by this process"
            )
            stats.linked += 1
            return page_id

        matches = []
        try:
            matches = self.notion.find_pages_by_title_and_date(
                self.config.notion_database_id,
                self.config.title_property,
                self.config.date_property,
                fields,
            )
        except requests.exceptions.RequestException as error:
            logger.warn(f"Error searching Notion for '{fields.title}': {error}")

        if matches:
            page_id = matches[0]["id"]
            logger.normal(f"Linked event {event_id} to existing Notion page {page_id}")
            stats.linked += 1
        else:
            page = self.notion.create_page(
                self.config.notion_database_id, self._page_properties(fields)
            )
            page_id = page["id"]
            self.guard.written_pages.mark(normalize_id(page_id))
            logger.normal(
                f"Created Notion page {page_id} for event {event_id} ({fields.title})"
            )
            stats.created += 1

        self.guard.remember_link(event_id, page_id)
        return page_id

    def _tag_event(
        self,
        event: Dict,
        props: Dict[str, str],
        page_id: str,
        sync_hash: str
    ) -> None:
        tagged = dict(props)
        tagged[PAGE_ID_PROPERTY] = page_id
        tagged[ORIGIN_PROPERTY] = ORIGIN_CALENDAR
        tagged[SYNC_HASH_PROPERTY] = sync_hash
        if tagged == props:
            return
        patch_event(
            self.service,
            self.calendar_id,
            event["id"],
            {"extendedProperties": {"private": tagged}},
        )
        logger.debug(f"Tagged event {event['id']} with page {page_id}")

    # ------------------------------------------------------------------ #
    # Notion -> Calendar                                                   #
    # ------------------------------------------------------------------ #

    def handle_notion_event(self, payload: Dict) -> SyncStats:
        """
        Process a verified Notion webhook delivery.

        Args:
            payload: Parsed JSON body of the delivery

        Returns:
            Counters of what was done
        """
        stats = SyncStats()
        event_type = payload.get("type")
        entity = payload.get("entity") or {}

        if entity.get("type") != "page" or not entity.get("id"):
            logger.normal(f"Ignoring Notion event {event_type}: not a page")
            stats.skipped += 1
            return stats

        page_id = entity["id"]
        logger.normal(f"Notion event {event_type} for page {page_id}")
        claim_id = normalize_id(page_id)
        if not self.guard.pages_in_flight.claim(claim_id):
            logger.debug(f"Page {page_id} is already being processed")
            stats.skipped += 1
            return stats

        try:
            if event_type == "page.deleted":
                self._delete_linked_event(page_id, stats)
            elif event_type in PAGE_SYNC_TYPES:
                self._sync_page_to_calendar(page_id, stats)
            else:
                logger.normal(f"Ignoring Notion event type {event_type}")
                stats.skipped += 1
        except OUTBOUND_ERRORS as error:
            logger.warn(f"Error processing Notion page {page_id}: {error}")
            stats.errors += 1
        finally:
            self.guard.pages_in_flight.release(claim_id)

        return stats

    def _delete_linked_event(self, page_id: str, stats: SyncStats) -> None:
        existing = find_event_by_page_id(self.service, self.calendar_id, page_id)
        if not existing:
            logger.normal(f"No calendar event linked to deleted page {page_id}")
            stats.skipped += 1
            return
        delete_event(self.service, self.calendar_id, existing["id"])
        logger.normal(f"Deleted calendar event {existing['id']} for page {page_id}")
        stats.deleted += 1

    def _sync_page_to_calendar(self, page_id: str, stats: SyncStats) -> None:
        page = self.notion.retrieve_page(page_id)
        parent = page_parent_database(page)
        if normalize_id(parent) != normalize_id(self.config.notion_database_id):
            logger.normal(f"Page {page_id} is not in the synced database, ignoring.")
            stats.skipped += 1
            return
        if page.get("archived"):
            logger.normal(f"Page {page_id} is archived, ignoring.")
            stats.skipped += 1
            return

        fields = page_to_fields(page, self.config.date_property)
        dates = notion_date_to_calendar(extract_date(page, self.config.date_property))
        body: Dict[str, Any] = {"summary": fields.title}
        if dates:
            body["start"], body["end"] = dates

        existing = find_event_by_page_id(self.service, self.calendar_id, page_id)
        if existing:
            self._update_linked_event(existing, page_id, body, stats)
        else:
            self._create_or_link_event(page_id, fields, body, stats)

    def _update_linked_event(
        self,
        existing: Dict,
        page_id: str,
        body: Dict,
        stats: SyncStats
    ) -> None:
        event_id = existing["id"]
        wanted = calendar_event_to_fields({**existing, **body})
        if fields_match(calendar_event_to_fields(existing), wanted):
            logger.debug(f"Event {event_id} already matches page {page_id}")
            stats.skipped += 1
            return

        props = private_properties(existing)
        props[PAGE_ID_PROPERTY] = page_id
        props[ORIGIN_PROPERTY] = ORIGIN_NOTION
        props[SYNC_HASH_PROPERTY] = compute_sync_hash(wanted)

        patch = {"summary": body["summary"], "extendedProperties": {"private": props}}
        if "start" in body:
            patch["start"] = _switchable(body["start"])
            patch["end"] = _switchable(body["end"])

        patch_event(self.service, self.calendar_id, event_id, patch)
        logger.normal(f"Updated calendar event {event_id} from page {page_id}")
        stats.updated += 1

    def _create_or_link_event(
        self,
        page_id: str,
        fields,
        body: Dict,
        stats: SyncStats
    ) -> None:
        if self.guard.written_pages.seen_recently(normalize_id(page_id)):
            logger.normal(
                f"Page {page_id} was just created by the bridge, ignoring."
            )
            stats.skipped += 1
            return
        linked = self.guard.linked_event(page_id)
        if linked:
            logger.normal(
                f"Page {page_id} already has event {linked} created by this process"
            )
            stats.skipped += 1
            return
        if "start" not in body:
            logger.normal(f"Page {page_id} has no date, no event to create.")
            stats.skipped += 1
            return

        props = {
            PAGE_ID_PROPERTY: page_id,
            ORIGIN_PROPERTY: ORIGIN_NOTION,
            SYNC_HASH_PROPERTY: compute_sync_hash(calendar_event_to_fields(body)),
        }

        matches = find_events_by_title_and_start(
            self.service, self.calendar_id, fields
        )
        unlinked = [
            event for event in matches
            if not private_properties(event).get(PAGE_ID_PROPERTY)
        ]
        if unlinked:
            event_id = unlinked[0]["id"]
            merged = {**private_properties(unlinked[0]), **props}
            patch = dict(body)
            patch["start"] = _switchable(body["start"])
            patch["end"] = _switchable(body["end"])
            patch["extendedProperties"] = {"private": merged}
            patch_event(self.service, self.calendar_id, event_id, patch)
            self.guard.remember_event(page_id, event_id)
            logger.normal(f"Linked page {page_id} to existing event {event_id}")
            stats.linked += 1
            return

        created = insert_event(
            self.service,
            self.calendar_id,
            {**body, "extendedProperties": {"private": props}},
        )
        self.guard.remember_event(page_id, created.get("id"))
        logger.normal(
            f"Created calendar event {created.get('id')} for page {page_id} "
            f"({fields.title})"
        )
        stats.created += 1
