"""
Unit tests for the in-memory loop and duplicate guards.
"""

import threading

from calendar_notion_sync.guard import InFlightSet, RecentWindow, SyncGuard, is_own_write


def test_in_flight_claim_is_exclusive_until_released():
    in_flight = InFlightSet()

    assert in_flight.claim("evt-1")
    assert not in_flight.claim("evt-1")
    assert "evt-1" in in_flight

    in_flight.release("evt-1")

    assert in_flight.claim("evt-1")


def test_release_of_unknown_id_is_harmless():
    in_flight = InFlightSet()
    in_flight.release("missing")
    assert len(in_flight) == 0


def test_recent_window_expires(clock):
    window = RecentWindow(window_seconds=60, clock=clock)
    window.mark("page-1")

    clock(59)
    assert window.seen_recently("page-1")

    clock(2)
    assert not window.seen_recently("page-1")


def test_origin_matching_destination_is_an_echo():
    props = {"origin": "notion", "sync_hash": "abc"}

    assert is_own_write(props, "abc", destination="notion")


def test_origin_matching_destination_with_edited_fields_propagates():
    props = {"origin": "notion", "sync_hash": "abc"}

    assert not is_own_write(props, "def", destination="notion")


def test_origin_without_hash_is_skipped_on_origin_alone():
    assert is_own_write({"origin": "notion"}, "abc", destination="notion")
    assert not is_own_write({"origin": "calendar"}, "abc", destination="notion")


def test_already_reconciled_record_is_skipped():
    props = {"origin": "calendar", "sync_hash": "abc"}

    assert is_own_write(props, "abc", destination="notion")
    assert not is_own_write(props, "xyz", destination="notion")


def test_untagged_record_propagates():
    assert not is_own_write({}, "abc", destination="notion")


def test_recent_window_keeps_marked_values(clock):
    window = RecentWindow(window_seconds=60, clock=clock)
    window.mark("evt-1", "page-1")

    assert window.get("evt-1") == "page-1"
    assert window.get("evt-2") is None
    assert len(window) == 1


def test_created_links_expire_with_the_window(clock):
    guard = SyncGuard(window_seconds=60, clock=clock)
    guard.remember_link("evt-1", "page-1")
    guard.remember_event("0F1E-2D3C", "evt-2")

    assert guard.linked_page("evt-1") == "page-1"
    assert guard.linked_event("0f1e2d3c") == "evt-2"

    clock(61)

    assert guard.linked_page("evt-1") is None
    assert guard.linked_event("0f1e2d3c") is None
    assert len(guard.created_links) == 0


def test_in_flight_membership_is_checked_under_the_lock():
    in_flight = InFlightSet()
    in_flight.claim("evt-1")

    with in_flight._lock:
        blocked = threading.Thread(target=lambda: "evt-1" in in_flight)
        blocked.start()
        blocked.join(timeout=0.1)
        assert blocked.is_alive()

    blocked.join(timeout=5)
    assert not blocked.is_alive()
