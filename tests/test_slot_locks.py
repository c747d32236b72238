"""
Slot Lock Registry Tests

Tests shared-calendar slot claims including:
- Acquire/re-acquire/contention
- Stale claim takeover and cleanup
- Owner-only release
"""

from datetime import timedelta

import pytest

from conftest import TUESDAY_10AM, TUESDAY_1030AM
from models.entities import SlotLockStatus
from models.errors import SlotUnavailable
from services.slot_locks import SLOT_LOCKS_COLLECTION, lock_id

CALENDAR_ID = "team@group.calendar.google.com"


class TestLockId:
    """Test lock document IDs."""

    def test_sanitizes_calendar_id(self):
        doc_id = lock_id("team/a@group.calendar.google.com", TUESDAY_10AM)

        assert doc_id == "team_a_group.calendar.google.com_2025-01-07T16:00:00+00:00"


class TestAcquire:
    """Test claiming slots."""

    def test_acquire(self, slot_locks, clock):
        lock = slot_locks.acquire(CALENDAR_ID, TUESDAY_10AM, TUESDAY_1030AM, "app-1", "Chassis")

        assert lock.status == SlotLockStatus.PENDING
        assert lock.created_at == clock.now
        assert slot_locks.locked_starts(CALENDAR_ID) == {TUESDAY_10AM}

    def test_same_owner_can_reacquire(self, slot_locks):
        slot_locks.acquire(CALENDAR_ID, TUESDAY_10AM, TUESDAY_1030AM, "app-1", "Chassis")
        lock = slot_locks.acquire(CALENDAR_ID, TUESDAY_10AM, TUESDAY_1030AM, "app-1", "Chassis")

        assert lock.application_id == "app-1"

    def test_other_owner_is_refused(self, slot_locks):
        slot_locks.acquire(CALENDAR_ID, TUESDAY_10AM, TUESDAY_1030AM, "app-1", "Chassis")

        with pytest.raises(SlotUnavailable):
            slot_locks.acquire(CALENDAR_ID, TUESDAY_10AM, TUESDAY_1030AM, "app-2", "Chassis")

    def test_stale_claim_is_taken_over(self, slot_locks, clock):
        slot_locks.acquire(CALENDAR_ID, TUESDAY_10AM, TUESDAY_1030AM, "app-1", "Chassis")
        clock.advance(minutes=6)

        lock = slot_locks.acquire(CALENDAR_ID, TUESDAY_10AM, TUESDAY_1030AM, "app-2", "Chassis")

        assert lock.application_id == "app-2"

    def test_confirmed_claim_never_goes_stale(self, slot_locks, clock):
        slot_locks.acquire(CALENDAR_ID, TUESDAY_10AM, TUESDAY_1030AM, "app-1", "Chassis")
        slot_locks.confirm(CALENDAR_ID, TUESDAY_10AM, "evt-1")
        clock.advance(hours=2)

        with pytest.raises(SlotUnavailable):
            slot_locks.acquire(CALENDAR_ID, TUESDAY_10AM, TUESDAY_1030AM, "app-2", "Chassis")
        assert slot_locks.release_stale() == 0


class TestRelease:
    """Test releasing claims."""

    def test_only_owner_releases(self, slot_locks, store):
        slot_locks.acquire(CALENDAR_ID, TUESDAY_10AM, TUESDAY_1030AM, "app-1", "Chassis")

        assert slot_locks.release(CALENDAR_ID, TUESDAY_10AM, "app-2", "Chassis") is False
        assert slot_locks.release(CALENDAR_ID, TUESDAY_10AM, "app-1", "Chassis") is True
        assert store.get(SLOT_LOCKS_COLLECTION, lock_id(CALENDAR_ID, TUESDAY_10AM)) is None

    def test_release_missing(self, slot_locks):
        assert slot_locks.release(CALENDAR_ID, TUESDAY_10AM, "app-1", "Chassis") is False

    def test_release_stale(self, slot_locks, clock):
        slot_locks.acquire(CALENDAR_ID, TUESDAY_10AM, TUESDAY_1030AM, "app-1", "Chassis")
        slot_locks.acquire(CALENDAR_ID, TUESDAY_1030AM, TUESDAY_1030AM + timedelta(minutes=30), "app-2", "Chassis")
        clock.advance(minutes=6)

        assert slot_locks.locked_starts(CALENDAR_ID) == set()
        assert slot_locks.release_stale() == 2
        assert slot_locks.release_stale() == 0
