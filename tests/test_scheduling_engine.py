"""
Scheduling Engine Tests

Tests availability windows and free-slot generation including:
- Weekday/hour window checks in the policy timezone
- Buffer-padded conflict detection
- Fail-closed handling of unknown event times
"""

from datetime import datetime, timedelta

import pytest
import pytz

from conftest import CHICAGO, NOW, TUESDAY_10AM, TUESDAY_1030AM
from models.entities import CalendarEvent, SchedulingPolicy, Team
from models.errors import SlotUnavailable
from services.scheduling_engine import sunday_based_weekday


@pytest.fixture
def policy():
    return SchedulingPolicy(
        team=Team.COMBUSTION,
        system="Chassis",
        calendar_id="chassis-cal",
        interviewer_emails=["lead@example.org"],
    )


def local(year, month, day, hour=0, minute=0):
    return CHICAGO.localize(datetime(year, month, day, hour, minute)).astimezone(pytz.UTC)


class TestWeekdayIndex:
    """Test the Sunday-based weekday index."""

    def test_sunday_is_zero(self):
        assert sunday_based_weekday(datetime(2025, 1, 5).date()) == 0

    def test_saturday_is_six(self):
        assert sunday_based_weekday(datetime(2025, 1, 11).date()) == 6


class TestWindowCheck:
    """Test check_within_window."""

    def test_inside_window(self, engine, policy):
        engine.check_within_window(policy, TUESDAY_10AM, TUESDAY_1030AM, now=NOW)

    def test_after_hours(self, engine, policy):
        start = local(2025, 1, 7, 16, 45)

        with pytest.raises(SlotUnavailable):
            engine.check_within_window(policy, start, start + timedelta(minutes=30), now=NOW)

    def test_before_hours(self, engine, policy):
        start = local(2025, 1, 7, 8, 30)

        with pytest.raises(SlotUnavailable):
            engine.check_within_window(policy, start, start + timedelta(minutes=30), now=NOW)

    def test_weekend(self, engine, policy):
        start = local(2025, 1, 11, 10)

        with pytest.raises(SlotUnavailable):
            engine.check_within_window(policy, start, start + timedelta(minutes=30), now=NOW)

    def test_past(self, engine, policy):
        start = NOW - timedelta(hours=1)

        with pytest.raises(SlotUnavailable):
            engine.check_within_window(policy, start, start + timedelta(minutes=30), now=NOW)

    def test_beyond_booking_window(self, engine, policy):
        start = local(2025, 1, 28, 10)

        with pytest.raises(SlotUnavailable):
            engine.check_within_window(policy, start, start + timedelta(minutes=30), now=NOW)

    def test_window_uses_policy_timezone(self, engine, policy):
        policy.timezone = "America/New_York"
        # 10:00 CST is 11:00 EST, still inside; 16:30 CST is 17:30 EST, outside
        engine.check_within_window(policy, TUESDAY_10AM, TUESDAY_1030AM, now=NOW)

        start = local(2025, 1, 7, 16, 30)
        with pytest.raises(SlotUnavailable):
            engine.check_within_window(policy, start, start + timedelta(minutes=30), now=NOW)


class TestConflicts:
    """Test find_conflicts."""

    def test_no_conflicts(self, engine, policy):
        assert engine.find_conflicts(policy, TUESDAY_10AM, TUESDAY_1030AM) == []

    def test_interviewer_calendar_counts(self, engine, calendar, policy):
        calendar.add_event(CalendarEvent(
            id="1on1", calendar_id="lead@example.org",
            start=TUESDAY_10AM, end=TUESDAY_1030AM,
        ))

        assert len(engine.find_conflicts(policy, TUESDAY_10AM, TUESDAY_1030AM)) == 1

    def test_buffer_pads_the_slot(self, engine, calendar, policy):
        calendar.add_event(CalendarEvent(
            id="review", calendar_id="chassis-cal",
            start=TUESDAY_1030AM + timedelta(minutes=10),
            end=TUESDAY_1030AM + timedelta(minutes=40),
        ))

        assert engine.find_conflicts(policy, TUESDAY_10AM, TUESDAY_1030AM) == []
        policy.buffer_minutes = 15
        assert len(engine.find_conflicts(policy, TUESDAY_10AM, TUESDAY_1030AM)) == 1

    def test_transparent_events_ignored(self, engine, calendar, policy):
        calendar.add_event(CalendarEvent(
            id="ooo-note", calendar_id="chassis-cal",
            start=TUESDAY_10AM, end=TUESDAY_1030AM, transparent=True,
        ))

        assert engine.find_conflicts(policy, TUESDAY_10AM, TUESDAY_1030AM) == []

    def test_unknown_times_fail_closed(self, engine, calendar, policy):
        calendar.add_event(CalendarEvent(id="weird", calendar_id="chassis-cal", start=None, end=None))

        assert engine.find_conflicts(policy, TUESDAY_10AM, TUESDAY_1030AM) != []


class TestAvailableSlots:
    """Test get_available_slots."""

    def test_full_day(self, engine, policy):
        slots = engine.get_available_slots(policy, local(2025, 1, 7), local(2025, 1, 8), now=NOW)

        assert len(slots) == 16
        assert slots[0].start == local(2025, 1, 7, 9)
        assert slots[-1].end == local(2025, 1, 7, 17)

    def test_busy_and_locked_slots_removed(self, engine, calendar, policy):
        calendar.add_event(CalendarEvent(
            id="standup", calendar_id="chassis-cal",
            start=TUESDAY_10AM, end=TUESDAY_1030AM,
        ))

        slots = engine.get_available_slots(
            policy, local(2025, 1, 7), local(2025, 1, 8),
            locked_starts=[local(2025, 1, 7, 9)], now=NOW,
        )
        starts = [s.start for s in slots]

        assert len(slots) == 14
        assert TUESDAY_10AM not in starts
        assert local(2025, 1, 7, 9) not in starts

    def test_buffer_spacing(self, engine, policy):
        policy.buffer_minutes = 15

        slots = engine.get_available_slots(policy, local(2025, 1, 7), local(2025, 1, 8), now=NOW)

        assert [s.start for s in slots[:3]] == [
            local(2025, 1, 7, 9), local(2025, 1, 7, 9, 45), local(2025, 1, 7, 10, 30)
        ]
        assert len(slots) == 11

    def test_weekend_has_no_slots(self, engine, policy):
        assert engine.get_available_slots(policy, local(2025, 1, 11), local(2025, 1, 13), now=NOW) == []

    def test_unknown_event_blocks_everything(self, engine, calendar, policy):
        calendar.add_event(CalendarEvent(id="weird", calendar_id="lead@example.org", start=None, end=None))

        assert engine.get_available_slots(policy, local(2025, 1, 7), local(2025, 1, 8), now=NOW) == []

    def test_past_slots_dropped(self, engine, policy):
        now = local(2025, 1, 7, 12, 5)

        slots = engine.get_available_slots(policy, local(2025, 1, 7), local(2025, 1, 8), now=now)

        assert slots[0].start == local(2025, 1, 7, 12, 30)
