"""Availability window checks and free-slot generation for interview calendars."""

from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

import pytz

from models.entities import SchedulingPolicy, TimeSlot, now_utc
from models.errors import SlotUnavailable
from services.calendar_service import CalendarService


def sunday_based_weekday(day: date) -> int:
    """Weekday index with 0=Sunday, as stored in ``available_days``."""
    return (day.weekday() + 1) % 7


class SchedulingEngine:
    """Engine for checking and finding interview time slots."""

    def __init__(self, calendar_service: CalendarService, booking_window_days: int = 14):
        """Initialize scheduling engine."""
        self.calendar_service = calendar_service
        self.booking_window_days = booking_window_days

    def calendars_for(self, policy: SchedulingPolicy) -> list[str]:
        """The system calendar plus each interviewer's calendar."""
        return [policy.calendar_id] + list(policy.interviewer_emails)

    def check_within_window(
        self,
        policy: SchedulingPolicy,
        start: datetime,
        end: datetime,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Verify a slot falls inside the policy's weekly availability window.

        Args:
            policy: Scheduling policy for the system
            start: Slot start (aware)
            end: Slot end (aware)
            now: Reference time for the past/booking-window checks

        Raises:
            SlotUnavailable: the slot is in the past, too far ahead, on an
                unavailable day, or outside the local working hours
        """
        now = now or now_utc()
        tz = pytz.timezone(policy.timezone)
        local_start = start.astimezone(tz)
        local_end = end.astimezone(tz)

        if start <= now:
            raise SlotUnavailable(
                f"Slot {start.isoformat()} is in the past",
                user_message="That time has already passed. Please pick another slot.",
            )
        if start > now + timedelta(days=self.booking_window_days):
            raise SlotUnavailable(
                f"Slot {start.isoformat()} is beyond the {self.booking_window_days}-day booking window",
                user_message=f"Interviews can be booked up to {self.booking_window_days} days ahead.",
            )
        if sunday_based_weekday(local_start.date()) not in policy.available_days:
            raise SlotUnavailable(
                f"{local_start:%A} is not an interview day for {policy.system}",
                user_message="Interviews aren't held on that day.",
            )

        window_start = tz.localize(
            datetime.combine(local_start.date(), time(policy.available_start_hour, 0))
        )
        window_end = tz.localize(
            datetime.combine(local_start.date(), time(policy.available_end_hour, 0))
        )
        if local_start < window_start or local_end > window_end:
            raise SlotUnavailable(
                f"Slot {local_start:%H:%M}-{local_end:%H:%M} is outside "
                f"{policy.available_start_hour}:00-{policy.available_end_hour}:00 {policy.timezone}",
                user_message="That time is outside interview hours.",
            )

    def find_conflicts(
        self,
        policy: SchedulingPolicy,
        start: datetime,
        end: datetime,
    ) -> list[TimeSlot]:
        """
        Busy periods overlapping the slot, padded by the policy buffer.

        Raises ExternalServiceError when a calendar can't be read.
        """
        buffer = timedelta(minutes=policy.buffer_minutes)
        padded_start, padded_end = start - buffer, end + buffer
        busy = self.calendar_service.get_busy_slots(
            self.calendars_for(policy), padded_start, padded_end
        )
        return [slot for slot in busy if slot.start < padded_end and slot.end > padded_start]

    def generate_possible_slots(
        self,
        policy: SchedulingPolicy,
        start: datetime,
        end: datetime,
    ) -> list[TimeSlot]:
        """Every duration-sized slot inside the availability window, stepping duration + buffer."""
        tz = pytz.timezone(policy.timezone)
        duration = timedelta(minutes=policy.duration_minutes)
        step = timedelta(minutes=policy.duration_minutes + policy.buffer_minutes)
        slots = []

        current_date = start.astimezone(tz).date()
        end_date = end.astimezone(tz).date()

        while current_date <= end_date:
            if sunday_based_weekday(current_date) in policy.available_days:
                # Localize each day separately so DST changes keep local hours
                day_start = tz.localize(
                    datetime.combine(current_date, time(policy.available_start_hour, 0))
                )
                day_end = tz.localize(
                    datetime.combine(current_date, time(policy.available_end_hour, 0))
                )

                current = day_start
                while current + duration <= day_end:
                    slot_start = current.astimezone(pytz.UTC)
                    slot_end = (current + duration).astimezone(pytz.UTC)
                    if slot_start >= start and slot_end <= end:
                        slots.append(TimeSlot(
                            start=slot_start,
                            end=slot_end,
                            source="availability_window",
                        ))
                    current = tz.normalize(current + step)

            current_date += timedelta(days=1)

        return slots

    def get_available_slots(
        self,
        policy: SchedulingPolicy,
        start: datetime,
        end: datetime,
        locked_starts: Iterable[datetime] = (),
        now: Optional[datetime] = None,
    ) -> list[TimeSlot]:
        """
        Free interview slots for a system.

        Args:
            policy: Scheduling policy for the system
            start: Start of range
            end: End of range
            locked_starts: Slot starts already claimed on the shared calendar
            now: Reference time; slots at or before it are dropped

        Returns:
            Bookable TimeSlots sorted by start
        """
        now = now or now_utc()
        start = max(start, now)
        end = min(end, now + timedelta(days=self.booking_window_days))
        if start >= end:
            return []

        buffer = timedelta(minutes=policy.buffer_minutes)
        busy = self.calendar_service.get_busy_slots(
            self.calendars_for(policy), start - buffer, end + buffer
        )
        locked = {s.astimezone(pytz.UTC) for s in locked_starts}

        available = []
        for slot in self.generate_possible_slots(policy, start, end):
            if slot.start <= now or slot.start in locked:
                continue
            padded_start, padded_end = slot.start - buffer, slot.end + buffer
            if any(b.start < padded_end and b.end > padded_start for b in busy):
                continue
            available.append(slot)

        return available
