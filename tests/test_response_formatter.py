"""
Response Formatter Tests

Tests console message formatting including:
- Slot lists and slot buttons
- Booking confirmations and errors
- Application and stage summaries
"""

from datetime import datetime, timedelta

import pytz

from conftest import TUESDAY_10AM, TUESDAY_1030AM
from models.entities import (
    Application,
    BookingResult,
    RecruitingStageConfig,
    RecruitingStep,
    Team,
    TimeSlot,
)
from models.errors import AlreadyScheduled, ExternalServiceError
from services.response_formatter import ResponseFormatter


def half_hour_slots(count):
    return [
        TimeSlot(
            start=TUESDAY_10AM + timedelta(minutes=30 * i),
            end=TUESDAY_1030AM + timedelta(minutes=30 * i),
        )
        for i in range(count)
    ]


# ============================================================================
# SLOTS AND BOOKINGS
# ============================================================================

class TestAvailableSlots:
    """Test slot list formatting."""

    def test_no_slots(self):
        text, buttons = ResponseFormatter.format_available_slots([], "America/Chicago")

        assert "No Available Times Found" in text
        assert buttons == []

    def test_slots_in_local_time(self):
        text, buttons = ResponseFormatter.format_available_slots(half_hour_slots(2), "America/Chicago")

        assert "**Tuesday, January 07**" in text
        assert "10:00 AM - 10:30 AM" in text
        assert buttons == [
            {"label": "Tue Jan 07 10:00 AM", "index": 0},
            {"label": "Tue Jan 07 10:30 AM", "index": 1},
        ]

    def test_limit(self):
        text, buttons = ResponseFormatter.format_available_slots(
            half_hour_slots(12), "America/Chicago", limit=10
        )

        assert len(buttons) == 10
        assert "+ 2 more slot(s) available." in text


class TestBookingMessages:
    """Test booking confirmations and errors."""

    def test_confirmation(self):
        result = BookingResult(
            application=Application(id="cand-1-combustion", candidate_id="cand-1", team=Team.COMBUSTION),
            system="Chassis",
            event_id="evt-1",
            scheduled_at=TUESDAY_10AM,
            scheduled_end_at=TUESDAY_1030AM,
        )

        text = ResponseFormatter.format_booking_confirmation(result, "America/Chicago")

        assert "Interview Scheduled" in text
        assert "**Chassis**" in text
        assert "Tuesday, January 07, 2025" in text
        assert "10:00 AM - 10:30 AM (America/Chicago)" in text

    def test_conflict_suggests_refresh(self):
        text = ResponseFormatter.format_booking_error(AlreadyScheduled("offer scheduled at 16:00"))

        assert "Slot Not Booked" in text
        assert "Refresh" in text
        assert "offer scheduled at 16:00" not in text

    def test_other_errors_hide_detail(self):
        text = ResponseFormatter.format_booking_error(ExternalServiceError("HTTP 503 from calendar"))

        assert "Something Went Wrong" in text
        assert "calendar service is unavailable" in text
        assert "503" not in text


# ============================================================================
# SUMMARIES
# ============================================================================

class TestSummaries:
    """Test application and stage summaries."""

    def test_candidate_summary(self):
        payload = {
            "team": "Combustion",
            "status": "interview",
            "preferred_systems": ["Chassis", "Powertrain"],
            "interview_offers": [
                {"system": "Chassis", "status": "scheduled", "scheduled_at": TUESDAY_10AM},
                {"system": "Powertrain", "status": "pending"},
            ],
        }

        text = ResponseFormatter.format_application_summary(payload)

        assert "Combustion Application" in text
        assert "**Status:** Interview" in text
        assert "Chassis: scheduled (Jan 07 16:00 UTC)" in text
        assert "Powertrain: pending" in text
        assert "Rejected by" not in text

    def test_staff_summary(self):
        payload = {
            "team": "Combustion",
            "status": "trial",
            "trial_offers": [{"system": "Chassis", "accepted": None}],
            "rejected_by_systems": ["Powertrain"],
        }

        text = ResponseFormatter.format_application_summary(payload)

        assert "Chassis: awaiting response" in text
        assert "**Rejected by:** Powertrain" in text

    def test_stage(self):
        config = RecruitingStageConfig(
            current_step=RecruitingStep.RELEASE_INTERVIEWS,
            updated_at=datetime(2025, 1, 6, 14, 0, tzinfo=pytz.UTC),
            updated_by="admin-1",
            version=3,
        )

        text = ResponseFormatter.format_stage(config)

        assert "release interviews" in text
        assert "2025-01-06 14:00 UTC" in text
        assert "**Version:** 3" in text
