"""
Calendar Client Tests

Tests the calendar integrations including:
- Google Calendar REST client (via httpx.MockTransport)
- Error mapping for timeouts and HTTP failures
- In-memory client and busy-time merging
"""

import json
from datetime import datetime, timedelta

import httpx
import pytest
import pytz

from conftest import TUESDAY_10AM, TUESDAY_1030AM
from models.entities import CalendarEvent
from models.errors import ExternalServiceError
from services.calendar_service import (
    CalendarService,
    GoogleCalendarClient,
    InMemoryCalendarClient,
    build_calendar_client,
)

CALENDAR_ID = "team@group.calendar.google.com"
BASE_URL = "https://calendar.test/v3"


def google_client(handler) -> GoogleCalendarClient:
    return GoogleCalendarClient(
        access_token="test-token",
        base_url=BASE_URL,
        timeout_seconds=2.0,
        transport=httpx.MockTransport(handler),
    )


# ============================================================================
# GOOGLE CALENDAR CLIENT
# ============================================================================

class TestGoogleListEvents:
    """Test listing events through the REST API."""

    def test_parses_events(self):
        def handler(request):
            assert request.method == "GET"
            assert request.headers["Authorization"] == "Bearer test-token"
            assert request.url.params["singleEvents"] == "true"
            return httpx.Response(200, json={
                "timeZone": "America/Chicago",
                "items": [
                    {
                        "id": "evt-1",
                        "summary": "Design Review",
                        "start": {"dateTime": "2025-01-07T10:00:00-06:00"},
                        "end": {"dateTime": "2025-01-07T10:30:00-06:00"},
                        "attendees": [{"email": "lead@example.org"}],
                    },
                    {
                        "id": "evt-2",
                        "start": {"date": "2025-01-08"},
                        "end": {"date": "2025-01-09"},
                        "transparency": "transparent",
                    },
                    {"id": "evt-3", "status": "cancelled"},
                ],
            })

        events = google_client(handler).list_events(
            CALENDAR_ID, TUESDAY_10AM, TUESDAY_10AM + timedelta(days=2)
        )

        assert [e.id for e in events] == ["evt-1", "evt-2"]
        assert events[0].start == TUESDAY_10AM
        assert events[0].end == TUESDAY_1030AM
        assert events[0].attendees == ["lead@example.org"]
        # All-day events start at local midnight
        assert events[1].start == datetime(2025, 1, 8, 6, 0, tzinfo=pytz.UTC)
        assert events[1].transparent is True

    def test_follows_pagination(self):
        def handler(request):
            if request.url.params.get("pageToken") == "page-2":
                return httpx.Response(200, json={"items": [
                    {"id": "b", "start": {"dateTime": "2025-01-07T17:00:00Z"},
                     "end": {"dateTime": "2025-01-07T17:30:00Z"}},
                ]})
            return httpx.Response(200, json={
                "nextPageToken": "page-2",
                "items": [
                    {"id": "a", "start": {"dateTime": "2025-01-07T16:00:00Z"},
                     "end": {"dateTime": "2025-01-07T16:30:00Z"}},
                ],
            })

        events = google_client(handler).list_events(CALENDAR_ID, TUESDAY_10AM, TUESDAY_10AM + timedelta(hours=4))

        assert [e.id for e in events] == ["a", "b"]

    def test_unreadable_times_are_none(self):
        def handler(request):
            return httpx.Response(200, json={"items": [
                {"id": "odd", "start": {"dateTime": "not-a-date"}, "end": {}},
            ]})

        events = google_client(handler).list_events(CALENDAR_ID, TUESDAY_10AM, TUESDAY_1030AM)

        assert events[0].start is None
        assert events[0].end is None

    def test_timeout_is_external_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ExternalServiceError):
            google_client(handler).list_events(CALENDAR_ID, TUESDAY_10AM, TUESDAY_1030AM)

    def test_http_error_is_external_error(self):
        def handler(request):
            return httpx.Response(503, json={"error": "backend"})

        with pytest.raises(ExternalServiceError):
            google_client(handler).list_events(CALENDAR_ID, TUESDAY_10AM, TUESDAY_1030AM)


class TestGoogleCreateDelete:
    """Test creating and deleting events."""

    def test_create_event(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "new-event"})

        event_id = google_client(handler).create_event(
            CALENDAR_ID,
            ["cand@example.org", "lead@example.org"],
            TUESDAY_10AM,
            TUESDAY_1030AM,
            "Chassis Interview",
            timezone="America/Chicago",
        )

        assert event_id == "new-event"
        assert seen["params"]["sendUpdates"] == "all"
        assert seen["body"]["summary"] == "Chassis Interview"
        assert seen["body"]["attendees"] == [
            {"email": "cand@example.org"}, {"email": "lead@example.org"}
        ]
        assert seen["body"]["start"]["timeZone"] == "America/Chicago"

    def test_create_without_id(self):
        def handler(request):
            return httpx.Response(200, json={})

        with pytest.raises(ExternalServiceError):
            google_client(handler).create_event(
                CALENDAR_ID, [], TUESDAY_10AM, TUESDAY_1030AM, "Interview"
            )

    def test_delete_missing_event_is_ok(self):
        def handler(request):
            assert request.method == "DELETE"
            return httpx.Response(410)

        google_client(handler).delete_event(CALENDAR_ID, "gone")

    def test_delete_server_error_raises(self):
        def handler(request):
            return httpx.Response(500)

        with pytest.raises(ExternalServiceError):
            google_client(handler).delete_event(CALENDAR_ID, "evt-1")

    def test_missing_token(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_CALENDAR_ACCESS_TOKEN", raising=False)

        with pytest.raises(ValueError):
            GoogleCalendarClient()


# ============================================================================
# IN-MEMORY CLIENT AND BUSY TIME
# ============================================================================

class TestInMemoryCalendar:
    """Test the in-memory client."""

    def test_create_list_delete(self):
        client = InMemoryCalendarClient()
        event_id = client.create_event(CALENDAR_ID, ["a@example.org"], TUESDAY_10AM, TUESDAY_1030AM, "Interview")

        assert [e.id for e in client.list_events(CALENDAR_ID, TUESDAY_10AM, TUESDAY_1030AM)] == [event_id]
        assert client.list_events(CALENDAR_ID, TUESDAY_1030AM, TUESDAY_1030AM + timedelta(hours=1)) == []

        client.delete_event(CALENDAR_ID, event_id)
        client.delete_event(CALENDAR_ID, event_id)
        assert client.get_event(CALENDAR_ID, event_id) is None

    def test_synthetic_events_skip_weekends(self):
        client = InMemoryCalendarClient()
        client.seed_synthetic_events(CALENDAR_ID, "America/Chicago", days=14)

        events = client.list_events(
            CALENDAR_ID, datetime(2000, 1, 1, tzinfo=pytz.UTC), datetime(2100, 1, 1, tzinfo=pytz.UTC)
        )
        local_days = {e.start.astimezone(pytz.timezone("America/Chicago")).weekday() for e in events}

        assert events
        assert local_days <= {0, 1, 2, 3, 4}


class TestCalendarService:
    """Test busy-time merging across calendars."""

    def test_merges_and_sorts(self):
        client = InMemoryCalendarClient()
        client.add_event(CalendarEvent(id="late", calendar_id="a", start=TUESDAY_1030AM,
                                       end=TUESDAY_1030AM + timedelta(minutes=30)))
        client.add_event(CalendarEvent(id="early", calendar_id="b", start=TUESDAY_10AM, end=TUESDAY_1030AM))

        busy = CalendarService(client).get_busy_slots(
            ["a", "b", "a", ""], TUESDAY_10AM, TUESDAY_10AM + timedelta(hours=2)
        )

        assert [slot.source for slot in busy] == ["b", "a"]

    def test_listing_error_propagates(self):
        class BrokenClient(InMemoryCalendarClient):
            def list_events(self, calendar_id, start, end):
                raise ExternalServiceError("down")

        with pytest.raises(ExternalServiceError):
            CalendarService(BrokenClient()).get_busy_slots(["a"], TUESDAY_10AM, TUESDAY_1030AM)

    def test_build_calendar_client(self):
        assert isinstance(build_calendar_client("memory"), InMemoryCalendarClient)
        with pytest.raises(ValueError):
            build_calendar_client("exchange")
