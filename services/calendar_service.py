"""Calendar clients and busy-time lookup for interview calendars."""

import logging
import os
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, time, timedelta
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
import pytz

from models.entities import CalendarEvent, TimeSlot
from models.errors import ExternalServiceError

logger = logging.getLogger("recruiting")


def _ensure_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=pytz.UTC) if value.tzinfo is None else value.astimezone(pytz.UTC)


class CalendarClient(ABC):
    """Contract the booking flow needs from an external calendar."""

    @abstractmethod
    def list_events(self, calendar_id: str, start: datetime, end: datetime) -> list[CalendarEvent]:
        """Events overlapping [start, end)."""

    @abstractmethod
    def create_event(
        self,
        calendar_id: str,
        attendees: list[str],
        start: datetime,
        end: datetime,
        summary: str,
        description: str = "",
        timezone: Optional[str] = None,
    ) -> str:
        """Create an event and return its ID."""

    @abstractmethod
    def delete_event(self, calendar_id: str, event_id: str) -> None:
        """Delete an event; already-deleted events are not an error."""


class InMemoryCalendarClient(CalendarClient):
    """Calendar kept in memory, for local runs and tests."""

    def __init__(self):
        self._events: dict[str, list[CalendarEvent]] = {}
        self.created_events: list[CalendarEvent] = []

    def add_event(self, event: CalendarEvent) -> CalendarEvent:
        self._events.setdefault(event.calendar_id, []).append(event)
        return event

    def seed_synthetic_events(self, calendar_id: str, timezone: str, days: int = 30) -> None:
        """Generate recurring busy blocks so availability looks realistic."""
        tz = pytz.timezone(timezone)
        today = datetime.now(tz).date()

        for day_offset in range(days):
            current_date = today + timedelta(days=day_offset)

            # Skip weekends
            if current_date.weekday() >= 5:
                continue

            local_midnight = tz.localize(datetime.combine(current_date, time.min))

            # Morning standup (9:00-9:30 local)
            self.add_event(CalendarEvent(
                id=f"{calendar_id}_{day_offset}_standup",
                calendar_id=calendar_id,
                start=local_midnight.replace(hour=9, minute=0).astimezone(pytz.UTC),
                end=local_midnight.replace(hour=9, minute=30).astimezone(pytz.UTC),
                title="Daily Standup",
            ))

            # Design review (14:00-15:00 local) - every other day
            if day_offset % 2 == 0:
                self.add_event(CalendarEvent(
                    id=f"{calendar_id}_{day_offset}_review",
                    calendar_id=calendar_id,
                    start=local_midnight.replace(hour=14, minute=0).astimezone(pytz.UTC),
                    end=local_midnight.replace(hour=15, minute=0).astimezone(pytz.UTC),
                    title="Design Review",
                ))

    def list_events(self, calendar_id: str, start: datetime, end: datetime) -> list[CalendarEvent]:
        start, end = _ensure_utc(start), _ensure_utc(end)
        events = []
        for event in self._events.get(calendar_id, []):
            if event.start is None or event.end is None:
                events.append(event)
            elif event.start < end and event.end > start:
                events.append(event)
        return sorted(events, key=lambda e: e.start or start)

    def create_event(
        self,
        calendar_id: str,
        attendees: list[str],
        start: datetime,
        end: datetime,
        summary: str,
        description: str = "",
        timezone: Optional[str] = None,
    ) -> str:
        event = CalendarEvent(
            id=uuid.uuid4().hex,
            calendar_id=calendar_id,
            start=_ensure_utc(start),
            end=_ensure_utc(end),
            title=summary,
            attendees=list(attendees),
        )
        self.add_event(event)
        self.created_events.append(event)
        return event.id

    def delete_event(self, calendar_id: str, event_id: str) -> None:
        events = self._events.get(calendar_id, [])
        self._events[calendar_id] = [e for e in events if e.id != event_id]

    def get_event(self, calendar_id: str, event_id: str) -> Optional[CalendarEvent]:
        for event in self._events.get(calendar_id, []):
            if event.id == event_id:
                return event
        return None


class GoogleCalendarClient(CalendarClient):
    """Client for the Google Calendar v3 REST API."""

    def __init__(
        self,
        access_token: str = None,
        base_url: str = None,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize Google Calendar client.

        Args:
            access_token: OAuth2 bearer token (defaults to env var GOOGLE_CALENDAR_ACCESS_TOKEN)
            base_url: API root (defaults to env var GOOGLE_CALENDAR_BASE_URL)
            timeout_seconds: Bound on every request; a timeout is reported as
                ExternalServiceError
            transport: Optional httpx transport (used by tests)
        """
        self.access_token = access_token or os.getenv("GOOGLE_CALENDAR_ACCESS_TOKEN", "")
        if not self.access_token:
            raise ValueError(
                "Missing Google Calendar credentials. "
                "Please set the GOOGLE_CALENDAR_ACCESS_TOKEN environment variable."
            )
        self.base_url = (
            base_url
            or os.getenv("GOOGLE_CALENDAR_BASE_URL", "https://www.googleapis.com/calendar/v3")
        ).rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.access_token}",
        }

    def _events_url(self, calendar_id: str) -> str:
        return f"{self.base_url}/calendars/{quote(calendar_id, safe='')}/events"

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            with httpx.Client(
                timeout=self.timeout_seconds,
                transport=self._transport,
                headers=self._get_headers(),
            ) as client:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()
                return response
        except httpx.TimeoutException as exc:
            raise ExternalServiceError(f"Calendar request timed out: {method} {url}") from exc
        except httpx.HTTPStatusError as exc:
            raise ExternalServiceError(
                f"Calendar API returned {exc.response.status_code} for {method} {url}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceError(f"Calendar request failed: {exc}") from exc

    @staticmethod
    def _parse_time(data: Optional[Dict[str, Any]], calendar_tz: Any) -> Optional[datetime]:
        """Parse a Google start/end object; None when it can't be read."""
        if not data:
            return None
        if data.get("dateTime"):
            try:
                parsed = datetime.fromisoformat(data["dateTime"].replace("Z", "+00:00"))
            except ValueError:
                return None
            if parsed.tzinfo is None:
                parsed = calendar_tz.localize(parsed)
            return parsed.astimezone(pytz.UTC)
        if data.get("date"):
            # All-day event: midnight in the calendar's own timezone
            try:
                day = datetime.strptime(data["date"], "%Y-%m-%d")
            except ValueError:
                return None
            return calendar_tz.localize(day).astimezone(pytz.UTC)
        return None

    def list_events(self, calendar_id: str, start: datetime, end: datetime) -> list[CalendarEvent]:
        events: list[CalendarEvent] = []
        params = {
            "timeMin": _ensure_utc(start).isoformat(),
            "timeMax": _ensure_utc(end).isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
        }

        while True:
            response = self._request("GET", self._events_url(calendar_id), params=params)
            try:
                payload = response.json()
            except ValueError as exc:
                raise ExternalServiceError("Calendar API returned invalid JSON") from exc

            try:
                calendar_tz = pytz.timezone(payload.get("timeZone") or "UTC")
            except pytz.UnknownTimeZoneError:
                calendar_tz = pytz.UTC

            for item in payload.get("items", []):
                if item.get("status") == "cancelled":
                    continue
                events.append(CalendarEvent(
                    id=item.get("id", ""),
                    calendar_id=calendar_id,
                    start=self._parse_time(item.get("start"), calendar_tz),
                    end=self._parse_time(item.get("end"), calendar_tz),
                    title=item.get("summary", ""),
                    attendees=[a.get("email", "") for a in item.get("attendees", [])],
                    transparent=item.get("transparency") == "transparent",
                ))

            page_token = payload.get("nextPageToken")
            if not page_token:
                return events
            params["pageToken"] = page_token

    def create_event(
        self,
        calendar_id: str,
        attendees: list[str],
        start: datetime,
        end: datetime,
        summary: str,
        description: str = "",
        timezone: Optional[str] = None,
    ) -> str:
        timezone = timezone or "America/Chicago"
        body = {
            "summary": summary,
            "description": description,
            "start": {"dateTime": _ensure_utc(start).isoformat(), "timeZone": timezone},
            "end": {"dateTime": _ensure_utc(end).isoformat(), "timeZone": timezone},
            "attendees": [{"email": email} for email in attendees],
            "conferenceData": {
                "createRequest": {
                    "requestId": f"interview-{uuid.uuid4().hex}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                },
            },
            "reminders": {
                "useDefault": False,
                "overrides": [
                    {"method": "email", "minutes": 24 * 60},  # 1 day before
                    {"method": "popup", "minutes": 30},
                ],
            },
            "guestsCanSeeOtherGuests": False,
        }
        response = self._request(
            "POST",
            self._events_url(calendar_id),
            params={"sendUpdates": "all", "conferenceDataVersion": 1},
            json=body,
        )
        try:
            event_id = response.json().get("id")
        except ValueError as exc:
            raise ExternalServiceError("Calendar API returned invalid JSON") from exc
        if not event_id:
            raise ExternalServiceError("Failed to create calendar event: no event ID returned")
        return event_id

    def delete_event(self, calendar_id: str, event_id: str) -> None:
        url = f"{self._events_url(calendar_id)}/{quote(event_id, safe='')}"
        try:
            self._request("DELETE", url, params={"sendUpdates": "all"})
        except ExternalServiceError as exc:
            cause = exc.__cause__
            if isinstance(cause, httpx.HTTPStatusError) and cause.response.status_code in (404, 410):
                logger.info("Calendar event %s was already deleted", event_id)
                return
            raise


class CalendarService:
    """Busy-time lookup across a system's calendar and its interviewers' calendars."""

    def __init__(self, client: CalendarClient):
        self.client = client

    def get_busy_slots(
        self,
        calendar_ids: List[str],
        start: datetime,
        end: datetime,
    ) -> list[TimeSlot]:
        """
        Merge busy time from several calendars.

        Fails closed: an event whose times can't be read blocks the whole
        queried range, and a calendar that can't be listed raises
        ExternalServiceError rather than being treated as free.

        Args:
            calendar_ids: Calendars to check (duplicates ignored)
            start: Start of range
            end: End of range

        Returns:
            Busy TimeSlots sorted by start
        """
        start, end = _ensure_utc(start), _ensure_utc(end)
        busy: list[TimeSlot] = []

        for calendar_id in dict.fromkeys(c for c in calendar_ids if c):
            for event in self.client.list_events(calendar_id, start, end):
                if event.transparent:
                    continue
                if event.start is None or event.end is None:
                    logger.warning(
                        "Event %s on %s has unknown times; treating range as busy",
                        event.id, calendar_id,
                    )
                    busy.append(TimeSlot(start=start, end=end, source=calendar_id))
                    continue
                busy.append(TimeSlot(start=event.start, end=event.end, source=calendar_id))

        busy.sort(key=lambda slot: slot.start)
        return busy


def build_calendar_client(backend: str = "memory", **kwargs: Any) -> CalendarClient:
    """Create the calendar client named by ``backend`` ("memory" or "google")."""
    if backend == "google":
        return GoogleCalendarClient(**kwargs)
    if backend == "memory":
        return InMemoryCalendarClient()
    raise ValueError(f"Unknown calendar backend: {backend}")
