"""Shared fixtures for the recruiting services tests.

Times are pinned to the week of 2025-01-06 (a Monday). America/Chicago is
on CST (UTC-6) then, so 10:00 local is 16:00 UTC.
"""

from datetime import datetime, timedelta

import pytest
import pytz

from models.entities import RecruitingStep, SchedulingPolicy, Team, ViewerRole
from services.application_repository import ApplicationRepository
from services.calendar_service import CalendarService, InMemoryCalendarClient
from services.document_store import InMemoryDocumentStore
from services.offer_ledger import OfferLedger
from services.reservation_coordinator import SlotReservationCoordinator
from services.scheduling_engine import SchedulingEngine
from services.scheduling_policy import SchedulingPolicyStore
from services.slot_locks import SlotLockRegistry
from services.stage_gate import RecruitingStageGate

CHICAGO = pytz.timezone("America/Chicago")

# Monday 08:00 CST
NOW = datetime(2025, 1, 6, 14, 0, tzinfo=pytz.UTC)
# Tuesday 10:00-10:30 CST
TUESDAY_10AM = datetime(2025, 1, 7, 16, 0, tzinfo=pytz.UTC)
TUESDAY_1030AM = datetime(2025, 1, 7, 16, 30, tzinfo=pytz.UTC)

CHASSIS_CALENDAR = "combustion-chassis@group.calendar.google.com"
POWERTRAIN_CALENDAR = "combustion-powertrain@group.calendar.google.com"


class FakeClock:
    """Settable clock returning aware datetimes."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeMonotonic:
    """Settable stand-in for time.monotonic."""

    def __init__(self):
        self.t = 1000.0

    def __call__(self) -> float:
        return self.t


# ============================================================================
# STORAGE AND LEDGER
# ============================================================================

@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def repository(store):
    return ApplicationRepository(store, max_retries=5)


@pytest.fixture
def stage_gate(store):
    return RecruitingStageGate(store, cache_ttl_seconds=5.0)


@pytest.fixture
def ledger(repository, stage_gate):
    return OfferLedger(repository, stage_gate=stage_gate)


@pytest.fixture
def submitted_application(ledger):
    """Combustion application preferring Chassis and Powertrain, submitted."""
    application = ledger.create_application("cand-1", Team.COMBUSTION, ["Chassis", "Powertrain"])
    return ledger.submit_application(application.id)


# ============================================================================
# SCHEDULING
# ============================================================================

@pytest.fixture
def policy_store(store):
    policies = SchedulingPolicyStore(store)
    policies.save_policy(SchedulingPolicy(
        team=Team.COMBUSTION,
        system="Chassis",
        calendar_id=CHASSIS_CALENDAR,
        interviewer_emails=["chassis.lead@example.org"],
    ))
    policies.save_policy(SchedulingPolicy(
        team=Team.COMBUSTION,
        system="Powertrain",
        calendar_id=POWERTRAIN_CALENDAR,
        interviewer_emails=[],
    ))
    return policies


@pytest.fixture
def calendar():
    return InMemoryCalendarClient()


@pytest.fixture
def engine(calendar):
    return SchedulingEngine(CalendarService(calendar), booking_window_days=14)


@pytest.fixture
def slot_locks(store, clock):
    return SlotLockRegistry(store, stale_after=timedelta(minutes=5), clock=clock)


@pytest.fixture
def coordinator(repository, policy_store, calendar, engine, stage_gate, slot_locks, clock):
    return SlotReservationCoordinator(
        repository=repository,
        policy_store=policy_store,
        calendar_client=calendar,
        engine=engine,
        stage_gate=stage_gate,
        slot_locks=slot_locks,
        lock_timeout=timedelta(minutes=5),
        clock=clock,
    )


@pytest.fixture
def interview_application(ledger, stage_gate, submitted_application):
    """Chassis interview offer extended and released to the candidate."""
    application = ledger.extend_interview_offers(submitted_application.id, ["Chassis"])
    stage_gate.set_stage(RecruitingStep.RELEASE_INTERVIEWS, "admin-1", ViewerRole.ADMIN)
    return application
