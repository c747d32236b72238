"""Wiring for the recruiting services."""

import logging
from dataclasses import dataclass
from typing import Optional

from models.entities import SchedulingPolicy, Team
from services.application_repository import ApplicationRepository
from services.calendar_service import (
    CalendarClient,
    CalendarService,
    InMemoryCalendarClient,
    build_calendar_client,
)
from services.document_store import DocumentStore, build_document_store
from services.offer_ledger import OfferLedger
from services.reservation_coordinator import SlotReservationCoordinator
from services.scheduling_engine import SchedulingEngine
from services.scheduling_policy import SchedulingPolicyStore
from services.settings import Settings
from services.slot_locks import SlotLockRegistry
from services.stage_gate import RecruitingStageGate

logger = logging.getLogger("recruiting")


@dataclass
class ServiceContainer:
    settings: Settings
    store: DocumentStore
    calendar_client: CalendarClient
    repository: ApplicationRepository
    stage_gate: RecruitingStageGate
    ledger: OfferLedger
    policy_store: SchedulingPolicyStore
    engine: SchedulingEngine
    slot_locks: SlotLockRegistry
    coordinator: SlotReservationCoordinator


def build_services(
    settings: Settings,
    store: Optional[DocumentStore] = None,
    calendar_client: Optional[CalendarClient] = None,
) -> ServiceContainer:
    """Build every service from settings; pass ``store``/``calendar_client`` to override."""
    store = store or build_document_store(settings.document_store_path)
    if calendar_client is None:
        if settings.calendar_backend == "google":
            calendar_client = build_calendar_client(
                "google",
                access_token=settings.google_calendar_access_token,
                base_url=settings.google_calendar_base_url,
                timeout_seconds=settings.calendar_timeout_seconds,
            )
        else:
            calendar_client = build_calendar_client(settings.calendar_backend)

    repository = ApplicationRepository(store, max_retries=settings.max_transaction_retries)
    stage_gate = RecruitingStageGate(store, cache_ttl_seconds=settings.stage_cache_ttl_seconds)
    policy_store = SchedulingPolicyStore(store, default_timezone=settings.default_timezone)
    engine = SchedulingEngine(
        CalendarService(calendar_client),
        booking_window_days=settings.booking_window_days,
    )
    slot_locks = SlotLockRegistry(store, stale_after=settings.reservation_lock_timeout)

    logger.info(
        "Services ready (calendar backend: %s, store: %s, lock timeout: %d min)",
        settings.calendar_backend, settings.document_store_path or "memory", settings.reservation_lock_timeout_minutes,
    )
    return ServiceContainer(
        settings=settings,
        store=store,
        calendar_client=calendar_client,
        repository=repository,
        stage_gate=stage_gate,
        ledger=OfferLedger(
            repository,
            stage_gate=stage_gate,
            require_interview_offer=settings.require_interview_for_trial,
        ),
        policy_store=policy_store,
        engine=engine,
        slot_locks=slot_locks,
        coordinator=SlotReservationCoordinator(
            repository=repository,
            policy_store=policy_store,
            calendar_client=calendar_client,
            engine=engine,
            stage_gate=stage_gate,
            slot_locks=slot_locks,
            lock_timeout=settings.reservation_lock_timeout,
        ),
    )


DEMO_POLICIES = [
    (Team.COMBUSTION, "Chassis", "combustion-chassis@group.calendar.google.com", ["chassis.lead@example.org"]),
    (Team.COMBUSTION, "Powertrain", "combustion-powertrain@group.calendar.google.com", ["powertrain.lead@example.org"]),
    (Team.ELECTRIC, "Low Voltage", "electric-lv@group.calendar.google.com", ["lv.lead@example.org"]),
    (Team.ELECTRIC, "Battery", "electric-battery@group.calendar.google.com", []),
    (Team.SOLAR, "Array", "solar-array@group.calendar.google.com", ["array.lead@example.org"]),
    (Team.SOLAR, "Strategy", "solar-strategy@group.calendar.google.com", []),
]


def seed_demo_data(services: ServiceContainer) -> None:
    """Scheduling policies (and synthetic busy time) for a local demo run."""
    for team, system, calendar_id, interviewers in DEMO_POLICIES:
        policy = services.policy_store.save_policy(SchedulingPolicy(
            team=team,
            system=system,
            calendar_id=calendar_id,
            interviewer_emails=interviewers,
            duration_minutes=30,
            buffer_minutes=15 if team == Team.COMBUSTION else 0,
            timezone=services.settings.default_timezone,
        ))
        if isinstance(services.calendar_client, InMemoryCalendarClient):
            services.calendar_client.seed_synthetic_events(policy.calendar_id, policy.timezone)
    logger.info("Seeded %d demo scheduling policies", len(DEMO_POLICIES))
