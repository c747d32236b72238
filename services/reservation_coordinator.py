"""Interview slot booking against an external calendar.

Booking runs in three phases against one interview offer:

1. Reserve: a transaction moves the offer to ``scheduling``. That status is
   the lock; a second attempt sees it and fails fast.
2. External booking, outside any transaction: window and busy checks,
   shared slot claim, calendar event creation.
3. Confirm (``scheduled`` + event ID) or roll back to ``pending``.

Offers left in ``scheduling`` by a crash between phases are rolled back by
``reclaim_stuck_reservations``, which must run periodically.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

import pytz

from models.entities import (
    STAFF_ROLES,
    Application,
    ApplicationStatus,
    BookingResult,
    InterviewStatus,
    SchedulingPolicy,
    SweepReport,
    Team,
    TimeSlot,
    ViewerRole,
    now_utc,
)
from models.errors import (
    AlreadyScheduled,
    ExternalServiceError,
    Forbidden,
    InvalidTransition,
    ReservationInProgress,
    RollbackFailed,
    SchedulerError,
    SlotUnavailable,
)
from services.application_repository import ApplicationRepository
from services.calendar_service import CalendarClient
from services.scheduling_engine import SchedulingEngine
from services.scheduling_policy import SchedulingPolicyStore
from services.slot_locks import SlotLockRegistry
from services.stage_gate import RecruitingStageGate
from services.status_projector import should_show_interview_scheduler

logger = logging.getLogger("recruiting")

_OUTCOMES = (InterviewStatus.COMPLETED, InterviewStatus.NO_SHOW)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


class SlotReservationCoordinator:
    """
    Books, cancels and reclaims interview slots.

    Args:
        repository: Application persistence
        policy_store: Per-system scheduling policies
        calendar_client: External calendar used to create/delete events
        engine: Window and busy-time checks
        stage_gate: Decides whether the candidate may schedule yet
        slot_locks: Shared-calendar slot claims
        lock_timeout: Age after which a ``scheduling`` offer counts as stuck
        clock: Source of the current time
    """

    def __init__(
        self,
        repository: ApplicationRepository,
        policy_store: SchedulingPolicyStore,
        calendar_client: CalendarClient,
        engine: SchedulingEngine,
        stage_gate: RecruitingStageGate,
        slot_locks: SlotLockRegistry,
        lock_timeout: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = now_utc,
    ):
        self.repository = repository
        self.policy_store = policy_store
        self.calendar_client = calendar_client
        self.engine = engine
        self.stage_gate = stage_gate
        self.slot_locks = slot_locks
        self.lock_timeout = lock_timeout
        self._clock = clock

    # ------------------------------------------------------------------
    # Phase 1
    # ------------------------------------------------------------------

    def reserve(
        self,
        application_id: str,
        system: str,
        start: datetime,
        end: datetime,
    ) -> Application:
        """
        Move the offer to ``scheduling`` with a tentative time.

        Raises:
            AlreadyScheduled: the offer is already booked
            ReservationInProgress: another booking attempt holds the offer
            InvalidTransition: the offer can't be booked at all
        """
        start, end = _as_utc(start), _as_utc(end)
        reserved_on = self._clock()

        def mutate(app: Application) -> None:
            if app.status != ApplicationStatus.INTERVIEW:
                raise InvalidTransition(
                    f"Application {app.id} is {app.status.value}, not interview"
                )
            offer = app.find_interview_offer(system)
            if offer is None:
                raise InvalidTransition(f"No interview offer found for system: {system}")
            # Non-Solar candidates holding several offers interview with one chosen system
            if (
                app.team != Team.SOLAR
                and len(app.interview_offers) > 1
                and app.selected_interview_system != system
            ):
                if app.selected_interview_system:
                    raise InvalidTransition(
                        f"Application {app.id} chose to interview with {app.selected_interview_system}",
                        user_message="You've chosen to interview with a different system.",
                    )
                raise InvalidTransition(
                    f"Application {app.id} must select {system} before scheduling",
                    user_message="Please choose which system to interview with first.",
                )

            if offer.status == InterviewStatus.SCHEDULED:
                raise AlreadyScheduled(f"{app.id}/{system} is already scheduled")
            if offer.status == InterviewStatus.SCHEDULING:
                raise ReservationInProgress(f"{app.id}/{system} is being booked")
            if offer.status in _OUTCOMES:
                raise InvalidTransition(
                    f"{app.id}/{system} interview is already {offer.status.value}"
                )

            # PENDING, or CANCELLED being rebooked
            offer.status = InterviewStatus.SCHEDULING
            offer.scheduled_at = start
            offer.scheduled_end_at = end
            offer.scheduled_on_date = reserved_on
            offer.external_event_id = None
            offer.cancelled_at = None
            offer.cancel_reason = None

        application, _ = self.repository.transact(application_id, mutate)
        logger.debug("Reserved %s/%s at %s", application_id, system, start.isoformat())
        return application

    # ------------------------------------------------------------------
    # Full protocol
    # ------------------------------------------------------------------

    def book_slot(
        self,
        application_id: str,
        system: str,
        slot_start: datetime,
        attendee_email: str,
        attendee_name: Optional[str] = None,
        slot_end: Optional[datetime] = None,
    ) -> BookingResult:
        """
        Book an interview slot for a candidate.

        Args:
            application_id: Application being booked
            system: System whose interview offer is booked
            slot_start: Requested start (naive values are taken as UTC)
            attendee_email: Candidate email invited to the event
            attendee_name: Name shown in the event title
            slot_end: Optional end; must match the configured duration

        Returns:
            BookingResult with the committed application and event ID

        Raises:
            ReservationConflict: booking already done or in flight
            SlotUnavailable: outside the window, busy, or claimed elsewhere
            ExternalServiceError: calendar failure (after rollback)
            RollbackFailed: phase 2 failed and the rollback write failed too
        """
        application = self.repository.get(application_id)
        if not should_show_interview_scheduler(application, self.stage_gate.get_current_stage()):
            raise InvalidTransition(
                f"Application {application_id} can't schedule interviews yet",
                user_message="Interview scheduling isn't open for your application.",
            )

        policy = self.policy_store.get_policy(application.team, system)
        if not policy.calendar_id:
            raise InvalidTransition(
                f"No calendar configured for {application.team.value}/{system}",
                user_message=f"Interviews for {system} aren't set up yet.",
            )

        slot_start = _as_utc(slot_start)
        expected_end = slot_start + timedelta(minutes=policy.duration_minutes)
        if slot_end is not None and _as_utc(slot_end) != expected_end:
            raise SlotUnavailable(
                f"Slot length must be {policy.duration_minutes} minutes for {system}"
            )

        self.reserve(application_id, system, slot_start, expected_end)

        lock_held = False
        try:
            self.engine.check_within_window(policy, slot_start, expected_end, now=self._clock())

            conflicts = self.engine.find_conflicts(policy, slot_start, expected_end)
            if conflicts:
                raise SlotUnavailable(
                    f"{len(conflicts)} calendar conflict(s) at {slot_start.isoformat()} "
                    f"for {policy.calendar_id}"
                )

            self.slot_locks.acquire(
                policy.calendar_id, slot_start, expected_end, application_id, system
            )
            lock_held = True

            event_id = self.calendar_client.create_event(
                calendar_id=policy.calendar_id,
                attendees=[attendee_email] + list(policy.interviewer_emails),
                start=slot_start,
                end=expected_end,
                summary=f"{application.team.value} {system} Interview: {attendee_name or attendee_email}",
                description=(
                    f"Interview for application {application_id}.\n"
                    f"System: {system}\nCandidate: {attendee_name or ''} <{attendee_email}>"
                ),
                timezone=policy.timezone,
            )
        except Exception as exc:
            logger.warning(
                "Booking %s/%s at %s failed: %s",
                application_id, system, slot_start.isoformat(), exc,
            )
            if lock_held:
                self._release_lock(policy, slot_start, application_id, system)
            self._rollback_or_fail(application_id, system, slot_start, exc)
            raise

        return self._confirm(application_id, system, policy, slot_start, expected_end, event_id)

    # ------------------------------------------------------------------
    # Phase 3
    # ------------------------------------------------------------------

    def _confirm(
        self,
        application_id: str,
        system: str,
        policy: SchedulingPolicy,
        slot_start: datetime,
        slot_end: datetime,
        event_id: str,
    ) -> BookingResult:
        def mutate(app: Application) -> bool:
            offer = app.find_interview_offer(system)
            if (
                offer is None
                or offer.status != InterviewStatus.SCHEDULING
                or offer.scheduled_at != slot_start
            ):
                return False
            offer.status = InterviewStatus.SCHEDULED
            offer.external_event_id = event_id
            return True

        try:
            application, confirmed = self.repository.transact(application_id, mutate)
        except SchedulerError as exc:
            logger.error("Confirming %s/%s failed: %s", application_id, system, exc)
            self._discard_event(policy, event_id)
            self._release_lock(policy, slot_start, application_id, system)
            self._rollback_or_fail(application_id, system, slot_start, exc)
            raise

        if not confirmed:
            # The reservation was reclaimed while the calendar call ran
            logger.error(
                "Reservation %s/%s expired before confirmation; discarding event %s",
                application_id, system, event_id,
            )
            self._discard_event(policy, event_id)
            self._release_lock(policy, slot_start, application_id, system)
            raise InvalidTransition(
                f"Reservation for {application_id}/{system} expired before confirmation",
                user_message="Your booking took too long. Please pick the slot again.",
            )

        try:
            self.slot_locks.confirm(policy.calendar_id, slot_start, event_id)
        except SchedulerError as exc:
            logger.warning("Could not confirm slot lock for %s/%s: %s", application_id, system, exc)

        logger.info(
            "Booked %s/%s at %s (event %s)",
            application_id, system, slot_start.isoformat(), event_id,
        )
        return BookingResult(
            application=application,
            system=system,
            event_id=event_id,
            scheduled_at=slot_start,
            scheduled_end_at=slot_end,
        )

    def rollback(
        self,
        application_id: str,
        system: str,
        expected_start: Optional[datetime] = None,
    ) -> bool:
        """
        Return a ``scheduling`` offer to ``pending`` and clear its tentative time.

        Args:
            application_id: Application to roll back
            system: System of the offer
            expected_start: Only roll back if the reservation is for this start

        Returns:
            True if the offer was rolled back, False if it wasn't ours to undo
        """
        if expected_start is not None:
            expected_start = _as_utc(expected_start)

        def mutate(app: Application) -> bool:
            offer = app.find_interview_offer(system)
            if offer is None or offer.status != InterviewStatus.SCHEDULING:
                return False
            if expected_start is not None and offer.scheduled_at != expected_start:
                return False
            offer.status = InterviewStatus.PENDING
            offer.clear_schedule()
            offer.external_event_id = None
            return True

        _, rolled_back = self.repository.transact(application_id, mutate)
        if rolled_back:
            logger.info("Rolled back reservation %s/%s", application_id, system)
        return rolled_back

    def _rollback_or_fail(
        self,
        application_id: str,
        system: str,
        slot_start: datetime,
        cause: Exception,
    ) -> None:
        try:
            self.rollback(application_id, system, expected_start=slot_start)
        except Exception as rollback_exc:
            logger.critical(
                "ROLLBACK FAILED for %s/%s at %s after %r: %s. "
                "Offer may be stuck in scheduling until the sweep reclaims it.",
                application_id, system, slot_start.isoformat(), cause, rollback_exc,
            )
            raise RollbackFailed(
                f"Rollback of {application_id}/{system} failed after: {cause}"
            ) from rollback_exc

    def _release_lock(
        self,
        policy: SchedulingPolicy,
        slot_start: datetime,
        application_id: str,
        system: str,
    ) -> None:
        try:
            self.slot_locks.release(policy.calendar_id, slot_start, application_id, system)
        except SchedulerError as exc:
            logger.warning("Could not release slot lock for %s/%s: %s", application_id, system, exc)

    def _discard_event(self, policy: SchedulingPolicy, event_id: str) -> None:
        try:
            self.calendar_client.delete_event(policy.calendar_id, event_id)
        except ExternalServiceError as exc:
            logger.error(
                "Could not delete calendar event %s on %s: %s",
                event_id, policy.calendar_id, exc,
            )

    # ------------------------------------------------------------------
    # After booking
    # ------------------------------------------------------------------

    def cancel(self, application_id: str, system: str, reason: str) -> Application:
        """
        Cancel a scheduled interview.

        The state change is committed first; deleting the calendar event and
        releasing the slot claim afterwards are best effort.
        """
        reason = reason.strip() if reason else ""
        if not reason:
            raise InvalidTransition(
                "Cancel reason is required",
                user_message="Please give a reason for cancelling.",
            )

        def mutate(app: Application) -> tuple[Optional[str], Optional[datetime]]:
            offer = app.find_interview_offer(system)
            if offer is None:
                raise InvalidTransition(f"No interview offer found for system: {system}")
            if offer.status != InterviewStatus.SCHEDULED:
                raise InvalidTransition(
                    f"{app.id}/{system} is {offer.status.value}; only scheduled interviews can be cancelled"
                )
            offer.status = InterviewStatus.CANCELLED
            offer.cancelled_at = self._clock()
            offer.cancel_reason = reason
            return offer.external_event_id, offer.scheduled_at

        application, (event_id, scheduled_at) = self.repository.transact(application_id, mutate)
        logger.info("Cancelled interview %s/%s: %s", application_id, system, reason)

        policy = self.policy_store.find_policy(application.team, system)
        if policy is None or not policy.calendar_id:
            logger.warning(
                "No calendar configured for %s/%s; event %s left in place",
                application.team.value, system, event_id,
            )
            return application

        if event_id:
            self._discard_event(policy, event_id)
        if scheduled_at is not None:
            self._release_lock(policy, scheduled_at, application_id, system)
        return application

    def mark_outcome(
        self,
        application_id: str,
        system: str,
        outcome: InterviewStatus,
        viewer_role: ViewerRole,
    ) -> Application:
        """Record whether a scheduled interview happened (staff only)."""
        if viewer_role not in STAFF_ROLES:
            raise Forbidden(f"Role {viewer_role.value} cannot record interview outcomes")
        outcome = InterviewStatus(outcome)
        if outcome not in _OUTCOMES:
            raise InvalidTransition(f"{outcome.value} is not an interview outcome")

        def mutate(app: Application) -> None:
            offer = app.find_interview_offer(system)
            if offer is None:
                raise InvalidTransition(f"No interview offer found for system: {system}")
            if offer.status != InterviewStatus.SCHEDULED:
                raise InvalidTransition(
                    f"{app.id}/{system} is {offer.status.value}, not scheduled"
                )
            offer.status = outcome

        application, _ = self.repository.transact(application_id, mutate)
        logger.info("Interview %s/%s marked %s", application_id, system, outcome.value)
        return application

    def list_available_slots(
        self,
        application_id: str,
        system: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[TimeSlot]:
        """
        Bookable slots for one offer.

        Fails closed: an unreadable calendar or missing policy yields no
        slots rather than slots that might be busy.
        """
        application = self.repository.get(application_id)
        policy = self.policy_store.find_policy(application.team, system)
        if policy is None or not policy.calendar_id:
            logger.warning("No scheduling policy for %s/%s", application.team.value, system)
            return []

        now = self._clock()
        start = _as_utc(start) if start else now
        end = _as_utc(end) if end else now + timedelta(days=self.engine.booking_window_days)

        try:
            locked = self.slot_locks.locked_starts(policy.calendar_id)
            return self.engine.get_available_slots(policy, start, end, locked, now=now)
        except ExternalServiceError as exc:
            logger.warning("Availability lookup for %s/%s failed: %s", application_id, system, exc)
            return []

    # ------------------------------------------------------------------
    # Stuck-lock reclamation
    # ------------------------------------------------------------------

    def reclaim_stuck_reservations(self, now: Optional[datetime] = None) -> SweepReport:
        """
        Roll back offers stuck in ``scheduling`` past the lock timeout.

        Staleness is re-checked inside each transaction, so an attempt that
        confirms concurrently wins. Stale pending slot claims are released
        too.
        """
        now = now or self._clock()
        cutoff = now - self.lock_timeout
        report = SweepReport()

        def is_stuck(offer) -> bool:
            return offer.status == InterviewStatus.SCHEDULING and (
                offer.scheduled_on_date is None or offer.scheduled_on_date < cutoff
            )

        for application in self.repository.list_applications():
            for offer in application.interview_offers:
                if not is_stuck(offer):
                    continue

                def mutate(app: Application, system: str = offer.system) -> bool:
                    current = app.find_interview_offer(system)
                    if current is None or not is_stuck(current):
                        return False
                    current.status = InterviewStatus.PENDING
                    current.clear_schedule()
                    current.external_event_id = None
                    return True

                key = (application.id, offer.system)
                try:
                    _, reclaimed = self.repository.transact(application.id, mutate)
                except SchedulerError as exc:
                    logger.critical(
                        "Could not reclaim stuck reservation %s/%s: %s", *key, exc
                    )
                    report.failed.append(key)
                    continue

                if not reclaimed:
                    continue
                logger.error(
                    "Reclaimed stuck reservation %s/%s (reserved %s for %s); "
                    "check the calendar for an orphaned event",
                    application.id, offer.system,
                    offer.scheduled_on_date.isoformat() if offer.scheduled_on_date else "unknown",
                    offer.scheduled_at.isoformat() if offer.scheduled_at else "unknown",
                )
                report.reclaimed.append(key)

                policy = self.policy_store.find_policy(application.team, offer.system)
                if policy is not None and policy.calendar_id and offer.scheduled_at is not None:
                    self._release_lock(policy, offer.scheduled_at, application.id, offer.system)

        report.locks_released = self.slot_locks.release_stale(now)
        if report.reclaimed or report.failed:
            logger.info(
                "Sweep finished: %d reclaimed, %d failed, %d slot locks released",
                len(report.reclaimed), len(report.failed), report.locks_released,
            )
        return report
