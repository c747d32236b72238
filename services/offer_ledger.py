"""Per-system interview/trial/rejection bookkeeping for applications.

Each public operation is one atomic read-modify-write of a single
application record; concurrent callers retry on conflicts with a fresh
read and never merge stale data.
"""

import logging
from typing import Any, Iterable, Optional

from models.entities import (
    STAFF_ROLES,
    Acceptance,
    Application,
    ApplicationStatus,
    DecisionNote,
    InterviewOffer,
    Team,
    TrialOffer,
    ViewerRole,
    now_utc,
)
from models.errors import AlreadyResponded, Forbidden, InvalidTransition
from services.application_repository import ApplicationRepository
from services.stage_gate import RecruitingStageGate

logger = logging.getLogger("recruiting")

MAX_PREFERRED_SYSTEMS = 3

# Statuses that are already at or past the interview stage
_PAST_INTERVIEW = {ApplicationStatus.TRIAL, ApplicationStatus.ACCEPTED}


def _unique(systems: Iterable[str]) -> list[str]:
    """Drop blanks and duplicates, keeping first-seen order."""
    return list(dict.fromkeys(s.strip() for s in systems if s and s.strip()))


class OfferLedger:
    """
    Staff and candidate transitions on an application's offers.

    Args:
        repository: Application persistence
        stage_gate: Used to refuse submissions once applications close
        require_interview_offer: When True, a trial offer may only go to a
            system that holds a non-cancelled interview offer
    """

    def __init__(
        self,
        repository: ApplicationRepository,
        stage_gate: Optional[RecruitingStageGate] = None,
        require_interview_offer: bool = True,
    ):
        self.repository = repository
        self.stage_gate = stage_gate
        self.require_interview_offer = require_interview_offer

    # ------------------------------------------------------------------
    # Application lifecycle
    # ------------------------------------------------------------------

    def create_application(
        self,
        candidate_id: str,
        team: Team,
        preferred_systems: Optional[list[str]] = None,
    ) -> Application:
        """Start an in-progress application (returns the existing one for this team)."""
        preferred = _unique(preferred_systems or [])
        if len(preferred) > MAX_PREFERRED_SYSTEMS:
            raise InvalidTransition(
                f"At most {MAX_PREFERRED_SYSTEMS} preferred systems are allowed",
                user_message=f"Pick at most {MAX_PREFERRED_SYSTEMS} systems.",
            )
        return self.repository.create(candidate_id, Team(team), preferred)

    def submit_application(self, application_id: str) -> Application:
        if self.stage_gate is not None and not self.stage_gate.applications_open():
            raise InvalidTransition(
                "Applications are closed",
                user_message="Applications are closed.",
            )

        def mutate(app: Application) -> None:
            if app.status != ApplicationStatus.IN_PROGRESS:
                raise InvalidTransition(
                    f"Application {app.id} is already {app.status.value}",
                    user_message="This application has already been submitted.",
                )
            app.status = ApplicationStatus.SUBMITTED
            app.submitted_at = now_utc()

        application, _ = self.repository.transact(application_id, mutate)
        logger.info("Application %s submitted", application_id)
        return application

    # ------------------------------------------------------------------
    # Interview offers
    # ------------------------------------------------------------------

    def extend_interview_offers(self, application_id: str, systems: Iterable[str]) -> Application:
        """
        Offer interviews from one or more systems.

        Systems that already hold an offer are left untouched, so repeating
        the call is a no-op for them. Systems that had rejected the candidate
        are un-rejected.
        """
        requested = _unique(systems)
        if not requested:
            raise InvalidTransition("No systems specified for the interview offer")

        def mutate(app: Application) -> list[str]:
            if app.status == ApplicationStatus.IN_PROGRESS:
                raise InvalidTransition(f"Application {app.id} has not been submitted")

            existing = {offer.system for offer in app.interview_offers}
            added = []
            for system in requested:
                if system not in existing:
                    app.interview_offers.append(InterviewOffer(system=system))
                    added.append(system)

            app.rejected_by_systems = [s for s in app.rejected_by_systems if s not in requested]

            if app.status not in _PAST_INTERVIEW:
                app.status = ApplicationStatus.INTERVIEW
            return added

        application, added = self.repository.transact(application_id, mutate)
        logger.info(
            "Interview offers for %s: added %s (requested %s)",
            application_id, added or "none", requested,
        )
        return application

    def reject_from_systems(
        self,
        application_id: str,
        systems: Iterable[str],
    ) -> tuple[Application, bool]:
        """
        Reject the candidate from specific systems.

        Their interview offers are removed and the systems recorded in
        ``rejected_by_systems``. The application only becomes REJECTED when
        no active (non-cancelled) interview offer remains.

        Returns:
            (application, fully_rejected)
        """
        requested = _unique(systems)
        if not requested:
            return self.repository.get(application_id), False

        def mutate(app: Application) -> bool:
            if app.status == ApplicationStatus.ACCEPTED:
                raise InvalidTransition(f"Application {app.id} has already been accepted")

            app.interview_offers = [o for o in app.interview_offers if o.system not in requested]
            app.rejected_by_systems = list(dict.fromkeys(app.rejected_by_systems + requested))
            if app.selected_interview_system in requested:
                app.selected_interview_system = None

            if app.active_interview_systems():
                return False
            app.status = ApplicationStatus.REJECTED
            return True

        application, fully_rejected = self.repository.transact(application_id, mutate)
        if fully_rejected:
            logger.info("Application %s rejected by all systems", application_id)
        else:
            logger.info(
                "Application %s rejected by %s; still active with %s",
                application_id, requested, application.active_interview_systems(),
            )
        return application, fully_rejected

    def select_interview_system(self, application_id: str, system: str) -> Application:
        """Pick the one system to interview with (teams other than Solar)."""

        def mutate(app: Application) -> None:
            if app.team == Team.SOLAR:
                raise InvalidTransition(
                    "Solar applications interview with every system",
                    user_message="Solar applicants don't need to choose a system.",
                )
            if app.find_interview_offer(system) is None:
                raise InvalidTransition(f"No interview offer found for system: {system}")
            app.selected_interview_system = system

        application, _ = self.repository.transact(application_id, mutate)
        return application

    # ------------------------------------------------------------------
    # Trial offers
    # ------------------------------------------------------------------

    def extend_trial_offer(self, application_id: str, system: str) -> Application:
        system = system.strip() if system else ""
        if not system:
            raise InvalidTransition("No system specified for the trial offer")

        def mutate(app: Application) -> None:
            if app.status == ApplicationStatus.ACCEPTED:
                raise InvalidTransition(f"Application {app.id} has already been accepted")
            live = app.live_trial_offer()
            if live is not None:
                raise InvalidTransition(
                    f"A trial offer from {live.system} is still awaiting a response"
                )
            if self.require_interview_offer:
                offer = app.find_interview_offer(system)
                if offer is None or not offer.is_active:
                    raise InvalidTransition(
                        f"{system} has no active interview offer for application {app.id}"
                    )

            app.trial_offers.append(TrialOffer(system=system))
            app.rejected_by_systems = [s for s in app.rejected_by_systems if s != system]
            app.status = ApplicationStatus.TRIAL

        application, _ = self.repository.transact(application_id, mutate)
        logger.info("Trial offer from %s extended to %s", system, application_id)
        return application

    def record_trial_response(
        self,
        application_id: str,
        accepted: bool,
        rejection_reason: Optional[str] = None,
    ) -> Application:
        reason = rejection_reason.strip() if rejection_reason else ""

        def mutate(app: Application) -> None:
            if not app.trial_offers:
                raise InvalidTransition("No trial offer found")
            offer = app.trial_offers[-1]
            if offer.is_resolved:
                raise AlreadyResponded(f"Trial offer for {app.id} was already answered")
            if not accepted and not reason:
                raise InvalidTransition(
                    "Rejection reason is required",
                    user_message="Please tell us why you're declining.",
                )
            offer.accepted = bool(accepted)
            offer.responded_at = now_utc()
            offer.rejection_reason = None if accepted else reason

        application, _ = self.repository.transact(application_id, mutate)
        logger.info(
            "Trial offer for %s %s", application_id, "accepted" if accepted else "declined"
        )
        return application

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def accept_application(
        self,
        application_id: str,
        system: str,
        role: str,
        details: Optional[dict[str, Any]] = None,
    ) -> Application:
        """Terminal transition: the candidate joins ``system`` as ``role``."""

        def mutate(app: Application) -> None:
            if app.status == ApplicationStatus.ACCEPTED:
                raise InvalidTransition(f"Application {app.id} has already been accepted")
            if system in app.rejected_by_systems:
                raise InvalidTransition(f"{system} has rejected application {app.id}")
            has_offer = app.find_interview_offer(system) is not None or any(
                t.system == system for t in app.trial_offers
            )
            if not has_offer:
                raise InvalidTransition(f"{system} has no offer for application {app.id}")

            app.status = ApplicationStatus.ACCEPTED
            app.acceptance = Acceptance(system=system, role=role, details=dict(details or {}))

        application, _ = self.repository.transact(application_id, mutate)
        logger.info("Application %s accepted into %s as %s", application_id, system, role)
        return application

    def add_decision_note(
        self,
        application_id: str,
        author: str,
        text: str,
        viewer_role: ViewerRole,
    ) -> Application:
        if viewer_role not in STAFF_ROLES:
            raise Forbidden(f"Role {viewer_role.value} cannot add decision notes")
        if not text or not text.strip():
            raise InvalidTransition("Decision note is empty")

        def mutate(app: Application) -> None:
            app.decision_notes.append(DecisionNote(author=author, text=text.strip()))

        application, _ = self.repository.transact(application_id, mutate)
        return application
