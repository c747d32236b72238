"""Application records: persistence-boundary mapping and atomic updates."""

import logging
from datetime import datetime
from typing import Any, Callable, Optional, TypeVar

import pytz

from models.entities import (
    Acceptance,
    Application,
    ApplicationStatus,
    DecisionNote,
    InterviewOffer,
    InterviewStatus,
    Team,
    TrialOffer,
    now_utc,
)
from models.errors import ConcurrentModification, NotFound
from services.document_store import DocumentStore, Record

logger = logging.getLogger("recruiting")

T = TypeVar("T")

APPLICATIONS_COLLECTION = "applications"


def application_id_for(candidate_id: str, team: Team) -> str:
    """Deterministic document ID: one application per candidate per team."""
    return f"{candidate_id}-{team.value.lower()}"


def to_datetime(value: Any) -> Optional[datetime]:
    """Coerce stored timestamps (datetime, ISO string, epoch seconds) to aware UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=pytz.UTC) if value.tzinfo is None else value.astimezone(pytz.UTC)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, pytz.UTC)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return to_datetime(parsed)
    return None


def _as_list(value: Any) -> list:
    """Legacy records stored a lone offer as an object instead of a list."""
    if not value:
        return []
    if isinstance(value, dict):
        return [value]
    return list(value)


def _offer_from_record(data: dict[str, Any]) -> InterviewOffer:
    return InterviewOffer(
        system=data["system"],
        status=InterviewStatus(data.get("status", InterviewStatus.PENDING.value)),
        created_at=to_datetime(data.get("created_at")) or now_utc(),
        scheduled_at=to_datetime(data.get("scheduled_at")),
        scheduled_end_at=to_datetime(data.get("scheduled_end_at")),
        external_event_id=data.get("external_event_id") or data.get("event_id"),
        scheduled_on_date=to_datetime(data.get("scheduled_on_date")),
        cancelled_at=to_datetime(data.get("cancelled_at")),
        cancel_reason=data.get("cancel_reason"),
    )


def _trial_from_record(data: dict[str, Any]) -> TrialOffer:
    return TrialOffer(
        system=data["system"],
        created_at=to_datetime(data.get("created_at")) or now_utc(),
        accepted=data.get("accepted"),
        responded_at=to_datetime(data.get("responded_at")),
        rejection_reason=data.get("rejection_reason"),
    )


def _strip_none(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


def application_from_record(doc_id: str, record: Record) -> Application:
    """Normalize a stored record into an Application."""
    preferred = record.get("preferred_systems")
    if not preferred and record.get("preferred_system"):
        preferred = [record["preferred_system"]]

    acceptance = None
    if record.get("acceptance"):
        data = record["acceptance"]
        acceptance = Acceptance(
            system=data["system"],
            role=data.get("role", ""),
            details=dict(data.get("details") or {}),
            accepted_at=to_datetime(data.get("accepted_at")) or now_utc(),
        )

    return Application(
        id=doc_id,
        candidate_id=record["candidate_id"],
        team=Team(record["team"]),
        status=ApplicationStatus(record.get("status", ApplicationStatus.IN_PROGRESS.value)),
        preferred_systems=list(preferred or []),
        interview_offers=[_offer_from_record(o) for o in _as_list(record.get("interview_offers"))],
        trial_offers=[_trial_from_record(o) for o in _as_list(record.get("trial_offers"))],
        rejected_by_systems=list(dict.fromkeys(record.get("rejected_by_systems") or [])),
        selected_interview_system=record.get("selected_interview_system"),
        decision_notes=[
            DecisionNote(
                author=n.get("author", ""),
                text=n.get("text", ""),
                created_at=to_datetime(n.get("created_at")) or now_utc(),
            )
            for n in _as_list(record.get("decision_notes"))
        ],
        acceptance=acceptance,
        created_at=to_datetime(record.get("created_at")) or now_utc(),
        updated_at=to_datetime(record.get("updated_at")) or now_utc(),
        submitted_at=to_datetime(record.get("submitted_at")),
    )


def application_to_record(application: Application) -> Record:
    """Serialize an Application; absent optional fields are omitted."""
    record = {
        "candidate_id": application.candidate_id,
        "team": application.team.value,
        "status": application.status.value,
        "preferred_systems": list(application.preferred_systems),
        "interview_offers": [
            _strip_none({
                "system": o.system,
                "status": o.status.value,
                "created_at": o.created_at,
                "scheduled_at": o.scheduled_at,
                "scheduled_end_at": o.scheduled_end_at,
                "external_event_id": o.external_event_id,
                "scheduled_on_date": o.scheduled_on_date,
                "cancelled_at": o.cancelled_at,
                "cancel_reason": o.cancel_reason,
            })
            for o in application.interview_offers
        ],
        "trial_offers": [
            _strip_none({
                "system": t.system,
                "created_at": t.created_at,
                "accepted": t.accepted,
                "responded_at": t.responded_at,
                "rejection_reason": t.rejection_reason,
            })
            for t in application.trial_offers
        ],
        "rejected_by_systems": list(dict.fromkeys(application.rejected_by_systems)),
        "selected_interview_system": application.selected_interview_system,
        "decision_notes": [
            {"author": n.author, "text": n.text, "created_at": n.created_at}
            for n in application.decision_notes
        ],
        "acceptance": None,
        "created_at": application.created_at,
        "updated_at": application.updated_at,
        "submitted_at": application.submitted_at,
    }
    if application.acceptance is not None:
        record["acceptance"] = {
            "system": application.acceptance.system,
            "role": application.acceptance.role,
            "details": dict(application.acceptance.details),
            "accepted_at": application.acceptance.accepted_at,
        }
    return _strip_none(record)


class ApplicationRepository:
    """Reads and atomically updates application records."""

    def __init__(self, store: DocumentStore, max_retries: int = 5):
        self.store = store
        self.max_retries = max_retries

    def find(self, application_id: str) -> Optional[Application]:
        record = self.store.get(APPLICATIONS_COLLECTION, application_id)
        if record is None:
            return None
        return application_from_record(application_id, record)

    def get(self, application_id: str) -> Application:
        application = self.find(application_id)
        if application is None:
            raise NotFound(f"Application {application_id} not found")
        return application

    def list_applications(self) -> list[Application]:
        return [
            application_from_record(doc_id, record)
            for doc_id, record in self.store.list(APPLICATIONS_COLLECTION)
        ]

    def create(self, candidate_id: str, team: Team, preferred_systems: list[str]) -> Application:
        """Create an in-progress application, or return the existing one for this team."""
        application_id = application_id_for(candidate_id, team)

        def apply(record: Optional[Record]):
            if record is not None:
                return None
            application = Application(
                id=application_id,
                candidate_id=candidate_id,
                team=team,
                preferred_systems=list(preferred_systems),
            )
            return application_to_record(application)

        committed = self._with_retries(
            application_id,
            lambda: self.store.run_transaction(APPLICATIONS_COLLECTION, application_id, apply),
        )
        return application_from_record(application_id, committed)

    def transact(
        self,
        application_id: str,
        mutate: Callable[[Application], T],
    ) -> tuple[Application, T]:
        """
        Apply ``mutate`` to a fresh copy of the application and commit it atomically.

        The read is redone on every attempt, so ``mutate`` always sees
        committed state. Exceptions raised by ``mutate`` abort the write and
        propagate unchanged.

        Returns:
            (committed application, value returned by mutate)
        """
        outcome: dict[str, Any] = {}

        def apply(record: Optional[Record]) -> Record:
            if record is None:
                raise NotFound(f"Application {application_id} not found")
            application = application_from_record(application_id, record)
            outcome["result"] = mutate(application)
            application.updated_at = now_utc()
            return application_to_record(application)

        committed = self._with_retries(
            application_id,
            lambda: self.store.run_transaction(APPLICATIONS_COLLECTION, application_id, apply),
        )
        return application_from_record(application_id, committed), outcome.get("result")

    def _with_retries(self, application_id: str, attempt_fn: Callable[[], Any]) -> Any:
        for attempt in range(1, self.max_retries + 1):
            try:
                return attempt_fn()
            except ConcurrentModification:
                logger.debug(
                    "Conflict updating application %s (attempt %d/%d), retrying",
                    application_id, attempt, self.max_retries,
                )
        raise ConcurrentModification(
            f"Application {application_id} kept changing; gave up after {self.max_retries} attempts"
        )
