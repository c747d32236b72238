"""Per team/system interview slot configuration."""

import logging
import re
from typing import Optional

import pytz

from models.entities import SchedulingPolicy, Team
from models.errors import NotFound
from services.document_store import DocumentStore, Record

logger = logging.getLogger("recruiting")

INTERVIEW_CONFIGS_COLLECTION = "interviewConfigs"


def policy_id(team: Team, system: str) -> str:
    """Document ID for a team/system, e.g. ``combustion-low-voltage``."""
    slug = re.sub(r"\s+", "-", system.strip().lower())
    return f"{Team(team).value.lower()}-{slug}"


def validate_policy(policy: SchedulingPolicy) -> None:
    """Raise ValueError if the configuration can't produce bookable slots."""
    if policy.duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")
    if policy.buffer_minutes < 0:
        raise ValueError("buffer_minutes cannot be negative")
    if not all(0 <= day <= 6 for day in policy.available_days):
        raise ValueError("available_days must be weekday indices 0-6 (0=Sunday)")
    if not (0 <= policy.available_start_hour <= 23 and 0 <= policy.available_end_hour <= 23):
        raise ValueError("available hours must be between 0 and 23")
    if policy.available_start_hour >= policy.available_end_hour:
        raise ValueError("available_start_hour must be before available_end_hour")
    try:
        pytz.timezone(policy.timezone)
    except pytz.UnknownTimeZoneError as exc:
        raise ValueError(f"Unknown timezone: {policy.timezone}") from exc


def policy_from_record(doc_id: str, record: Record) -> SchedulingPolicy:
    return SchedulingPolicy(
        id=doc_id,
        team=Team(record["team"]),
        system=record["system"],
        calendar_id=record.get("calendar_id", ""),
        interviewer_emails=list(record.get("interviewer_emails") or []),
        duration_minutes=int(record.get("duration_minutes", 30)),
        buffer_minutes=int(record.get("buffer_minutes", 0)),
        available_days=[int(d) for d in record.get("available_days", [1, 2, 3, 4, 5])],
        available_start_hour=int(record.get("available_start_hour", 9)),
        available_end_hour=int(record.get("available_end_hour", 17)),
        timezone=record.get("timezone") or "America/Chicago",
    )


def policy_to_record(policy: SchedulingPolicy) -> Record:
    return {
        "team": policy.team.value,
        "system": policy.system,
        "calendar_id": policy.calendar_id,
        "interviewer_emails": list(policy.interviewer_emails),
        "duration_minutes": policy.duration_minutes,
        "buffer_minutes": policy.buffer_minutes,
        "available_days": sorted(set(policy.available_days)),
        "available_start_hour": policy.available_start_hour,
        "available_end_hour": policy.available_end_hour,
        "timezone": policy.timezone,
    }


class SchedulingPolicyStore:
    """Read-mostly store of scheduling policies, edited by system staff."""

    def __init__(self, store: DocumentStore, default_timezone: str = "America/Chicago"):
        self.store = store
        self.default_timezone = default_timezone

    def find_policy(self, team: Team, system: str) -> Optional[SchedulingPolicy]:
        doc_id = policy_id(team, system)
        record = self.store.get(INTERVIEW_CONFIGS_COLLECTION, doc_id)
        if record is not None:
            return policy_from_record(doc_id, record)

        # Fall back to matching on team/system for hand-created documents
        for other_id, other in self.store.list(INTERVIEW_CONFIGS_COLLECTION):
            if other.get("team") == Team(team).value and other.get("system") == system:
                return policy_from_record(other_id, other)
        return None

    def get_policy(self, team: Team, system: str) -> SchedulingPolicy:
        policy = self.find_policy(team, system)
        if policy is None:
            raise NotFound(
                f"Interview configuration not found for {Team(team).value}/{system}",
                user_message=f"Interviews for {system} aren't set up yet.",
            )
        return policy

    def save_policy(self, policy: SchedulingPolicy) -> SchedulingPolicy:
        if not policy.timezone:
            policy.timezone = self.default_timezone
        validate_policy(policy)
        doc_id = policy.id or policy_id(policy.team, policy.system)
        self.store.set(INTERVIEW_CONFIGS_COLLECTION, doc_id, policy_to_record(policy))
        logger.info("Saved interview configuration %s", doc_id)
        return policy_from_record(doc_id, policy_to_record(policy))

    def list_policies(self, team: Optional[Team] = None) -> list[SchedulingPolicy]:
        policies = [
            policy_from_record(doc_id, record)
            for doc_id, record in self.store.list(INTERVIEW_CONFIGS_COLLECTION)
        ]
        if team is not None:
            policies = [p for p in policies if p.team == Team(team)]
        return sorted(policies, key=lambda p: (p.team.value, p.system))
