"""Domain models for the recruiting pipeline and interview scheduler."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

import pytz


def now_utc() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(pytz.UTC)


class Team(str, Enum):
    ELECTRIC = "Electric"
    SOLAR = "Solar"
    COMBUSTION = "Combustion"


class ApplicationStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    INTERVIEW = "interview"
    TRIAL = "trial"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class InterviewStatus(str, Enum):
    PENDING = "pending"          # Offer extended, nothing booked
    SCHEDULING = "scheduling"    # Booking in flight (acts as the reservation lock)
    SCHEDULED = "scheduled"      # Calendar event created
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class RecruitingStep(str, Enum):
    OPEN = "open"
    REVIEWING = "reviewing"
    RELEASE_INTERVIEWS = "release_interviews"
    INTERVIEWING = "interviewing"
    RELEASE_TRIAL = "release_trial"
    TRIAL_WORKDAY = "trial_workday"
    RELEASE_DECISIONS = "release_decisions"


class ViewerRole(str, Enum):
    ADMIN = "admin"
    TEAM_CAPTAIN = "team_captain"
    SYSTEM_LEAD = "system_lead"
    REVIEWER = "reviewer"
    APPLICANT = "applicant"


STAFF_ROLES = frozenset({
    ViewerRole.ADMIN,
    ViewerRole.TEAM_CAPTAIN,
    ViewerRole.SYSTEM_LEAD,
    ViewerRole.REVIEWER,
})


@dataclass
class InterviewOffer:
    """One system's interview invitation and its booking lifecycle."""
    system: str
    status: InterviewStatus = InterviewStatus.PENDING
    created_at: datetime = field(default_factory=now_utc)

    # Populated once the offer leaves PENDING
    scheduled_at: Optional[datetime] = None
    scheduled_end_at: Optional[datetime] = None
    external_event_id: Optional[str] = None
    scheduled_on_date: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status != InterviewStatus.CANCELLED

    def clear_schedule(self) -> None:
        """Drop the tentative booking fields written by a reservation."""
        self.scheduled_at = None
        self.scheduled_end_at = None
        self.scheduled_on_date = None


@dataclass
class TrialOffer:
    """Trial workday invitation scoped to a single system."""
    system: str
    created_at: datetime = field(default_factory=now_utc)
    accepted: Optional[bool] = None
    responded_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.accepted is not None


@dataclass
class DecisionNote:
    """Staff-only note attached to an application."""
    author: str
    text: str
    created_at: datetime = field(default_factory=now_utc)


@dataclass
class Acceptance:
    """Final offer details recorded when a candidate is accepted."""
    system: str
    role: str
    details: dict[str, Any] = field(default_factory=dict)
    accepted_at: datetime = field(default_factory=now_utc)


@dataclass
class Application:
    """A candidate's application to one team."""
    id: str
    candidate_id: str
    team: Team
    status: ApplicationStatus = ApplicationStatus.IN_PROGRESS
    preferred_systems: list[str] = field(default_factory=list)
    interview_offers: list[InterviewOffer] = field(default_factory=list)
    trial_offers: list[TrialOffer] = field(default_factory=list)
    rejected_by_systems: list[str] = field(default_factory=list)
    selected_interview_system: Optional[str] = None
    decision_notes: list[DecisionNote] = field(default_factory=list)
    acceptance: Optional[Acceptance] = None
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)
    submitted_at: Optional[datetime] = None

    def find_interview_offer(self, system: str) -> Optional[InterviewOffer]:
        for offer in self.interview_offers:
            if offer.system == system:
                return offer
        return None

    def live_trial_offer(self) -> Optional[TrialOffer]:
        """The most recent trial offer that has not been answered yet."""
        for offer in reversed(self.trial_offers):
            if not offer.is_resolved:
                return offer
        return None

    def active_interview_systems(self) -> list[str]:
        return [o.system for o in self.interview_offers if o.is_active]


@dataclass
class SchedulingPolicy:
    """Interview slot configuration for one team/system."""
    team: Team
    system: str
    calendar_id: str
    interviewer_emails: list[str] = field(default_factory=list)
    duration_minutes: int = 30
    buffer_minutes: int = 0
    available_days: list[int] = field(default_factory=lambda: [1, 2, 3, 4, 5])  # 0=Sunday
    available_start_hour: int = 9
    available_end_hour: int = 17
    timezone: str = "America/Chicago"
    id: Optional[str] = None


@dataclass
class RecruitingStageConfig:
    """The process-wide recruiting step plus its audit fields."""
    current_step: RecruitingStep
    updated_at: datetime
    updated_by: str
    version: int = 0


@dataclass
class CalendarEvent:
    """Represents a calendar event (busy slot). Unknown times stay None."""
    id: str
    calendar_id: str
    start: Optional[datetime]
    end: Optional[datetime]
    title: str = ""
    attendees: list[str] = field(default_factory=list)
    transparent: bool = False


@dataclass
class TimeSlot:
    """Represents a time slot (can be free or busy)."""
    start: datetime
    end: datetime
    source: Optional[str] = None  # e.g., "availability_window"


class SlotLockStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"


@dataclass
class SlotLock:
    """Claim on a start time of a shared calendar."""
    id: str
    calendar_id: str
    slot_start: datetime
    slot_end: datetime
    application_id: str
    system: str
    status: SlotLockStatus = SlotLockStatus.PENDING
    created_at: datetime = field(default_factory=now_utc)
    event_id: Optional[str] = None


@dataclass
class BookingResult:
    """Outcome of a successful booking."""
    application: Application
    system: str
    event_id: str
    scheduled_at: datetime
    scheduled_end_at: datetime


@dataclass
class SweepReport:
    """What a stuck-reservation sweep did."""
    reclaimed: list[tuple[str, str]] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)
    locks_released: int = 0
