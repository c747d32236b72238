"""Error taxonomy shared by the ledger, stage gate and booking flow.

Every error carries a ``user_message`` that is safe to show to the person
who triggered it; ``str(error)`` keeps the operator-facing detail.
"""

from typing import Optional


class SchedulerError(Exception):
    """Base class for all business and infrastructure errors."""

    user_message = "Something went wrong. Please try again."

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        if user_message is not None:
            self.user_message = user_message


class NotFound(SchedulerError):
    user_message = "We couldn't find that application."


class Forbidden(SchedulerError):
    user_message = "You don't have permission to do that."


class InvalidTransition(SchedulerError):
    user_message = "That action isn't available right now."


class AlreadyResponded(InvalidTransition):
    user_message = "You have already responded to this trial offer."


class ReservationConflict(SchedulerError):
    """Phase-1 booking conflict. Retryable by the user, not by the system."""


class AlreadyScheduled(ReservationConflict):
    user_message = "This interview is already booked. Cancel it first to pick a new time."


class ReservationInProgress(ReservationConflict):
    user_message = "This slot is being booked, try another time."


class SlotUnavailable(SchedulerError):
    user_message = "That time is no longer available. Please pick another slot."


class ExternalServiceError(SchedulerError):
    user_message = "The calendar service is unavailable. Please try again shortly."


class ConcurrentModification(SchedulerError):
    user_message = "The application changed while we were saving. Please refresh and try again."


class RollbackFailed(SchedulerError):
    """A reservation could not be rolled back; state may disagree with the calendar."""

    user_message = "We hit a problem booking your interview. Our team has been notified."
