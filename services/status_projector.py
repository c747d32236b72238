"""Derive what a given viewer is allowed to see of an application.

Masking is evaluated against the application's raw status only, never
against individual per-system offers: a candidate must not learn that one
system rejected them while another is still deciding.
"""

from typing import Any

from models.entities import (
    STAFF_ROLES,
    Application,
    ApplicationStatus,
    RecruitingStep,
    ViewerRole,
)
from services.application_repository import application_to_record
from services.stage_gate import is_at_or_past

_FORWARD_STATUSES = {
    ApplicationStatus.INTERVIEW,
    ApplicationStatus.TRIAL,
    ApplicationStatus.ACCEPTED,
    ApplicationStatus.REJECTED,
}

# Fields only staff may see
_INTERNAL_FIELDS = ("rejected_by_systems", "decision_notes")


def candidate_visible_status(status: ApplicationStatus, stage: RecruitingStep) -> ApplicationStatus:
    """Mask a raw status for the candidate according to the released stage."""
    if status not in _FORWARD_STATUSES:
        # in_progress / submitted are always shown as-is
        return status

    if is_at_or_past(stage, RecruitingStep.RELEASE_DECISIONS):
        return status

    if status == ApplicationStatus.REJECTED:
        return ApplicationStatus.SUBMITTED

    if is_at_or_past(stage, RecruitingStep.RELEASE_TRIAL):
        if status == ApplicationStatus.ACCEPTED:
            return ApplicationStatus.TRIAL
        return status

    if is_at_or_past(stage, RecruitingStep.RELEASE_INTERVIEWS):
        return ApplicationStatus.INTERVIEW

    return ApplicationStatus.SUBMITTED


def visible_status(
    application: Application,
    stage: RecruitingStep,
    viewer_role: ViewerRole,
) -> ApplicationStatus:
    """Staff see the raw status; candidates see the stage-masked one."""
    if viewer_role in STAFF_ROLES:
        return application.status
    return candidate_visible_status(application.status, stage)


def project_application(
    application: Application,
    stage: RecruitingStep,
    viewer_role: ViewerRole,
) -> dict[str, Any]:
    """
    Build the payload returned to a viewer.

    Staff get the full record. Candidates get the masked status, no
    internal-only fields, and only the offers their visible status already
    reveals.
    """
    payload = application_to_record(application)
    payload["id"] = application.id

    if viewer_role in STAFF_ROLES:
        payload.setdefault("rejected_by_systems", [])
        return payload

    status = candidate_visible_status(application.status, stage)
    payload["status"] = status.value

    for key in _INTERNAL_FIELDS:
        payload.pop(key, None)

    if status not in (ApplicationStatus.INTERVIEW, ApplicationStatus.TRIAL, ApplicationStatus.ACCEPTED):
        payload.pop("interview_offers", None)
        payload.pop("selected_interview_system", None)
    if status not in (ApplicationStatus.TRIAL, ApplicationStatus.ACCEPTED):
        payload.pop("trial_offers", None)
    if status != ApplicationStatus.ACCEPTED:
        payload.pop("acceptance", None)

    return payload


def should_show_interview_scheduler(application: Application, stage: RecruitingStep) -> bool:
    return candidate_visible_status(application.status, stage) == ApplicationStatus.INTERVIEW


def should_show_trial_section(application: Application, stage: RecruitingStep) -> bool:
    return candidate_visible_status(application.status, stage) == ApplicationStatus.TRIAL
