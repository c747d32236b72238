"""Recruiting Console - staff pipeline actions and candidate interview booking."""

from datetime import datetime
from typing import Optional, Any, List

import pytz
import streamlit as st

from models.entities import InterviewStatus, RecruitingStep, Team, ViewerRole
from models.errors import SchedulerError
from services.bootstrap import build_services, seed_demo_data
from services.logging_setup import setup_logging
from services.response_formatter import ResponseFormatter
from services.settings import load_settings
from services.status_projector import (
    project_application,
    should_show_interview_scheduler,
    should_show_trial_section,
)

# ============================================================================
# CONFIGURATION
# ============================================================================

# Load environment variables from .env file
settings = load_settings()
setup_logging(log_file=settings.log_file, level=settings.log_level)

st.set_page_config(
    page_title="Recruiting Console",
    page_icon="🗓️",
    layout="wide"
)

# ============================================================================
# SERVICE INITIALIZATION
# ============================================================================

@st.cache_resource
def get_services(_cache_version="v1"):
    """Initialize and cache services."""
    try:
        services = build_services(settings)
    except ValueError as e:
        st.error(f"Failed to initialize calendar client: {e}")
        return None
    seed_demo_data(services)
    return services


services = get_services()
if services is None:
    st.stop()

# Stuck reservations are reclaimed on every rerun. Without DOCUMENT_STORE_PATH
# the store is private to this process and sweep_reservations.py can't see it.
services.coordinator.reclaim_stuck_reservations()

# ============================================================================
# SESSION STATE INITIALIZATION
# ============================================================================

if "messages" not in st.session_state:
    st.session_state.messages = []
    st.session_state.selected_application_id = None
    st.session_state.available_slots = []

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def post(content: str) -> None:
    """Append a message to the activity feed."""
    st.session_state.messages.append({"role": "assistant", "content": content})


def run_action(title: str, action, *args, **kwargs) -> Optional[Any]:
    """Run a service call, posting a success or user-facing error message."""
    try:
        result = action(*args, **kwargs)
    except SchedulerError as e:
        post(ResponseFormatter.format_booking_error(e))
        return None
    except ValueError as e:
        post(ResponseFormatter.format_error(title, str(e)))
        return None
    post(ResponseFormatter.format_success(title, "Done."))
    return result


def team_systems(team: Team) -> List[str]:
    return [p.system for p in services.policy_store.list_policies(team)]


def policy_timezone(team: Team, system: str) -> str:
    policy = services.policy_store.find_policy(team, system)
    return policy.timezone if policy else settings.default_timezone


# ============================================================================
# STAFF HANDLERS
# ============================================================================

def handle_set_stage(step: RecruitingStep, admin_id: str, role: ViewerRole) -> None:
    config = run_action("Stage Updated", services.stage_gate.set_stage, step, admin_id, role)
    if config is not None:
        post(ResponseFormatter.format_stage(config))


def handle_create_application(candidate_id: str, team: Team, preferred: List[str]) -> None:
    application = run_action(
        "Application Started", services.ledger.create_application, candidate_id, team, preferred
    )
    if application is not None:
        st.session_state.selected_application_id = application.id


def handle_book_slot(
    application_id: str,
    system: str,
    slot_index: int,
    email: str,
    name: str,
    team: Team,
) -> None:
    slots = st.session_state.available_slots
    if slot_index >= len(slots):
        post(ResponseFormatter.format_error("No Slot Selected", "Load available times first."))
        return
    try:
        result = services.coordinator.book_slot(
            application_id, system, slots[slot_index].start, email, attendee_name=name
        )
    except SchedulerError as e:
        post(ResponseFormatter.format_booking_error(e))
    else:
        post(ResponseFormatter.format_booking_confirmation(result, policy_timezone(team, system)))
    # Booking state changed either way; availability must be re-fetched
    st.session_state.available_slots = []


# ============================================================================
# MAIN INTERFACE
# ============================================================================

with st.sidebar:
    st.header("👤 Viewer")
    viewer_role = ViewerRole(st.selectbox(
        "Role",
        [r.value for r in ViewerRole],
        index=0,
        key="viewer_role",
    ))
    viewer_id = st.text_input("Your ID", value="admin-1" if viewer_role != ViewerRole.APPLICANT else "cand-1")

    st.markdown("---")
    st.markdown(ResponseFormatter.format_stage(services.stage_gate.get_config()))

    applications = services.repository.list_applications()
    if viewer_role == ViewerRole.APPLICANT:
        applications = [a for a in applications if a.candidate_id == viewer_id]

    st.markdown("---")
    st.header("📂 Applications")
    if applications:
        ids = [a.id for a in applications]
        current = st.session_state.selected_application_id
        selected = st.radio(
            "Application",
            ids,
            index=ids.index(current) if current in ids else 0,
            key="application_picker",
            label_visibility="collapsed",
        )
        st.session_state.selected_application_id = selected
    else:
        st.caption("No applications yet.")
        st.session_state.selected_application_id = None

    if st.button("🧹 Run reservation sweep"):
        report = services.coordinator.reclaim_stuck_reservations()
        post(ResponseFormatter.format_info(
            "Sweep Finished",
            f"{len(report.reclaimed)} reclaimed, {len(report.failed)} failed, "
            f"{report.locks_released} slot lock(s) released.",
        ))

st.title("🗓️ Recruiting Console")
st.caption("Move applications through the pipeline and book interview slots.")

stage = services.stage_gate.get_current_stage()
application = (
    services.repository.find(st.session_state.selected_application_id)
    if st.session_state.selected_application_id else None
)

# ----------------------------------------------------------------------------
# Start an application (everyone)
# ----------------------------------------------------------------------------

with st.expander("📝 Start an application", expanded=application is None):
    col1, col2 = st.columns(2)
    with col1:
        new_candidate = st.text_input("Candidate ID", value=viewer_id, key="new_candidate")
        new_team = Team(st.selectbox("Team", [t.value for t in Team], key="new_team"))
    with col2:
        preferred = st.multiselect("Preferred systems (max 3)", team_systems(new_team), key="new_preferred")
    if st.button("Start application"):
        handle_create_application(new_candidate, new_team, preferred)
        st.rerun()

if application is not None:
    payload = project_application(application, stage, viewer_role)
    st.markdown(ResponseFormatter.format_application_summary(payload))

    if application.status.value == "in_progress" and st.button("📨 Submit application"):
        run_action("Application Submitted", services.ledger.submit_application, application.id)
        st.rerun()

    # ------------------------------------------------------------------------
    # Staff view
    # ------------------------------------------------------------------------
    if viewer_role != ViewerRole.APPLICANT:
        staff_tab, stage_tab = st.tabs(["Pipeline actions", "Recruiting stage"])

        with staff_tab:
            systems = team_systems(application.team)
            col1, col2 = st.columns(2)

            with col1:
                st.subheader("Interviews")
                offer_systems = st.multiselect("Systems", systems, key="offer_systems")
                if st.button("Extend interview offers"):
                    run_action(
                        "Interview Offers Extended",
                        services.ledger.extend_interview_offers, application.id, offer_systems,
                    )
                    st.rerun()
                if st.button("Reject from systems"):
                    result = run_action(
                        "Rejection Recorded",
                        services.ledger.reject_from_systems, application.id, offer_systems,
                    )
                    if result is not None and result[1]:
                        post(ResponseFormatter.format_info(
                            "Fully Rejected", "No system is still considering this candidate."
                        ))
                    st.rerun()

                scheduled = [
                    o.system for o in application.interview_offers
                    if o.status == InterviewStatus.SCHEDULED
                ]
                if scheduled:
                    outcome_system = st.selectbox("Scheduled interview", scheduled, key="outcome_system")
                    outcome = st.radio(
                        "Outcome", ["completed", "no_show"], horizontal=True, key="outcome_value"
                    )
                    if st.button("Record outcome"):
                        run_action(
                            "Outcome Recorded",
                            services.coordinator.mark_outcome,
                            application.id, outcome_system, InterviewStatus(outcome), viewer_role,
                        )
                        st.rerun()

            with col2:
                st.subheader("Trial & decision")
                trial_system = st.selectbox("System", systems, key="trial_system")
                if st.button("Extend trial offer"):
                    run_action(
                        "Trial Offer Extended",
                        services.ledger.extend_trial_offer, application.id, trial_system,
                    )
                    st.rerun()
                accept_role = st.text_input("Role", value="Member", key="accept_role")
                if st.button("Accept into system"):
                    run_action(
                        "Candidate Accepted",
                        services.ledger.accept_application, application.id, trial_system, accept_role,
                    )
                    st.rerun()

            note = st.text_area("Decision note", key="decision_note")
            if st.button("Add note"):
                run_action(
                    "Note Added",
                    services.ledger.add_decision_note, application.id, viewer_id, note, viewer_role,
                )
                st.rerun()

        with stage_tab:
            new_step = RecruitingStep(st.selectbox(
                "Move to step",
                [s.value for s in RecruitingStep],
                index=list(RecruitingStep).index(stage),
                key="new_step",
            ))
            if st.button("Update stage"):
                handle_set_stage(new_step, viewer_id, viewer_role)
                st.rerun()
            for row in reversed(services.stage_gate.history()):
                st.caption(f"{row['from_step']} → {row['to_step']} by {row['updated_by']}")

    # ------------------------------------------------------------------------
    # Candidate view
    # ------------------------------------------------------------------------
    else:
        if should_show_interview_scheduler(application, stage):
            st.subheader("📅 Book your interview")
            offered = [o["system"] for o in payload.get("interview_offers", [])]
            if application.team != Team.SOLAR and len(offered) > 1:
                choice = st.selectbox("Interview with", offered, key="choose_system")
                if application.selected_interview_system != choice and st.button("Choose system"):
                    run_action(
                        "System Chosen",
                        services.ledger.select_interview_system, application.id, choice,
                    )
                    st.rerun()
                offered = [application.selected_interview_system] if application.selected_interview_system else []

            if offered:
                book_system = st.selectbox("System", offered, key="book_system")
                tz = policy_timezone(application.team, book_system)

                if st.button("Find available times"):
                    with st.spinner("Finding available times..."):
                        st.session_state.available_slots = services.coordinator.list_available_slots(
                            application.id, book_system
                        )

                text, buttons = ResponseFormatter.format_available_slots(
                    st.session_state.available_slots, tz
                )
                st.markdown(text)
                if buttons:
                    email = st.text_input("Email", key="attendee_email")
                    name = st.text_input("Name", key="attendee_name")
                    cols = st.columns(min(len(buttons), 5))
                    for i, button in enumerate(buttons):
                        with cols[i % len(cols)]:
                            if st.button(button["label"], key=f"slot_{button['index']}"):
                                handle_book_slot(
                                    application.id, book_system, button["index"],
                                    email, name, application.team,
                                )
                                st.rerun()

                offer = application.find_interview_offer(book_system)
                if offer is not None and offer.status == InterviewStatus.SCHEDULED:
                    reason = st.text_input("Reason for cancelling", key="cancel_reason")
                    if st.button("Cancel interview"):
                        run_action(
                            "Interview Cancelled",
                            services.coordinator.cancel, application.id, book_system, reason,
                        )
                        st.rerun()

        if should_show_trial_section(application, stage) and application.live_trial_offer():
            st.subheader("🛠️ Trial workday")
            decline_reason = st.text_input("If declining, tell us why", key="trial_reason")
            col1, col2 = st.columns(2)
            with col1:
                if st.button("Accept trial"):
                    run_action(
                        "Trial Accepted",
                        services.ledger.record_trial_response, application.id, True,
                    )
                    st.rerun()
            with col2:
                if st.button("Decline trial"):
                    run_action(
                        "Trial Declined",
                        services.ledger.record_trial_response, application.id, False, decline_reason,
                    )
                    st.rerun()

# Activity feed
st.markdown("---")
for message in reversed(st.session_state.messages[-10:]):
    with st.chat_message(message["role"]):
        st.markdown(message["content"])

st.caption(f"Last refreshed {datetime.now(pytz.timezone(settings.default_timezone)).strftime('%I:%M:%S %p %Z')}")
