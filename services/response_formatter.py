"""Structured response formatter for consistent console messages."""

from typing import List, Dict, Any, Optional

import pytz

from models.entities import BookingResult, RecruitingStageConfig, TimeSlot
from models.errors import SchedulerError, ReservationConflict

_STATUS_ICONS = {
    "in_progress": "📝",
    "submitted": "📨",
    "interview": "🗣️",
    "trial": "🛠️",
    "accepted": "🎉",
    "rejected": "📪",
    "pending": "⏳",
    "scheduling": "🔒",
    "scheduled": "📅",
    "completed": "✅",
    "cancelled": "🚫",
    "no_show": "❔",
}


class ResponseFormatter:
    """Formats console responses in a consistent, structured manner."""

    @staticmethod
    def format_section(title: str, content: List[str], icon: str = "📋") -> str:
        """Format a section with title and content."""
        lines = [f"**{icon} {title}**", ""]
        lines.extend(content)
        return "\n".join(lines)

    @staticmethod
    def format_info_line(label: str, value: str, available: bool = True) -> str:
        """Format an info line with availability indicator."""
        icon = "✅" if available else "❌"
        return f"   {icon} **{label}:** {value}"

    @staticmethod
    def format_success(title: str, message: str, details: Optional[List[str]] = None) -> str:
        """Format a success message."""
        lines = [
            f"**✅ {title}**",
            "",
            message
        ]

        if details:
            lines.append("")
            lines.append("**Details:**")
            for detail in details:
                lines.append(f"• {detail}")

        return "\n".join(lines)

    @staticmethod
    def format_error(title: str, message: str, suggestions: Optional[List[str]] = None) -> str:
        """Format an error message."""
        lines = [
            f"**❌ {title}**",
            "",
            message
        ]

        if suggestions:
            lines.append("")
            lines.append("**Suggestions:**")
            for suggestion in suggestions:
                lines.append(f"• {suggestion}")

        return "\n".join(lines)

    @staticmethod
    def format_info(title: str, message: str, items: Optional[List[str]] = None) -> str:
        """Format an informational message."""
        lines = [
            f"**ℹ️ {title}**",
            "",
            message
        ]

        if items:
            lines.append("")
            for item in items:
                lines.append(f"• {item}")

        return "\n".join(lines)

    @staticmethod
    def format_booking_error(error: SchedulerError) -> str:
        """
        Turn a scheduler error into a user-facing message.

        Only ``user_message`` is shown; operator detail stays in the logs.
        """
        if isinstance(error, ReservationConflict):
            return ResponseFormatter.format_error(
                "Slot Not Booked",
                error.user_message,
                suggestions=["Refresh to see the current booking state"],
            )
        return ResponseFormatter.format_error("Something Went Wrong", error.user_message)

    @staticmethod
    def format_available_slots(
        slots: List[TimeSlot],
        timezone: str,
        limit: int = 10,
    ) -> tuple[str, List[Dict[str, Any]]]:
        """
        Format available interview slots with button information.

        Returns:
            tuple: (formatted_text, button_info_list)
            button_info_list contains dicts with 'label' and 'index' for each slot
        """
        if not slots:
            return (
                ResponseFormatter.format_error(
                    "No Available Times Found",
                    "There are no open interview slots right now.",
                    suggestions=[
                        "Check back later as interviewers free up time",
                        "Contact the team if no slots open up before the deadline",
                    ]
                ),
                []
            )

        tz = pytz.timezone(timezone)
        lines = [
            "**🎯 Available Interview Times**",
            "",
            f"Found **{len(slots)}** open slot(s). Times shown in {timezone}.",
            "",
        ]

        button_info = []
        current_day = None
        for i, slot in enumerate(slots[:limit]):
            local_start = slot.start.astimezone(tz)
            local_end = slot.end.astimezone(tz)

            day = local_start.strftime('%A, %B %d')
            if day != current_day:
                lines.append(f"**{day}**")
                current_day = day

            time_str = f"{local_start.strftime('%I:%M %p')} - {local_end.strftime('%I:%M %p')}"
            lines.append(f"   • {time_str}")
            button_info.append({
                "label": f"{local_start.strftime('%a %b %d')} {local_start.strftime('%I:%M %p')}",
                "index": i,
            })

        if len(slots) > limit:
            lines.append("")
            lines.append(f"*+ {len(slots) - limit} more slot(s) available.*")

        return "\n".join(lines), button_info

    @staticmethod
    def format_booking_confirmation(result: BookingResult, timezone: str) -> str:
        """Format a booked interview."""
        tz = pytz.timezone(timezone)
        local_start = result.scheduled_at.astimezone(tz)
        local_end = result.scheduled_end_at.astimezone(tz)
        return ResponseFormatter.format_success(
            "Interview Scheduled",
            f"Your **{result.system}** interview is booked.",
            details=[
                f"Date: {local_start.strftime('%A, %B %d, %Y')}",
                f"Time: {local_start.strftime('%I:%M %p')} - {local_end.strftime('%I:%M %p')} ({timezone})",
                "A calendar invitation has been sent to your email",
            ],
        )

    @staticmethod
    def format_application_summary(payload: Dict[str, Any]) -> str:
        """Format a projected application payload (staff or candidate view)."""
        status = payload.get("status", "in_progress")
        lines = [
            f"**{_STATUS_ICONS.get(status, '📋')} {payload.get('team', '')} Application**",
            "",
            f"• **Status:** {status.replace('_', ' ').title()}",
        ]

        if payload.get("preferred_systems"):
            lines.append(f"• **Preferred systems:** {', '.join(payload['preferred_systems'])}")
        if payload.get("selected_interview_system"):
            lines.append(f"• **Interviewing with:** {payload['selected_interview_system']}")

        offers = payload.get("interview_offers") or []
        if offers:
            lines.extend(["", "**Interviews:**"])
            for offer in offers:
                offer_status = offer.get("status", "pending")
                line = f"   {_STATUS_ICONS.get(offer_status, '•')} {offer['system']}: {offer_status}"
                if offer.get("scheduled_at") and offer_status in ("scheduling", "scheduled"):
                    line += f" ({offer['scheduled_at'].strftime('%b %d %H:%M UTC')})"
                lines.append(line)

        trials = payload.get("trial_offers") or []
        if trials:
            lines.extend(["", "**Trial workday:**"])
            for trial in trials:
                if trial.get("accepted") is None:
                    answer = "awaiting response"
                else:
                    answer = "accepted" if trial["accepted"] else "declined"
                lines.append(f"   • {trial['system']}: {answer}")

        if payload.get("rejected_by_systems"):
            lines.extend(["", f"• **Rejected by:** {', '.join(payload['rejected_by_systems'])}"])

        if payload.get("acceptance"):
            acceptance = payload["acceptance"]
            lines.extend(["", f"🎉 **Joined {acceptance['system']}** as {acceptance.get('role', '')}"])

        return "\n".join(lines)

    @staticmethod
    def format_stage(config: RecruitingStageConfig) -> str:
        """Format the current recruiting stage row."""
        return ResponseFormatter.format_section(
            "Recruiting Stage",
            [
                ResponseFormatter.format_info_line("Current step", config.current_step.value.replace("_", " ")),
                ResponseFormatter.format_info_line("Updated by", config.updated_by),
                ResponseFormatter.format_info_line(
                    "Updated at", config.updated_at.strftime("%Y-%m-%d %H:%M UTC")
                ),
                ResponseFormatter.format_info_line("Version", str(config.version)),
            ],
            icon="🚦",
        )
