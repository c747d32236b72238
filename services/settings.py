"""Environment-driven settings."""

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Runtime configuration; defaults suit a local in-memory run."""
    calendar_backend: str = "memory"
    google_calendar_access_token: Optional[str] = None
    google_calendar_base_url: str = "https://www.googleapis.com/calendar/v3"
    calendar_timeout_seconds: float = 10.0
    document_store_path: Optional[str] = None
    reservation_lock_timeout_minutes: int = 5
    stage_cache_ttl_seconds: float = 5.0
    max_transaction_retries: int = 5
    default_timezone: str = "America/Chicago"
    booking_window_days: int = 14
    require_interview_for_trial: bool = True
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def reservation_lock_timeout(self) -> timedelta:
        return timedelta(minutes=self.reservation_lock_timeout_minutes)


def load_settings(dotenv: bool = True) -> Settings:
    """
    Read settings from the environment.

    Args:
        dotenv: Load a ``.env`` file first (existing variables win)

    Returns:
        Settings instance
    """
    if dotenv:
        load_dotenv()

    return Settings(
        calendar_backend=os.getenv("CALENDAR_BACKEND", "memory").strip().lower(),
        google_calendar_access_token=os.getenv("GOOGLE_CALENDAR_ACCESS_TOKEN") or None,
        google_calendar_base_url=os.getenv(
            "GOOGLE_CALENDAR_BASE_URL", "https://www.googleapis.com/calendar/v3"
        ),
        calendar_timeout_seconds=float(os.getenv("CALENDAR_TIMEOUT_SECONDS", "10")),
        document_store_path=os.getenv("DOCUMENT_STORE_PATH") or None,
        reservation_lock_timeout_minutes=int(os.getenv("RESERVATION_LOCK_TIMEOUT_MINUTES", "5")),
        stage_cache_ttl_seconds=float(os.getenv("STAGE_CACHE_TTL_SECONDS", "5")),
        max_transaction_retries=int(os.getenv("MAX_TRANSACTION_RETRIES", "5")),
        default_timezone=os.getenv("DEFAULT_TIMEZONE", "America/Chicago"),
        booking_window_days=int(os.getenv("BOOKING_WINDOW_DAYS", "14")),
        require_interview_for_trial=_env_bool("REQUIRE_INTERVIEW_FOR_TRIAL", True),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=os.getenv("LOG_FILE") or None,
    )
