"""Process-wide recruiting step, read by every status-masking path."""

import logging
import time
from typing import Callable, Optional

from models.entities import (
    RecruitingStageConfig,
    RecruitingStep,
    ViewerRole,
    now_utc,
)
from models.errors import ConcurrentModification, Forbidden
from services.application_repository import to_datetime
from services.document_store import DocumentStore, Record

logger = logging.getLogger("recruiting")

CONFIG_COLLECTION = "config"
RECRUITING_DOC = "recruiting"
STAGE_HISTORY_COLLECTION = "recruitingStageHistory"

STAGE_ORDER: list[RecruitingStep] = list(RecruitingStep)


def stage_index(step: RecruitingStep) -> int:
    return STAGE_ORDER.index(step)


def is_at_or_past(current: RecruitingStep, target: RecruitingStep) -> bool:
    """Check if ``current`` is ``target`` or any later step."""
    return stage_index(current) >= stage_index(target)


class RecruitingStageGate:
    """
    Versioned configuration row holding the current recruiting step.

    Reads are cached for a few seconds so candidate-facing pages don't hit
    the store on every request; writes invalidate the local cache
    immediately. Monotonic ordering is NOT enforced here: stage changes are
    a trusted admin action, and backward moves are logged.
    """

    MAX_WRITE_ATTEMPTS = 3

    def __init__(
        self,
        store: DocumentStore,
        cache_ttl_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.cache_ttl_seconds = cache_ttl_seconds
        self._clock = clock
        self._cached: Optional[RecruitingStageConfig] = None
        self._cached_at: float = 0.0

    def get_config(self) -> RecruitingStageConfig:
        """Read the stage row from the store, bypassing the cache."""
        record = self.store.get(CONFIG_COLLECTION, RECRUITING_DOC)
        if record is None:
            # Default config if none exists
            return RecruitingStageConfig(
                current_step=RecruitingStep.OPEN,
                updated_at=now_utc(),
                updated_by="system",
                version=0,
            )
        return RecruitingStageConfig(
            current_step=RecruitingStep(record.get("current_step", RecruitingStep.OPEN.value)),
            updated_at=to_datetime(record.get("updated_at")) or now_utc(),
            updated_by=record.get("updated_by") or "system",
            version=int(record.get("version", 0)),
        )

    def get_current_stage(self) -> RecruitingStep:
        now = self._clock()
        if self._cached is None or now - self._cached_at >= self.cache_ttl_seconds:
            self._cached = self.get_config()
            self._cached_at = now
        return self._cached.current_step

    def invalidate_cache(self) -> None:
        self._cached = None

    def applications_open(self) -> bool:
        return self.get_current_stage() == RecruitingStep.OPEN

    def set_stage(
        self,
        step: RecruitingStep,
        updated_by: str,
        viewer_role: ViewerRole = ViewerRole.ADMIN,
    ) -> RecruitingStageConfig:
        """
        Move the recruiting process to ``step``.

        Args:
            step: New recruiting step
            updated_by: ID of the admin making the change
            viewer_role: Role of the caller; only admins may change the stage

        Returns:
            The committed configuration
        """
        if viewer_role != ViewerRole.ADMIN:
            raise Forbidden(f"Role {viewer_role.value} cannot change the recruiting stage")

        step = RecruitingStep(step)
        previous: dict[str, RecruitingStep] = {}

        def apply(record: Optional[Record]) -> Record:
            current = RecruitingStep((record or {}).get("current_step", RecruitingStep.OPEN.value))
            previous["step"] = current
            return {
                "current_step": step.value,
                "updated_at": now_utc(),
                "updated_by": updated_by,
                "version": int((record or {}).get("version", 0)) + 1,
            }

        for attempt in range(1, self.MAX_WRITE_ATTEMPTS + 1):
            try:
                committed = self.store.run_transaction(CONFIG_COLLECTION, RECRUITING_DOC, apply)
                break
            except ConcurrentModification:
                if attempt == self.MAX_WRITE_ATTEMPTS:
                    raise
        self.invalidate_cache()

        old_step = previous["step"]
        if stage_index(step) < stage_index(old_step):
            logger.warning(
                "Recruiting stage moved backwards from %s to %s by %s",
                old_step.value, step.value, updated_by,
            )
        else:
            logger.info("Recruiting stage set to %s by %s", step.value, updated_by)

        # Audit trail; one row per version
        self.store.set(STAGE_HISTORY_COLLECTION, str(committed["version"]), {
            "from_step": old_step.value,
            "to_step": step.value,
            "updated_at": committed["updated_at"],
            "updated_by": updated_by,
        })

        return RecruitingStageConfig(
            current_step=step,
            updated_at=committed["updated_at"],
            updated_by=updated_by,
            version=committed["version"],
        )

    def history(self) -> list[Record]:
        """Audit rows ordered by version."""
        rows = self.store.list(STAGE_HISTORY_COLLECTION)
        return [record for _, record in sorted(rows, key=lambda row: int(row[0]))]
