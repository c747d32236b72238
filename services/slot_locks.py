"""Claims on shared calendar start times.

Two candidates booking different systems can share one calendar; the
per-offer ``scheduling`` status can't see that, so each booking also
claims the (calendar, start) pair here before creating an event.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Callable, Optional

from models.entities import SlotLock, SlotLockStatus, now_utc
from models.errors import ConcurrentModification, SlotUnavailable
from services.application_repository import to_datetime
from services.document_store import DELETE, DocumentStore, Record

logger = logging.getLogger("recruiting")

SLOT_LOCKS_COLLECTION = "calendarSlotLocks"


def lock_id(calendar_id: str, slot_start: datetime) -> str:
    """Document ID, e.g. ``team_group.calendar.google.com_2025-01-07T15:00:00+00:00``."""
    safe_calendar = re.sub(r"[/\\@]", "_", calendar_id)
    return f"{safe_calendar}_{to_datetime(slot_start).isoformat()}"


def _lock_from_record(doc_id: str, record: Record) -> SlotLock:
    return SlotLock(
        id=doc_id,
        calendar_id=record["calendar_id"],
        slot_start=to_datetime(record["slot_start"]),
        slot_end=to_datetime(record["slot_end"]),
        application_id=record["application_id"],
        system=record["system"],
        status=SlotLockStatus(record.get("status", SlotLockStatus.PENDING.value)),
        created_at=to_datetime(record.get("created_at")) or now_utc(),
        event_id=record.get("event_id"),
    )


def _lock_to_record(lock: SlotLock) -> Record:
    record = {
        "calendar_id": lock.calendar_id,
        "slot_start": lock.slot_start,
        "slot_end": lock.slot_end,
        "application_id": lock.application_id,
        "system": lock.system,
        "status": lock.status.value,
        "created_at": lock.created_at,
    }
    if lock.event_id:
        record["event_id"] = lock.event_id
    return record


class SlotLockRegistry:
    """
    Per-calendar slot claims stored one document per start time.

    Args:
        store: Document store holding the lock documents
        stale_after: Age after which an unconfirmed claim may be taken over
        clock: Source of the current time
    """

    MAX_ATTEMPTS = 3

    def __init__(
        self,
        store: DocumentStore,
        stale_after: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = now_utc,
    ):
        self.store = store
        self.stale_after = stale_after
        self._clock = clock

    def _is_stale(self, lock: SlotLock, now: datetime) -> bool:
        return lock.status == SlotLockStatus.PENDING and now - lock.created_at > self.stale_after

    def acquire(
        self,
        calendar_id: str,
        slot_start: datetime,
        slot_end: datetime,
        application_id: str,
        system: str,
    ) -> SlotLock:
        """
        Claim a calendar slot for one application/system.

        Re-acquiring a claim this application/system already holds is
        allowed; a stale pending claim of someone else is taken over.

        Raises:
            SlotUnavailable: another booking holds the slot
        """
        doc_id = lock_id(calendar_id, slot_start)
        now = self._clock()

        def apply(record: Optional[Record]) -> Record:
            if record is not None:
                existing = _lock_from_record(doc_id, record)
                owned = existing.application_id == application_id and existing.system == system
                if not owned and not self._is_stale(existing, now):
                    raise SlotUnavailable(
                        f"Slot {doc_id} is held by {existing.application_id}/{existing.system}"
                    )
                if not owned:
                    logger.warning(
                        "Taking over stale slot lock %s from %s/%s",
                        doc_id, existing.application_id, existing.system,
                    )
            return _lock_to_record(SlotLock(
                id=doc_id,
                calendar_id=calendar_id,
                slot_start=slot_start,
                slot_end=slot_end,
                application_id=application_id,
                system=system,
                created_at=now,
            ))

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            try:
                committed = self.store.run_transaction(SLOT_LOCKS_COLLECTION, doc_id, apply)
                return _lock_from_record(doc_id, committed)
            except ConcurrentModification:
                if attempt == self.MAX_ATTEMPTS:
                    raise

    def confirm(self, calendar_id: str, slot_start: datetime, event_id: str) -> None:
        doc_id = lock_id(calendar_id, slot_start)

        def apply(record: Optional[Record]):
            if record is None:
                return None
            record["status"] = SlotLockStatus.CONFIRMED.value
            record["event_id"] = event_id
            return record

        self.store.run_transaction(SLOT_LOCKS_COLLECTION, doc_id, apply)

    def release(
        self,
        calendar_id: str,
        slot_start: datetime,
        application_id: str,
        system: str,
    ) -> bool:
        """Delete the claim if this application/system owns it."""
        doc_id = lock_id(calendar_id, slot_start)
        released = {"done": False}

        def apply(record: Optional[Record]):
            if record is None:
                return None
            if record.get("application_id") != application_id or record.get("system") != system:
                return None
            released["done"] = True
            return DELETE

        self.store.run_transaction(SLOT_LOCKS_COLLECTION, doc_id, apply)
        return released["done"]

    def locked_starts(self, calendar_id: str) -> set[datetime]:
        """Start times currently claimed on a calendar (stale claims excluded)."""
        now = self._clock()
        starts = set()
        for doc_id, record in self.store.list(SLOT_LOCKS_COLLECTION):
            lock = _lock_from_record(doc_id, record)
            if lock.calendar_id == calendar_id and not self._is_stale(lock, now):
                starts.add(lock.slot_start)
        return starts

    def release_stale(self, now: Optional[datetime] = None) -> int:
        """Delete pending claims older than ``stale_after``. Returns how many went."""
        now = now or self._clock()
        released = 0
        for doc_id, record in self.store.list(SLOT_LOCKS_COLLECTION):
            if not self._is_stale(_lock_from_record(doc_id, record), now):
                continue

            deleted = {"done": False}

            def apply(current: Optional[Record]):
                # Re-check: it may have been confirmed or re-acquired meanwhile
                if current is None or not self._is_stale(_lock_from_record(doc_id, current), now):
                    return None
                deleted["done"] = True
                return DELETE

            try:
                self.store.run_transaction(SLOT_LOCKS_COLLECTION, doc_id, apply)
            except ConcurrentModification:
                # Someone touched it since listing, so it is no longer abandoned
                continue
            if deleted["done"]:
                released += 1
                logger.info("Released stale slot lock %s", doc_id)
        return released
