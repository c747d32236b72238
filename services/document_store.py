"""Document store with single-document optimistic transactions.

The store keeps one versioned record per (collection, id). A transaction
reads a snapshot, hands a private copy to a callback, and commits the
callback's result only if nobody else committed to that document in the
meantime. Otherwise it raises ``ConcurrentModification`` and the caller
retries with fresh data. There are no multi-document transactions.
"""

import copy
import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import closing
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

import pytz

from models.errors import ConcurrentModification

logger = logging.getLogger("recruiting")

Record = dict[str, Any]


class _Delete:
    def __repr__(self) -> str:
        return "DELETE"


# Returned from a transaction callback to delete the document.
DELETE = _Delete()


class DocumentStore(ABC):
    """Persistence contract consumed by the repositories."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Record]:
        """Return a copy of the document, or None."""

    @abstractmethod
    def list(self, collection: str) -> list[tuple[str, Record]]:
        """Return (id, record) copies for every document in a collection."""

    @abstractmethod
    def run_transaction(
        self,
        collection: str,
        doc_id: str,
        fn: Callable[[Optional[Record]], Any],
    ) -> Optional[Record]:
        """
        Atomically read-modify-write one document.

        Args:
            collection: Collection name
            doc_id: Document ID
            fn: Receives a copy of the current record (None if missing) and
                returns the new record, None to leave the document untouched,
                or DELETE to remove it. Exceptions abort the transaction.

        Returns:
            The committed record (the unchanged snapshot when fn returned
            None, None after a delete).

        Raises:
            ConcurrentModification: another writer committed first
        """

    def set(self, collection: str, doc_id: str, record: Record) -> Record:
        """Blind write, used for seeding and configuration documents."""
        return self.run_transaction(collection, doc_id, lambda _current: record)


class InMemoryDocumentStore(DocumentStore):
    """Process-local store; versions detect conflicting commits."""

    def __init__(self):
        self._collections: dict[str, dict[str, tuple[int, Record]]] = {}
        self._commit_lock = threading.Lock()

    def _read(self, collection: str, doc_id: str) -> tuple[int, Optional[Record]]:
        with self._commit_lock:
            entry = self._collections.get(collection, {}).get(doc_id)
            if entry is None:
                return 0, None
            version, record = entry
            if record is None:
                return version, None
            return version, copy.deepcopy(record)

    def get(self, collection: str, doc_id: str) -> Optional[Record]:
        return self._read(collection, doc_id)[1]

    def list(self, collection: str) -> list[tuple[str, Record]]:
        with self._commit_lock:
            docs = self._collections.get(collection, {})
            return [
                (doc_id, copy.deepcopy(record))
                for doc_id, (_, record) in docs.items()
                if record is not None
            ]

    def version(self, collection: str, doc_id: str) -> int:
        return self._read(collection, doc_id)[0]

    def run_transaction(
        self,
        collection: str,
        doc_id: str,
        fn: Callable[[Optional[Record]], Any],
    ) -> Optional[Record]:
        read_version, snapshot = self._read(collection, doc_id)

        result = fn(copy.deepcopy(snapshot) if snapshot is not None else None)
        if result is None:
            return snapshot

        with self._commit_lock:
            docs = self._collections.setdefault(collection, {})
            current = docs.get(doc_id)
            current_version = current[0] if current is not None else 0
            if current_version != read_version:
                logger.debug(
                    "Write conflict on %s/%s (read v%d, now v%d)",
                    collection, doc_id, read_version, current_version,
                )
                raise ConcurrentModification(
                    f"{collection}/{doc_id} was modified by another writer"
                )

            if result is DELETE:
                # Versioned tombstone so a concurrent re-create still conflicts
                docs[doc_id] = (current_version + 1, None)
                return None

            docs[doc_id] = (current_version + 1, copy.deepcopy(result))
            return copy.deepcopy(result)


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"$dt": value.isoformat()}
    if isinstance(value, dict):
        return {key: _encode(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(item) for item in value]
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {"$dt"}:
            parsed = datetime.fromisoformat(value["$dt"])
            return parsed if parsed.tzinfo is None else parsed.astimezone(pytz.UTC)
        return {key: _decode(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_decode(item) for item in value]
    return value


class SqliteDocumentStore(DocumentStore):
    """
    File-backed store shared by every process that opens the same path.

    Records are stored as JSON with datetimes tagged so they come back as
    aware datetimes. Commits are a conditional write on the row version, so
    two processes racing on one document conflict exactly like two threads
    on the in-memory store.
    """

    def __init__(self, path: str, timeout_seconds: float = 5.0):
        self.path = str(path)
        self.timeout_seconds = timeout_seconds
        parent = Path(self.path).parent
        parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as conn, conn:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS documents ("
                " collection TEXT NOT NULL,"
                " doc_id TEXT NOT NULL,"
                " version INTEGER NOT NULL,"
                " data TEXT,"
                " PRIMARY KEY (collection, doc_id))"
            )

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.path, timeout=self.timeout_seconds)

    def _read(self, collection: str, doc_id: str) -> tuple[int, Optional[Record]]:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT version, data FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            ).fetchone()
        if row is None:
            return 0, None
        version, data = row
        return version, (_decode(json.loads(data)) if data is not None else None)

    def get(self, collection: str, doc_id: str) -> Optional[Record]:
        return self._read(collection, doc_id)[1]

    def list(self, collection: str) -> list[tuple[str, Record]]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT doc_id, data FROM documents"
                " WHERE collection = ? AND data IS NOT NULL ORDER BY doc_id",
                (collection,),
            ).fetchall()
        return [(doc_id, _decode(json.loads(data))) for doc_id, data in rows]

    def version(self, collection: str, doc_id: str) -> int:
        return self._read(collection, doc_id)[0]

    def run_transaction(
        self,
        collection: str,
        doc_id: str,
        fn: Callable[[Optional[Record]], Any],
    ) -> Optional[Record]:
        read_version, snapshot = self._read(collection, doc_id)

        result = fn(copy.deepcopy(snapshot) if snapshot is not None else None)
        if result is None:
            return snapshot

        data = None if result is DELETE else json.dumps(_encode(result))
        with closing(self._connect()) as conn, conn:
            if read_version == 0:
                try:
                    conn.execute(
                        "INSERT INTO documents (collection, doc_id, version, data) VALUES (?, ?, 1, ?)",
                        (collection, doc_id, data),
                    )
                except sqlite3.IntegrityError as exc:
                    raise ConcurrentModification(
                        f"{collection}/{doc_id} was created by another writer"
                    ) from exc
            else:
                cursor = conn.execute(
                    "UPDATE documents SET version = version + 1, data = ?"
                    " WHERE collection = ? AND doc_id = ? AND version = ?",
                    (data, collection, doc_id, read_version),
                )
                if cursor.rowcount != 1:
                    logger.debug("Write conflict on %s/%s (read v%d)", collection, doc_id, read_version)
                    raise ConcurrentModification(
                        f"{collection}/{doc_id} was modified by another writer"
                    )

        if result is DELETE:
            return None
        return copy.deepcopy(result)


def build_document_store(path: Optional[str] = None) -> DocumentStore:
    """SQLite store at ``path`` when given, otherwise a process-local in-memory store."""
    if path:
        return SqliteDocumentStore(path)
    return InMemoryDocumentStore()
