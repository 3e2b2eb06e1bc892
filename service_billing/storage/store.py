"""
Transactional document store.

A hierarchical key-value document space addressed by slash-separated
paths (``users/alice/billing_history/<id>``). Writes made through a
Transaction are buffered and only become visible when the scope commits.

Concurrency is optimistic: each document carries a version, a transaction
remembers the version of everything it read, and commit re-checks those
versions under a write lock. If any changed, the buffered writes are
discarded and the whole callback runs again.
"""

import copy
import json
import threading
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, TypeVar

import structlog

from ..core.errors import TransactionConflict
from .db import get_connection, initialize_schema
from .models import DocumentSnapshot

log = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5

_SET = "set"
_UPDATE = "update"


class MissingDocument(LookupError):
    """Raised when update() targets a document that does not exist."""
    def __init__(self, path: str):
        super().__init__(f"Cannot update missing document '{path}'")
        self.path = path


def parent_of(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


def _apply(base: Optional[Dict[str, Any]], ops: List[Tuple[str, Dict[str, Any]]], path: str) -> Dict[str, Any]:
    """Fold buffered set/update operations over a base document."""
    doc = copy.deepcopy(base) if base is not None else None
    for kind, data in ops:
        if kind == _SET:
            doc = copy.deepcopy(data)
        else:
            if doc is None:
                raise MissingDocument(path)
            doc.update(copy.deepcopy(data))
    return doc


class TransactionHandle(Protocol):
    """What adapters and the reconciliation engine see inside a scope."""

    def get(self, ref: str) -> DocumentSnapshot: ...

    def update(self, ref: str, data: Dict[str, Any]) -> None: ...

    def set(self, ref: str, data: Dict[str, Any]) -> None: ...


class DocumentStore(Protocol):
    """Store contract consumed by the orchestrator."""

    def run_transaction(self, fn: Callable[[TransactionHandle], T]) -> T: ...

    def get_doc(self, ref: str) -> DocumentSnapshot: ...

    def set_doc(self, ref: str, data: Dict[str, Any]) -> None: ...


class Transaction:
    """Buffered read-your-writes view over a store.

    Reads go to the committed state the first time a path is touched and
    the version seen is recorded for the commit-time check.
    """

    def __init__(self, reader: Callable[[str], DocumentSnapshot]):
        self._reader = reader
        self.reads: Dict[str, int] = {}
        self.writes: Dict[str, List[Tuple[str, Dict[str, Any]]]] = {}
        self._base: Dict[str, Optional[Dict[str, Any]]] = {}

    def _committed(self, ref: str) -> Optional[Dict[str, Any]]:
        if ref not in self._base:
            snapshot = self._reader(ref)
            self.reads[ref] = snapshot.version
            self._base[ref] = snapshot.data if snapshot.exists else None
        return self._base[ref]

    def get(self, ref: str) -> DocumentSnapshot:
        base = self._committed(ref)
        data = _apply(base, self.writes.get(ref, []), ref)
        if data is None:
            return DocumentSnapshot(exists=False)
        return DocumentSnapshot(exists=True, data=data, version=self.reads[ref])

    def update(self, ref: str, data: Dict[str, Any]) -> None:
        self.writes.setdefault(ref, []).append((_UPDATE, copy.deepcopy(data)))

    def set(self, ref: str, data: Dict[str, Any]) -> None:
        self.writes.setdefault(ref, []).append((_SET, copy.deepcopy(data)))


class BaseDocumentStore:
    """Optimistic-concurrency retry loop shared by the concrete stores."""

    def __init__(self, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts

    def run_transaction(self, fn: Callable[[TransactionHandle], T]) -> T:
        """Run fn inside a transaction scope and commit its writes atomically.

        Exceptions raised by fn propagate unchanged and nothing is written.

        Raises:
            TransactionConflict: If every attempt lost a write race
        """
        for attempt in range(1, self.max_attempts + 1):
            tx = Transaction(self._read)
            result = fn(tx)
            if self._commit(tx):
                return result
            log.warning("transaction_conflict", attempt=attempt, max_attempts=self.max_attempts)
        raise TransactionConflict(self.max_attempts)

    def _read(self, ref: str) -> DocumentSnapshot:
        raise NotImplementedError

    def _commit(self, tx: Transaction) -> bool:
        raise NotImplementedError

    def get_doc(self, ref: str) -> DocumentSnapshot:
        return self._read(ref)

    def set_doc(self, ref: str, data: Dict[str, Any]) -> None:
        """Replace a document outside any transaction scope."""
        def write(tx: TransactionHandle) -> None:
            tx.set(ref, data)
        self.run_transaction(write)

    def list_documents(self, parent: str) -> List[Tuple[str, Dict[str, Any]]]:
        """Return (path, data) for every direct child of parent, ordered by path."""
        raise NotImplementedError


class InMemoryDocumentStore(BaseDocumentStore):
    """Dict-backed store for tests and ephemeral runs."""

    def __init__(self, initial: Optional[Dict[str, Dict[str, Any]]] = None,
                 max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        super().__init__(max_attempts)
        self._lock = threading.Lock()
        self._docs: Dict[str, Tuple[int, Dict[str, Any]]] = {
            path: (1, copy.deepcopy(data)) for path, data in (initial or {}).items()
        }

    def _read(self, ref: str) -> DocumentSnapshot:
        with self._lock:
            entry = self._docs.get(ref)
        if entry is None:
            return DocumentSnapshot(exists=False)
        version, data = entry
        return DocumentSnapshot(exists=True, data=copy.deepcopy(data), version=version)

    def _commit(self, tx: Transaction) -> bool:
        with self._lock:
            for path, seen in tx.reads.items():
                entry = self._docs.get(path)
                if (entry[0] if entry else 0) != seen:
                    return False
            staged = {}
            for path, ops in tx.writes.items():
                entry = self._docs.get(path)
                version, base = entry if entry else (0, None)
                staged[path] = (version + 1, _apply(base, ops, path))
            self._docs.update(staged)
        return True

    def list_documents(self, parent: str) -> List[Tuple[str, Dict[str, Any]]]:
        with self._lock:
            return [
                (path, copy.deepcopy(data))
                for path, (_, data) in sorted(self._docs.items())
                if parent_of(path) == parent
            ]


class SQLiteDocumentStore(BaseDocumentStore):
    """SQLite-backed store; documents are JSON rows with a version column.

    Each commit opens its own connection and takes the database write lock
    with BEGIN IMMEDIATE, so version checks and writes are atomic across
    threads and processes sharing the file.
    """

    def __init__(self, db_path: str = "service_billing.db",
                 max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        super().__init__(max_attempts)
        self.db_path = db_path
        initialize_schema(db_path)

    def _read(self, ref: str) -> DocumentSnapshot:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT data, version FROM document WHERE path = ?", (ref,)
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return DocumentSnapshot(exists=False)
        return DocumentSnapshot(exists=True, data=json.loads(row[0]), version=row[1])

    def _commit(self, tx: Transaction) -> bool:
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                for path, seen in tx.reads.items():
                    row = conn.execute(
                        "SELECT version FROM document WHERE path = ?", (path,)
                    ).fetchone()
                    if (row[0] if row else 0) != seen:
                        conn.execute("ROLLBACK")
                        return False
                for path, ops in tx.writes.items():
                    row = conn.execute(
                        "SELECT data, version FROM document WHERE path = ?", (path,)
                    ).fetchone()
                    base = json.loads(row[0]) if row else None
                    version = row[1] if row else 0
                    doc = _apply(base, ops, path)
                    conn.execute(
                        """
                        INSERT OR REPLACE INTO document (path, parent, data, version)
                        VALUES (?, ?, ?, ?)
                        """,
                        (path, parent_of(path), json.dumps(doc, sort_keys=True), version + 1),
                    )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
        finally:
            conn.close()
        return True

    def list_documents(self, parent: str) -> List[Tuple[str, Dict[str, Any]]]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT path, data FROM document WHERE parent = ? ORDER BY path",
                (parent,),
            )
            return [(row[0], json.loads(row[1])) for row in cursor.fetchall()]
        finally:
            conn.close()
