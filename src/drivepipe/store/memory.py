"""Deterministic in-memory document store.

Reference implementation of :class:`drivepipe.store.documents.DocumentStore`
used by tests and single-process deployments. Every document carries a
version; transactions record the versions they read and refuse to commit
if any of them moved (optimistic concurrency).

A query that returned *no* documents records nothing, so two transactions
that both observe "no such document" and then create one will both commit.
That matches hosted stores whose transactions only guard documents that
exist.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import secrets
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar

from drivepipe.exceptions import DocumentNotFoundError, TransactionConflictError
from drivepipe.feed.events import ChangeEvent, ChangeKind
from drivepipe.paths import split
from drivepipe.store.documents import _MISSING, DocumentSnapshot, Filter, OrderBy, get_field

_logger = logging.getLogger(__name__)

T = TypeVar("T")

ChangeListener = Callable[[ChangeEvent], None]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _auto_id() -> str:
    return secrets.token_hex(10)


def _apply_patch(target: dict[str, Any], patch: Mapping[str, Any]) -> None:
    """Apply an update patch; dotted keys address nested maps."""
    for key, value in patch.items():
        parts = key.split(".")
        node = target
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = copy.deepcopy(value)


@dataclass
class _StoredDocument:
    data: dict[str, Any]
    version: int


@dataclass
class _PendingWrite:
    path: str
    data: dict[str, Any]
    merge: bool


class _Conflict(Exception):
    def __init__(self, paths: tuple[str, ...]) -> None:
        self.paths = paths
        super().__init__(", ".join(paths))


@dataclass
class _MemoryTransaction:
    store: InMemoryDocumentStore
    reads: dict[str, int] = field(default_factory=dict)
    writes: list[_PendingWrite] = field(default_factory=list)

    async def get(self, path: str) -> DocumentSnapshot:
        await asyncio.sleep(0)
        snapshot, version = self.store._read(path)
        self.reads.setdefault(snapshot.path, version)
        return snapshot

    async def query(
        self,
        collection: str,
        *,
        where: Sequence[Filter] = (),
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        await asyncio.sleep(0)
        results = self.store._select(collection, where, order_by, limit)
        for snapshot in results:
            self.reads.setdefault(snapshot.path, self.store._version_of(snapshot.path))
        return results

    def set(self, path: str, data: Mapping[str, Any]) -> None:
        self.writes.append(_PendingWrite(path=path.strip("/"), data=copy.deepcopy(dict(data)), merge=False))

    def update(self, path: str, patch: Mapping[str, Any]) -> None:
        self.writes.append(_PendingWrite(path=path.strip("/"), data=copy.deepcopy(dict(patch)), merge=True))

    def create(self, collection: str, data: Mapping[str, Any]) -> str:
        path = f"{collection.strip('/')}/{self.store._id_factory()}"
        self.set(path, data)
        return path


class InMemoryDocumentStore:
    """In-memory document store with change notifications.

    Not thread-safe; use it from the event loop that owns it.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _auto_id,
        max_transaction_attempts: int = 5,
    ) -> None:
        self._clock = clock
        self._id_factory = id_factory
        self._max_transaction_attempts = max_transaction_attempts
        self._collections: dict[str, dict[str, _StoredDocument]] = {}
        self._version = 0
        self._listeners: list[ChangeListener] = []

    # ------------------------------------------------------------------
    # Change notifications
    # ------------------------------------------------------------------

    def watch(self, listener: ChangeListener) -> Callable[[], None]:
        """Register *listener* for committed changes; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, path: str, before: dict[str, Any] | None, after: dict[str, Any] | None) -> None:
        if not self._listeners:
            return
        if before is None:
            kind = ChangeKind.CREATED
        elif after is None:
            kind = ChangeKind.DELETED
        else:
            kind = ChangeKind.UPDATED
        event = ChangeEvent(
            kind=kind,
            path=path,
            before=copy.deepcopy(before),
            after=copy.deepcopy(after),
            observed_at=self._clock(),
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                _logger.warning("Change listener failed for %s", path, exc_info=True)

    # ------------------------------------------------------------------
    # Internal primitives (synchronous, no yield points)
    # ------------------------------------------------------------------

    def _locate(self, path: str) -> tuple[str, str]:
        return split(path)

    def _version_of(self, path: str) -> int:
        collection, doc_id = self._locate(path)
        stored = self._collections.get(collection, {}).get(doc_id)
        return stored.version if stored is not None else 0

    def _read(self, path: str) -> tuple[DocumentSnapshot, int]:
        normalized = path.strip("/")
        collection, doc_id = self._locate(normalized)
        stored = self._collections.get(collection, {}).get(doc_id)
        if stored is None:
            return DocumentSnapshot(path=normalized, data=None), 0
        return DocumentSnapshot(path=normalized, data=copy.deepcopy(stored.data)), stored.version

    def _write(self, path: str, data: dict[str, Any], *, merge: bool) -> None:
        normalized = path.strip("/")
        collection, doc_id = self._locate(normalized)
        docs = self._collections.setdefault(collection, {})
        stored = docs.get(doc_id)
        before = copy.deepcopy(stored.data) if stored is not None else None

        if merge:
            if stored is None:
                raise DocumentNotFoundError(normalized)
            new_data = copy.deepcopy(stored.data)
            _apply_patch(new_data, data)
        else:
            new_data = copy.deepcopy(data)

        self._version += 1
        docs[doc_id] = _StoredDocument(data=new_data, version=self._version)
        self._emit(normalized, before, new_data)

    def _select(
        self,
        collection: str,
        where: Sequence[Filter],
        order_by: OrderBy | None,
        limit: int | None,
    ) -> list[DocumentSnapshot]:
        normalized = collection.strip("/")
        docs = self._collections.get(normalized, {})
        rows = [(doc_id, stored.data) for doc_id, stored in docs.items() if all(f.matches(stored.data) for f in where)]

        if order_by is not None:
            rows = [row for row in rows if get_field(row[1], order_by.field) is not _MISSING]
            rows.sort(key=lambda row: get_field(row[1], order_by.field), reverse=order_by.descending)

        if limit is not None:
            rows = rows[: max(limit, 0)]

        return [DocumentSnapshot(path=f"{normalized}/{doc_id}", data=copy.deepcopy(data)) for doc_id, data in rows]

    def _commit(self, tx: _MemoryTransaction) -> None:
        stale = tuple(path for path, version in tx.reads.items() if self._version_of(path) != version)
        if stale:
            raise _Conflict(stale)
        # Validate every update target before applying anything.
        created: set[str] = set()
        for write in tx.writes:
            if write.merge and write.path not in created and self._version_of(write.path) == 0:
                raise DocumentNotFoundError(write.path)
            created.add(write.path)
        for write in tx.writes:
            self._write(write.path, write.data, merge=write.merge)

    # ------------------------------------------------------------------
    # DocumentStore API
    # ------------------------------------------------------------------

    async def get(self, path: str) -> DocumentSnapshot:
        # Yield like a network round-trip so concurrent handlers interleave.
        await asyncio.sleep(0)
        snapshot, _version = self._read(path)
        return snapshot

    async def set(self, path: str, data: Mapping[str, Any]) -> None:
        self._write(path, dict(data), merge=False)

    async def update(self, path: str, patch: Mapping[str, Any]) -> None:
        self._write(path, dict(patch), merge=True)

    async def add(self, collection: str, data: Mapping[str, Any]) -> str:
        path = f"{collection.strip('/')}/{self._id_factory()}"
        self._write(path, dict(data), merge=False)
        return path

    async def delete(self, path: str) -> None:
        normalized = path.strip("/")
        collection, doc_id = self._locate(normalized)
        stored = self._collections.get(collection, {}).pop(doc_id, None)
        if stored is not None:
            self._version += 1
            self._emit(normalized, stored.data, None)

    async def query(
        self,
        collection: str,
        *,
        where: Sequence[Filter] = (),
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        await asyncio.sleep(0)
        return self._select(collection, where, order_by, limit)

    async def count(self, collection: str, *, where: Sequence[Filter] = ()) -> int:
        await asyncio.sleep(0)
        return len(self._select(collection, where, None, None))

    async def list_ids(self, collection: str) -> list[str]:
        await asyncio.sleep(0)
        return list(self._collections.get(collection.strip("/"), {}))

    async def run_transaction(self, fn: Callable[[_MemoryTransaction], Awaitable[T]]) -> T:
        """Run *fn* in an optimistic transaction, retrying on read conflicts."""
        last_conflict: tuple[str, ...] = ()
        for attempt in range(1, self._max_transaction_attempts + 1):
            tx = _MemoryTransaction(store=self)
            result = await fn(tx)
            try:
                self._commit(tx)
            except _Conflict as exc:
                last_conflict = exc.paths
                _logger.debug("Transaction conflict attempt=%d paths=%s", attempt, exc.paths)
                continue
            return result
        raise TransactionConflictError(
            f"Transaction aborted after {self._max_transaction_attempts} attempts",
            paths=last_conflict,
        )
