"""Document store interface.

Components only talk to storage through :class:`DocumentStore`. The
in-memory implementation lives in :mod:`drivepipe.store.memory`; a hosted
store adapter only has to satisfy the same protocol.
"""

from __future__ import annotations

import operator
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Protocol, TypeVar

T = TypeVar("T")

FilterOp = Literal["==", "!=", "<", "<=", ">", ">="]

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

_MISSING = object()


def get_field(data: Mapping[str, Any], field_path: str) -> Any:
    """Resolve a dotted *field_path* inside *data*; missing → sentinel."""
    current: Any = data
    for part in field_path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


@dataclass(frozen=True)
class Filter:
    """A single ``where`` clause.

    Documents that lack the field never match, mirroring hosted document
    stores.
    """

    field: str
    op: FilterOp
    value: Any

    def matches(self, data: Mapping[str, Any]) -> bool:
        actual = get_field(data, self.field)
        if actual is _MISSING:
            return False
        try:
            return bool(_OPERATORS[self.op](actual, self.value))
        except TypeError:
            return False


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class DocumentSnapshot:
    """Point-in-time view of one document."""

    path: str
    data: dict[str, Any] | None

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def exists(self) -> bool:
        return self.data is not None

    def to_dict(self) -> dict[str, Any]:
        return dict(self.data) if self.data is not None else {}


class Transaction(Protocol):
    """Read-modify-write unit handed to :meth:`DocumentStore.run_transaction`.

    Reads must happen before writes. Writes are buffered and applied
    atomically on commit.
    """

    async def get(self, path: str) -> DocumentSnapshot: ...

    async def query(
        self,
        collection: str,
        *,
        where: Sequence[Filter] = (),
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]: ...

    def set(self, path: str, data: Mapping[str, Any]) -> None: ...

    def update(self, path: str, patch: Mapping[str, Any]) -> None: ...

    def create(self, collection: str, data: Mapping[str, Any]) -> str: ...


class DocumentStore(Protocol):
    """Structural document-store interface used by pipeline components."""

    async def get(self, path: str) -> DocumentSnapshot: ...

    async def set(self, path: str, data: Mapping[str, Any]) -> None: ...

    async def update(self, path: str, patch: Mapping[str, Any]) -> None: ...

    async def add(self, collection: str, data: Mapping[str, Any]) -> str: ...

    async def query(
        self,
        collection: str,
        *,
        where: Sequence[Filter] = (),
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]: ...

    async def count(self, collection: str, *, where: Sequence[Filter] = ()) -> int: ...

    async def list_ids(self, collection: str) -> list[str]: ...

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T: ...
