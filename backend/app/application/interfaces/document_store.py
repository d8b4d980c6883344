"""Abstract interface (port) for a single-collection document store."""

import operator
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Generic, TypeVar

from app.domain.entities import Record

RecordT = TypeVar("RecordT", bound=Record)

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


@dataclass(frozen=True)
class FieldFilter:
    """A single equality or range clause on a record field."""

    field_name: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _OPERATORS:
            raise ValueError(
                f"Unsupported operator '{self.op}' — expected one of {sorted(_OPERATORS)}"
            )

    def matches(self, actual: Any, expected: Any) -> bool:
        """Apply the clause; values of incomparable types never match."""
        try:
            return bool(_OPERATORS[self.op](actual, expected))
        except TypeError:
            return False


@dataclass(frozen=True)
class DocumentQuery:
    """Conjunction of field clauses with optional ordering and limit.

    Without ``order_by`` results come back in store iteration order
    (insertion order).
    """

    filters: tuple[FieldFilter, ...] = field(default_factory=tuple)
    order_by: str | None = None
    descending: bool = False
    limit: int | None = None

    def where(self, field_name: str, op: str, value: Any) -> "DocumentQuery":
        return replace(self, filters=(*self.filters, FieldFilter(field_name, op, value)))

    def ordered_by(self, field_name: str, *, descending: bool = False) -> "DocumentQuery":
        return replace(self, order_by=field_name, descending=descending)

    def limited(self, limit: int) -> "DocumentQuery":
        if limit < 1:
            raise ValueError("limit must be a positive integer")
        return replace(self, limit=limit)


class DocumentStore(ABC, Generic[RecordT]):
    """Port for typed document persistence — implemented in the infrastructure layer.

    Every failure propagates to the caller unchanged: ``EntityNotFoundError``,
    ``DuplicateEntityError``, ``DecodeError`` or ``StoreUnavailableError``.
    """

    @property
    @abstractmethod
    def collection(self) -> str:
        """Name of the collection this store operates on."""
        ...

    @abstractmethod
    async def create(self, record: RecordT) -> str:
        """Persist a new record with fresh timestamps and return its id."""
        ...

    @abstractmethod
    async def get(self, record_id: str) -> RecordT:
        """Retrieve a record by id. Raises EntityNotFoundError if missing."""
        ...

    @abstractmethod
    async def update(self, record_id: str, changes: Mapping[str, Any]) -> RecordT:
        """Merge ``changes`` into the stored document and return the result.

        Fields absent from ``changes`` are left untouched; ``updated_at``
        is refreshed.
        """
        ...

    @abstractmethod
    async def delete(self, record_id: str) -> None:
        """Delete a record. Deleting a missing id is not an error."""
        ...

    @abstractmethod
    async def query(self, query: DocumentQuery) -> list[RecordT]:
        """Return the records satisfying every clause of ``query``."""
        ...

    # Kept last: the method name shadows the builtin inside the class body.
    @abstractmethod
    async def list(self) -> list[RecordT]:
        """Return every record in the collection."""
        ...
