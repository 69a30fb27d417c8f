from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from bandgen.models.records import Record
from bandgen.models.status import RecordType


@dataclass(frozen=True)
class Filter:
    """One clause of a list query: equality, less-than, or not-null.

    ``fallback`` names a field read in place of ``field`` when it is null.
    """

    field: str
    op: str
    value: Any = None
    fallback: str | None = None

    @classmethod
    def equal(cls, field: str, value: Any) -> "Filter":
        return cls(field, "eq", value)

    @classmethod
    def less_than(cls, field: str, value: Any, fallback: str | None = None) -> "Filter":
        return cls(field, "lt", value, fallback)

    @classmethod
    def is_not_null(cls, field: str) -> "Filter":
        return cls(field, "not_null")

    def matches(self, record: Record) -> bool:
        actual = getattr(record, self.field, None)
        if actual is None and self.fallback:
            actual = getattr(record, self.fallback, None)
        if self.op == "eq":
            return actual == self.value
        if self.op == "lt":
            return actual is not None and actual < self.value
        if self.op == "not_null":
            return actual is not None and actual != ""
        raise ValueError(f"Unsupported filter op: {self.op}")


@runtime_checkable
class RecordStore(Protocol):
    """Document database holding one collection per record type.

    Every write targets exactly one record by id. Concurrent writers to the
    same record resolve as last-write-wins.
    """

    async def get(self, record_type: RecordType, record_id: str) -> Record:
        """Return the record or raise RecordNotFound."""
        ...

    async def create(self, record_type: RecordType, fields: dict[str, Any]) -> Record:
        """Insert a new record, assigning its id and created_at."""
        ...

    async def update(
        self, record_type: RecordType, record_id: str, fields: dict[str, Any]
    ) -> Record:
        """Merge ``fields`` into the record and return the stored result."""
        ...

    async def list(
        self,
        record_type: RecordType,
        filters: list[Filter] | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        """Records matching every filter, oldest first."""
        ...
