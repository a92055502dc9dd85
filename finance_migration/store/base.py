"""
Record store contracts.

The engine never assumes a storage medium.  It resolves a target collection
by name through a CollectionResolver and talks to it through RecordCollection.

Record shape:
    Plain dicts.  Every stored record carries the metadata fields ``id``,
    ``createdAt``, ``updatedAt`` and ``version`` (1 on insert, +1 per update).
"""

from __future__ import annotations

from typing import Any, ContextManager, Iterable, Mapping, Protocol, runtime_checkable

ID_FIELD = "id"
CREATED_AT_FIELD = "createdAt"
UPDATED_AT_FIELD = "updatedAt"
VERSION_FIELD = "version"
META_FIELDS = frozenset({ID_FIELD, CREATED_AT_FIELD, UPDATED_AT_FIELD, VERSION_FIELD})


@runtime_checkable
class RecordQuery(Protocol):
    def where(self, field: str, op: str, value: Any = None) -> "RecordQuery":
        ...

    def order_by(self, field: str, direction: str = "asc") -> "RecordQuery":
        ...

    def limit(self, n: int) -> "RecordQuery":
        ...

    def offset(self, n: int) -> "RecordQuery":
        ...

    def execute(self) -> list[dict[str, Any]]:
        ...

    def first(self) -> dict[str, Any] | None:
        ...

    def count(self) -> int:
        ...


@runtime_checkable
class RecordCollection(Protocol):
    """One named collection of records."""

    name: str

    def get(self, record_id: str) -> dict[str, Any] | None:
        ...

    def get_all(self) -> list[dict[str, Any]]:
        ...

    def insert(self, record: Mapping[str, Any]) -> dict[str, Any]:
        """Store a new record under a freshly generated id; returns it."""
        ...

    def update(self, record_id: str, changes: Mapping[str, Any]) -> dict[str, Any]:
        """Merge ``changes`` into the record. Raises RecordNotFoundError."""
        ...

    def remove(self, record_id: str) -> None:
        """Delete the record. Raises RecordNotFoundError."""
        ...

    def atomic(self) -> ContextManager[Any]:
        """Scope one row's writes; an exception inside rolls them back."""
        ...

    def query(self) -> RecordQuery:
        ...

    def export_records(self) -> list[dict[str, Any]]:
        """Full contents including metadata, in insertion order."""
        ...

    def import_records(self, records: Iterable[Mapping[str, Any]], merge: bool) -> int:
        """Restore records keeping their ids.

        ``merge=False`` replaces the collection; ``merge=True`` upserts by id.
        Returns the number of records written.
        """
        ...


@runtime_checkable
class CollectionResolver(Protocol):
    def resolve(self, name: str) -> RecordCollection | None:
        ...

    def names(self) -> list[str]:
        ...


def strip_meta(record: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in record.items() if k not in META_FIELDS}
