"""In-memory record store for tests and embedded callers."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Mapping
from uuid import uuid4

from finance_migration.domain.clock import Clock, SystemClock
from finance_migration.exceptions import RecordNotFoundError
from finance_migration.store.base import (
    CREATED_AT_FIELD,
    ID_FIELD,
    UPDATED_AT_FIELD,
    VERSION_FIELD,
    RecordCollection,
    strip_meta,
)
from finance_migration.store.query import Query


class InMemoryCollection:
    """Dict-backed RecordCollection; returned records are copies."""

    def __init__(self, name: str, clock: Clock | None = None):
        self.name = name
        self._clock = clock or SystemClock()
        self._records: dict[str, dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._records)

    def get(self, record_id: str) -> dict[str, Any] | None:
        rec = self._records.get(record_id)
        return dict(rec) if rec is not None else None

    def get_all(self) -> list[dict[str, Any]]:
        return [dict(r) for r in self._records.values()]

    def insert(self, record: Mapping[str, Any]) -> dict[str, Any]:
        now = self._clock.isoformat()
        stored = strip_meta(record)
        stored.update({
            ID_FIELD: str(uuid4()),
            CREATED_AT_FIELD: now,
            UPDATED_AT_FIELD: now,
            VERSION_FIELD: 1,
        })
        self._records[stored[ID_FIELD]] = stored
        return dict(stored)

    def update(self, record_id: str, changes: Mapping[str, Any]) -> dict[str, Any]:
        current = self._records.get(record_id)
        if current is None:
            raise RecordNotFoundError(self.name, record_id)
        updated = {**current, **strip_meta(changes)}
        updated[UPDATED_AT_FIELD] = self._clock.isoformat()
        updated[VERSION_FIELD] = int(current.get(VERSION_FIELD) or 0) + 1
        self._records[record_id] = updated
        return dict(updated)

    def remove(self, record_id: str) -> None:
        if self._records.pop(record_id, None) is None:
            raise RecordNotFoundError(self.name, record_id)

    @contextmanager
    def atomic(self) -> Iterator[None]:
        saved = dict(self._records)
        try:
            yield
        except BaseException:
            self._records = saved
            raise

    def query(self) -> Query:
        return Query(self.get_all)

    def export_records(self) -> list[dict[str, Any]]:
        return self.get_all()

    def import_records(self, records: Iterable[Mapping[str, Any]], merge: bool) -> int:
        if not merge:
            self._records.clear()
        count = 0
        now = self._clock.isoformat()
        for rec in records:
            stored = dict(rec)
            record_id = str(stored.get(ID_FIELD) or uuid4())
            stored[ID_FIELD] = record_id
            stored.setdefault(CREATED_AT_FIELD, now)
            stored.setdefault(UPDATED_AT_FIELD, now)
            stored.setdefault(VERSION_FIELD, 1)
            self._records[record_id] = stored
            count += 1
        return count


class InMemoryRegistry:
    """CollectionResolver over named in-memory collections.

    Only declared collections resolve; ``resolve`` never creates one.
    """

    def __init__(self, names: Iterable[str] = (), clock: Clock | None = None):
        self._clock = clock or SystemClock()
        self._collections: dict[str, InMemoryCollection] = {}
        for name in names:
            self.create(name)

    def create(self, name: str) -> InMemoryCollection:
        if name not in self._collections:
            self._collections[name] = InMemoryCollection(name, self._clock)
        return self._collections[name]

    def resolve(self, name: str) -> RecordCollection | None:
        return self._collections.get(name)

    def names(self) -> list[str]:
        return list(self._collections)

    def __getitem__(self, name: str) -> InMemoryCollection:
        return self._collections[name]
