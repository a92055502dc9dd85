"""Record store contracts and backends (in-memory, SQLAlchemy)."""

from finance_migration.store.base import (
    CollectionResolver,
    RecordCollection,
    RecordQuery,
)
from finance_migration.store.memory import InMemoryCollection, InMemoryRegistry
from finance_migration.store.repository import (
    InMemoryMigrationRepository,
    MigrationRepository,
)

__all__ = [
    "CollectionResolver",
    "RecordCollection",
    "RecordQuery",
    "InMemoryCollection",
    "InMemoryRegistry",
    "InMemoryMigrationRepository",
    "MigrationRepository",
]
