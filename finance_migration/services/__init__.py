"""
finance_migration.services -- stateful orchestration over the record store.

``build_engine`` wires the three services around one repository, one
collection resolver, one event sink and one clock:

    engine = build_engine(InMemoryRegistry(["invoices"]))
    batch = engine.imports.create_batch("jan", "csv", "invoices")
"""

from __future__ import annotations

from dataclasses import dataclass

from finance_migration.config import EngineConfig, get_engine_config
from finance_migration.domain.clock import Clock, SystemClock
from finance_migration.events import EventSink, NullEventSink
from finance_migration.services.commit_service import CommitService
from finance_migration.services.export_service import ExportService
from finance_migration.services.import_service import ImportService
from finance_migration.store.base import CollectionResolver
from finance_migration.store.repository import (
    InMemoryMigrationRepository,
    MigrationRepository,
)

__all__ = [
    "CommitService",
    "ExportService",
    "ImportService",
    "MigrationEngine",
    "build_engine",
]


@dataclass(frozen=True)
class MigrationEngine:
    imports: ImportService
    exports: ExportService
    repository: MigrationRepository
    collections: CollectionResolver
    events: EventSink
    clock: Clock


def build_engine(
    collections: CollectionResolver,
    repository: MigrationRepository | None = None,
    events: EventSink | None = None,
    clock: Clock | None = None,
    config: EngineConfig | None = None,
) -> MigrationEngine:
    """Construct the services; engine state defaults to an in-memory repository."""
    repository = repository if repository is not None else InMemoryMigrationRepository()
    events = events or NullEventSink()
    clock = clock or SystemClock()
    config = config or get_engine_config()

    committer = CommitService(repository, collections, events, clock, config)
    return MigrationEngine(
        imports=ImportService(repository, collections, events, clock, config, committer),
        exports=ExportService(repository, collections, events, clock, config),
        repository=repository,
        collections=collections,
        events=events,
        clock=clock,
    )
