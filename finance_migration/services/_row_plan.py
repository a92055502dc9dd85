"""
finance_migration.services._row_plan -- per-row inputs shared by preview and commit.

Responsibility:
    Map a batch's raw rows, group its recorded issues by row, evaluate
    referential-integrity rules against the live store and index the target
    collection by composite key.  Preview and commit both start from a
    RowPlan so the two can never disagree about which rows are blocked or
    which existing record a row matches.

Architecture position:
    Services -- reads the repository and the record store, writes nothing.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from finance_migration.domain.types import (
    ErrorSeverity,
    ImportBatch,
    ImportRowError,
    MappedRecord,
    ValidationRule,
)
from finance_migration.domain.validators import (
    ReferenceLookup,
    find_reference_violations,
)
from finance_migration.mapping.engine import display_value, map_rows
from finance_migration.merge.diff import build_key_index
from finance_migration.store.base import CollectionResolver, RecordCollection
from finance_migration.store.repository import MigrationRepository


@dataclass(frozen=True)
class RowPlan:
    """Everything a row-by-row pass over one batch needs."""

    batch: ImportBatch
    records: tuple[MappedRecord, ...]
    issues_by_row: Mapping[int, tuple[ImportRowError, ...]]
    reference_issues: tuple[ImportRowError, ...]
    key_index: Mapping[str, Mapping[str, Any]]

    def issues_for(self, row_number: int) -> tuple[ImportRowError, ...]:
        return self.issues_by_row.get(row_number, ())

    def has_errors(self, row_number: int) -> bool:
        return any(i.severity is ErrorSeverity.ERROR for i in self.issues_for(row_number))


def reference_lookup(collections: CollectionResolver) -> ReferenceLookup:
    """Lookup over live collections; an unknown collection has no values."""

    def lookup(collection_name: str, field_name: str) -> set[str]:
        collection = collections.resolve(collection_name)
        if collection is None:
            return set()
        return {
            display_value(rec.get(field_name))
            for rec in collection.get_all()
            if rec.get(field_name) is not None
        }

    return lookup


def build_row_plan(
    batch: ImportBatch,
    repository: MigrationRepository,
    collections: CollectionResolver,
    collection: RecordCollection | None,
    rules: Sequence[ValidationRule] = (),
    separator: str = "||",
) -> RowPlan:
    """
    Assemble the RowPlan for ``batch``.

    ``collection`` may be None (preview of a batch whose target is not yet
    registered); the key index is then empty and every row is an add.
    """
    mappings = repository.get_mappings(batch.batch_id)
    records = tuple(map_rows(batch.raw_rows, mappings))

    reference_issues = tuple(
        find_reference_violations(
            batch.batch_id, records, rules, reference_lookup(collections)
        )
    )

    grouped: dict[int, list[ImportRowError]] = defaultdict(list)
    for issue in repository.get_issues(batch.batch_id):
        grouped[issue.row_number].append(issue)
    for issue in reference_issues:
        grouped[issue.row_number].append(issue)

    key_index: Mapping[str, Mapping[str, Any]] = {}
    if collection is not None and batch.composite_keys:
        key_index = build_key_index(collection.get_all(), batch.composite_keys, separator)

    return RowPlan(
        batch=batch,
        records=records,
        issues_by_row={row: tuple(items) for row, items in grouped.items()},
        reference_issues=reference_issues,
        key_index=key_index,
    )
