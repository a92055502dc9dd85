"""
Diff/merge engine.

Responsibility:
    Index existing target records by composite key and classify every
    incoming row as add / update / skip / conflict under the batch's merge
    strategy.  Preview and commit share these functions so a dry run and the
    real run can never disagree about a row.

Invariants enforced:
    - Keys are the key fields' stringified values joined by the separator;
      exact string equality is the only match criterion.
    - A row carrying an error-severity issue is always ``skip``.
    - ``append`` ignores a match and adds a duplicate.
    - Manual resolutions apply at commit only; an unresolved match is ``skip``.

Pure. ZERO I/O.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, Mapping, Sequence

from finance_migration.domain.types import (
    ConflictField,
    MappedRecord,
    MergeStrategy,
    RowAction,
)
from finance_migration.mapping.engine import display_value, parse_numeric

DEFAULT_KEY_SEPARATOR = "||"


def composite_key(
    record: Mapping[str, Any] | MappedRecord,
    key_fields: Sequence[str],
    separator: str = DEFAULT_KEY_SEPARATOR,
) -> str:
    return separator.join(display_value(record.get(f)) for f in key_fields)


def build_key_index(
    records: Iterable[Mapping[str, Any]],
    key_fields: Sequence[str],
    separator: str = DEFAULT_KEY_SEPARATOR,
) -> dict[str, Mapping[str, Any]]:
    """Key -> existing record.  Empty when no key fields are declared.

    On duplicate keys the later record wins.
    """
    if not key_fields:
        return {}
    return {composite_key(rec, key_fields, separator): rec for rec in records}


def _same_value(incoming: Any, stored: Any) -> bool:
    # A parsed number equals a stored int, float or numeric string of the same value.
    if isinstance(incoming, Decimal):
        return parse_numeric(stored) == incoming
    return incoming == stored


def find_conflicts(
    mapped: MappedRecord,
    existing: Mapping[str, Any],
) -> tuple[ConflictField, ...]:
    """Fields whose incoming value is non-empty and differs from the stored one."""
    return tuple(
        ConflictField(field=name, source_value=value, existing_value=existing.get(name))
        for name, value in mapped.as_dict().items()
        if value is not None and value != "" and not _same_value(value, existing.get(name))
    )


def classify_row(
    strategy: MergeStrategy,
    existing: Mapping[str, Any] | None,
    conflicts: Sequence[ConflictField],
    has_errors: bool = False,
) -> RowAction:
    """Prospective action for one row (preview semantics)."""
    if has_errors:
        return RowAction.SKIP
    if existing is None:
        return RowAction.ADD
    strategy = MergeStrategy(strategy)
    if strategy is MergeStrategy.SKIP:
        return RowAction.SKIP
    if strategy is MergeStrategy.OVERWRITE:
        return RowAction.UPDATE
    if strategy is MergeStrategy.APPEND:
        return RowAction.ADD
    return RowAction.CONFLICT if conflicts else RowAction.UPDATE


def effective_action(
    strategy: MergeStrategy,
    resolution: RowAction | str | None = None,
) -> RowAction:
    """Commit-time action for a key-matched row.

    ``manual`` takes the caller's resolution (add / update / skip) and
    defaults to skip.
    """
    strategy = MergeStrategy(strategy)
    if strategy is MergeStrategy.SKIP:
        return RowAction.SKIP
    if strategy is MergeStrategy.OVERWRITE:
        return RowAction.UPDATE
    if strategy is MergeStrategy.APPEND:
        return RowAction.ADD
    if resolution is None:
        return RowAction.SKIP
    action = RowAction(resolution)
    if action is RowAction.CONFLICT:
        return RowAction.SKIP
    return action
