"""Composite-key matching and merge-strategy classification."""

from finance_migration.merge.diff import (
    build_key_index,
    classify_row,
    composite_key,
    effective_action,
    find_conflicts,
)

__all__ = [
    "build_key_index",
    "classify_row",
    "composite_key",
    "effective_action",
    "find_conflicts",
]
