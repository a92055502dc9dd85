"""
Rule validators for mapped import rows.

Each rule kind yields an error message or None.  ``required`` and
``referentialIntegrity`` failures are severity ``error`` and block the row;
every other kind is a ``warning``.  ``dataType``, ``pattern`` and ``range``
accept empty values as not-yet-provided.

Referential integrity needs the target store, so ``validate_rows`` skips it
and ``find_reference_violations`` runs it at preview/commit time against an
injected lookup of referenced values.

Architecture: finance_migration/domain. ZERO I/O.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Iterable, Sequence

from finance_migration.domain.types import (
    DataType,
    ErrorSeverity,
    ImportRowError,
    MappedRecord,
    RuleKind,
    ValidationRule,
)
from finance_migration.mapping.engine import display_value, parse_date_value, parse_numeric

BOOLEAN_TOKENS = frozenset({"true", "false", "1", "0", "yes", "no"})

# (collection, field) -> set of stringified values present in the store
ReferenceLookup = Callable[[str, str], "set[str]"]


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def severity_for(rule: ValidationRule) -> ErrorSeverity:
    if rule.kind in (RuleKind.REQUIRED, RuleKind.REFERENTIAL_INTEGRITY):
        return ErrorSeverity.ERROR
    return ErrorSeverity.WARNING


# -----------------------------------------------------------------------------
# Per-kind checks
# -----------------------------------------------------------------------------


def check_required(value: Any, rule: ValidationRule) -> str | None:
    if _is_empty(value):
        return rule.message or f'Field "{rule.field}" is required.'
    return None


def check_data_type(value: Any, rule: ValidationRule) -> str | None:
    if _is_empty(value):
        return None
    data_type = DataType(rule.data_type) if rule.data_type else DataType.STRING
    if data_type is DataType.NUMBER and parse_numeric(value) is None:
        return rule.message or (
            f'Field "{rule.field}" must be a valid number. Got: "{display_value(value)}".'
        )
    if data_type is DataType.DATE and parse_date_value(value) == "":
        return rule.message or (
            f'Field "{rule.field}" must be a valid date. Got: "{display_value(value)}".'
        )
    if data_type is DataType.BOOLEAN and str(value).strip().lower() not in BOOLEAN_TOKENS:
        return rule.message or (
            f'Field "{rule.field}" must be a boolean value. Got: "{display_value(value)}".'
        )
    return None


def check_pattern(value: Any, rule: ValidationRule) -> str | None:
    if _is_empty(value) or not rule.pattern:
        return None
    if re.search(rule.pattern, display_value(value)) is None:
        return rule.message or (
            f'Field "{rule.field}" does not match pattern "{rule.pattern}". '
            f'Got: "{display_value(value)}".'
        )
    return None


def check_range(value: Any, rule: ValidationRule) -> str | None:
    if _is_empty(value):
        return None
    num = parse_numeric(value)
    if num is None:
        return None
    if rule.minimum is not None and float(num) < rule.minimum:
        return rule.message or (
            f'Field "{rule.field}" must be >= {display_value(rule.minimum)}. Got: {display_value(num)}.'
        )
    if rule.maximum is not None and float(num) > rule.maximum:
        return rule.message or (
            f'Field "{rule.field}" must be <= {display_value(rule.maximum)}. Got: {display_value(num)}.'
        )
    return None


def validate_value(value: Any, rule: ValidationRule, row: MappedRecord) -> str | None:
    """Evaluate one rule; returns the failure message or None."""
    kind = RuleKind(rule.kind)
    if kind is RuleKind.REQUIRED:
        return check_required(value, rule)
    if kind is RuleKind.DATA_TYPE:
        return check_data_type(value, rule)
    if kind is RuleKind.PATTERN:
        return check_pattern(value, rule)
    if kind is RuleKind.RANGE:
        return check_range(value, rule)
    if kind is RuleKind.CUSTOM:
        return rule.custom(value, row) if rule.custom else None
    # referentialIntegrity: deferred to find_reference_violations
    return None


# -----------------------------------------------------------------------------
# Batch-level
# -----------------------------------------------------------------------------


def validate_rows(
    batch_id: str,
    records: Sequence[MappedRecord],
    rules: Sequence[ValidationRule],
) -> list[ImportRowError]:
    """Run every rule over every row; rows are numbered from 1."""
    issues: list[ImportRowError] = []
    for i, record in enumerate(records):
        for rule in rules:
            value = record.get(rule.field)
            message = validate_value(value, rule, record)
            if message:
                issues.append(
                    ImportRowError(
                        batch_id=batch_id,
                        row_number=i + 1,
                        field=rule.field,
                        value="" if value is None else display_value(value),
                        message=message,
                        severity=severity_for(rule),
                    )
                )
    return issues


def reference_rules(rules: Iterable[ValidationRule]) -> tuple[ValidationRule, ...]:
    return tuple(
        r for r in rules
        if RuleKind(r.kind) is RuleKind.REFERENTIAL_INTEGRITY and r.ref_collection
    )


def find_reference_violations(
    batch_id: str,
    records: Sequence[MappedRecord],
    rules: Sequence[ValidationRule],
    lookup: ReferenceLookup,
) -> list[ImportRowError]:
    """
    Check non-empty values against ``ref_collection.ref_field``.

    ``ref_field`` defaults to ``id``.  Each referenced value set is fetched
    once per call.
    """
    issues: list[ImportRowError] = []
    cache: dict[tuple[str, str], set[str]] = {}
    for rule in reference_rules(rules):
        ref_field = rule.ref_field or "id"
        key = (rule.ref_collection, ref_field)
        if key not in cache:
            cache[key] = lookup(rule.ref_collection, ref_field)
        known = cache[key]
        for i, record in enumerate(records):
            value = record.get(rule.field)
            if _is_empty(value) or display_value(value) in known:
                continue
            issues.append(
                ImportRowError(
                    batch_id=batch_id,
                    row_number=i + 1,
                    field=rule.field,
                    value=display_value(value),
                    message=rule.message or (
                        f'Field "{rule.field}" references missing '
                        f'{rule.ref_collection}.{ref_field} "{display_value(value)}".'
                    ),
                    severity=ErrorSeverity.ERROR,
                )
            )
    return issues
