"""
Mapping engine: value coercion, transforms and row mapping.

Pure functions. ZERO I/O.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Sequence

from finance_migration.domain.types import (
    FieldMapping,
    FieldTransform,
    MappedRecord,
    SourceRow,
)

_NUMBER_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_PAREN_NEGATIVE_RE = re.compile(r"\((.+)\)")
_CURRENCY_NOISE_RE = re.compile(r"[$,\s]")
_SLASH_DATE_RE = re.compile(r"(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})")

# Tried after ISO-8601; month-first, matching US accounting exports.
_DATE_FORMATS = ("%Y/%m/%d", "%m/%d/%Y", "%m-%d-%Y", "%b %d, %Y", "%d %b %Y")


def normalize_header(header: str) -> str:
    """Lowercase, trim, treat ``_``/``-`` as spaces, collapse whitespace."""
    h = header.lower().strip()
    h = re.sub(r"[_\-]", " ", h)
    return re.sub(r"\s+", " ", h).strip()


def parse_numeric(value: Any) -> Decimal | None:
    """
    Parse an accounting-formatted number into an exact Decimal.

    Strips ``$``, thousands separators and whitespace; ``(1,234.50)`` is
    -1234.50.  Floats go through ``str`` so 0.1 stays 0.1.  Returns None
    when the value is not a finite number.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        parsed = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
        return parsed if parsed.is_finite() else None
    if not isinstance(value, str):
        return None
    cleaned = _CURRENCY_NOISE_RE.sub("", value)
    cleaned = _PAREN_NEGATIVE_RE.sub(r"-\1", cleaned)
    if cleaned.startswith("--"):
        cleaned = cleaned[1:]
    if not _NUMBER_RE.fullmatch(cleaned):
        return None
    return Decimal(cleaned)


def parse_date_value(value: Any) -> str:
    """
    Parse a date into ``YYYY-MM-DD``; returns '' when unparseable.

    ISO-8601 first, then common export layouts, then the ``M/D/YY`` family
    (``/`` or ``-`` separated, two-digit years are 20YY).
    """
    if isinstance(value, datetime):
        return _iso_day(value)
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str) or not value.strip():
        return ""
    text = value.strip()

    try:
        return _iso_day(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue

    m = _SLASH_DATE_RE.fullmatch(text)
    if m:
        month, day, year = m.group(1), m.group(2), m.group(3)
        if len(year) == 2:
            year = f"20{year}"
        try:
            return date(int(year), int(month), int(day)).isoformat()
        except ValueError:
            return ""
    return ""


def _iso_day(dt: datetime) -> str:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.date().isoformat()


def apply_transform(value: Any, transform: FieldTransform | str) -> Any:
    """
    Apply one transform to a raw value.

    None passes through.  ``number`` and ``date`` keep the original value
    when it cannot be coerced so the validator can report it; a blank value
    becomes None under ``number``.
    """
    if value is None:
        return None
    transform = FieldTransform(transform)
    if transform is FieldTransform.LOWERCASE:
        return value.lower() if isinstance(value, str) else value
    if transform is FieldTransform.UPPERCASE:
        return value.upper() if isinstance(value, str) else value
    if transform is FieldTransform.TRIM:
        return value.strip() if isinstance(value, str) else value
    if transform is FieldTransform.NUMBER:
        if isinstance(value, str) and not value.strip():
            return None
        parsed = parse_numeric(value)
        return value if parsed is None else parsed
    if transform is FieldTransform.DATE:
        if isinstance(value, str) and not value.strip():
            return value
        parsed_date = parse_date_value(value)
        return parsed_date or value
    return value


def apply_mappings(row: SourceRow, mappings: Sequence[FieldMapping]) -> MappedRecord:
    """
    Map one source row onto target fields.

    With no mappings the row passes through unchanged (field names kept).
    Otherwise only mapped targets are produced; a source column absent from
    the row maps to None.
    """
    if not mappings:
        return MappedRecord.from_dict(row.as_dict())
    mapped: dict[str, Any] = {}
    for fm in mappings:
        if not fm.target_field:
            continue
        mapped[fm.target_field] = apply_transform(row.get(fm.source_field), fm.transform)
    return MappedRecord.from_dict(mapped)


def map_rows(
    rows: Sequence[SourceRow],
    mappings: Sequence[FieldMapping],
) -> list[MappedRecord]:
    return [apply_mappings(row, mappings) for row in rows]


def display_value(value: Any) -> str:
    """Stringify a mapped or stored value for keys, issues and exports."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, Decimal) and value.is_finite():
        if value == value.to_integral_value():
            return str(int(value))
        return format(value.normalize(), "f")
    return str(value)
