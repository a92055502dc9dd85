"""
Export filtering, projection and serializers.

Formats:
    json  -- indented array of records
    csv   -- delimited text, caller-chosen delimiter, parser's quoting rules
    tsv   -- csv with a tab delimiter
    pdf   -- plain-text tabular report with an optional letterhead block
    api   -- one page of records in a ``data``/``pagination``/``meta`` envelope

Pure; the export service supplies the records and the timestamp.
"""

from __future__ import annotations

import json
import math
from typing import Any, Mapping, Sequence

from finance_migration.adapters.delimited import format_delimited
from finance_migration.domain.types import ExportFormat, Letterhead
from finance_migration.mapping.engine import display_value

DATE_FROM = "dateFrom"
DATE_TO = "dateTo"

REPORT_HEADER = "--- PDF REPORT ---"
REPORT_FOOTER = "--- END OF REPORT ---"


# -----------------------------------------------------------------------------
# Filtering and projection
# -----------------------------------------------------------------------------


def _record_date(record: Mapping[str, Any], date_fields: Sequence[str]) -> Any:
    for name in date_fields:
        value = record.get(name)
        if value is not None:
            return value
    return None


def _keep(
    record: Mapping[str, Any],
    filters: Mapping[str, Any],
    date_fields: Sequence[str],
) -> bool:
    for key, value in filters.items():
        if value is None or value == "":
            continue
        if key in (DATE_FROM, DATE_TO) and isinstance(value, str):
            record_date = _record_date(record, date_fields)
            # Records without a string date are not excluded by a date range.
            if not isinstance(record_date, str):
                continue
            if key == DATE_FROM and record_date < value:
                return False
            if key == DATE_TO and record_date > value:
                return False
            continue
        if record.get(key) != value:
            return False
    return True


def apply_filters(
    records: Sequence[Mapping[str, Any]],
    filters: Mapping[str, Any] | None,
    date_fields: Sequence[str] = ("date", "invoiceDate", "createdAt"),
) -> list[Mapping[str, Any]]:
    """Date range on the first present date field (string compare), exact match otherwise."""
    if not filters:
        return list(records)
    return [r for r in records if _keep(r, filters, date_fields)]


def project(
    records: Sequence[Mapping[str, Any]],
    columns: Sequence[str] | None,
) -> list[dict[str, Any]]:
    if not columns:
        return [dict(r) for r in records]
    return [{c: r.get(c) for c in columns} for r in records]


def column_order(records: Sequence[Mapping[str, Any]], columns: Sequence[str] | None) -> list[str]:
    """Explicit columns, else every key in first-seen order."""
    if columns:
        return list(columns)
    seen: dict[str, None] = {}
    for r in records:
        seen.update(dict.fromkeys(r))
    return list(seen)


# -----------------------------------------------------------------------------
# Serializers
# -----------------------------------------------------------------------------


def to_json(records: Sequence[Mapping[str, Any]]) -> str:
    return json.dumps(list(records), indent=2, default=str)


def to_delimited(
    records: Sequence[Mapping[str, Any]],
    delimiter: str = ",",
    columns: Sequence[str] | None = None,
) -> str:
    """'' for no records and no explicit columns."""
    headers = column_order(records, columns)
    if not headers:
        return ""
    return format_delimited(records, headers, delimiter)


def to_text_report(
    records: Sequence[Mapping[str, Any]],
    title: str,
    generated_at: str,
    letterhead: Letterhead | None = None,
    columns: Sequence[str] | None = None,
    width: int = 80,
) -> str:
    lines: list[str] = [REPORT_HEADER, ""]

    if letterhead is not None:
        lines.extend(letterhead.lines())
        lines.extend(["", "=" * width, ""])

    lines.extend([
        f"Report: {title}",
        f"Generated: {generated_at}",
        f"Total Records: {len(records)}",
        "",
        "-" * width,
    ])

    headers = column_order(records, columns)
    if records and headers:
        lines.append(" | ".join(headers))
        lines.append("-" * width)
        for record in records:
            lines.append(" | ".join(display_value(record.get(h)) for h in headers))

    lines.extend(["", "-" * width, REPORT_FOOTER])
    return "\n".join(lines)


def to_api_page(
    records: Sequence[Mapping[str, Any]],
    collection: str,
    exported_at: str,
    page: int = 1,
    page_size: int = 50,
) -> tuple[str, int]:
    """Serialized envelope and the number of records on the page."""
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")
    start = (page - 1) * page_size
    page_records = list(records[start:start + page_size])
    envelope = {
        "data": page_records,
        "pagination": {
            "page": page,
            "pageSize": page_size,
            "totalRecords": len(records),
            "totalPages": math.ceil(len(records) / page_size),
        },
        "meta": {
            "collection": collection,
            "exportedAt": exported_at,
            "format": ExportFormat.API.value,
        },
    }
    return json.dumps(envelope, indent=2, default=str), len(page_records)
