"""
IIF (Intuit Interchange Format) parser.

Tab-separated.  A ``!``-prefixed line (``!TRNS``, ``!SPL``, ``!ENDTRNS``,
``!ACCNT``...) declares the column schema of its record type and makes that
type active.  A data line whose first cell is TRNS/SPL/ENDTRNS maps the
remaining cells under its own type's schema and carries that marker as its
record type; any other data line maps all cells under the active schema.
"""

from __future__ import annotations

from typing import Any

from finance_migration.adapters.base import SourceSummary, summarize_rows, split_lines
from finance_migration.domain.types import SourceRow
from finance_migration.exceptions import SourceFormatError

TRANSACTION_MARKERS = ("TRNS", "SPL", "ENDTRNS")


def parse_iif(content: str) -> list[SourceRow]:
    schemas: dict[str, list[str]] = {}
    headers: list[str] = []
    current_type: str | None = None
    saw_header = False
    rows: list[SourceRow] = []

    for line in split_lines(content):
        parts = line.split("\t")
        marker = parts[0].strip()

        if marker.startswith("!"):
            headers = [h.strip() for h in parts[1:]]
            current_type = marker[1:]
            schemas[current_type] = headers
            saw_header = True
            continue

        if marker in TRANSACTION_MARKERS:
            values, record_type = parts[1:], marker
            columns = schemas.get(marker, headers)
        else:
            values, record_type, columns = parts, current_type, headers

        pairs = tuple(
            (columns[i], values[i].strip())
            for i in range(min(len(columns), len(values)))
        )
        rows.append(SourceRow(fields=pairs, record_type=record_type))

    if not saw_header:
        raise SourceFormatError("iif", "no '!' header line found")
    if not rows:
        raise SourceFormatError("iif", "no data lines found")
    return rows


class IifSourceParser:
    def parse(self, content: str, options: dict[str, Any]) -> list[SourceRow]:
        return parse_iif(content)

    def summarize(self, content: str, options: dict[str, Any]) -> SourceSummary:
        return summarize_rows(parse_iif(content), "\t")
