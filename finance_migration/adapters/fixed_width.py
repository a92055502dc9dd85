"""
Fixed-width text parser.

Every line, header included, is sliced by cumulative column widths; text
past the last width becomes one extra field.  Values are trimmed.
"""

from __future__ import annotations

from typing import Any, Sequence

from finance_migration.adapters.base import SourceSummary, summarize_rows, split_lines
from finance_migration.domain.types import SourceRow
from finance_migration.exceptions import SourceFormatError


def slice_fixed_width(line: str, widths: Sequence[int]) -> list[str]:
    fields: list[str] = []
    pos = 0
    for width in widths:
        fields.append(line[pos:pos + width].strip())
        pos += width
    if pos < len(line):
        fields.append(line[pos:].strip())
    return fields


def parse_fixed_width(content: str, widths: Sequence[int]) -> list[SourceRow]:
    if not widths:
        raise SourceFormatError("fixed", "column widths are required")
    if any(w <= 0 for w in widths):
        raise SourceFormatError("fixed", f"column widths must be positive: {list(widths)}")
    lines = split_lines(content)
    if len(lines) < 2:
        raise SourceFormatError("fixed", "expected a header line and at least one data line")
    headers = slice_fixed_width(lines[0], widths)
    return [SourceRow.from_pairs(headers, slice_fixed_width(line, widths)) for line in lines[1:]]


class FixedWidthSourceParser:
    """Options: ``column_widths`` (required)."""

    def parse(self, content: str, options: dict[str, Any]) -> list[SourceRow]:
        return parse_fixed_width(content, tuple(options.get("column_widths") or ()))

    def summarize(self, content: str, options: dict[str, Any]) -> SourceSummary:
        return summarize_rows(self.parse(content, options))
