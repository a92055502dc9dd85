"""
Source parser protocol and summary DTO.

Contract:
    SourceParser.parse() turns raw text into SourceRow objects, first line as
    header, blank lines skipped.  Malformed content raises SourceFormatError.
    SourceParser.summarize() returns a quick snapshot: row count, columns, samples.

Architecture: finance_migration/adapters. Text in, rows out; no store access.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, Sequence, runtime_checkable

from finance_migration.domain.types import SourceRow

SAMPLE_SIZE = 5


@runtime_checkable
class SourceParser(Protocol):
    """Protocol for parsing raw export content into source rows."""

    def parse(self, content: str, options: dict[str, Any]) -> list[SourceRow]:
        ...

    def summarize(self, content: str, options: dict[str, Any]) -> "SourceSummary":
        ...


@dataclass(frozen=True)
class SourceSummary:
    """Quick summary of parsed content (row count, columns, first N rows)."""

    row_count: int
    columns: tuple[str, ...]
    sample_rows: tuple[SourceRow, ...]
    detected_delimiter: str | None = None


def summarize_rows(rows: Sequence[SourceRow], delimiter: str | None = None) -> SourceSummary:
    columns: dict[str, None] = {}
    for row in rows:
        columns.update(dict.fromkeys(row.field_names()))
    return SourceSummary(
        row_count=len(rows),
        columns=tuple(columns),
        sample_rows=tuple(rows[:SAMPLE_SIZE]),
        detected_delimiter=delimiter,
    )


def split_lines(content: str) -> list[str]:
    """Split on CRLF/LF and drop blank (whitespace-only) lines."""
    return [line for line in content.replace("\r\n", "\n").split("\n") if line.strip()]
