"""
Delimited text parser and writer (comma, tab, pipe, semicolon).

A double-quoted field may contain the delimiter, line breaks and doubled
quotes (``""`` -> ``"``); whitespace inside the quotes is kept.  Unquoted
fields are trimmed and blank lines skipped.  The writer quotes a field when
it contains the delimiter, a quote, ``\\n`` or ``\\r``, or has surrounding
whitespace, and writes an empty single-column record as ``""``, so
parse(format(rows)) is lossless.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Mapping, Sequence

from finance_migration.adapters.base import SourceSummary, summarize_rows
from finance_migration.domain.types import SourceRow
from finance_migration.exceptions import SourceFormatError
from finance_migration.mapping.engine import display_value

DEFAULT_DELIMITER = ","
DELIMITER_CANDIDATES = (",", "\t", "|", ";")
QUOTE = '"'


def detect_delimiter(
    content: str,
    candidates: Sequence[str] = DELIMITER_CANDIDATES,
) -> str:
    """Most frequent candidate on the first line; ties keep the earlier one."""
    first_line = content.replace("\r\n", "\n").split("\n", 1)[0]
    best, best_count = DEFAULT_DELIMITER, 0
    for delim in candidates:
        count = first_line.count(delim)
        if count > best_count:
            best, best_count = delim, count
    return best


class _Field:
    __slots__ = ("chars", "quote_start", "quote_end")

    def __init__(self) -> None:
        self.chars: list[str] = []
        self.quote_start: int | None = None
        self.quote_end = 0

    def open_quote(self) -> None:
        if self.quote_start is None:
            self.quote_start = len(self.chars)

    def close_quote(self) -> None:
        self.quote_end = len(self.chars)

    def value(self) -> str:
        text = "".join(self.chars)
        if self.quote_start is None:
            return text.strip()
        # Only the unquoted text outside the quoted span is trimmed.
        start, end = self.quote_start, self.quote_end
        return text[:start].lstrip() + text[start:end] + text[end:].rstrip()

    def is_blank(self) -> bool:
        return self.quote_start is None and not "".join(self.chars).strip()


def iter_records(content: str, delimiter: str) -> Iterator[list[str]]:
    """Yield one field list per logical record; blank lines are skipped.

    An unescaped quote toggles the in-quotes state anywhere in a field.
    """
    fields: list[_Field] = []
    current = _Field()
    in_quotes = False
    i, n = 0, len(content)

    def finish_record() -> list[str] | None:
        record = fields + [current]
        if len(record) == 1 and record[0].is_blank():
            return None
        return [f.value() for f in record]

    while i < n:
        c = content[i]
        if in_quotes:
            if c == QUOTE:
                if i + 1 < n and content[i + 1] == QUOTE:
                    current.chars.append(QUOTE)
                    i += 2
                    continue
                in_quotes = False
                current.close_quote()
            else:
                current.chars.append(c)
            i += 1
            continue

        if c == delimiter:
            fields.append(current)
            current = _Field()
        elif c in "\r\n":
            record = finish_record()
            if record is not None:
                yield record
            fields, current = [], _Field()
            if c == "\r" and i + 1 < n and content[i + 1] == "\n":
                i += 1
        elif c == QUOTE:
            current.open_quote()
            in_quotes = True
        else:
            current.chars.append(c)
        i += 1

    if in_quotes:
        current.close_quote()
    record = finish_record()
    if record is not None:
        yield record


def split_records(content: str, delimiter: str) -> list[list[str]]:
    """Split content into field lists, one per logical record."""
    return list(iter_records(content, delimiter))


def first_record(content: str, delimiter: str) -> list[str]:
    """The first non-blank record, or [] for blank content."""
    return next(iter_records(content, delimiter), [])


def parse_delimited(content: str, delimiter: str | None = None) -> list[SourceRow]:
    """Parse header + data records; missing trailing values become ''."""
    delim = delimiter or detect_delimiter(content)
    records = split_records(content, delim)
    if len(records) < 2:
        raise SourceFormatError(
            "delimited", "expected a header line and at least one data line"
        )
    headers = records[0]
    return [SourceRow.from_pairs(headers, values) for values in records[1:]]


def escape_field(value: Any, delimiter: str) -> str:
    text = display_value(value)
    if (
        delimiter in text
        or QUOTE in text
        or "\n" in text
        or "\r" in text
        or text != text.strip()
    ):
        return '"' + text.replace('"', '""') + '"'
    return text


def format_delimited(
    records: Iterable[Mapping[str, Any]],
    columns: Sequence[str],
    delimiter: str = DEFAULT_DELIMITER,
) -> str:
    """Header line of ``columns`` then one line per record, joined by ``\\n``."""
    lines = [delimiter.join(escape_field(c, delimiter) for c in columns)]
    for record in records:
        line = delimiter.join(escape_field(record.get(c), delimiter) for c in columns)
        # A bare empty line would read back as a blank line.
        lines.append(line or QUOTE * 2)
    return "\n".join(lines)


class DelimitedSourceParser:
    """Parse delimited text. Options: ``delimiter`` (detected when absent)."""

    def __init__(self, default_delimiter: str | None = None):
        self._default_delimiter = default_delimiter

    def parse(self, content: str, options: dict[str, Any]) -> list[SourceRow]:
        delimiter = options.get("delimiter") or self._default_delimiter
        return parse_delimited(content, delimiter)

    def summarize(self, content: str, options: dict[str, Any]) -> SourceSummary:
        delimiter = (
            options.get("delimiter") or self._default_delimiter or detect_delimiter(content)
        )
        return summarize_rows(parse_delimited(content, delimiter), delimiter)
