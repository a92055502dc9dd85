"""
JSON source parser.

Accepts a top-level array of objects, an object with a ``data`` array, or a
single object (one row).  Scalar values become raw strings: None -> '',
booleans -> 'true'/'false', nested objects and arrays -> compact JSON.
"""

from __future__ import annotations

import json
from typing import Any

from finance_migration.adapters.base import SourceSummary, summarize_rows
from finance_migration.domain.types import SourceRow
from finance_migration.exceptions import SourceFormatError


def _raw_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def extract_objects(parsed: Any) -> list[Any]:
    """Return the list of row objects inside already-parsed JSON."""
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        data = parsed.get("data")
        if isinstance(data, list):
            return data
        return [parsed]
    raise SourceFormatError("json", "expected an array, an object with a data array, or an object")


def parse_json(content: str) -> list[SourceRow]:
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as exc:
        raise SourceFormatError("json", f"{exc.msg} at line {exc.lineno} column {exc.colno}") from exc

    rows: list[SourceRow] = []
    for i, obj in enumerate(extract_objects(parsed)):
        if not isinstance(obj, dict):
            raise SourceFormatError("json", f"element {i} is not an object")
        rows.append(SourceRow(fields=tuple((str(k), _raw_string(v)) for k, v in obj.items())))
    return rows


class JsonSourceParser:
    def parse(self, content: str, options: dict[str, Any]) -> list[SourceRow]:
        return parse_json(content)

    def summarize(self, content: str, options: dict[str, Any]) -> SourceSummary:
        return summarize_rows(parse_json(content))
