"""
In-process query evaluation shared by the store backends.

Operators: ``=``, ``!=``, ``<``, ``<=``, ``>``, ``>=``, ``in``, ``contains``,
``between`` (value is a (low, high) pair, inclusive), ``isNull``,
``isNotNull``.  Comparisons between incomparable types are false.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable

OPERATORS = ("=", "!=", "<", "<=", ">", ">=", "in", "contains", "between", "isNull", "isNotNull")


def _compare(left: Any, right: Any, fn: Callable[[Any, Any], bool]) -> bool:
    try:
        return fn(left, right)
    except TypeError:
        return False


def matches(record: dict[str, Any], field: str, op: str, value: Any) -> bool:
    actual = record.get(field)
    if op == "=":
        return actual == value
    if op == "!=":
        return actual != value
    if op == "isNull":
        return actual is None
    if op == "isNotNull":
        return actual is not None
    if actual is None:
        return False
    if op == "<":
        return _compare(actual, value, lambda a, b: a < b)
    if op == "<=":
        return _compare(actual, value, lambda a, b: a <= b)
    if op == ">":
        return _compare(actual, value, lambda a, b: a > b)
    if op == ">=":
        return _compare(actual, value, lambda a, b: a >= b)
    if op == "in":
        return actual in value
    if op == "contains":
        return str(value) in str(actual)
    if op == "between":
        low, high = value
        return _compare(actual, (low, high), lambda a, b: b[0] <= a <= b[1])
    raise ValueError(f"Unsupported query operator: {op!r}")


def _sort_key(value: Any) -> tuple[int, Any]:
    # None sorts last; numbers before strings so mixed columns do not raise.
    if value is None:
        return (2, "")
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return (0, value)
    return (1, str(value))


class Query:
    """Chainable filter over a record loader.

    The loader is called once per ``execute``/``count``/``first`` so results
    always reflect the current collection contents.
    """

    def __init__(self, loader: Callable[[], list[dict[str, Any]]]):
        self._loader = loader
        self._filters: list[tuple[str, str, Any]] = []
        self._order: list[tuple[str, bool]] = []
        self._limit: int | None = None
        self._offset = 0

    def where(self, field: str, op: str, value: Any = None) -> Query:
        if op not in OPERATORS:
            raise ValueError(f"Unsupported query operator: {op!r}")
        self._filters.append((field, op, value))
        return self

    def order_by(self, field: str, direction: str = "asc") -> Query:
        if direction not in ("asc", "desc"):
            raise ValueError(f"Sort direction must be 'asc' or 'desc', got {direction!r}")
        self._order.append((field, direction == "desc"))
        return self

    def limit(self, n: int) -> Query:
        self._limit = n
        return self

    def offset(self, n: int) -> Query:
        self._offset = n
        return self

    def _filtered(self) -> list[dict[str, Any]]:
        return [
            rec for rec in self._loader()
            if all(matches(rec, f, op, v) for f, op, v in self._filters)
        ]

    def execute(self) -> list[dict[str, Any]]:
        rows = self._filtered()
        # Stable sorts applied last-key-first give multi-key ordering.
        for field, descending in reversed(self._order):
            rows.sort(key=lambda r: _sort_key(r.get(field)), reverse=descending)
        rows = rows[self._offset:]
        if self._limit is not None:
            rows = rows[:self._limit]
        return rows

    def first(self) -> dict[str, Any] | None:
        rows = self.limit(1).execute()
        return rows[0] if rows else None

    def count(self) -> int:
        return len(self._filtered())
