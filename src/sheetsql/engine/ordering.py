"""ORDER BY / OFFSET / LIMIT over in-memory rows."""
from __future__ import annotations

from typing import Any, Callable, Sequence, TypeVar

from sheetsql.sql.evaluator import to_number

T = TypeVar("T")


def sort_rows(
    items: Sequence[T],
    terms: Sequence[tuple[int, bool]],
    row_of: Callable[[T], Sequence[Any]] = lambda item: item,  # type: ignore[assignment,return-value]
) -> list[T]:
    """Stable multi-key sort; ``terms`` are ``(row_position, descending)`` pairs.

    Nulls sort first ascending, then numbers, then text.
    """
    ordered = list(items)
    for index, descending in reversed(terms):
        ordered.sort(key=lambda item: sort_key(_cell(row_of(item), index)), reverse=descending)
    return ordered


def sort_key(value: Any) -> tuple:
    if value is None or value == "":
        return (0,)
    number = to_number(value)
    if number is not None:
        return (1, number)
    if isinstance(value, bool):
        return (2, "true" if value else "false")
    return (2, str(value))


def apply_offset_limit(items: list[T], offset: int | None = None, limit: int | None = None) -> list[T]:
    start = offset or 0
    if limit is None:
        return items[start:]
    return items[start:start + limit]


def _cell(row: Sequence[Any], index: int) -> Any:
    return row[index] if 0 <= index < len(row) else None
