"""Nested-loop joins between loaded tables.

Tables are spreadsheet-sized, so every join is a plain O(n*m) loop; no
hash or sort-merge strategy is attempted.

The combined table keeps both header lists side by side, together with
each column's table qualifiers, so ``alias.column`` references keep
working on the joined result.
"""
from __future__ import annotations

import logging
from typing import Any, Sequence

from sheetsql.errors import ValidationError
from sheetsql.sql.clauses import parse_join_condition
from sheetsql.sql.columns import COLUMN_LETTERS_RE, column_to_index
from sheetsql.table import TableData

logger = logging.getLogger(__name__)


def perform_join(left: TableData, right: TableData, on_condition: str, join_type: str = "JOIN") -> TableData:
    """Join ``right`` onto ``left`` by an ``alias.column = alias.column`` condition.

    Args:
        left:         Main table (or the result of previous joins).
        right:        Newly loaded JOIN operand; its qualifiers name the table.
        on_condition: Raw ON text.
        join_type:    ``JOIN`` (inner), ``LEFT JOIN`` or ``RIGHT JOIN``.
    """
    condition = parse_join_condition(on_condition)
    sides = [
        (condition.left_qualifier, condition.left_column),
        (condition.right_qualifier, condition.right_column),
    ]

    left_index: int | None = None
    right_index: int | None = None
    for qualifier, column in sides:
        if _qualifies(right, qualifier) and right_index is None:
            right_index = _resolve_in_table(right, qualifier, column, on_condition)
        else:
            left_index = _resolve_in_table(left, qualifier, column, on_condition)
    if left_index is None or right_index is None:
        raise ValidationError("JOIN condition", on_condition, "one column from each joined table")

    left_width = len(left.headers)
    right_width = len(right.headers)
    rows: list[list[Any]] = []

    if join_type == "RIGHT JOIN":
        for right_row in right.rows:
            matched = False
            key = _join_key(_cell(right_row, right_index))
            for left_row in left.rows:
                if _join_key(_cell(left_row, left_index)) == key:
                    rows.append(_pad(left_row, left_width) + _pad(right_row, right_width))
                    matched = True
            if not matched:
                rows.append([None] * left_width + _pad(right_row, right_width))
    elif join_type in ("JOIN", "LEFT JOIN"):
        for left_row in left.rows:
            matched = False
            key = _join_key(_cell(left_row, left_index))
            for right_row in right.rows:
                if _join_key(_cell(right_row, right_index)) == key:
                    rows.append(_pad(left_row, left_width) + _pad(right_row, right_width))
                    matched = True
            if not matched and join_type == "LEFT JOIN":
                rows.append(_pad(left_row, left_width) + [None] * right_width)
    else:
        raise ValidationError("join type", join_type, "JOIN, LEFT JOIN or RIGHT JOIN")

    logger.debug("%s on %s produced %d rows", join_type, on_condition, len(rows))
    return TableData(
        headers=left.headers + right.headers,
        rows=rows,
        qualifiers=_qualifiers(left) + _qualifiers(right),
    )


def _qualifiers(table: TableData) -> tuple[tuple[str, ...], ...]:
    if table.qualifiers:
        return table.qualifiers
    return tuple(() for _ in table.headers)


def _qualifies(table: TableData, qualifier: str) -> bool:
    wanted = qualifier.lower()
    return any(wanted in (q.lower() for q in quals) for quals in _qualifiers(table))


def _resolve_in_table(table: TableData, qualifier: str, column: str, on_condition: str) -> int:
    """Column position by header within the qualified table, then by column letter."""
    wanted_qualifier = qualifier.lower()
    wanted_column = column.strip().lower()
    owned = [
        i for i, quals in enumerate(_qualifiers(table))
        if wanted_qualifier in (q.lower() for q in quals)
    ]
    if not owned:
        raise ValidationError("JOIN condition", on_condition, f"a known table alias (unknown '{qualifier}')")

    for i in owned:
        if table.headers[i].strip().lower() == wanted_column:
            return i

    if COLUMN_LETTERS_RE.match(column.upper()):
        offset = column_to_index(column) - (table.start_index if len(owned) == len(table.headers) else 0)
        if 0 <= offset < len(owned):
            return owned[offset]

    raise ValidationError("JOIN column", f"{qualifier}.{column}", "a header name or column letter of that table")


def _cell(row: Sequence[Any], index: int) -> Any:
    return row[index] if index < len(row) else None


def _pad(row: Sequence[Any], width: int) -> list[Any]:
    values = list(row[:width])
    return values + [None] * (width - len(values))


def _join_key(value: Any) -> str:
    """Case-insensitive text key; null and empty compare equal."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip().lower()
