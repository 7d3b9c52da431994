"""Row-level evaluation of WHERE/HAVING ASTs.

Comparison rules, first match wins:

1. Date target: the cell is parsed as an ISO date, timestamp or common
   date string and compared by epoch milliseconds.
2. Numeric target and numeric cell: numeric comparison.
3. Otherwise: case-sensitive string comparison, with ``contains`` /
   ``starts with`` / ``ends with`` as substring tests.

Null cells (missing, ``None`` or empty string) only satisfy ``= NULL``;
every other operator involving a null operand is false.
"""
from __future__ import annotations

import operator
from datetime import date, datetime
from typing import Any, Callable, Sequence

from sheetsql.errors import ValidationError
from sheetsql.sql.ast import And, Comparison, Constant, Node, NullCheck, Or
from sheetsql.sql.columns import COLUMN_LETTERS_RE, ColumnMap, column_to_index

_ORDERING_OPS: dict[str, Callable[[Any, Any], bool]] = {
    "=": operator.eq,
    "!=": operator.ne,
    "<>": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

_STRING_OPS: dict[str, Callable[[str, str], bool]] = {
    "contains": lambda cell, target: target in cell,
    "starts with": lambda cell, target: cell.startswith(target),
    "ends with": lambda cell, target: cell.endswith(target),
}

_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M:%S",
    "%d %b %Y",
    "%b %d, %Y",
    "%B %d, %Y",
)


def evaluate_where(node: Node, row: Sequence[Any], column_map: ColumnMap) -> bool:
    """Evaluate an AST against a single row."""
    if isinstance(node, Comparison):
        cell = get_cell(row, node.column, column_map)
        return compare_values(cell, node.operator, node.value)
    if isinstance(node, NullCheck):
        cell = get_cell(row, node.column, column_map)
        return (cell is None) == node.is_null
    if isinstance(node, And):
        return evaluate_where(node.left, row, column_map) and evaluate_where(node.right, row, column_map)
    if isinstance(node, Or):
        return evaluate_where(node.left, row, column_map) or evaluate_where(node.right, row, column_map)
    if isinstance(node, Constant):
        return node.value
    raise TypeError(f"Unknown AST node: {node!r}")


def get_cell(row: Sequence[Any], column: str, column_map: ColumnMap) -> Any:
    """Look up a cell by column reference; empty and missing cells are None."""
    index = column_map.index_of(column)
    if index is None:
        if not COLUMN_LETTERS_RE.match(column):
            raise ValidationError("column", column, "a column letter or header name of the table")
        index = column_to_index(column) - column_map.start_index
    if index < 0 or index >= len(row):
        return None
    value = row[index]
    if value is None or value == "":
        return None
    return value


def compare_values(cell: Any, op: str, target: Any) -> bool:
    op = op.lower()
    if cell is None or target is None:
        return op == "=" and cell is None and target is None

    if op in _STRING_OPS:
        return _STRING_OPS[op](_to_text(cell), _to_text(target))

    compare = _ORDERING_OPS.get(op)
    if compare is None:
        raise ValidationError("operator", op, "one of =, !=, <>, <, <=, >, >=, contains, starts with, ends with")

    if isinstance(target, datetime):
        parsed = parse_date(cell)
        if parsed is not None:
            return compare(_epoch_millis(parsed), _epoch_millis(target))

    if _is_number(target):
        number = to_number(cell)
        if number is not None:
            return compare(number, float(target))

    if isinstance(target, bool):
        flag = _to_bool(cell)
        if flag is not None and op in ("=", "!=", "<>"):
            return compare(flag, target)

    return compare(_to_text(cell), _to_text(target))


def parse_date(value: Any) -> datetime | None:
    """Parse an ISO date / timestamp / common date string; None if unparseable."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def to_number(value: Any) -> float | None:
    """Return value as float when it is numeric (or a numeric string)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return float(text)
        except ValueError:
            return None
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _epoch_millis(value: datetime) -> float:
    return value.timestamp() * 1000


def _to_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)
