"""Local SELECT pipeline for virtual tables and JOINs.

Stages: load FROM table, apply JOINs, filter with WHERE, then either
aggregate (GROUP BY / aggregate functions) or project, then ORDER BY,
OFFSET and LIMIT. The result uses the Visualization API table shape
(``{"cols": [...], "rows": [{"c": [{"v": ...}]}]}``) so callers see the
same structure as for forwarded queries.

Visualization-only features (PIVOT, LABEL, FORMAT, OPTIONS, ``ROW()``)
are rejected here rather than silently ignored.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Mapping, Sequence

from sheetsql.engine.aggregate import contains_aggregate, execute_group_by
from sheetsql.engine.join import perform_join
from sheetsql.engine.ordering import apply_offset_limit, sort_rows
from sheetsql.errors import ValidationError
from sheetsql.sheets.client import SheetsClient
from sheetsql.sheets.loader import load_table_data
from sheetsql.sql.clauses import (
    SelectItem,
    TableReference,
    parse_from_clause,
    parse_limit_clause,
    parse_order_by_clause,
    parse_select_list,
    parse_select_statement,
)
from sheetsql.sql.columns import ColumnMap, resolve_column_names
from sheetsql.sql.evaluator import evaluate_where
from sheetsql.sql.expressions import evaluate_expression, is_expression, parse_expression
from sheetsql.sql.parser import parse_where_clause
from sheetsql.table import ResultColumn, TableData

logger = logging.getLogger(__name__)

_ROW_FUNCTION_RE = re.compile(r"\bROW\s*\(\s*\)", re.IGNORECASE)


def execute_local_select(
    statement: str,
    data_sources: Mapping[str, Any] | None = None,
    client: SheetsClient | None = None,
    spreadsheet_id: str | None = None,
    range_: str | None = None,
    max_rows: int = 0,
    default_table: TableReference | None = None,
) -> dict[str, Any]:
    """Run a SELECT in memory and return ``{"operation": "SELECT", "data": table}``.

    ``default_table`` stands in for a missing FROM clause; without it the
    sheet given by ``range_`` is read.
    """
    parsed = parse_select_statement(statement)
    if parsed.unsupported:
        raise ValidationError(
            "SELECT clause",
            ", ".join(parsed.unsupported),
            "clauses supported for virtual tables and JOINs (no PIVOT, LABEL, FORMAT or OPTIONS)",
        )
    if _ROW_FUNCTION_RE.search(_strip_literals(statement)):
        raise ValidationError("SELECT", "ROW()", "column references; ROW() is only available for sheet-only queries")

    table = _load_from(parsed.from_clause, data_sources, client, spreadsheet_id, range_, default_table)
    column_map = table.column_map()

    rows: list[list[Any]] = table.rows
    if parsed.where:
        condition = parse_where_clause(resolve_column_names(parsed.where, column_map))
        rows = [row for row in rows if evaluate_where(condition, row, column_map)]

    items = parse_select_list(parsed.select)
    limit = parse_limit_clause(parsed.limit) if parsed.limit is not None else None
    offset = parse_limit_clause(parsed.offset, "OFFSET") if parsed.offset is not None else None

    if parsed.group_by or parsed.having or any(contains_aggregate(item.expression) for item in items):
        grouped = execute_group_by(
            rows,
            column_map,
            items,
            group_by=parsed.group_by,
            having=parsed.having,
            order_by=parsed.order_by,
            limit=limit,
            offset=offset,
        )
        columns, result_rows = grouped.columns, grouped.rows
    else:
        if parsed.order_by:
            terms = parse_order_by_clause(parsed.order_by, _with_aliases(column_map, items))
            rows = sort_rows(rows, [(column_map.require_index(t.column), t.descending) for t in terms])
        rows = apply_offset_limit(rows, offset, limit)
        columns, result_rows = project_rows(table, column_map, items, rows)

    if max_rows and len(result_rows) > max_rows:
        logger.warning("Local SELECT truncated from %d to %d rows (advanced.max_rows)", len(result_rows), max_rows)
        result_rows = result_rows[:max_rows]

    logger.debug("Local SELECT returned %d rows", len(result_rows))
    return {"operation": "SELECT", "data": format_table(columns, result_rows)}


def _load_from(
    from_clause: str | None,
    data_sources: Mapping[str, Any] | None,
    client: SheetsClient | None,
    spreadsheet_id: str | None,
    range_: str | None,
    default_table: TableReference | None = None,
) -> TableData:
    if not from_clause:
        if default_table is None and not range_:
            raise ValidationError("FROM clause", None, "a FROM table or a range")
        table_ref = default_table or TableReference(type="sheet", name=None, source=range_)
        return load_table_data(table_ref, data_sources, client, spreadsheet_id, range_)

    parsed_from = parse_from_clause(from_clause)
    table = load_table_data(parsed_from.table, data_sources, client, spreadsheet_id, range_)
    for join in parsed_from.joins:
        right = load_table_data(join.table, data_sources, client, spreadsheet_id, range_)
        table = perform_join(table, right, join.on, join.type)
    return table


def project_rows(
    table: TableData,
    column_map: ColumnMap,
    items: Sequence[SelectItem],
    rows: Sequence[Sequence[Any]],
) -> tuple[list[ResultColumn], list[list[Any]]]:
    """Evaluate a non-aggregate select list: ``*``, columns and arithmetic."""
    columns: list[ResultColumn] = []
    getters = []
    for item in items:
        text = item.expression.strip()
        if text == "*":
            for index, header in enumerate(table.headers):
                columns.append(ResultColumn(id=column_map.letter_at(index), label=header))
                getters.append(lambda row, i=index: _cell(row, i))
            continue

        index = column_map.index_of(text)
        if index is not None:
            label = item.alias or (table.headers[index] if index < len(table.headers) and table.headers[index] else text)
            columns.append(ResultColumn(id=column_map.letter_at(index), label=label))
            getters.append(lambda row, i=index: _cell(row, i))
        elif is_expression(text):
            expression = parse_expression(text, column_map)
            columns.append(ResultColumn(id=text, label=item.alias or text))
            getters.append(lambda row, e=expression: evaluate_expression(e, row))
        else:
            raise ValidationError("SELECT column", text, "a column letter, header name, alias.column or expression")

    return columns, [[get(row) for get in getters] for row in rows]


def format_table(columns: Sequence[ResultColumn], rows: Sequence[Sequence[Any]]) -> dict[str, Any]:
    """Build the ``cols``/``rows`` table structure of the Visualization API."""
    return {
        "cols": [
            {"id": column.id, "label": column.label, "type": _column_type([_cell(r, i) for r in rows])}
            for i, column in enumerate(columns)
        ],
        "rows": [{"c": [{"v": value} for value in row]} for row in rows],
    }


def _column_type(values: list[Any]) -> str:
    present = [v for v in values if v is not None and v != ""]
    if present and all(isinstance(v, bool) for v in present):
        return "boolean"
    if present and all(not isinstance(v, bool) and isinstance(v, (int, float)) for v in present):
        return "number"
    return "string"


def _with_aliases(column_map: ColumnMap, items: Sequence[SelectItem]) -> ColumnMap:
    """Column map extended with select-list aliases of plain columns."""
    entries = dict(column_map.entries)
    for item in items:
        if item.alias and item.expression.strip() in column_map:
            entries.setdefault(item.alias.strip().lower(), column_map.get(item.expression.strip()))
    return ColumnMap(entries=entries, start_index=column_map.start_index)


def _strip_literals(text: str) -> str:
    return re.sub(r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\"", "''", text)


def _cell(row: Sequence[Any], index: int) -> Any:
    return row[index] if 0 <= index < len(row) else None
