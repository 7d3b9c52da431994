"""INSERT / UPDATE / DELETE execution.

Matching rows are always found locally: the target table is fetched, the
WHERE clause is evaluated per row, then ORDER BY and LIMIT pick the rows
to touch. Sheet-backed tables are written back through the Sheets API;
virtual tables return the modified 2D array instead.

- UPDATE writes one cell range per assignment with ``values:batchUpdate``,
  chunked by ``batch.max_cells_per_request``; chunks run in order and the
  first failing chunk aborts the rest.
- DELETE sends every ``deleteDimension`` request in a single
  ``spreadsheets:batchUpdate``, bottom row first, so row indices do not
  shift while deleting.
- INSERT appends with ``values:append``.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from sheetsql.engine.ordering import sort_rows
from sheetsql.errors import ValidationError
from sheetsql.sheets.client import SheetsClient
from sheetsql.sheets.loader import default_table_reference, load_table_data
from sheetsql.sql.clauses import (
    Assignment,
    TableReference,
    parse_delete_statement,
    parse_insert_statement,
    parse_order_by_clause,
    parse_set_clause,
    parse_update_statement,
    sheet_name_of,
)
from sheetsql.sql.columns import ColumnMap, column_to_index, resolve_column_names
from sheetsql.sql.evaluator import evaluate_where
from sheetsql.sql.expressions import evaluate_expression
from sheetsql.sql.parser import parse_where_clause
from sheetsql.table import MatchedRow, TableData

logger = logging.getLogger(__name__)

NO_MATCH_MESSAGE = "No rows matched WHERE clause"
DEFAULT_MAX_CELLS_PER_REQUEST = 50000


def find_matching_rows(
    table: TableData,
    column_map: ColumnMap,
    where_clause: str,
    order_by_clause: str | None = None,
    limit: int | None = None,
) -> list[MatchedRow]:
    """Rows satisfying WHERE, in natural (or ORDER BY) order, capped by LIMIT."""
    condition = parse_where_clause(resolve_column_names(where_clause, column_map))
    matches = [
        MatchedRow(row_number=table.row_number(position), row_data=row)
        for position, row in enumerate(table.rows)
        if evaluate_where(condition, row, column_map)
    ]
    if order_by_clause:
        terms = parse_order_by_clause(order_by_clause, column_map)
        keys = [(column_map.require_index(term.column), term.descending) for term in terms]
        matches = sort_rows(matches, keys, row_of=lambda match: match.row_data)
    if limit is not None:
        matches = matches[:limit]
    return matches


# ---------------------------------------------------------------------------
# UPDATE
# ---------------------------------------------------------------------------


def execute_update(
    statement: str,
    data_sources: Mapping[str, Any] | None = None,
    client: SheetsClient | None = None,
    spreadsheet_id: str | None = None,
    range_: str | None = None,
    max_cells_per_request: int = DEFAULT_MAX_CELLS_PER_REQUEST,
) -> dict[str, Any]:
    parsed = parse_update_statement(statement)
    table_ref = parsed.table or default_table_reference(data_sources, spreadsheet_id, range_)
    table = load_table_data(table_ref, data_sources, client, spreadsheet_id, range_)
    column_map = table.column_map()
    assignments = parse_set_clause(parsed.set_clause, column_map)

    matches = find_matching_rows(table, column_map, parsed.where_clause, parsed.order_by_clause, parsed.limit)

    if table_ref.is_virtual:
        rows = [list(row) for row in table.rows]
        for match in matches:
            row = rows[match.row_number]
            for assignment in assignments:
                _assign(row, column_map, assignment, match.row_data)
        logger.debug("UPDATE on virtual table %s changed %d rows", table_ref.name, len(matches))
        return {
            "operation": "UPDATE",
            "updatedRows": len(matches),
            "data": [list(table.headers)] + rows,
        }

    if not matches:
        return {
            "operation": "UPDATE",
            "updatedRows": 0,
            "updatedCells": 0,
            "message": NO_MATCH_MESSAGE,
            "hints": _no_match_hints(parsed.where_clause),
        }

    prefix = _sheet_prefix(_table_source(table_ref, range_))
    data = []
    for match in matches:
        for assignment in assignments:
            data.append(
                {
                    "range": f"{prefix}{assignment.column}{match.row_number}",
                    "values": [[_assigned_value(assignment, match.row_data)]],
                }
            )

    updated_cells = 0
    chunk_size = max(1, max_cells_per_request)
    for start in range(0, len(data), chunk_size):
        chunk = data[start:start + chunk_size]
        result = client.batch_update_values(spreadsheet_id, chunk)
        updated_cells += int(result.get("totalUpdatedCells", len(chunk)) or 0)

    logger.info("UPDATE wrote %d cells across %d rows", updated_cells, len(matches))
    return {
        "operation": "UPDATE",
        "updatedRows": len(matches),
        "updatedCells": updated_cells,
        "hints": [
            f"Updated rows: {_summarize_rows([m.row_number for m in matches])}",
            f"Verify with: SELECT * WHERE {parsed.where_clause}",
        ],
    }


def _assign(row: list[Any], column_map: ColumnMap, assignment: Assignment, source_row: Sequence[Any]) -> None:
    index = column_to_index(assignment.column) - column_map.start_index
    if index >= len(row):
        row.extend([None] * (index + 1 - len(row)))
    row[index] = _assigned_value(assignment, source_row)


def _assigned_value(assignment: Assignment, source_row: Sequence[Any]) -> Any:
    if assignment.expression is not None:
        return evaluate_expression(assignment.expression, source_row)
    return assignment.value


# ---------------------------------------------------------------------------
# DELETE
# ---------------------------------------------------------------------------


def execute_delete(
    statement: str,
    data_sources: Mapping[str, Any] | None = None,
    client: SheetsClient | None = None,
    spreadsheet_id: str | None = None,
    range_: str | None = None,
) -> dict[str, Any]:
    parsed = parse_delete_statement(statement)
    table_ref = parsed.table or default_table_reference(data_sources, spreadsheet_id, range_)
    table = load_table_data(table_ref, data_sources, client, spreadsheet_id, range_)
    column_map = table.column_map()

    matches = find_matching_rows(table, column_map, parsed.where_clause, parsed.order_by_clause, parsed.limit)

    if table_ref.is_virtual:
        doomed = {match.row_number for match in matches}
        remaining = [list(row) for position, row in enumerate(table.rows) if position not in doomed]
        logger.debug("DELETE on virtual table %s removed %d rows", table_ref.name, len(doomed))
        return {
            "operation": "DELETE",
            "deletedRows": len(doomed),
            "data": [list(table.headers)] + remaining,
        }

    if not matches:
        return {
            "operation": "DELETE",
            "deletedRows": 0,
            "rowNumbers": [],
            "message": NO_MATCH_MESSAGE,
            "hints": _no_match_hints(parsed.where_clause),
        }

    sheet_id = client.get_sheet_id(spreadsheet_id, sheet_name_of(_table_source(table_ref, range_)))
    row_numbers = sorted((match.row_number for match in matches), reverse=True)
    requests_ = [
        {
            "deleteDimension": {
                "range": {
                    "sheetId": sheet_id,
                    "dimension": "ROWS",
                    "startIndex": row_number - 1,
                    "endIndex": row_number,
                }
            }
        }
        for row_number in row_numbers
    ]
    client.batch_update(spreadsheet_id, requests_)

    logger.info("DELETE removed %d rows from sheet %s", len(row_numbers), sheet_id)
    return {
        "operation": "DELETE",
        "deletedRows": len(row_numbers),
        "rowNumbers": row_numbers,
        "hints": [
            "Rows below each deleted row moved up; re-read before using row numbers again",
        ],
    }


# ---------------------------------------------------------------------------
# INSERT
# ---------------------------------------------------------------------------


def execute_insert(
    statement: str,
    data_sources: Mapping[str, Any] | None = None,
    client: SheetsClient | None = None,
    spreadsheet_id: str | None = None,
    range_: str | None = None,
) -> dict[str, Any]:
    parsed = parse_insert_statement(statement)
    table_ref = parsed.table or default_table_reference(data_sources, spreadsheet_id, range_)

    table: TableData | None = None
    if table_ref.is_virtual or parsed.columns is not None:
        table = load_table_data(table_ref, data_sources, client, spreadsheet_id, range_)

    rows = [list(values) for values in parsed.rows]
    if parsed.columns is not None:
        rows = [_sparse_row(table, parsed.columns, values) for values in parsed.rows]

    if table_ref.is_virtual:
        width = len(table.headers)
        for row in rows:
            if len(row) > width:
                raise ValidationError("VALUES", row, f"at most {width} values for table '{table_ref.name}'")
            row.extend([None] * (width - len(row)))
        logger.debug("INSERT into virtual table %s added %d rows", table_ref.name, len(rows))
        return {
            "operation": "INSERT",
            "updatedRows": len(rows),
            "data": [list(table.headers)] + [list(r) for r in table.rows] + rows,
        }

    source = _table_source(table_ref, range_)
    if client is None or not spreadsheet_id:
        raise ValidationError("spreadsheetId", spreadsheet_id, f"spreadsheetId and credentials to insert into '{source}'")
    updates = client.append_values(spreadsheet_id, source, rows)

    logger.info("INSERT appended %s rows at %s", updates.get("updatedRows"), updates.get("updatedRange"))
    return {
        "operation": "INSERT",
        "updatedRange": updates.get("updatedRange"),
        "updatedRows": updates.get("updatedRows"),
        "updatedColumns": updates.get("updatedColumns"),
        "updatedCells": updates.get("updatedCells"),
        "hints": [f"Appended after the last row of {source}"],
    }


def _sparse_row(table: TableData, columns: Sequence[str], values: Sequence[Any]) -> list[Any]:
    """Place values by column name or letter, padding gaps with None."""
    column_map = table.column_map()
    indices = [column_map.require_index(column) for column in columns]
    row: list[Any] = [None] * (max(indices) + 1 if indices else 0)
    for index, value in zip(indices, values):
        row[index] = value
    return row


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _table_source(table_ref: TableReference, range_: str | None) -> str:
    if "!" in table_ref.source or ":" in table_ref.source:
        return table_ref.source
    return range_ or table_ref.source


def _sheet_prefix(range_: str) -> str:
    """``'My Sheet'!`` for cell references on the range's sheet; empty without one."""
    name = sheet_name_of(range_)
    if not name:
        return ""
    if name.replace("_", "").isalnum():
        return f"{name}!"
    return "'" + name.replace("'", "''") + "'!"


def _no_match_hints(where_clause: str) -> list[str]:
    return [
        f"WHERE {where_clause} matched no rows",
        "Quote text values and leave numbers unquoted; header names are case-insensitive",
    ]


def _summarize_rows(row_numbers: list[int], limit: int = 10) -> str:
    shown = ", ".join(str(n) for n in row_numbers[:limit])
    if len(row_numbers) > limit:
        shown += f", ... ({len(row_numbers) - limit} more)"
    return shown
