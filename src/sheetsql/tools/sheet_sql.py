"""SQL tool facade: one entry point for SELECT / INSERT / UPDATE / DELETE.

Execution paths:

- Sheet-only SELECT (no FROM, no ``:virtual`` reference): header names are
  rewritten to column letters and the statement is forwarded to the
  Visualization API, so that dialect (``PIVOT``, ``LABEL``, ``ROW()``...)
  applies unchanged.
- Any other SELECT: local engine (virtual tables, JOINs, hybrid
  sheet + virtual queries).
- INSERT / UPDATE / DELETE: mutation executor, against a sheet range or
  a virtual table.

Credentials and the spreadsheet id are only resolved when a sheet-backed
table is actually involved; pure ``dataSources`` statements never touch
the network.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Mapping

from sheetsql.engine.mutations import execute_delete, execute_insert, execute_update
from sheetsql.engine.select import execute_local_select
from sheetsql.errors import SheetsApiError, ValidationError
from sheetsql.settings import Settings, load_settings
from sheetsql.sheets.auth import resolve_access_token
from sheetsql.sheets.client import SheetsClient
from sheetsql.sheets.loader import default_table_reference
from sheetsql.sheets.resolver import header_range, range_origin, resolve_spreadsheet_id, validate_range
from sheetsql.sql.clauses import (
    TableReference,
    classify_statement,
    parse_delete_statement,
    parse_from_clause,
    parse_insert_statement,
    parse_select_statement,
    parse_update_statement,
    referenced_virtual_tables,
)
from sheetsql.sql.columns import build_column_map, resolve_identifiers

logger = logging.getLogger(__name__)


def execute_sheet_sql(
    statement: str,
    range: str | None = None,
    spreadsheet_id: str | None = None,
    script_id: str | None = None,
    return_metadata: bool = False,
    data_sources: Mapping[str, Any] | None = None,
    access_token: str | None = None,
    settings: Settings | None = None,
    client: SheetsClient | None = None,
) -> dict[str, Any]:
    """Execute one SQL statement against a spreadsheet range and/or virtual tables.

    Args:
        statement:       SELECT / INSERT / UPDATE / DELETE text.
        range:           A1 range of the default sheet table (``Sheet1!A:F``).
        spreadsheet_id:  Spreadsheet id or full URL.
        script_id:       Container-bound Apps Script id, used when no spreadsheet id is given.
        return_metadata: For forwarded SELECTs, also return grid formatting metadata.
        data_sources:    Virtual tables, ``{name: [[headers...], [row...], ...]}``.
        access_token:    Bearer token; otherwise resolved from settings.
        settings:        Loaded configuration (``load_settings()`` when omitted).
        client:          Pre-built REST client (tests, connection reuse).

    Raises:
        ValidationError, AuthenticationError, SheetsApiError
    """
    if not statement or not statement.strip():
        raise ValidationError("statement", statement, "a SQL statement")
    if data_sources is not None and not isinstance(data_sources, Mapping):
        raise ValidationError("dataSources", data_sources, "an object mapping table names to 2D arrays")

    settings = settings or load_settings()
    sql = statement.strip().rstrip(";").strip()
    operation = classify_statement(sql)
    if range:
        range = validate_range(range)

    has_target = bool(spreadsheet_id or script_id)
    forward = operation == "SELECT" and _is_sheet_only_select(sql, data_sources, has_target)
    needs_sheet = forward or _references_sheet(operation, sql, data_sources, has_target, range)

    if forward and not range:
        raise ValidationError("range", range, 'A1 notation for the queried sheet (e.g., "Sheet1!A1:Z1000")')

    resolved_id: str | None = None
    if needs_sheet:
        if not has_target:
            raise ValidationError("spreadsheetId", spreadsheet_id, "a spreadsheetId or scriptId for sheet-backed tables")
        if client is None:
            client = SheetsClient(resolve_access_token(settings, access_token), settings.api)
        resolved_id = resolve_spreadsheet_id(client, spreadsheet_id, script_id)

    if forward:
        logger.debug("Forwarding SELECT to the Visualization API")
        return _forward_select(client, resolved_id, range, sql, return_metadata)

    logger.debug("Executing %s locally (sheet access: %s)", operation, needs_sheet)
    if operation == "SELECT":
        if return_metadata:
            logger.debug("returnMetadata is ignored for locally executed SELECT")
        default_table = None
        if not parse_select_statement(sql).from_clause:
            default_table = default_table_reference(data_sources, resolved_id, range)
        return execute_local_select(
            sql,
            data_sources=data_sources,
            client=client,
            spreadsheet_id=resolved_id,
            range_=range,
            max_rows=settings.advanced.max_rows,
            default_table=default_table,
        )
    if operation == "UPDATE":
        return execute_update(
            sql,
            data_sources=data_sources,
            client=client,
            spreadsheet_id=resolved_id,
            range_=range,
            max_cells_per_request=settings.batch.max_cells_per_request,
        )
    if operation == "DELETE":
        return execute_delete(sql, data_sources=data_sources, client=client, spreadsheet_id=resolved_id, range_=range)
    return execute_insert(sql, data_sources=data_sources, client=client, spreadsheet_id=resolved_id, range_=range)


def readiness_probe(settings: Settings) -> dict[str, Any]:
    """Build a lightweight readiness payload (no network calls)."""
    auth = settings.auth
    checks: dict[str, Any] = {
        "access_token_configured": bool(settings.access_token),
        "service_account_configured": bool(auth.service_account_path and os.path.exists(auth.service_account_path)),
        "token_file_configured": bool(auth.token_path and os.path.exists(auth.token_path)),
    }
    checks["credentials_configured"] = any(checks.values())
    checks["ready"] = True
    checks["max_cells_per_request"] = settings.batch.max_cells_per_request
    return checks


def _is_sheet_only_select(sql: str, data_sources: Mapping[str, Any] | None, has_target: bool) -> bool:
    if referenced_virtual_tables(sql):
        return False
    if parse_select_statement(sql).from_clause:
        return False
    # Bare SELECT with only dataSources: runs against the single virtual table
    return has_target or not data_sources


def _references_sheet(
    operation: str,
    sql: str,
    data_sources: Mapping[str, Any] | None,
    has_target: bool,
    range_: str | None,
) -> bool:
    """True when any table the statement touches is sheet-backed."""
    marker = "target" if has_target else None
    tables: list[TableReference] = []
    if operation == "SELECT":
        from_clause = parse_select_statement(sql).from_clause
        if from_clause:
            parsed_from = parse_from_clause(from_clause)
            tables = [parsed_from.table] + [join.table for join in parsed_from.joins]
    else:
        parse = {
            "UPDATE": parse_update_statement,
            "DELETE": parse_delete_statement,
            "INSERT": parse_insert_statement,
        }[operation]
        table = parse(sql).table
        tables = [table] if table else []
    if not tables:
        tables = [default_table_reference(data_sources, marker, range_)]
    return any(not table.is_virtual for table in tables)


def _forward_select(
    client: SheetsClient,
    spreadsheet_id: str,
    range_: str | None,
    sql: str,
    return_metadata: bool,
) -> dict[str, Any]:
    header_row = client.get_values(spreadsheet_id, header_range(range_))
    _, start_column = range_origin(range_)
    column_map = build_column_map([str(h) for h in (header_row[0] if header_row else [])], start_column)
    query = resolve_identifiers(sql, column_map)
    if query != sql:
        logger.debug("Resolved header names: %s", query)

    result: dict[str, Any] = {"operation": "SELECT", "data": client.query(spreadsheet_id, range_, query)}
    if return_metadata:
        try:
            result["metadata"] = client.get_grid_metadata(spreadsheet_id, range_)
        except SheetsApiError as e:
            logger.warning("Metadata request failed, returning data only: %s", e)
    return result
