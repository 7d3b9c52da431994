"""MCP server for sheetsql using FastMCP.

Exposes the SQL engine as a single MCP tool (``sheet_sql``) so any MCP
client can query and modify Google Sheets ranges, or run the same SQL over
in-memory ``dataSources`` tables.

Usage:
    # Start with stdio transport (default for MCP)
    python -m app.mcp

    # Or via CLI
    sheetsql mcp

    # Connect from Cursor, Claude Desktop, or other MCP clients
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import typer
from dotenv import load_dotenv
from fastmcp import FastMCP

from sheetsql.errors import SheetSqlError
from sheetsql.results import tool_error
from sheetsql.settings import load_settings
from sheetsql.tools.sheet_sql import execute_sheet_sql, readiness_probe

# Load .env before reading settings
_env_candidates = [Path(__file__).resolve().parent.parent / ".env", Path.cwd() / ".env"]
for _p in _env_candidates:
    if _p.exists():
        load_dotenv(_p, override=True)
        break
else:
    load_dotenv(override=True)

# Configure logging to stderr only (MCP uses stdout for JSON-RPC in stdio mode)
_settings = load_settings()
_log_level = str(_settings.advanced.log_level).upper()
logging.basicConfig(
    level=getattr(logging, _log_level, logging.INFO),
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

# Initialize FastMCP server
mcp = FastMCP("sheetsql")


# ---------------------------------------------------------------------------
# MCP Tools - SQL
# ---------------------------------------------------------------------------


@mcp.tool()
def sheet_sql(
    statement: str,
    range: str | None = None,
    spreadsheetId: str | None = None,
    scriptId: str | None = None,
    returnMetadata: bool = False,
    dataSources: dict[str, list[list[Any]]] | None = None,
) -> dict[str, Any]:
    """Run SQL against a Google Sheets range and/or in-memory tables.

    Statements:
        SELECT * WHERE Amount > 100 ORDER BY Amount DESC LIMIT 10
        SELECT Region, SUM(Amount) GROUP BY Region HAVING SUM(Amount) > 1000
        SELECT o.id, c.name FROM :orders o LEFT JOIN :customers c ON o.customer_id = c.id
        INSERT VALUES ('Alice', 30)  /  INSERT INTO (Name, Age) VALUES ('Bob', 25), ('Eve', 41)
        UPDATE SET Status = 'done' WHERE Id = 7  (WHERE is required; use WHERE true for all rows)
        DELETE WHERE Age < 18 ORDER BY Age LIMIT 5

    Columns can be referenced by letter (A, B) or by header name; header names
    are case-insensitive. SELECTs on the sheet alone go to the Google
    Visualization API (ROW(), PIVOT, LABEL allowed there); SELECTs that use
    FROM, :virtual tables or JOINs run locally.

    Args:
        statement: SQL statement.
        range: A1 range of the sheet table, e.g. "Sheet1!A1:F" (required for sheet-backed statements).
        spreadsheetId: Spreadsheet id or URL.
        scriptId: Container-bound Apps Script id, used instead of spreadsheetId.
        returnMetadata: Also return cell formatting metadata (sheet-only SELECT).
        dataSources: Virtual tables {name: [[header, ...], [value, ...], ...]}, referenced as :name.

    Returns SELECT {"operation", "data": {"cols", "rows"}}; INSERT/UPDATE/DELETE
    row counts and hints; virtual-table mutations return the modified "data" array.
    """
    try:
        return execute_sheet_sql(
            statement,
            range=range,
            spreadsheet_id=spreadsheetId,
            script_id=scriptId,
            return_metadata=returnMetadata,
            data_sources=dataSources,
            settings=_settings,
        )
    except SheetSqlError as e:
        logger.info("sheet_sql failed (%s): %s", e.error_code, e.message)
        return tool_error(e.message, e.error_code)


@mcp.tool()
def health_check() -> dict[str, Any]:
    """Return MCP runtime health status."""
    payload = readiness_probe(_settings)
    payload["service"] = "mcp"
    return payload


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def run_server(
    transport: str = "stdio",
    host: str = "127.0.0.1",
    port: int = 8000,
) -> None:
    """Run the MCP server with stdio (default) or HTTP transport.

    Args:
        transport: 'stdio' for local Cursor/Claude, 'http' for shared server.
        host: Bind host for HTTP mode (ignored in stdio).
        port: Bind port for HTTP mode (ignored in stdio).
    """
    if transport == "http":
        logger.info("Starting sheetsql MCP server (HTTP) at http://%s:%s/mcp", host, port)
        mcp.run(transport="http", host=host, port=port)
    else:
        logger.info("Starting sheetsql MCP server (stdio)...")
        mcp.run(show_banner=False)


if __name__ == "__main__":
    typer.run(run_server)
