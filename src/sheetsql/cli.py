"""sheetsql CLI - run SQL statements against Google Sheets ranges and JSON tables.

Commands
--------
query    Execute one SELECT / INSERT / UPDATE / DELETE statement
config   Show the loaded configuration
mcp      Start the MCP server (stdio or HTTP)
"""
from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path
from typing import Any, Optional

import typer

from sheetsql.cli_format import print_info, print_section, print_select_table, print_status, print_virtual_table
from sheetsql.errors import SheetSqlError
from sheetsql.settings import load_settings
from sheetsql.tools.sheet_sql import execute_sheet_sql

app = typer.Typer(help="sheetsql CLI - Run SQL against Google Sheets ranges and virtual tables")
_MCP_SCRIPT = Path(__file__).resolve().parents[2] / "app" / "mcp.py"


def _load_data_sources(entries: list[str] | None) -> dict[str, Any] | None:
    """Parse ``name=path.json`` options into a dataSources mapping."""
    if not entries:
        return None
    sources: dict[str, Any] = {}
    for entry in entries:
        if "=" not in entry:
            typer.echo(f"❌ Invalid --data value '{entry}'. Use 'name=path.json'", err=True)
            raise typer.Exit(code=1)
        name, path = entry.split("=", 1)
        name = name.strip().lstrip(":")
        try:
            with open(Path(path.strip()).expanduser(), encoding="utf-8") as f:
                sources[name] = json.load(f)
        except (OSError, ValueError) as e:
            typer.echo(f"❌ Could not read table '{name}' from {path}: {e}", err=True)
            raise typer.Exit(code=1)
    return sources


# ---------------------------------------------------------------------------
# Core: Query
# ---------------------------------------------------------------------------


@app.command()
def query(
    statement: str = typer.Argument(..., help="SQL statement (SELECT, INSERT, UPDATE or DELETE)."),
    range_: Optional[str] = typer.Option(
        None,
        "--range",
        "-r",
        help='A1 range of the sheet table. Example: "Sheet1!A1:F"',
    ),
    spreadsheet_id: Optional[str] = typer.Option(
        None,
        "--spreadsheet-id",
        "-s",
        help="Spreadsheet id or full Google Sheets URL.",
    ),
    script_id: Optional[str] = typer.Option(
        None,
        "--script-id",
        help="Container-bound Apps Script id (resolved to its spreadsheet).",
    ),
    data: Optional[list[str]] = typer.Option(
        None,
        "--data",
        "-d",
        help='Virtual table as "name=path.json" (repeatable). Reference it as :name.',
    ),
    metadata: bool = typer.Option(
        False,
        "--metadata",
        help="Include grid formatting metadata (forwarded SELECT only).",
    ),
    json_out: bool = typer.Option(
        False,
        "--json",
        help="Output JSON for agent skills / scripting.",
    ),
) -> None:
    """Execute a SQL statement.

    Examples:
        # Filter a sheet by header name
        sheetsql query "SELECT * WHERE Amount > 100" -s <id> -r "Sheet1!A:F"

        # Join two local JSON tables
        sheetsql query "SELECT o.id, c.name FROM :orders o JOIN :customers c ON o.customer = c.id" \\
            -d orders=orders.json -d customers=customers.json

        # Update matching rows
        sheetsql query "UPDATE SET Status = 'done' WHERE Id = 7" -s <id> -r "Tasks!A:D"
    """
    data_sources = _load_data_sources(data)
    try:
        result = execute_sheet_sql(
            statement,
            range=range_,
            spreadsheet_id=spreadsheet_id,
            script_id=script_id,
            return_metadata=metadata,
            data_sources=data_sources,
        )
    except SheetSqlError as e:
        if json_out:
            typer.echo(json.dumps({"ok": False, "error": e.message, "error_code": e.error_code}, default=str))
        else:
            print_status("FAIL", e.message, err=True)
        raise typer.Exit(code=1)

    if json_out:
        typer.echo(json.dumps({"ok": True, **result}, default=str))
        return

    operation = result.get("operation")
    payload = result.get("data")
    if operation == "SELECT" and isinstance(payload, dict):
        rows = payload.get("rows") or []
        print_status("PASS", f"{len(rows)} row(s)")
        print_select_table(payload)
    elif isinstance(payload, list):
        count = result.get("updatedRows", result.get("deletedRows", 0))
        print_status("PASS", f"{operation}: {count} row(s) affected (virtual table, not persisted)")
        print_virtual_table(payload)
    else:
        count = result.get("updatedRows", result.get("deletedRows", 0))
        print_status("PASS", f"{operation}: {count} row(s) affected")
        if result.get("message"):
            print_info(result["message"])
    for hint in result.get("hints") or []:
        print_info(f"  - {hint}")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@app.command()
def config(
    json_out: bool = typer.Option(
        False,
        "--json",
        help="Output JSON for agent skills / scripting.",
    ),
) -> None:
    """Show loaded configuration (endpoints, batching, credential sources).

    Examples:
        sheetsql config
        sheetsql config --json
    """
    try:
        settings = load_settings()
    except (ValueError, OSError) as e:
        typer.echo(f"❌ Configuration error: {e}", err=True)
        raise typer.Exit(code=1)

    payload = {
        "project_root": str(settings.project_root),
        "project_config_path": str(settings.project_root / "sheetsql_project.yaml"),
        "api": {
            "sheets_base_url": settings.api.sheets_base_url,
            "gviz_base_url": settings.api.gviz_base_url,
            "timeout_seconds": settings.api.timeout_seconds,
        },
        "max_cells_per_request": settings.batch.max_cells_per_request,
        "auth": {
            "access_token": bool(settings.access_token),
            "service_account_path": settings.auth.service_account_path,
            "token_path": settings.auth.token_path,
            "scopes": settings.auth.scopes,
        },
        "log_level": settings.advanced.log_level,
        "max_rows": settings.advanced.max_rows,
    }

    if json_out:
        typer.echo(json.dumps(payload, default=str))
        return

    print_section("sheetsql configuration")
    typer.echo(f"Project root: {payload['project_root']}")
    typer.echo(f"Sheets API: {settings.api.sheets_base_url} (timeout {settings.api.timeout_seconds}s)")
    typer.echo(f"Cells per UPDATE request: {settings.batch.max_cells_per_request}")
    typer.echo("")
    typer.echo("Credentials:")
    typer.echo(f"  • Access token: {'set' if settings.access_token else 'not set'}")
    typer.echo(f"  • Service account: {settings.auth.service_account_path or 'not set'}")
    typer.echo(f"  • Authorized-user token: {settings.auth.token_path or 'not set'}")


# ---------------------------------------------------------------------------
# MCP server
# ---------------------------------------------------------------------------


@app.command()
def mcp(
    transport: str = typer.Option(
        "stdio",
        "--transport",
        help='"stdio" for local MCP clients, "http" for a shared server.',
    ),
    host: str = typer.Option("127.0.0.1", "--host", help="Bind host (HTTP only)."),
    port: int = typer.Option(8000, "--port", help="Bind port (HTTP only)."),
) -> None:
    """Start the MCP server exposing the sheet_sql tool.

    Example:
        sheetsql mcp
        sheetsql mcp --transport http --port 8000
    """
    if transport not in ("stdio", "http"):
        typer.echo(f"❌ Unknown transport '{transport}'. Use 'stdio' or 'http'", err=True)
        raise typer.Exit(code=1)

    settings = load_settings()
    if not _MCP_SCRIPT.exists():
        typer.echo(f"❌ MCP server script not found: {_MCP_SCRIPT}", err=True)
        raise typer.Exit(code=1)

    command = [sys.executable, str(_MCP_SCRIPT), "--transport", transport, "--host", host, "--port", str(port)]
    try:
        subprocess.run(command, check=True, cwd=str(settings.project_root))
    except subprocess.CalledProcessError as e:
        typer.echo(f"❌ MCP server exited with an error: {e}", err=True)
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        typer.echo("\n✅ MCP server stopped", err=True)


if __name__ == "__main__":
    app()
