"""CLI formatting helpers: result tables, status lines and colors."""
from __future__ import annotations

import os
import sys
from typing import Any

from rich.console import Console
from rich.table import Table

_CONSOLE = Console(force_terminal=True)
_CONSOLE_ERR = Console(force_terminal=True, file=sys.stderr)
_MAX_ROWS = 50


def _use_color() -> bool:
    """Return False if NO_COLOR is set or stdout is not a TTY."""
    if os.environ.get("NO_COLOR"):
        return False
    return sys.stdout.isatty()


def _format_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def print_select_table(data: dict[str, Any], max_rows: int = _MAX_ROWS) -> None:
    """Render a ``{"cols": [...], "rows": [...]}`` result as a table."""
    cols = data.get("cols") or []
    rows = data.get("rows") or []
    table = Table(show_lines=False, header_style="bold" if _use_color() else None)
    for col in cols:
        table.add_column(str(col.get("label") or col.get("id") or ""))
    for row in rows[:max_rows]:
        cells = [(cell or {}).get("v") if isinstance(cell, dict) else cell for cell in row.get("c") or []]
        table.add_row(*[_format_cell(v) for v in cells])
    _CONSOLE.print(table)
    if len(rows) > max_rows:
        print_info(f"... ({len(rows) - max_rows} more rows)")


def print_virtual_table(data: list[list[Any]], max_rows: int = _MAX_ROWS) -> None:
    """Render a ``[headers, *rows]`` array returned for virtual-table mutations."""
    if not data:
        print_info("No rows.")
        return
    table = Table(header_style="bold" if _use_color() else None)
    for header in data[0]:
        table.add_column(_format_cell(header))
    for row in data[1:max_rows + 1]:
        table.add_row(*[_format_cell(v) for v in row])
    _CONSOLE.print(table)
    if len(data) - 1 > max_rows:
        print_info(f"... ({len(data) - 1 - max_rows} more rows)")


def print_section(title: str) -> None:
    """Print a section header."""
    _CONSOLE.print(f"\n=== {title} ===")


def print_info(msg: str) -> None:
    """Print an info line (plain or dim)."""
    if _use_color():
        _CONSOLE.print(msg, style="dim", markup=False)
    else:
        _CONSOLE.print(msg, markup=False)


def print_status(status: str, message: str, *, err: bool = False) -> None:
    """Print a status line (for non-table output, e.g. mutation summaries and errors)."""
    style = None
    if _use_color():
        if status == "PASS":
            style = "green"
        elif status == "FAIL":
            style = "red"
        elif status == "WARN":
            style = "yellow"
    line = f"[{status}] {message}"
    console = _CONSOLE_ERR if err else _CONSOLE
    if style:
        console.print(line, style=style, markup=False)
    else:
        console.print(line, markup=False)
