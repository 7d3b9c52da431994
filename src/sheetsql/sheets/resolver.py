"""Spreadsheet id, A1 range and script-binding resolution."""
from __future__ import annotations

import logging
import re

from sheetsql.errors import ValidationError
from sheetsql.sheets.client import SheetsClient
from sheetsql.sql.columns import column_to_index

logger = logging.getLogger(__name__)

_URL_ID_RE = re.compile(r"/spreadsheets/d/([a-zA-Z0-9_-]+)")
_BARE_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{20,60}$")
_SCRIPT_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{20,100}$")
_RANGE_RE = re.compile(r"^(?:(?:'(?:[^']|'')+'|[A-Za-z0-9_\s.\-]+)!)?[A-Za-z]+[0-9]*(?::[A-Za-z]+[0-9]*)?$")
_CELL_RE = re.compile(r"^([A-Za-z]*)(\d*)$")

SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"


def extract_spreadsheet_id(value: str) -> str:
    """Accept a bare id or a full Google Sheets URL."""
    text = (value or "").strip()
    match = _URL_ID_RE.search(text)
    if match:
        return match.group(1)
    if not _BARE_ID_RE.match(text):
        raise ValidationError("spreadsheetId", value, "valid Google Sheets ID or URL")
    return text


def validate_range(range_: str) -> str:
    """Validate A1 notation (``Sheet1!A1:Z1000``, ``A:F``, ``'My Sheet'!B2:D``)."""
    text = (range_ or "").strip()
    if not _RANGE_RE.match(text):
        raise ValidationError("range", range_, 'valid A1 notation (e.g., "Sheet1!A1:Z1000" or "A:F")')
    return text


def range_origin(range_: str) -> tuple[int, int]:
    """Return ``(first_row_number, first_column_index)`` for an A1 range.

    ``Sheet1!C5:F`` → ``(5, 2)``; open ranges such as ``A:F`` start at row 1.
    """
    cells = range_.rsplit("!", 1)[-1]
    start = cells.split(":", 1)[0]
    match = _CELL_RE.match(start)
    if not match:
        return 1, 0
    letters, digits = match.groups()
    column = column_to_index(letters) if letters else 0
    row = int(digits) if digits else 1
    return row, column


def header_range(range_: str) -> str:
    """The first row of an A1 range: ``Sheet1!B2:F`` → ``Sheet1!B2:F2``."""
    prefix, _, cells = range_.rpartition("!")
    start, _, end = cells.partition(":")
    start_letters = _CELL_RE.match(start).group(1) if _CELL_RE.match(start) else ""
    end_letters = _CELL_RE.match(end).group(1) if end and _CELL_RE.match(end) else ""
    row, _ = range_origin(range_)
    start_letters = start_letters or "A"
    end_letters = end_letters or start_letters
    sheet = f"{prefix}!" if prefix else ""
    return f"{sheet}{start_letters}{row}:{end_letters}{row}"


def resolve_spreadsheet_id(
    client: SheetsClient | None,
    spreadsheet_id: str | None = None,
    script_id: str | None = None,
) -> str:
    """Resolve the target spreadsheet from an id/URL, or from a container-bound script."""
    if spreadsheet_id:
        return extract_spreadsheet_id(spreadsheet_id)
    if not script_id:
        raise ValidationError("spreadsheetId", spreadsheet_id, "a spreadsheetId or scriptId")
    if not _SCRIPT_ID_RE.match(script_id.strip()):
        raise ValidationError("scriptId", script_id, "valid Apps Script project ID")
    if client is None:
        raise ValidationError("accessToken", None, "credentials to resolve scriptId")

    project = client.get_script_project(script_id.strip())
    parent_id = project.get("parentId")
    if not parent_id:
        raise ValidationError("scriptId", script_id, "a container-bound script (project has no parent)")

    container = client.get_drive_file(parent_id)
    if container.get("mimeType") != SPREADSHEET_MIME_TYPE:
        raise ValidationError(
            "scriptId",
            script_id,
            f"a script bound to a spreadsheet (container is {container.get('mimeType') or 'unknown'})",
        )
    logger.debug("Resolved script %s to spreadsheet %s", script_id, parent_id)
    return parent_id
