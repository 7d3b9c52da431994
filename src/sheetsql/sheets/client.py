"""Thin REST adapter for the Google endpoints sheetsql talks to.

- Sheets API v4: ``values.get``, ``values.append``, ``values.batchUpdate``,
  ``spreadsheets.batchUpdate`` (row deletion), ``spreadsheets.get`` (sheet ids,
  grid metadata)
- Visualization Query API: ``/gviz/tq`` (server-side SELECT)
- Apps Script API / Drive API: resolving a script to its bound spreadsheet

Every call is a single blocking request authenticated with a bearer token.
Non-2xx responses raise ``SheetsApiError`` with the status and raw body;
nothing is retried.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any
from urllib.parse import quote

import requests

from sheetsql.errors import SheetsApiError
from sheetsql.settings import ApiConfig

logger = logging.getLogger(__name__)

_GVIZ_RESPONSE_RE = re.compile(r"google\.visualization\.Query\.setResponse\((.*)\);?\s*$", re.DOTALL)


class SheetsClient:
    """Bearer-token REST client for Sheets, Visualization, Apps Script and Drive."""

    def __init__(
        self,
        access_token: str,
        api: ApiConfig | None = None,
        session: requests.Session | None = None,
    ):
        self.access_token = access_token
        self.api = api or ApiConfig()
        self.session = session or requests.Session()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        url: str,
        operation: str,
        *,
        params: dict[str, Any] | None = None,
        payload: Any = None,
    ) -> requests.Response:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
            "Accept-Encoding": "gzip",
        }
        logger.debug("%s %s (%s)", method, url, operation)
        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                params=params,
                json=payload,
                timeout=self.api.timeout_seconds,
            )
        except requests.RequestException as e:
            raise SheetsApiError(operation, None, str(e)) from e
        if not response.ok:
            raise SheetsApiError(operation, response.status_code, response.text)
        return response

    def _json(self, response: requests.Response, operation: str) -> dict[str, Any]:
        try:
            return response.json()
        except ValueError as e:
            raise SheetsApiError(operation, response.status_code, f"Invalid JSON response: {e}") from e

    def _spreadsheet_url(self, spreadsheet_id: str, suffix: str = "") -> str:
        return f"{self.api.sheets_base_url}/spreadsheets/{spreadsheet_id}{suffix}"

    # ------------------------------------------------------------------
    # Sheets API v4
    # ------------------------------------------------------------------

    def get_values(self, spreadsheet_id: str, range_: str) -> list[list[Any]]:
        """Fetch a range; numbers come back typed, dates as formatted strings."""
        url = self._spreadsheet_url(spreadsheet_id, f"/values/{quote(range_, safe='')}")
        response = self._request(
            "GET",
            url,
            "Read values",
            params={"valueRenderOption": "UNFORMATTED_VALUE", "dateTimeRenderOption": "FORMATTED_STRING"},
        )
        return self._json(response, "Read values").get("values") or []

    def append_values(self, spreadsheet_id: str, range_: str, rows: list[list[Any]]) -> dict[str, Any]:
        url = self._spreadsheet_url(spreadsheet_id, f"/values/{quote(range_, safe='')}:append")
        response = self._request(
            "POST",
            url,
            "INSERT",
            params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
            payload={"values": rows},
        )
        return self._json(response, "INSERT").get("updates") or {}

    def batch_update_values(self, spreadsheet_id: str, data: list[dict[str, Any]]) -> dict[str, Any]:
        url = self._spreadsheet_url(spreadsheet_id, "/values:batchUpdate")
        response = self._request(
            "POST",
            url,
            "UPDATE batch operation",
            payload={"valueInputOption": "USER_ENTERED", "data": data},
        )
        return self._json(response, "UPDATE batch operation")

    def batch_update(self, spreadsheet_id: str, requests_: list[dict[str, Any]]) -> dict[str, Any]:
        url = self._spreadsheet_url(spreadsheet_id, ":batchUpdate")
        response = self._request("POST", url, "DELETE batch operation", payload={"requests": requests_})
        return self._json(response, "DELETE batch operation")

    def get_sheet_id(self, spreadsheet_id: str, sheet_name: str) -> int:
        """Numeric sheet id for a title; the first sheet when ``sheet_name`` is empty."""
        response = self._request(
            "GET",
            self._spreadsheet_url(spreadsheet_id),
            "Get sheet ID",
            params={"fields": "sheets(properties(title,sheetId))"},
        )
        sheets = self._json(response, "Get sheet ID").get("sheets") or []
        for sheet in sheets:
            properties = sheet.get("properties") or {}
            if properties.get("title") == sheet_name:
                return int(properties.get("sheetId", 0))
        if not sheet_name and sheets:
            return int((sheets[0].get("properties") or {}).get("sheetId", 0))
        raise SheetsApiError("Get sheet ID", 404, f'Sheet "{sheet_name}" not found')

    def get_grid_metadata(self, spreadsheet_id: str, range_: str) -> list[dict[str, Any]]:
        response = self._request(
            "GET",
            self._spreadsheet_url(spreadsheet_id),
            "Read metadata",
            params={
                "ranges": range_,
                "includeGridData": "true",
                "fields": "sheets(data(rowData(values(formattedValue,userEnteredValue,effectiveFormat))))",
            },
        )
        sheets = self._json(response, "Read metadata").get("sheets") or [{}]
        data = (sheets[0].get("data") or [{}])[0]
        return data.get("rowData") or []

    # ------------------------------------------------------------------
    # Visualization Query API
    # ------------------------------------------------------------------

    def query(self, spreadsheet_id: str, range_: str, tq: str) -> dict[str, Any]:
        """Run a Visualization query and return its ``table`` payload."""
        url = f"{self.api.gviz_base_url}/{spreadsheet_id}/gviz/tq"
        response = self._request(
            "GET",
            url,
            "SELECT query",
            params={"range": range_, "tq": tq, "tqx": "out:json"},
        )
        payload = parse_gviz_response(response.text)
        if payload.get("status") == "error":
            messages = ", ".join(
                e.get("detailed_message") or e.get("message") or "unknown error"
                for e in payload.get("errors") or []
            )
            raise SheetsApiError("SELECT query", response.status_code, f"Query error: {messages}")
        return payload.get("table") or {"cols": [], "rows": []}

    # ------------------------------------------------------------------
    # Apps Script / Drive
    # ------------------------------------------------------------------

    def get_script_project(self, script_id: str) -> dict[str, Any]:
        url = f"{self.api.script_base_url}/projects/{script_id}"
        return self._json(self._request("GET", url, "Get script project"), "Get script project")

    def get_drive_file(self, file_id: str) -> dict[str, Any]:
        url = f"{self.api.drive_base_url}/files/{file_id}"
        response = self._request("GET", url, "Get container info", params={"fields": "id,name,mimeType"})
        return self._json(response, "Get container info")


def parse_gviz_response(text: str) -> dict[str, Any]:
    """Unwrap ``google.visualization.Query.setResponse({...});``."""
    match = _GVIZ_RESPONSE_RE.search(text or "")
    if not match:
        raise SheetsApiError("SELECT query", None, "Invalid response format from Google Visualization API")
    try:
        return json.loads(match.group(1))
    except ValueError as e:
        raise SheetsApiError("SELECT query", None, f"Invalid Visualization payload: {e}") from e
