from __future__ import annotations

import json

import pytest
import requests

from sheetsql.errors import SheetsApiError
from sheetsql.settings import ApiConfig
from sheetsql.sheets.client import SheetsClient, parse_gviz_response

SHEET_ID = "a" * 30


class _FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: list[dict] = []

    def request(self, method, url, headers=None, params=None, json=None, timeout=None):
        self.calls.append(
            {"method": method, "url": url, "headers": headers, "params": params, "json": json, "timeout": timeout}
        )
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _client(*responses) -> tuple[SheetsClient, _FakeSession]:
    session = _FakeSession(*responses)
    return SheetsClient("token-123", ApiConfig(timeout_seconds=7), session=session), session


def test_get_values_sends_bearer_token_and_render_options():
    client, session = _client(_FakeResponse(payload={"values": [["Name"], ["Ann"]]}))
    assert client.get_values(SHEET_ID, "'My Sheet'!A1:B") == [["Name"], ["Ann"]]
    call = session.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == f"https://sheets.googleapis.com/v4/spreadsheets/{SHEET_ID}/values/%27My%20Sheet%27%21A1%3AB"
    assert call["headers"]["Authorization"] == "Bearer token-123"
    assert call["params"]["valueRenderOption"] == "UNFORMATTED_VALUE"
    assert call["timeout"] == 7


def test_get_values_of_empty_range():
    client, _ = _client(_FakeResponse(payload={"range": "Sheet1!A1:B"}))
    assert client.get_values(SHEET_ID, "Sheet1!A1:B") == []


def test_error_status_raises_with_body():
    client, _ = _client(_FakeResponse(status_code=403, payload=None, text="PERMISSION_DENIED"))
    with pytest.raises(SheetsApiError) as exc_info:
        client.get_values(SHEET_ID, "A:B")
    assert exc_info.value.status == 403
    assert str(exc_info.value) == "Read values failed: 403 PERMISSION_DENIED"


def test_network_failure_raises_sheets_api_error():
    client, _ = _client(requests.ConnectionError("connection refused"))
    with pytest.raises(SheetsApiError) as exc_info:
        client.get_values(SHEET_ID, "A:B")
    assert exc_info.value.status is None


def test_append_values_returns_updates():
    updates = {"updatedRange": "Sheet1!A4:B4", "updatedRows": 1}
    client, session = _client(_FakeResponse(payload={"updates": updates}))
    assert client.append_values(SHEET_ID, "Sheet1!A:B", [["Eve", 41]]) == updates
    call = session.calls[0]
    assert call["method"] == "POST"
    assert call["url"].endswith("/values/Sheet1%21A%3AB:append")
    assert call["params"] == {"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"}
    assert call["json"] == {"values": [["Eve", 41]]}


def test_batch_update_values_payload():
    client, session = _client(_FakeResponse(payload={"totalUpdatedCells": 1}))
    data = [{"range": "Sheet1!B3", "values": [[99]]}]
    assert client.batch_update_values(SHEET_ID, data)["totalUpdatedCells"] == 1
    assert session.calls[0]["url"].endswith(f"/spreadsheets/{SHEET_ID}/values:batchUpdate")
    assert session.calls[0]["json"] == {"valueInputOption": "USER_ENTERED", "data": data}


def test_get_sheet_id_by_title_and_default():
    sheets = {"sheets": [{"properties": {"title": "First", "sheetId": 0}}, {"properties": {"title": "Crew", "sheetId": 99}}]}
    client, _ = _client(_FakeResponse(payload=sheets), _FakeResponse(payload=sheets), _FakeResponse(payload=sheets))
    assert client.get_sheet_id(SHEET_ID, "Crew") == 99
    assert client.get_sheet_id(SHEET_ID, "") == 0
    with pytest.raises(SheetsApiError) as exc_info:
        client.get_sheet_id(SHEET_ID, "Missing")
    assert exc_info.value.status == 404


def test_query_unwraps_visualization_response():
    table = {"cols": [{"id": "A", "label": "Name", "type": "string"}], "rows": [{"c": [{"v": "Ann"}]}]}
    body = "/*O_o*/\ngoogle.visualization.Query.setResponse(" + json.dumps({"status": "ok", "table": table}) + ");"
    client, session = _client(_FakeResponse(text=body))
    assert client.query(SHEET_ID, "Sheet1!A:B", "SELECT A") == table
    call = session.calls[0]
    assert call["url"] == f"https://docs.google.com/spreadsheets/d/{SHEET_ID}/gviz/tq"
    assert call["params"] == {"range": "Sheet1!A:B", "tq": "SELECT A", "tqx": "out:json"}


def test_query_error_status_raises():
    payload = {"status": "error", "errors": [{"detailed_message": "Invalid query: NO_COLUMN: Z"}]}
    body = "google.visualization.Query.setResponse(" + json.dumps(payload) + ");"
    client, _ = _client(_FakeResponse(text=body))
    with pytest.raises(SheetsApiError) as exc_info:
        client.query(SHEET_ID, "A:B", "SELECT Z")
    assert "NO_COLUMN: Z" in str(exc_info.value)


def test_parse_gviz_response_rejects_unexpected_payload():
    with pytest.raises(SheetsApiError):
        parse_gviz_response("<html>login</html>")
    with pytest.raises(SheetsApiError):
        parse_gviz_response("google.visualization.Query.setResponse({not json});")


def test_script_and_drive_lookups():
    client, session = _client(
        _FakeResponse(payload={"scriptId": "x", "parentId": SHEET_ID}),
        _FakeResponse(payload={"id": SHEET_ID, "mimeType": "application/vnd.google-apps.spreadsheet"}),
    )
    assert client.get_script_project("script-id")["parentId"] == SHEET_ID
    assert client.get_drive_file(SHEET_ID)["mimeType"] == "application/vnd.google-apps.spreadsheet"
    assert session.calls[0]["url"] == "https://script.googleapis.com/v1/projects/script-id"
    assert session.calls[1]["url"] == f"https://www.googleapis.com/drive/v3/files/{SHEET_ID}"
