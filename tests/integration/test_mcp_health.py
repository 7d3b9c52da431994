from __future__ import annotations

from app import mcp as mcp_app
from sheetsql.results import is_tool_error

PEOPLE = [["Name", "Age"], ["Alice", 30], ["Bob", 25]]


def test_mcp_health_check_reports_service_and_ready():
    payload = mcp_app.health_check.fn()

    assert payload["service"] == "mcp"
    assert payload["ready"] is True
    assert "credentials_configured" in payload


def test_mcp_sheet_sql_runs_against_data_sources():
    payload = mcp_app.sheet_sql.fn(
        statement="SELECT Name FROM :people WHERE Age > 26",
        dataSources={"people": PEOPLE},
    )

    assert payload["operation"] == "SELECT"
    assert payload["data"]["rows"] == [{"c": [{"v": "Alice"}]}]


def test_mcp_sheet_sql_returns_error_envelope():
    payload = mcp_app.sheet_sql.fn(statement="DROP TABLE people")

    assert is_tool_error(payload)
    assert payload["error_code"] == "VALIDATION_ERROR"
    assert "DROP TABLE people" in payload["error"]


def test_mcp_sheet_sql_virtual_mutation_returns_data():
    payload = mcp_app.sheet_sql.fn(
        statement="DELETE FROM :people WHERE Name = 'Bob'",
        dataSources={"people": PEOPLE},
    )

    assert payload == {"operation": "DELETE", "deletedRows": 1, "data": [["Name", "Age"], ["Alice", 30]]}
