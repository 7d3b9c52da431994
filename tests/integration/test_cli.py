from __future__ import annotations

import json
import re
from pathlib import Path

from typer.testing import CliRunner

from sheetsql.cli import app

runner = CliRunner()

PEOPLE = [["Name", "Age"], ["Alice", 30], ["Bob", 25]]


def _plain(output: str) -> str:
    return re.sub(r"\x1b\[[0-9;]*m", "", output)


def _people_file(tmp_path: Path) -> Path:
    path = tmp_path / "people.json"
    path.write_text(json.dumps(PEOPLE), encoding="utf-8")
    return path


def test_cli_has_query_command():
    result = runner.invoke(app, ["query", "--help"])
    assert result.exit_code == 0
    assert "Execute a SQL statement" in _plain(result.output)


def test_cli_has_config_command():
    result = runner.invoke(app, ["config", "--help"])
    assert result.exit_code == 0
    assert "configuration" in _plain(result.output).lower()


def test_cli_has_mcp_command():
    result = runner.invoke(app, ["mcp", "--help"])
    assert result.exit_code == 0
    assert "stdio" in _plain(result.output)


def test_cli_query_json_over_data_file(tmp_path: Path):
    path = _people_file(tmp_path)
    result = runner.invoke(
        app,
        ["query", "SELECT * FROM :people WHERE Age > 26", "--data", f"people={path}", "--json"],
    )
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["ok"] is True
    assert payload["operation"] == "SELECT"
    assert payload["data"]["rows"] == [{"c": [{"v": "Alice"}, {"v": 30}]}]


def test_cli_query_table_output(tmp_path: Path):
    path = _people_file(tmp_path)
    result = runner.invoke(app, ["query", "SELECT Name WHERE Age > 26", "-d", f"people={path}"])
    assert result.exit_code == 0
    output = _plain(result.output)
    assert "[PASS] 1 row(s)" in output
    assert "Alice" in output


def test_cli_virtual_mutation_output(tmp_path: Path):
    path = _people_file(tmp_path)
    result = runner.invoke(app, ["query", "DELETE WHERE Name = 'Bob'", "-d", f"people={path}"])
    assert result.exit_code == 0
    output = _plain(result.output)
    assert "DELETE: 1 row(s) affected" in output
    assert "Bob" not in output


def test_cli_query_error_exits_non_zero(tmp_path: Path):
    path = _people_file(tmp_path)
    result = runner.invoke(app, ["query", "SELECT * FROM :ghosts", "-d", f"people={path}", "--json"])
    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["ok"] is False
    assert payload["error_code"] == "VALIDATION_ERROR"


def test_cli_rejects_malformed_data_option():
    result = runner.invoke(app, ["query", "SELECT *", "--data", "people.json"])
    assert result.exit_code == 1


def test_cli_config_json(monkeypatch, tmp_path: Path):
    monkeypatch.setattr("sheetsql.settings._find_project_root", lambda: tmp_path)
    result = runner.invoke(app, ["config", "--json"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["project_root"] == str(tmp_path)
    assert payload["api"]["sheets_base_url"] == "https://sheets.googleapis.com/v4"
    assert payload["max_cells_per_request"] == 50000


def test_cli_mcp_rejects_unknown_transport():
    result = runner.invoke(app, ["mcp", "--transport", "carrier-pigeon"])
    assert result.exit_code == 1


def test_cli_mcp_runs_server_script_from_project_root(monkeypatch, tmp_path: Path):
    calls = []
    monkeypatch.setattr("sheetsql.settings._find_project_root", lambda: tmp_path)
    monkeypatch.setattr("sheetsql.cli.subprocess.run", lambda cmd, **kwargs: calls.append((cmd, kwargs)))

    result = runner.invoke(app, ["mcp", "--transport", "http", "--port", "9001"])

    assert result.exit_code == 0
    command, kwargs = calls[0]
    script = Path(command[1])
    assert script.is_absolute()
    assert script.parts[-2:] == ("app", "mcp.py")
    assert command[2:] == ["--transport", "http", "--host", "127.0.0.1", "--port", "9001"]
    assert kwargs == {"check": True, "cwd": str(tmp_path)}
