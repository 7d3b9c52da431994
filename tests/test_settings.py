from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from sheetsql.settings import DEFAULT_SCOPES, load_settings


def _write_project(tmp_path: Path, config: dict) -> None:
    (tmp_path / "sheetsql_project.yaml").write_text(yaml.safe_dump(config), encoding="utf-8")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "SHEETSQL_ACCESS_TOKEN",
        "SHEETSQL_SERVICE_ACCOUNT_PATH",
        "SHEETSQL_TOKEN_PATH",
        "SHEETSQL_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_load_settings_defaults_without_project_file(monkeypatch, tmp_path: Path):
    monkeypatch.setattr("sheetsql.settings._find_project_root", lambda: tmp_path)

    settings = load_settings()

    assert settings.project_root == tmp_path
    assert settings.api.sheets_base_url == "https://sheets.googleapis.com/v4"
    assert settings.api.timeout_seconds == 30
    assert settings.batch.max_cells_per_request == 50000
    assert settings.auth.service_account_path is None
    assert settings.auth.scopes == DEFAULT_SCOPES
    assert settings.advanced.log_level == "INFO"
    assert settings.advanced.max_rows == 0
    assert settings.access_token is None


def test_load_settings_uses_project_file(monkeypatch, tmp_path: Path):
    _write_project(
        tmp_path,
        {
            "api": {"sheets_base_url": "http://localhost:9000/v4/", "timeout_seconds": 5},
            "batch": {"max_cells_per_request": 1000},
            "auth": {"service_account_path": "secrets/sa.json", "scopes": ["scope-a"]},
            "advanced": {"log_level": "debug", "max_rows": 500},
        },
    )
    monkeypatch.setattr("sheetsql.settings._find_project_root", lambda: tmp_path)

    settings = load_settings()

    assert settings.api.sheets_base_url == "http://localhost:9000/v4"
    assert settings.api.timeout_seconds == 5
    assert settings.batch.max_cells_per_request == 1000
    assert settings.auth.service_account_path == str(tmp_path / "secrets" / "sa.json")
    assert settings.auth.scopes == ["scope-a"]
    assert settings.advanced.log_level == "DEBUG"
    assert settings.advanced.max_rows == 500


def test_environment_overrides_project_file(monkeypatch, tmp_path: Path):
    _write_project(tmp_path, {"auth": {"token_path": "token.json"}, "advanced": {"log_level": "INFO"}})
    monkeypatch.setattr("sheetsql.settings._find_project_root", lambda: tmp_path)
    monkeypatch.setenv("SHEETSQL_ACCESS_TOKEN", "env-token")
    monkeypatch.setenv("SHEETSQL_TOKEN_PATH", "/abs/token.json")
    monkeypatch.setenv("SHEETSQL_LOG_LEVEL", "warning")

    settings = load_settings()

    assert settings.access_token == "env-token"
    assert settings.auth.token_path == "/abs/token.json"
    assert settings.advanced.log_level == "WARNING"


def test_invalid_batch_size_raises(monkeypatch, tmp_path: Path):
    _write_project(tmp_path, {"batch": {"max_cells_per_request": -5}})
    monkeypatch.setattr("sheetsql.settings._find_project_root", lambda: tmp_path)

    with pytest.raises(ValueError) as exc_info:
        load_settings()

    assert "max_cells_per_request" in str(exc_info.value)


def test_find_project_root_walks_up(monkeypatch, tmp_path: Path):
    _write_project(tmp_path, {})
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    settings = load_settings()

    assert settings.project_root == tmp_path.resolve()
