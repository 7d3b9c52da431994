"""Configuration for sheetsql.

Loads configuration from:
1. sheetsql_project.yaml (API endpoints, batching, auth file locations)
2. Environment variables (.env)
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

DEFAULT_SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.readonly",
    "https://www.googleapis.com/auth/script.projects.readonly",
]


@dataclass(frozen=True)
class ApiConfig:
    """Google REST endpoints."""
    sheets_base_url: str = "https://sheets.googleapis.com/v4"
    gviz_base_url: str = "https://docs.google.com/spreadsheets/d"
    script_base_url: str = "https://script.googleapis.com/v1"
    drive_base_url: str = "https://www.googleapis.com/drive/v3"
    timeout_seconds: int = 30


@dataclass(frozen=True)
class BatchConfig:
    """Write batching limits."""
    max_cells_per_request: int = 50000


@dataclass(frozen=True)
class AuthConfig:
    """Where bearer tokens come from when none is passed explicitly."""
    service_account_path: str | None = None
    token_path: str | None = None  # authorized-user JSON (refreshable)
    scopes: list[str] = field(default_factory=lambda: list(DEFAULT_SCOPES))


@dataclass(frozen=True)
class AdvancedConfig:
    """Technical settings."""
    log_level: str = "INFO"
    max_rows: int = 0  # 0 = no cap on local SELECT results


@dataclass(frozen=True)
class Settings:
    """Complete sheetsql configuration."""
    project_root: Path
    api: ApiConfig = field(default_factory=ApiConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)

    # Bearer token used as-is (from env)
    access_token: str | None = None


def _find_project_root() -> Path:
    """Find project root by looking for sheetsql_project.yaml or a .env file."""
    current = Path.cwd().resolve()

    for path in [current] + list(current.parents):
        if (path / "sheetsql_project.yaml").exists():
            return path
        if (path / ".env").exists():
            return path

    return current


def _load_yaml_config(path: Path) -> dict[str, Any]:
    """Load and parse YAML config file."""
    if not path.exists():
        return {}

    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _resolve_path(project_root: Path, value: Any) -> str | None:
    if not value:
        return None
    path = Path(str(value)).expanduser()
    if not path.is_absolute():
        path = project_root / path
    return str(path)


def load_settings() -> Settings:
    """Load sheetsql configuration.

    Process:
    1. Find project root
    2. Load .env file
    3. Load sheetsql_project.yaml (if exists)
    4. Apply environment overrides
    5. Build Settings object
    """
    project_root = _find_project_root()

    env_file = project_root / ".env"
    if env_file.exists():
        load_dotenv(env_file)

    config = _load_yaml_config(project_root / "sheetsql_project.yaml")

    api_config = config.get("api") or {}
    defaults = ApiConfig()
    api = ApiConfig(
        sheets_base_url=str(api_config.get("sheets_base_url") or defaults.sheets_base_url).rstrip("/"),
        gviz_base_url=str(api_config.get("gviz_base_url") or defaults.gviz_base_url).rstrip("/"),
        script_base_url=str(api_config.get("script_base_url") or defaults.script_base_url).rstrip("/"),
        drive_base_url=str(api_config.get("drive_base_url") or defaults.drive_base_url).rstrip("/"),
        timeout_seconds=int(api_config.get("timeout_seconds", defaults.timeout_seconds)),
    )

    batch_config = config.get("batch") or {}
    max_cells = int(batch_config.get("max_cells_per_request", 50000) or 50000)
    if max_cells <= 0:
        raise ValueError("batch.max_cells_per_request must be a positive integer")
    batch = BatchConfig(max_cells_per_request=max_cells)

    auth_config = config.get("auth") or {}
    scopes_raw = auth_config.get("scopes")
    if isinstance(scopes_raw, str):
        scopes = [scopes_raw]
    elif isinstance(scopes_raw, list):
        scopes = [str(s).strip() for s in scopes_raw if str(s).strip()]
    else:
        scopes = list(DEFAULT_SCOPES)
    auth = AuthConfig(
        service_account_path=_resolve_path(
            project_root,
            os.getenv("SHEETSQL_SERVICE_ACCOUNT_PATH") or auth_config.get("service_account_path"),
        ),
        token_path=_resolve_path(
            project_root,
            os.getenv("SHEETSQL_TOKEN_PATH") or auth_config.get("token_path"),
        ),
        scopes=scopes or list(DEFAULT_SCOPES),
    )

    advanced_config = config.get("advanced") or {}
    advanced = AdvancedConfig(
        log_level=str(os.getenv("SHEETSQL_LOG_LEVEL") or advanced_config.get("log_level", "INFO")).upper(),
        max_rows=int(advanced_config.get("max_rows", 0) or 0),
    )

    return Settings(
        project_root=project_root,
        api=api,
        batch=batch,
        auth=auth,
        advanced=advanced,
        access_token=os.getenv("SHEETSQL_ACCESS_TOKEN") or None,
    )
