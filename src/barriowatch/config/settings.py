# src/barriowatch/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/barriowatch/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `SUPABASE_URL`, `SUPABASE_ANON_KEY`)
- an external YAML file via `BARRIOWATCH_CONFIG_PATH`

Design rule:
- Radii, intervals and table names live in YAML, not hard-coded in business logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any
from barriowatch.core.env import load_dotenv_if_present

import yaml
from pydantic import BaseModel, Field


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `barriowatch.config`."""
    text = resources.files("barriowatch.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "BarrioWatch"
    timezone: str = "America/Santo_Domingo"
    http_timeout_seconds: float = 15
    log_level: str = "INFO"


class VerificationSettings(BaseModel):
    listing_radius_m: float = Field(5000, gt=0)
    verify_radius_m: float = Field(300, gt=0)


class SosSettings(BaseModel):
    emission_interval_seconds: float = Field(30, gt=0)
    audio_timeslice_seconds: float = Field(1.0, gt=0)
    audio_content_type: str = "audio/webm"
    audio_extension: str = "webm"
    audio_bucket: str = "sos-audio"


class ReportsSettings(BaseModel):
    description_max_length: int = Field(500, ge=1)
    feed_limit: int = Field(10, ge=1)
    leaderboard_limit: int = Field(10, ge=1)


class BackendSettings(BaseModel):
    url: str = "http://localhost:54321"
    anon_key: str | None = None
    access_token: str | None = None
    reports_table: str = "reports"
    events_table: str = "sos_events"
    neighborhoods_table: str = "barrios"
    profiles_table: str = "profiles"


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    verification: VerificationSettings = Field(default_factory=VerificationSettings)
    sos: SosSettings = Field(default_factory=SosSettings)
    reports: ReportsSettings = Field(default_factory=ReportsSettings)
    backend: BackendSettings = Field(default_factory=BackendSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small; credentials come from env only.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("BARRIOWATCH_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    backend_url = os.getenv("SUPABASE_URL")
    if backend_url:
        data.setdefault("backend", {})["url"] = backend_url

    anon_key = os.getenv("SUPABASE_ANON_KEY")
    if anon_key:
        data.setdefault("backend", {})["anon_key"] = anon_key

    access_token = os.getenv("BARRIOWATCH_ACCESS_TOKEN")
    if access_token:
        data.setdefault("backend", {})["access_token"] = access_token

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("BARRIOWATCH_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
