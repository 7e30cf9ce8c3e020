# src/minyanmap/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/minyanmap/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `MINYANMAP_API_TOKEN`, `MINYANMAP_LOG_LEVEL`)
- an external YAML file via `MINYANMAP_CONFIG_PATH`

Design rule:
- Tuning knobs (grid sizes, retention, sampling policy, notification wording)
  live in YAML, not hard-coded in business logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from minyanmap.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `minyanmap.config`."""
    text = resources.files("minyanmap.config").joinpath(filename).read_text(encoding="utf-8")
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
    name: str = "MinyanMap"
    timezone: str = "Europe/Paris"
    http_timeout_seconds: float = 15
    log_level: str = "INFO"


class StoreSettings(BaseModel):
    dir: str = ".cache/minyanmap"


class EventsApiSettings(BaseModel):
    base_url: str = "http://localhost:3000"
    events_path: str = "/api/events"
    location_path: str = "/api/users/location"
    api_token: str | None = None


class ProximitySettings(BaseModel):
    enabled: bool = False
    radius_m: float = Field(500, gt=0)
    min_interval_seconds: float = Field(300, ge=0)
    min_distance_m: float = Field(100, ge=0)
    retention_hours: float = Field(24, gt=0)
    ledger_key: str = "notified_proximity_events"


class GridSpanThreshold(BaseModel):
    """Use `grid_size_km` when the visible latitude span is below `max_span_deg`."""

    max_span_deg: float = Field(..., gt=0)
    grid_size_km: float = Field(..., gt=0)


class ClusteringSettings(BaseModel):
    default_grid_size_km: float = Field(1.0, gt=0)
    km_per_degree: float = Field(111.0, gt=0)
    radius_margin: float = Field(1.2, ge=1)
    min_radius_fraction: float = Field(0.3, ge=0)
    urgent_max_missing: int = Field(3, ge=1)
    span_thresholds: list[GridSpanThreshold] = Field(
        default_factory=lambda: [
            GridSpanThreshold(max_span_deg=0.02, grid_size_km=0.5),
            GridSpanThreshold(max_span_deg=0.05, grid_size_km=1),
            GridSpanThreshold(max_span_deg=0.10, grid_size_km=2),
            GridSpanThreshold(max_span_deg=0.30, grid_size_km=3),
        ]
    )
    wide_grid_size_km: float = Field(5.0, gt=0)

    @field_validator("span_thresholds")
    @classmethod
    def _sort_thresholds(cls, value: list[GridSpanThreshold]) -> list[GridSpanThreshold]:
        return sorted(value, key=lambda t: t.max_span_deg)


class NotificationSettings(BaseModel):
    title_template: str = "{label} à proximité"
    body_template: str = '"{title}" à {distance} de vous, aujourd\'hui à {time}'
    time_format: str = "%H:%M"
    type_labels: dict[str, str] = Field(default_factory=dict)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    events_api: EventsApiSettings = Field(default_factory=EventsApiSettings)
    proximity: ProximitySettings = Field(default_factory=ProximitySettings)
    clustering: ClusteringSettings = Field(default_factory=ClusteringSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small to avoid exposing unsafe overrides.
    """
    load_dotenv_if_present()
    data = dict(data)
    store_dir = os.getenv("MINYANMAP_STORE_DIR")
    if store_dir:
        data.setdefault("store", {})["dir"] = store_dir

    log_level = os.getenv("MINYANMAP_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    base_url = os.getenv("MINYANMAP_API_BASE_URL")
    if base_url:
        data.setdefault("events_api", {})["base_url"] = base_url

    token = os.getenv("MINYANMAP_API_TOKEN")
    if token:
        data.setdefault("events_api", {})["api_token"] = token

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("MINYANMAP_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
