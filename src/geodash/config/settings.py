# src/geodash/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/geodash/config/defaults.yaml`, then optionally overridden by:
- an external YAML file via `GEODASH_CONFIG_PATH`, merged key-by-key over the defaults
- a small whitelist of environment variables (log level, HTTP timeout, service URLs, CORS)

Design rule:
- Service endpoints and heuristics live in YAML, not hard-coded in decoders or clients.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from geodash.core.env import load_dotenv_if_present


def _load_mapping(text: str, source: str) -> dict[str, Any]:
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{source}: YAML root must be a mapping, got {type(data).__name__}")
    return data


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML mapping shipped inside `geodash.config`."""
    return _load_mapping(resources.files("geodash.config").joinpath(filename).read_text(encoding="utf-8"), filename)


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively overlay `override` onto `base`; nested mappings merge, everything else replaces."""
    out = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


class AppSettings(BaseModel):
    name: str = "GeoDash"
    http_timeout_seconds: float = 15
    log_level: str = "INFO"
    user_agent: str = "geodash/0.1.0 (+https://local)"


class IngestionSettings(BaseModel):
    text_encoding: str = "utf-8"
    latitude_keys: list[str] = Field(default_factory=lambda: ["lat", "latitude"])
    longitude_keys: list[str] = Field(default_factory=lambda: ["lon", "longitude"])
    label_keys: list[str] = Field(default_factory=lambda: ["name", "label", "title"])
    archive_target_crs: str = "EPSG:4326"


class PhotonSettings(BaseModel):
    base_url: str = "https://photon.komoot.io/api/"
    limit: int = Field(1, ge=1)


class OsrmSettings(BaseModel):
    base_url: str = "https://router.project-osrm.org"
    profile: str = "driving"


class NominatimSettings(BaseModel):
    base_url: str = "https://nominatim.openstreetmap.org/search"
    limit: int = Field(25, ge=1, le=50)
    accept_language: str = "en"


class ServicesSettings(BaseModel):
    photon: PhotonSettings = Field(default_factory=PhotonSettings)
    osrm: OsrmSettings = Field(default_factory=OsrmSettings)
    nominatim: NominatimSettings = Field(default_factory=NominatimSettings)


class QuerySettings(BaseModel):
    nearby_half_width_deg: float = Field(0.08, gt=0, le=5)


class ApiSettings(BaseModel):
    cors_origins: list[str] = Field(default_factory=list)
    # With no explicit origins, allow any localhost port (a local map frontend).
    cors_allow_local: bool = True


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    services: ServicesSettings = Field(default_factory=ServicesSettings)
    queries: QuerySettings = Field(default_factory=QuerySettings)
    api: ApiSettings = Field(default_factory=ApiSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small; everything else belongs in YAML.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("GEODASH_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    timeout = os.getenv("GEODASH_HTTP_TIMEOUT_SECONDS")
    if timeout:
        data.setdefault("app", {})["http_timeout_seconds"] = timeout

    for env_name, service in [
        ("GEODASH_PHOTON_URL", "photon"),
        ("GEODASH_OSRM_URL", "osrm"),
        ("GEODASH_NOMINATIM_URL", "nominatim"),
    ]:
        url = os.getenv(env_name)
        if url:
            data.setdefault("services", {}).setdefault(service, {})["base_url"] = url

    origins = os.getenv("GEODASH_CORS_ORIGINS")
    if origins is not None:
        data.setdefault("api", {})["cors_origins"] = [s.strip() for s in origins.split(",") if s.strip()]

    allow_local = os.getenv("GEODASH_CORS_ALLOW_LOCAL")
    if allow_local:
        data.setdefault("api", {})["cors_allow_local"] = allow_local.strip().lower() in {"1", "true", "yes", "y"}

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("GEODASH_CONFIG_PATH")
    raw = _read_package_yaml("defaults.yaml")
    if config_path:
        # A site file only needs the keys it changes.
        path = Path(config_path).expanduser()
        raw = _merge(raw, _load_mapping(path.read_text(encoding="utf-8"), str(path)))
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
