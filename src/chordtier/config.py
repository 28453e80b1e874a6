"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (CHORDTIER__REMOTE__BASE_URL=https://...)
  2. chordtier.yaml         ($CHORDTIER_CONFIG, else cwd, else platform config dir)
  3. Hardcoded defaults

The config file is optional; all fields have sensible defaults. Without a
``remote.base_url`` the shared tier is disabled and every lookup is a miss.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("chordtier")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "chordtier.db")


def _find_config_file() -> str | None:
    """Return the path of the first chordtier.yaml found, or None.

    An explicit ``CHORDTIER_CONFIG`` path is returned as-is, existing or not.
    Read once, when this module is imported.
    """
    explicit = os.environ.get("CHORDTIER_CONFIG")
    if explicit:
        return explicit
    candidates = [
        Path("chordtier.yaml"),
        Path(platformdirs.user_config_dir("chordtier")) / "chordtier.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3001


class StoreSettings(BaseModel):
    db_path: str = _DEFAULT_DB_PATH
    cache_ttl_days: int = 7
    grace_period_days: int = 1
    cleanup_interval_hours: int = 6


class SearchCacheSettings(BaseModel):
    max_items: int = 100
    ttl_hours: int = 24


class RemoteSettings(BaseModel):
    base_url: str | None = None
    prefix: str = "artist-songs/"
    timeout_seconds: float = 5.0

    @field_validator("base_url")
    @classmethod
    def _blank_disables(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip().rstrip("/")


class ScraperSettings(BaseModel):
    site_url: str = "https://www.cifraclub.com.br"
    site_name: str = "Cifra Club"
    service_url: str = "http://127.0.0.1:3100"
    timeout_seconds: float = 60.0

    @field_validator("site_url", "service_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: CHORDTIER__SERVER__PORT=9090
        env_prefix="CHORDTIER__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    store: StoreSettings = StoreSettings()
    search_cache: SearchCacheSettings = SearchCacheSettings()
    remote: RemoteSettings = RemoteSettings()
    scraper: ScraperSettings = ScraperSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
