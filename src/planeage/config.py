"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (PLANEAGE__FLIGHTS__API_KEY=...)
  2. planeage.yaml          (searched in cwd, then the platform config dir)
  3. Hardcoded defaults

The config file is optional: every field has a usable default except the
flight API key, without which flight checks report "currently unavailable".
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("planeage")
_DEFAULT_REGISTRY_DIR = str(Path(_DEFAULT_DATA_DIR) / "faa")

FAA_RELEASABLE_URL = "https://registry.faa.gov/database/ReleasableAircraft.zip"


def _find_config_file() -> str | None:
    """Return the path of the first planeage.yaml found, or None."""
    candidates = [
        Path("planeage.yaml"),
        Path(platformdirs.user_config_dir("planeage")) / "planeage.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class RegistrySettings(_Section):
    data_dir: str = _DEFAULT_REGISTRY_DIR
    master_file: str = "master.csv"
    reference_file: str = "acftref.csv"
    max_concurrent_lookups: int = Field(default=4, ge=1)
    backend: Literal["local", "manifest"] = "local"
    manifest_cache_seconds: float = Field(default=60.0, ge=0)

    @property
    def master_path(self) -> Path:
        return Path(self.data_dir).expanduser() / self.master_file

    @property
    def reference_path(self) -> Path:
        return Path(self.data_dir).expanduser() / self.reference_file


class CacheSettings(_Section):
    flight_ttl_seconds: float = 600.0
    flight_max_entries: int = 1000
    aircraft_ttl_seconds: float = 86400.0
    aircraft_max_entries: int = 5000


class FlightApiSettings(_Section):
    api_key: SecretStr | None = None
    api_host: str = "aerodatabox.p.rapidapi.com"
    timeout_seconds: float = Field(default=10.0, gt=0)


class RefreshSettings(_Section):
    source_url: str = FAA_RELEASABLE_URL
    master_entry: str = "MASTER.txt"
    reference_entry: str = "ACFTREF.txt"
    download_timeout_seconds: float = Field(default=120.0, gt=0)
    max_redirects: int = Field(default=5, ge=0)
    max_age_days: float = Field(default=7.0, ge=0)
    check_interval_seconds: float = Field(default=6 * 60 * 60, gt=0)


class MirrorSettings(_Section):
    bucket: str | None = None
    prefix: str = "faa"
    manifest_object: str = "faa/current.json"
    region: str | None = None
    endpoint_url: str | None = None


class LoggingSettings(_Section):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: PLANEAGE__REGISTRY__DATA_DIR=/srv/faa
        env_prefix="PLANEAGE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    data_dir: str = _DEFAULT_DATA_DIR
    registry: RegistrySettings = RegistrySettings()
    cache: CacheSettings = CacheSettings()
    flights: FlightApiSettings = FlightApiSettings()
    refresh: RefreshSettings = RefreshSettings()
    mirror: MirrorSettings = MirrorSettings()
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
