"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Constructor arguments
  2. Environment variables  (AFONT__API__TOKEN=..., AFONT__INDEX__MAX_PAGES=80)
  3. afont.yaml             (searched in cwd, then the platform config dir)
  4. Hardcoded defaults

The config file is optional; every field has a default. A built
Settings value is frozen and handed to every component constructor.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_APP_NAME = "afont"
_DEFAULT_DATA_DIR = platformdirs.user_data_dir(_APP_NAME)
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "fonts.sqlite3")


def _find_config_file() -> str | None:
    """Return the path of the first afont.yaml found, or None."""
    candidates = [
        Path("afont.yaml"),
        Path(platformdirs.user_config_dir(_APP_NAME)) / "afont.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ApiSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str = "https://typekit.com/api/v1/json"
    token: str = ""
    timeout_seconds: float = Field(default=25.0, ge=1.0, le=120.0)
    max_retries: int = Field(default=2, ge=0, le=8)
    retry_base_seconds: float = Field(default=0.5, ge=0.0)

    @property
    def has_token(self) -> bool:
        return bool(self.token.strip())


class IndexSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    db_path: str = _DEFAULT_DB_PATH
    stale_after_hours: int = Field(default=168, ge=0)
    page_size: int = Field(default=500, ge=1, le=500)
    max_pages: int = Field(default=40, ge=1, le=200)
    # Tier B scans are interactive, so they walk fewer pages than a refresh.
    search_max_pages: int = Field(default=20, ge=1, le=100)
    concurrency: int = Field(default=4, ge=1, le=32)


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: AFONT__INDEX__MAX_PAGES=80
        env_prefix="AFONT__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
        frozen=True,
    )

    api: ApiSettings = ApiSettings()
    index: IndexSettings = IndexSettings()
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
