"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Constructor arguments
  2. Environment variables  (HYPERLOOKUP__LOOKUP__MIN_TTL=0)
  3. hyperlookup.yaml       (searched in cwd, then platform config dir)
  4. Hardcoded defaults

The config file is optional; all fields have sensible defaults. Regex
overrides are kept as given here (a string or a compiled pattern) and
compiled and validated by the lookup engine, which reports problems as
ArgumentError.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("hyperlookup")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "cache.db")

DEFAULT_DOH_LOOKUPS: tuple[str, ...] = (
    "https://cloudflare-dns.com/dns-query",
    "https://dns.google/resolve",
    "https://dns.quad9.net:5053/dns-query",
)

DEFAULT_USER_AGENT = "hyperlookup/1.0"

WELL_KNOWN_REDIRECT_LIMIT = 6


def _find_config_file() -> str | None:
    """Return the path of the first hyperlookup.yaml found, or None."""
    candidates = [
        Path("hyperlookup.yaml"),
        Path(platformdirs.user_config_dir("hyperlookup")) / "hyperlookup.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class LookupSettings(BaseModel):
    doh_lookups: list[str] = Field(default_factory=lambda: list(DEFAULT_DOH_LOOKUPS))
    doh_lookup: str | None = None  # None → first entry of doh_lookups
    user_agent: str = DEFAULT_USER_AGENT
    protocol: str = "hyper"
    key_regex: str | re.Pattern[str] | None = None
    txt_regex: str | re.Pattern[str] | None = None
    min_ttl: float = 30
    max_ttl: float = 60 * 60 * 24 * 7
    ttl: float = 60 * 60
    cors_warning: bool = True
    no_well_known: bool = False
    allow_localhost: bool = False
    cache_misses: bool = False
    timeout_seconds: float = 30.0

    def providers(self) -> list[str]:
        """Ordered DoH chain: the active provider first, then the rest."""
        if self.doh_lookup is None:
            return list(self.doh_lookups)
        return [self.doh_lookup, *(url for url in self.doh_lookups if url != self.doh_lookup)]


class CacheSettings(BaseModel):
    max_size: int = 1000
    db_path: str = _DEFAULT_DB_PATH
    wal_check_interval_seconds: float = 60
    max_wal_size: int = 10 * 1024 * 1024


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: HYPERLOOKUP__LOOKUP__MIN_TTL=0
        env_prefix="HYPERLOOKUP__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    lookup: LookupSettings = LookupSettings()
    cache: CacheSettings = CacheSettings()
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
        )
