"""Pydantic configuration schema for localcache.

This module defines the configuration schema that mirrors config.yaml structure.
All configuration is validated against these models on load.

Usage:
    from localcache.config_schema import AppConfig

    # Validate a config dict
    config = AppConfig(**yaml_data)
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from localcache.db.languages import Language

# Current schema version - increment when adding new required fields
CURRENT_SCHEMA_VERSION = 1

DEFAULT_SHARD_BASE_URL = (
    "https://media.githubusercontent.com/media/WhiteHades/wikitionary-dictionary-json/master/dist"
)
DEFAULT_API_HOST = "https://api.dictionaryapi.dev/api/v2"


class StorageConfig(BaseModel):
    """Locations of the SQLite files."""

    data_dir: str = Field(default="data", description="Directory holding all database files")
    cache_db: str = Field(default="cache.db", description="General cache database file name")
    dictionary_db: str = Field(
        default="dictionary.db",
        description="Offline dictionary database file name",
    )
    checkpoint_db: str = Field(
        default="checkpoints.db",
        description="Download checkpoint database file name",
    )

    @field_validator("data_dir", "cache_db", "dictionary_db", "checkpoint_db")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Ensure paths are non-empty and don't contain traversal."""
        if not v or not v.strip():
            raise ValueError("Path cannot be empty")
        if ".." in v:
            raise ValueError("Path cannot contain '..' (path traversal)")
        return v

    def path_for(self, file_name: str) -> Path:
        """Return the full path of a database file inside data_dir."""
        return Path(self.data_dir) / file_name


class CacheConfig(BaseModel):
    """Generic TTL cache configuration."""

    default_ttl_days: float = Field(
        default=7,
        gt=0,
        le=365,
        description="Default time-to-live for generic cache entries (days)",
    )


class DictionaryConfig(BaseModel):
    """Offline dictionary download and lookup configuration."""

    base_url: str = Field(
        default=DEFAULT_SHARD_BASE_URL,
        description="Base URL of the sharded dictionary source",
    )
    api_host: str = Field(
        default=DEFAULT_API_HOST,
        description="Base URL of the single-word fallback API",
    )
    languages: list[str] = Field(
        default=["en"],
        description="Languages searched by word lookup, in order",
    )
    fetch_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=600,
        description="Timeout for a single shard request (seconds)",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries per shard for transient failures (5xx, 429, timeouts)",
    )
    retry_delays: list[float] = Field(
        default=[1.0, 2.0, 4.0],
        min_length=1,
        description="Backoff delays in seconds for each retry",
    )
    requests_per_second: float = Field(
        default=5.0,
        gt=0,
        le=100,
        description="Maximum shard requests per second",
    )

    @field_validator("languages")
    @classmethod
    def validate_languages(cls, v: list[str]) -> list[str]:
        """Ensure every selected language is supported."""
        if not v:
            raise ValueError("At least one language must be selected")
        supported = {lang.value for lang in Language}
        unknown = [code for code in v if code not in supported]
        if unknown:
            raise ValueError(
                f"Unsupported language codes {unknown}; supported: {sorted(supported)}"
            )
        return v

    @field_validator("base_url", "api_host")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Ensure URLs are http(s) and strip trailing slashes."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum log level",
    )
    json_output: bool = Field(
        default=False,
        description="Emit JSON lines instead of human-readable console output",
    )


class AppConfig(BaseModel):
    """Root configuration schema for localcache.

    Every section has defaults, so an empty config.yaml is valid.
    """

    schema_version: int = Field(
        default=CURRENT_SCHEMA_VERSION,
        ge=1,
        description="Config schema version for migration tracking",
    )

    storage: StorageConfig = Field(default_factory=StorageConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    dictionary: DictionaryConfig = Field(default_factory=DictionaryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
