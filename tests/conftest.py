"""Pytest fixtures and configuration for localcache tests.

Provides common fixtures for configuration, databases, and clocks.
"""

import os
from collections.abc import AsyncGenerator, Generator
from pathlib import Path
from typing import Any

import pytest

from localcache.config import reset_config
from localcache.config_schema import AppConfig
from localcache.core.rate_limiter import reset_buckets
from localcache.db.models import CACHE_SCHEMA, CHECKPOINT_SCHEMA, DICTIONARY_SCHEMA, SchemaManager


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset the config singleton and shared rate limiters before each test."""
    reset_config()
    reset_buckets()
    yield
    reset_config()
    reset_buckets()


@pytest.fixture
def temp_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Create a temporary data directory."""
    data = tmp_path / "data"
    data.mkdir()
    return data


@pytest.fixture
def sample_config_yaml(data_dir: Path) -> str:
    """Return a minimal valid config.yaml content pointing at the temp data dir."""
    return f"""
schema_version: 1

storage:
  data_dir: "{data_dir}"

cache:
  default_ttl_days: 1

dictionary:
  base_url: "https://shards.test/dist"
  api_host: "https://api.test/api/v2"
  languages: ["en", "es"]
  max_retries: 0
"""


@pytest.fixture
def sample_config_dict() -> dict[str, Any]:
    """Return a minimal valid config as a dictionary."""
    return {
        "schema_version": 1,
        "dictionary": {
            "base_url": "https://shards.test/dist/",
            "languages": ["es", "fr"],
        },
    }


@pytest.fixture
def sample_config(sample_config_dict: dict[str, Any]) -> AppConfig:
    """Return a minimal valid AppConfig instance."""
    return AppConfig(**sample_config_dict)


@pytest.fixture
def config_file(temp_config_dir: Path, sample_config_yaml: str) -> Path:
    """Create a temporary config file with valid content."""
    config_path = temp_config_dir / "config.yaml"
    config_path.write_text(sample_config_yaml)
    return config_path


@pytest.fixture
def set_config_env(config_file: Path) -> Generator[None, None, None]:
    """Set the LOCALCACHE_CONFIG_PATH environment variable."""
    old_value = os.environ.get("LOCALCACHE_CONFIG_PATH")
    os.environ["LOCALCACHE_CONFIG_PATH"] = str(config_file)
    yield
    if old_value is None:
        del os.environ["LOCALCACHE_CONFIG_PATH"]
    else:
        os.environ["LOCALCACHE_CONFIG_PATH"] = old_value


class FakeClock:
    """Manually advanced wall clock, in seconds like time.time()."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: int) -> None:
        self.now += ms / 1000


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def cache_db(data_dir: Path) -> AsyncGenerator[SchemaManager, None]:
    """Open cache database, closed after the test."""
    database = SchemaManager(data_dir / "cache.db", CACHE_SCHEMA)
    await database.open()
    yield database
    await database.close()


@pytest.fixture
async def dictionary_db(data_dir: Path) -> AsyncGenerator[SchemaManager, None]:
    """Open dictionary database, closed after the test."""
    database = SchemaManager(data_dir / "dictionary.db", DICTIONARY_SCHEMA)
    await database.open()
    yield database
    await database.close()


@pytest.fixture
async def checkpoint_db(data_dir: Path) -> AsyncGenerator[SchemaManager, None]:
    """Open checkpoint database, closed after the test."""
    database = SchemaManager(data_dir / "checkpoints.db", CHECKPOINT_SCHEMA)
    await database.open()
    yield database
    await database.close()


