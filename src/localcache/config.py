"""Configuration loading.

The config file is YAML validated against `localcache.config_schema.AppConfig`.
Its location is, in order of precedence: an explicit path (the CLI's
--config), the LOCALCACHE_CONFIG_PATH environment variable, or
config/config.yaml. Every section has defaults, so an empty file is valid,
but the file itself must exist.

Usage:
    from localcache.config import get_config

    config = get_config()
    db_path = config.storage.path_for(config.storage.dictionary_db)
"""

import os
import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from localcache.config_schema import CURRENT_SCHEMA_VERSION, AppConfig
from localcache.core.errors import ConfigLoadError, ConfigValidationError
from localcache.core.logging import get_logger

logger = get_logger(__name__)

CONFIG_PATH_ENV = "LOCALCACHE_CONFIG_PATH"
DEFAULT_CONFIG_PATH = Path("config/config.yaml")

_config_lock = threading.Lock()
_current_config: AppConfig | None = None


def resolve_config_path(path: Path | None = None) -> Path:
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_PATH_ENV)
    return Path(env_path) if env_path else DEFAULT_CONFIG_PATH


def _describe_error(err: dict[str, Any]) -> str:
    """One actionable line per pydantic error, e.g. "dictionary.max_retries"."""
    field_path = ".".join(str(loc) for loc in err["loc"]) or "(root)"
    match err["type"]:
        case "missing":
            return f"  - Missing required field '{field_path}'"
        case "int_type" | "int_parsing":
            return f"  - Field '{field_path}' must be an integer, got {err.get('input')!r}"
        case "float_type" | "float_parsing":
            return f"  - Field '{field_path}' must be a number, got {err.get('input')!r}"
        case "extra_forbidden":
            return f"  - Unknown field '{field_path}' (check for a typo)"
        case _:
            return f"  - Field '{field_path}': {err['msg']}"


def _read_yaml(path: Path) -> dict[str, Any]:
    """Parse the config file into a mapping.

    Raises:
        ConfigLoadError: If the file is missing, unreadable, not YAML, or not a mapping
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigLoadError(
            f"Configuration file not found: {path}\n"
            f"Copy config/config.yaml.example to {path}, or set {CONFIG_PATH_ENV}."
        ) from None
    except OSError as e:
        raise ConfigLoadError(f"Cannot read configuration file {path}: {e}") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Failed to parse YAML in {path}:\n{e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError(
            f"Configuration file {path} must be a YAML mapping, got {type(data).__name__}"
        )
    return data


def _build_config(data: dict[str, Any], path: Path) -> AppConfig:
    """Validate parsed YAML.

    Raises:
        ConfigValidationError: On schema errors or a newer schema_version
    """
    try:
        config = AppConfig(**data)
    except ValidationError as e:
        details = "\n".join(_describe_error(err) for err in e.errors())
        raise ConfigValidationError(f"Configuration validation failed for {path}:\n{details}") from e

    if config.schema_version > CURRENT_SCHEMA_VERSION:
        raise ConfigValidationError(
            f"Config schema version {config.schema_version} in {path} is newer than the "
            f"supported version {CURRENT_SCHEMA_VERSION}. Upgrade localcache or lower "
            "schema_version."
        )
    return config


def load_config(path: Path | None = None) -> AppConfig:
    """Read and validate the config file, bypassing the cached singleton.

    Raises:
        ConfigLoadError: If the file cannot be read or parsed
        ConfigValidationError: If validation fails
    """
    config_path = resolve_config_path(path)
    config = _build_config(_read_yaml(config_path), config_path)

    logger.debug(
        "Configuration loaded",
        path=str(config_path),
        data_dir=config.storage.data_dir,
        languages=config.dictionary.languages,
    )
    return config


def get_config(path: Path | None = None) -> AppConfig:
    """Process-wide config, loaded on first call.

    The path argument only matters on the first call; reset_config() forgets
    the cached value.
    """
    global _current_config

    with _config_lock:
        if _current_config is None:
            _current_config = load_config(path)
        return _current_config


def reset_config() -> None:
    """Forget the cached config. Primarily for testing."""
    global _current_config
    with _config_lock:
        _current_config = None


def validate_config_file(path: Path | None = None) -> tuple[bool, str]:
    """Check a config file without touching the singleton.

    Returns:
        (is_valid, human-readable message)
    """
    config_path = resolve_config_path(path)
    try:
        config = load_config(config_path)
    except ConfigLoadError as e:
        return False, f"Load error: {e}"
    except ConfigValidationError as e:
        return False, f"Validation error: {e}"

    storage = config.storage
    return True, "\n".join(
        [
            f"Configuration valid (schema version {config.schema_version})",
            f"  - data dir: {storage.data_dir} "
            f"({storage.cache_db}, {storage.dictionary_db}, {storage.checkpoint_db})",
            f"  - languages: {', '.join(config.dictionary.languages)}",
            f"  - shard source: {config.dictionary.base_url}",
            f"  - default cache TTL: {config.cache.default_ttl_days:g} days",
        ]
    )
