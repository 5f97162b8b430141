"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest

from localcache.config import get_config, load_config, reset_config, validate_config_file
from localcache.config_schema import DEFAULT_SHARD_BASE_URL, AppConfig
from localcache.core.errors import ConfigLoadError, ConfigValidationError


def test_defaults_need_no_file_content():
    config = AppConfig()

    assert config.dictionary.base_url == DEFAULT_SHARD_BASE_URL
    assert config.dictionary.languages == ["en"]
    assert config.cache.default_ttl_days == 7
    assert config.storage.path_for(config.storage.cache_db) == Path("data/cache.db")


def test_trailing_slash_stripped_from_urls(sample_config: AppConfig):
    assert sample_config.dictionary.base_url == "https://shards.test/dist"


def test_unsupported_language_rejected():
    with pytest.raises(ValueError, match="Unsupported language"):
        AppConfig(dictionary={"languages": ["es", "xx"]})


def test_path_traversal_rejected():
    with pytest.raises(ValueError, match="traversal"):
        AppConfig(storage={"data_dir": "../elsewhere"})


def test_load_config_from_file(config_file: Path, data_dir: Path):
    config = load_config(config_file)

    assert config.storage.data_dir == str(data_dir)
    assert config.dictionary.languages == ["en", "es"]
    assert config.dictionary.max_retries == 0


def test_load_config_uses_env_path(set_config_env: None):
    config = load_config()
    assert config.dictionary.api_host == "https://api.test/api/v2"


def test_missing_file_raises_load_error(tmp_path: Path):
    with pytest.raises(ConfigLoadError, match="not found"):
        load_config(tmp_path / "missing.yaml")


def test_non_mapping_yaml_rejected(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ConfigLoadError, match="mapping"):
        load_config(path)


def test_invalid_field_reports_path(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text("dictionary:\n  max_retries: lots\n")

    with pytest.raises(ConfigValidationError, match="dictionary.max_retries"):
        load_config(path)


def test_newer_schema_version_rejected(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text("schema_version: 99\n")

    with pytest.raises(ConfigValidationError, match="newer"):
        load_config(path)


def test_get_config_is_cached(config_file: Path):
    first = get_config(config_file)
    config_file.write_text("dictionary:\n  languages: [fr]\n")

    assert get_config(config_file) is first

    reset_config()
    assert get_config(config_file).dictionary.languages == ["fr"]


def test_validate_config_file(config_file: Path, tmp_path: Path):
    is_valid, message = validate_config_file(config_file)
    assert is_valid
    assert "en, es" in message

    is_valid, message = validate_config_file(tmp_path / "missing.yaml")
    assert not is_valid
    assert message.startswith("Load error")
