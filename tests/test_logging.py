"""Tests for structlog configuration and download correlation ids."""

import io
import json

import pytest

from localcache.core.logging import (
    configure_logging,
    correlation_scope,
    get_correlation_id,
    get_logger,
)


def _lines(stream: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


def test_json_lines_carry_download_id() -> None:
    stream = io.StringIO()
    configure_logging(log_level="INFO", json_output=True, stream=stream)

    with correlation_scope("dl-123") as bound:
        assert bound == "dl-123"
        get_logger("tests.logging").info("Shard stored", language="es", letter="a")

    (line,) = _lines(stream)
    assert line["event"] == "Shard stored"
    assert line["download_id"] == "dl-123"
    assert line["language"] == "es"
    assert line["level"] == "info"


def test_scope_restores_previous_id() -> None:
    assert get_correlation_id() is None

    with correlation_scope() as outer:
        assert get_correlation_id() == outer
        with correlation_scope("inner"):
            assert get_correlation_id() == "inner"
        assert get_correlation_id() == outer

    assert get_correlation_id() is None


def test_no_download_id_outside_scope() -> None:
    stream = io.StringIO()
    configure_logging(log_level="INFO", json_output=True, stream=stream)

    get_logger("tests.logging").info("Cache swept", removed=0)

    (line,) = _lines(stream)
    assert "download_id" not in line


def test_level_filters_debug() -> None:
    stream = io.StringIO()
    configure_logging(log_level="WARNING", json_output=True, stream=stream)

    logger = get_logger("tests.logging")
    logger.info("ignored")
    logger.warning("kept")

    assert [line["event"] for line in _lines(stream)] == ["kept"]


def test_unknown_level_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown log level"):
        configure_logging(log_level="LOUD")
