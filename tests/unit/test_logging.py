"""Unit tests for logging configuration."""

from __future__ import annotations

import json
import logging
import logging.handlers
from io import StringIO
from pathlib import Path
from typing import Any

import pytest
import structlog

from harbormaster.config import LoggingConfig
from harbormaster.logging import (
    add_correlation_id,
    bind_project_context,
    get_correlation_id,
    clear_project_context,
    get_logger,
    new_correlation_id,
    set_correlation_id,
    setup_logging,
)


@pytest.fixture(autouse=True)
def reset_logging() -> None:
    """Reset logging configuration before each test."""
    root = logging.getLogger()
    root.handlers.clear()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    set_correlation_id(None)


@pytest.fixture
def capture_stream() -> StringIO:
    """Create a StringIO stream for capturing log output."""
    return StringIO()


@pytest.fixture
def json_config() -> LoggingConfig:
    """Create a LoggingConfig for JSON output."""
    return LoggingConfig(level="INFO", format="json", file=None)


def _capture(stream: StringIO) -> None:
    logging.getLogger().handlers[0].stream = stream


def test_json_output_format(json_config: LoggingConfig, capture_stream: StringIO) -> None:
    """Test that JSON format produces valid JSON output."""
    setup_logging(json_config)
    _capture(capture_stream)

    logger = get_logger("test.module")
    logger.info("network_created", network="harbormaster_default", duration_seconds=0.2)

    log_entry = json.loads(capture_stream.getvalue().strip())
    assert log_entry["event"] == "network_created"
    assert log_entry["network"] == "harbormaster_default"
    assert log_entry["level"] == "info"
    assert log_entry["logger"] == "test.module"
    assert "timestamp" in log_entry


def test_console_output_format(capture_stream: StringIO) -> None:
    """Test that console format produces human-readable output."""
    setup_logging(LoggingConfig(level="DEBUG", format="console"))
    _capture(capture_stream)

    get_logger("test.module").debug("wait_poll", attempt=3)

    output = capture_stream.getvalue()
    assert "wait_poll" in output
    assert "attempt" in output
    with pytest.raises(json.JSONDecodeError):
        json.loads(output.strip())


def test_log_level_filtering(json_config: LoggingConfig, capture_stream: StringIO) -> None:
    """Test that DEBUG is filtered at INFO level."""
    setup_logging(json_config)
    _capture(capture_stream)

    logger = get_logger("test.module")
    logger.debug("debug_message")
    assert capture_stream.getvalue() == ""

    logger.info("info_message")
    assert "info_message" in capture_stream.getvalue()


def test_correlation_id_binding(json_config: LoggingConfig, capture_stream: StringIO) -> None:
    """Test that correlation ID is added to log entries while set."""
    setup_logging(json_config)
    _capture(capture_stream)
    logger = get_logger("test.module")

    set_correlation_id("corr-12345")
    assert get_correlation_id() == "corr-12345"
    logger.info("with_correlation")
    assert json.loads(capture_stream.getvalue().strip())["correlation_id"] == "corr-12345"

    set_correlation_id(None)
    capture_stream.truncate(0)
    capture_stream.seek(0)
    logger.info("without_correlation")
    assert "correlation_id" not in json.loads(capture_stream.getvalue().strip())


def test_correlation_id_processor() -> None:
    """Test the correlation ID processor directly."""
    event_dict: dict[str, Any] = {"event": "test"}

    assert "correlation_id" not in add_correlation_id(None, "", event_dict.copy())

    set_correlation_id("test-id")
    assert add_correlation_id(None, "", event_dict.copy())["correlation_id"] == "test-id"
    set_correlation_id(None)


def test_project_context_binding(json_config: LoggingConfig, capture_stream: StringIO) -> None:
    """Test that project and operation context reach every logger."""
    setup_logging(json_config)
    _capture(capture_stream)

    bind_project_context(project="site1", operation="start")

    get_logger("module1").info("event1")
    log1 = json.loads(capture_stream.getvalue().strip())
    capture_stream.truncate(0)
    capture_stream.seek(0)
    get_logger("module2").info("event2")
    log2 = json.loads(capture_stream.getvalue().strip())

    assert log1["project"] == log2["project"] == "site1"
    assert log1["operation"] == log2["operation"] == "start"


def test_file_rotation_handler_configuration(tmp_path: Path) -> None:
    """Test that file rotation handler is configured correctly."""
    log_file = tmp_path / "logs" / "harbormaster.log"
    config = LoggingConfig(
        level="INFO",
        format="json",
        file=log_file,
        rotation_size_mb=10,
        retention_count=3,
    )

    setup_logging(config)

    root = logging.getLogger()
    assert len(root.handlers) == 1
    handler = root.handlers[0]
    assert isinstance(handler, logging.handlers.RotatingFileHandler)
    assert handler.maxBytes == 10 * 1024 * 1024
    assert handler.backupCount == 3

    get_logger("test.module").info("file_write", data="test")
    handler.flush()

    log_entry = json.loads(log_file.read_text().strip())
    assert log_entry["event"] == "file_write"
    assert log_entry["data"] == "test"


def test_exception_formatting(json_config: LoggingConfig, capture_stream: StringIO) -> None:
    """Test that exceptions are formatted correctly in logs."""
    setup_logging(json_config)
    _capture(capture_stream)

    try:
        raise ValueError("Test exception")
    except ValueError:
        get_logger("test.module").exception("error_occurred")

    log_entry = json.loads(capture_stream.getvalue().strip())
    assert log_entry["level"] == "error"
    assert "ValueError: Test exception" in log_entry["exception"]


def test_config_validation() -> None:
    """Test that LoggingConfig validates inputs correctly."""
    LoggingConfig(level="info")
    LoggingConfig(format="JSON")

    with pytest.raises(ValueError, match="Invalid log level"):
        LoggingConfig(level="INVALID")
    with pytest.raises(ValueError, match="Invalid log format"):
        LoggingConfig(format="xml")


def test_new_correlation_id() -> None:
    first = new_correlation_id()
    second = new_correlation_id()

    assert len(first) == 12
    assert first != second
    assert get_correlation_id() == second


def test_clear_project_context(json_config: LoggingConfig, capture_stream: StringIO) -> None:
    """Events after clearing no longer carry the previous project."""
    setup_logging(json_config)
    _capture(capture_stream)

    bind_project_context(project="site1", operation="down")
    clear_project_context()
    get_logger("test.module").info("after_close")

    log_entry = json.loads(capture_stream.getvalue().strip())
    assert "project" not in log_entry
    assert "operation" not in log_entry


def test_docker_debug_chatter_suppressed(capture_stream: StringIO) -> None:
    setup_logging(LoggingConfig(level="DEBUG", format="console"))

    assert logging.getLogger("docker").getEffectiveLevel() == logging.INFO
    assert logging.getLogger("urllib3").getEffectiveLevel() == logging.INFO


def test_setup_replaces_previous_handler(tmp_path: Path) -> None:
    setup_logging(LoggingConfig(file=tmp_path / "a.log"))
    setup_logging(LoggingConfig())

    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert not isinstance(handlers[0], logging.handlers.RotatingFileHandler)
