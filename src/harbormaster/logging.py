"""Structured logging for harbormaster.

Events are emitted through structlog and handed to the stdlib root logger,
which owns the single output handler: stderr by default, so command output on
stdout stays readable, or a size-rotated log file.

Besides level, logger name and timestamp, every event carries:
- the correlation id of the CLI invocation that emitted it
- the project and lifecycle operation bound by ProjectLifecycle

Example usage:
    >>> setup_logging(LoggingConfig(level="INFO", format="console"))
    >>> new_correlation_id()
    >>> bind_project_context(project="site1", operation="start")
    >>> get_logger(__name__).info("compose_action_started", action="up")
"""

from __future__ import annotations

import contextvars
import logging
import logging.handlers
import sys
import uuid
from typing import Any

import structlog

from harbormaster.config import LoggingConfig

# docker-py and its HTTP transport log every request at DEBUG
_CHATTY_LIBRARIES = ("docker", "urllib3")

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)


def add_correlation_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor adding the current correlation id, when one is set."""
    correlation_id = _correlation_id.get()
    if correlation_id is not None:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def new_correlation_id() -> str:
    """Start a new correlation scope for one CLI invocation.

    Returns:
        The short hex id now attached to every event
    """
    correlation_id = uuid.uuid4().hex[:12]
    _correlation_id.set(correlation_id)
    return correlation_id


def bind_project_context(project: str, operation: str) -> None:
    """Attach project and lifecycle operation to every following event.

    Args:
        project: Project name
        operation: Lifecycle operation (start, wait, import_db, ...)
    """
    structlog.contextvars.bind_contextvars(project=project, operation=operation)


def clear_project_context() -> None:
    structlog.contextvars.unbind_contextvars("project", "operation")


def _build_handler(config: LoggingConfig) -> logging.Handler:
    if config.file is None:
        return logging.StreamHandler(sys.stderr)

    config.file.parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        filename=config.file,
        maxBytes=config.rotation_size_mb * 1024 * 1024,
        backupCount=config.retention_count,
        encoding="utf-8",
    )


def _build_renderer(log_format: str) -> Any:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def setup_logging(config: LoggingConfig) -> None:
    """Route structlog events to the handler described by config.

    Replaces any handler installed by a previous call, so it is safe to call
    once per CLI invocation.

    Args:
        config: Logging section of HarbormasterConfig
    """
    level = logging.getLevelName(config.level)

    handler = _build_handler(config)
    handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(level)

    for name in _CHATTY_LIBRARIES:
        logging.getLogger(name).setLevel(max(level, logging.INFO))

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.contextvars.merge_contextvars,
            add_correlation_id,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _build_renderer(config.format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, conventionally named after the calling module."""
    return structlog.get_logger(name)
