"""Structured logging configuration using structlog.

Diagnostics go to stderr through the stdlib root logger, rendered either as
pretty console lines or as JSON.
"""

import logging
import sys
from typing import Any

import structlog

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_FORMATS = ("console", "json")


def validate_log_level(value: str) -> str:
    """Normalize and validate a log level name.

    Args:
        value: Level name in any case.

    Returns:
        Upper-cased level name.

    Raises:
        ValueError: If the level is unknown.
    """
    level = value.upper()
    if level not in _LEVELS:
        raise ValueError(f"Invalid log level: {value}. Must be one of {_LEVELS}")
    return level


def validate_log_format(value: str) -> str:
    """Normalize and validate a log format name."""
    fmt = value.lower()
    if fmt not in _FORMATS:
        raise ValueError(f"Invalid log format: {value}. Must be one of {_FORMATS}")
    return fmt


def _render_processors(fmt: str) -> list[Any]:
    strip_meta = structlog.stdlib.ProcessorFormatter.remove_processors_meta
    if fmt == "json":
        return [
            strip_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [strip_meta, structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]


def configure_logging(
    level: str = "INFO",
    fmt: str = "console",
    handler: logging.Handler | None = None,
) -> None:
    """Configure structlog to render through the stdlib root logger.

    Args:
        level: Minimum level for emitted events.
        fmt: ``console`` for human-readable lines, ``json`` for one JSON
            object per line.
        handler: Destination for rendered events. Defaults to stderr.
    """
    level = validate_log_level(level)
    fmt = validate_log_format(fmt)

    shared_processors: list[Any] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=_render_processors(fmt),
            foreign_pre_chain=shared_processors,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
