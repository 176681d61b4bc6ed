"""Structured logging setup for applications embedding the risk engines."""

from __future__ import annotations

import logging

import structlog

from .config import get_settings


def configure_logging(level: str | None = None) -> None:
    """Set up structlog with human-readable console output.

    Args:
        level: Minimum log level name (e.g. ``"DEBUG"``).  Defaults to
            ``Settings.LOG_LEVEL``.
    """
    level_name = (level or get_settings().LOG_LEVEL).upper()
    min_level = logging.getLevelName(level_name)
    if not isinstance(min_level, int):
        raise ValueError(f"Unknown log level: {level_name}")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
