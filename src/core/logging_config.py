"""Structured logging configuration.

This module initializes structlog with a stable JSON event format.
Events go to stderr so CLI stdout stays parseable. Storages bind their
kind and target udid onto the returned logger.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

_CONFIGURED = False


def get_logger(name: str, **context: object) -> Any:
    """Return a module logger instance.

    Args:
        name: Logger name, usually __name__.
        **context: Fields bound onto every event from this logger.

    Returns:
        A structlog logger with structured output.
    """
    _configure_once()
    logger = structlog.get_logger(name)
    if context:
        return logger.bind(**context)
    return logger


def _stderr_logger(*args: Any) -> structlog.PrintLogger:
    # Resolved per logger so a replaced sys.stderr is honoured.
    return structlog.PrintLogger(file=sys.stderr)


def _configure_once() -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )
    _CONFIGURED = True
