"""Structured logging configuration using *structlog*."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


def setup_logging(level: str = "INFO") -> None:
    """Configure *structlog* processors and route stdlib loggers to stderr.

    Call once per process (``serve``, ``replay``).  stdout stays free for
    command output such as replayed configurations.
    """
    numeric_level = getattr(logging, level, logging.INFO)
    logging.basicConfig(level=numeric_level, stream=sys.stderr, format="%(name)s %(message)s")

    renderer = structlog.dev.ConsoleRenderer() if sys.stderr.isatty() else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def bind_request_context(**fields: Any) -> None:
    """Attach *fields* (request id, session id) to every log line of this task."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**{k: v for k, v in fields.items() if v is not None})


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
