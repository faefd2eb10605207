"""
structlog setup.

Every event carries the signed-in user's id once a session starts: the
session binds it into structlog's contextvars and `merge_contextvars` adds it
to each entry.
"""

from __future__ import annotations

import sys

import structlog

USER_CONTEXT_KEY = "user_id"


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure structlog with the given level and renderer ("json" or "text")."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if fmt == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer(ensure_ascii=False))
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def bind_user(user_id: str) -> None:
    structlog.contextvars.bind_contextvars(**{USER_CONTEXT_KEY: user_id})


def unbind_user() -> None:
    structlog.contextvars.unbind_contextvars(USER_CONTEXT_KEY)
