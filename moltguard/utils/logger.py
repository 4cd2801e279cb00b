"""Structured logging for Molt-Guard.

structlog is configured once per process by ``configure_logging``. Request
context lives in structlog's own context variables: ``set_request_id`` binds
the request's ULID, ``merge_contextvars`` stamps it on every event logged while
that request is handled, and ``RequestContextMiddleware`` (moltguard/proxy/
middleware.py) clears it when the request ends.

Prompt and response text is never passed to the logger.
"""

from __future__ import annotations

import logging
import sys
import time
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog
from structlog.types import Processor

REQUEST_ID_KEY = "request_id"


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog for the gateway process.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (unknown names mean INFO).
        json_output: JSON lines when True, coloured console output otherwise.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "moltguard") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


# ─── Request context ──────────────────────────────────────────────────────────


def set_request_id(request_id: str) -> None:
    """Bind ``request_id`` to every event logged for the current request."""
    structlog.contextvars.bind_contextvars(**{REQUEST_ID_KEY: request_id})


def get_request_id() -> Optional[str]:
    return structlog.contextvars.get_contextvars().get(REQUEST_ID_KEY)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


# ─── Timing ───────────────────────────────────────────────────────────────────


@contextmanager
def log_duration(
    event: str,
    logger: structlog.stdlib.BoundLogger,
    slow_ms: float = 1000.0,
    **context: Any,
) -> Iterator[None]:
    """Log ``<event>_completed`` (or ``<event>_failed``) with ``duration_ms``.

    Completions slower than ``slow_ms`` are logged at WARNING, others at DEBUG.
    Exceptions are logged and re-raised.
    """
    started = time.perf_counter()
    try:
        yield
    except Exception as exc:
        logger.error(
            f"{event}_failed",
            duration_ms=(time.perf_counter() - started) * 1000,
            error_type=type(exc).__name__,
            **context,
        )
        raise
    duration_ms = (time.perf_counter() - started) * 1000
    log = logger.warning if duration_ms > slow_ms else logger.debug
    log(f"{event}_completed", duration_ms=duration_ms, **context)
