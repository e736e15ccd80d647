"""Structured logging for the engine and CLI.

structlog sits on top of stdlib logging, so the ``logging.getLogger``
calls in the analytics modules flow through the same handlers.  Every
entry carries a ``trace_id``; the engine starts a fresh one per
operation so one ``initialize`` or ``on_new_trade`` can be followed end
to end.

Usage::

    setup_logging("DEBUG", "console")
    log = get_logger(__name__)
    with operation_context("on_new_trade", user_id="u1", profile_id="p1"):
        log.info("trade_processed", trade_id="t-42")
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

import structlog

from ..core.ids import new_id

_trace_id: ContextVar[str] = ContextVar("trace_id", default="")


def get_trace_id() -> str:
    """Current trace id, created on first use."""
    tid = _trace_id.get()
    if not tid:
        tid = new_id()
        _trace_id.set(tid)
    return tid


def set_trace_id(trace_id: str) -> None:
    _trace_id.set(trace_id)


def new_trace_id() -> str:
    """Start a new trace and return its id."""
    tid = new_id()
    _trace_id.set(tid)
    return tid


def _add_trace_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor: add trace_id to every log entry."""
    event_dict["trace_id"] = get_trace_id()
    return event_dict


@contextmanager
def operation_context(operation: str, **fields: Any) -> Iterator[str]:
    """Fresh trace id plus bound context fields for one engine operation."""
    trace_id = new_trace_id()
    with structlog.contextvars.bound_contextvars(operation=operation, **fields):
        yield trace_id


def setup_logging(
    level: str = "INFO",
    format: str = "json",
) -> None:
    """Configure structured logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        format: "json" for machine-readable output, "console" for humans.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        _add_trace_id,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Log lines go to stderr so CLI JSON output on stdout stays clean
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=log_level,
        force=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger for a module."""
    return structlog.get_logger(name)
