"""Structured logging for the analytics core.

Modules log through the stdlib ``logging.getLogger(__name__)``; this
module routes those records through structlog so that every entry is
rendered as JSON (or console text) carrying a ``trace_id`` and any
context bound with :func:`log_context`, e.g. the price source and the
reconciliation generation of the current cycle.
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.contextvars import bound_contextvars

_trace_id: ContextVar[str] = ContextVar("trace_id", default="")

# Third-party loggers that would otherwise log every poll at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore")


def get_trace_id() -> str:
    """Current trace ID, created on first use."""
    tid = _trace_id.get()
    if not tid:
        tid = new_trace_id()
    return tid


def new_trace_id() -> str:
    """Start a new trace (one per CLI invocation)."""
    tid = uuid.uuid4().hex[:16]
    _trace_id.set(tid)
    return tid


def log_context(**values: Any):
    """Bind key/value pairs to every log entry inside a ``with`` block."""
    return bound_contextvars(**values)


def _inject_trace_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    event_dict["trace_id"] = get_trace_id()
    return event_dict


def setup_logging(
    level: str = "INFO",
    format: str = "json",
) -> None:
    """Install a single stderr handler on the root logger.

    ``format`` is "json" (one object per line) or "console".  Unknown
    level names fall back to INFO.  Calling this again replaces the
    handler rather than adding a second one.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    shared: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _inject_trace_id,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Route plain ``logging`` records through the same renderer.
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(log_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """structlog logger for callers that want key/value events."""
    return structlog.get_logger(name)
