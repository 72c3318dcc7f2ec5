"""
Structured logging for the worker and reaper processes.

The queue engine logs through the standard library with ``extra`` fields;
the handler installed here renders those records with structlog, together
with the job context bound by the worker and the active trace ids.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog
from opentelemetry import trace

from tablequeue.config import get_settings

# Loggers that are chatty at INFO
_QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite")


def add_trace_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Add the current OpenTelemetry trace and span ids, if a span is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """
    Route all logging through a structlog formatter on stdout.

    Args:
        level: Log level name; defaults to ``LOG_LEVEL``.
        fmt: ``json`` or ``console``; defaults to ``LOG_FORMAT``.
    """
    settings = get_settings()
    level = level or settings.log_level
    fmt = fmt or settings.log_format

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        add_trace_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def job_context(**values: Any) -> Iterator[None]:
    """Attach ``values`` (job id, queue name) to every record logged inside the block."""
    with structlog.contextvars.bound_contextvars(**values):
        yield
