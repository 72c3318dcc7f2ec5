"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from tablequeue.observability.logging import job_context, setup_logging
from tablequeue.observability.metrics import (
    MetricsCollector,
    get_metrics,
    serve_metrics,
    setup_metrics,
)
from tablequeue.observability.tracing import get_tracer, setup_tracing

__all__ = [
    "setup_logging",
    "job_context",
    "setup_metrics",
    "get_metrics",
    "serve_metrics",
    "MetricsCollector",
    "setup_tracing",
    "get_tracer",
]
