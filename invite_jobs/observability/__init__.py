"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from invite_jobs.observability.logging import (
    bind_context,
    clear_context,
    get_logger,
    setup_logging,
)
from invite_jobs.observability.metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
)
from invite_jobs.observability.tracing import get_tracer, setup_tracing

__all__ = [
    "setup_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "setup_metrics",
    "get_metrics",
    "MetricsCollector",
    "setup_tracing",
    "get_tracer",
]
