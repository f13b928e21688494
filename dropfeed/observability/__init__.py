"""Observability layer - logging, metrics, and tracing."""

from dropfeed.observability.logging import setup_logging
from dropfeed.observability.metrics import MetricsCollector, get_metrics
from dropfeed.observability.tracing import get_tracer, setup_tracing, traced

__all__ = [
    "MetricsCollector",
    "get_metrics",
    "get_tracer",
    "setup_logging",
    "setup_tracing",
    "traced",
]
