"""Observability module - structured logging, metrics and tracing."""

from grantsync.observability.logging import bind_context, clear_context, setup_logging
from grantsync.observability.metrics import MetricsCollector, get_metrics

__all__ = [
    "setup_logging",
    "bind_context",
    "clear_context",
    "MetricsCollector",
    "get_metrics",
]
