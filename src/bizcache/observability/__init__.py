"""Observability for the cache and session layer.

Provides structured logging, cache/auth events, Prometheus metrics and
OpenTelemetry tracing.
"""

from bizcache.observability.events import (
    CacheEvent,
    EventCategory,
    EventSink,
    LoggingEventSink,
    NullEventSink,
)
from bizcache.observability.logging import (
    LogContext,
    configure_logging,
    request_id_var,
    tenant_id_var,
    user_id_var,
)
from bizcache.observability.metrics import configure_metrics, get_metrics, metrics_registry
from bizcache.observability.tracing import get_tracer, setup_tracing, shutdown_tracing

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "request_id_var",
    "tenant_id_var",
    "user_id_var",
    # Events
    "CacheEvent",
    "EventCategory",
    "EventSink",
    "LoggingEventSink",
    "NullEventSink",
    # Metrics
    "metrics_registry",
    "get_metrics",
    "configure_metrics",
    # Tracing
    "setup_tracing",
    "get_tracer",
    "shutdown_tracing",
]
