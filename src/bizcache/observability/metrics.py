"""Prometheus metrics for the cache and session layer.

Provides:
- Cache metrics (hits, misses, latency, backend fallbacks) by backend type
- Session lifecycle outcomes (created, validated, rejected, revoked)
- Invalidations per entity kind

These complement CacheService's own hit/miss counters, which are
per-instance and resettable; Prometheus counters are process-wide and
only ever increase.

Usage:
    from bizcache.observability.metrics import record_cache_hit

    record_cache_hit("redis")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import REGISTRY, Counter, Histogram, generate_latest

from bizcache.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    cache_hits_total: Any = None
    cache_misses_total: Any = None
    cache_operation_duration_seconds: Any = None
    cache_fallbacks_total: Any = None

    sessions_total: Any = None
    invalidations_total: Any = None

    enabled: bool = False
    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    def initialize(self, settings: Settings | None = None) -> None:
        """Apply settings.enable_metrics, creating the collectors on first enable.

        Collectors live in the process-wide prometheus REGISTRY and cannot be
        registered twice, so disabling only stops recording.
        """
        settings = settings or get_settings()
        self.enabled = settings.enable_metrics
        self._initialized = True
        if not self.enabled:
            logger.info("Metrics are disabled")
            return
        if self._registry is not None:
            return

        self._registry = REGISTRY

        self.cache_hits_total = Counter(
            "bizcache_cache_hits_total",
            "Cache hits",
            ["cache_type"],
        )
        self.cache_misses_total = Counter(
            "bizcache_cache_misses_total",
            "Cache misses",
            ["cache_type"],
        )
        self.cache_operation_duration_seconds = Histogram(
            "bizcache_cache_operation_duration_seconds",
            "Cache operation latency in seconds",
            ["operation", "cache_type"],
            buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
        )
        self.cache_fallbacks_total = Counter(
            "bizcache_cache_fallbacks_total",
            "Operations served by the in-memory store because Redis was unavailable",
            ["operation"],
        )
        self.sessions_total = Counter(
            "bizcache_sessions_total",
            "Session lifecycle outcomes",
            ["outcome"],
        )
        self.invalidations_total = Counter(
            "bizcache_invalidations_total",
            "Invalidation events processed",
            ["entity_kind"],
        )

        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Prometheus exposition format, for the host application's /metrics."""
        if not self.enabled or self._registry is None:
            return b"# Metrics disabled\n"
        return generate_latest(self._registry)


metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the process-wide metrics registry, initializing it on first access."""
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


def configure_metrics(settings: Settings) -> MetricsRegistry:
    """Initialize the registry from explicitly injected settings."""
    metrics_registry.initialize(settings)
    return metrics_registry


def record_cache_hit(cache_type: str) -> None:
    metrics = get_metrics()
    if metrics.enabled and metrics.cache_hits_total:
        metrics.cache_hits_total.labels(cache_type=cache_type).inc()


def record_cache_miss(cache_type: str) -> None:
    metrics = get_metrics()
    if metrics.enabled and metrics.cache_misses_total:
        metrics.cache_misses_total.labels(cache_type=cache_type).inc()


def record_cache_operation(operation: str, duration: float, cache_type: str) -> None:
    """Record cache operation duration.

    Args:
        operation: get, set, delete, delete_pattern or flush
        duration: Operation duration in seconds
        cache_type: redis or memory
    """
    metrics = get_metrics()
    if metrics.enabled and metrics.cache_operation_duration_seconds:
        metrics.cache_operation_duration_seconds.labels(
            operation=operation,
            cache_type=cache_type,
        ).observe(duration)


def record_cache_fallback(operation: str) -> None:
    metrics = get_metrics()
    if metrics.enabled and metrics.cache_fallbacks_total:
        metrics.cache_fallbacks_total.labels(operation=operation).inc()


def record_session(outcome: str) -> None:
    """Record a session outcome (created, cache_hit, filled, rejected, revoked)."""
    metrics = get_metrics()
    if metrics.enabled and metrics.sessions_total:
        metrics.sessions_total.labels(outcome=outcome).inc()


def record_invalidation(entity_kind: str) -> None:
    metrics = get_metrics()
    if metrics.enabled and metrics.invalidations_total:
        metrics.invalidations_total.labels(entity_kind=entity_kind).inc()
