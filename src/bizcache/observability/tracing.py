"""OpenTelemetry tracing.

Spans are created around session validation and invalidation fan-out.
Until setup_tracing() installs a provider, the OpenTelemetry API hands out
non-recording spans, so instrumented code runs unchanged with tracing off.

Usage:
    from bizcache.observability.tracing import get_tracer

    tracer = get_tracer(__name__)

    with tracer.start_as_current_span("session.validate") as span:
        span.set_attribute("bizcache.cache_hit", True)
"""

from __future__ import annotations

import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)

from bizcache.config import Settings, get_settings

logger = logging.getLogger(__name__)

_tracer_provider: TracerProvider | None = None


def setup_tracing(settings: Settings | None = None) -> None:
    """Install a tracer provider if tracing is enabled.

    Exports over OTLP when an endpoint is configured, to the console in dev.
    """
    global _tracer_provider

    if _tracer_provider is not None:
        return

    settings = settings or get_settings()
    if not settings.enable_tracing:
        logger.info("Tracing is disabled")
        return

    resource = Resource.create(
        {
            "service.name": settings.app_name,
            "deployment.environment": settings.env,
        }
    )
    provider = TracerProvider(resource=resource)

    if settings.otlp_endpoint:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint))
        )
        logger.info("OTLP tracing enabled: %s", settings.otlp_endpoint)
    elif settings.env == "dev":
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        logger.info("Console tracing enabled (dev mode)")

    trace.set_tracer_provider(provider)
    _tracer_provider = provider
    logger.info("OpenTelemetry tracing initialized")


def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer for the given module name."""
    return trace.get_tracer(name)


def shutdown_tracing() -> None:
    """Flush and shut down the provider installed by setup_tracing()."""
    global _tracer_provider

    if _tracer_provider is not None:
        _tracer_provider.shutdown()
        logger.info("OpenTelemetry tracing shutdown complete")
    _tracer_provider = None
