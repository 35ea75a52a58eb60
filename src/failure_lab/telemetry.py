"""OpenTelemetry tracing setup."""

from __future__ import annotations

from typing import TYPE_CHECKING

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from .logging import get_logger

if TYPE_CHECKING:
    from .config import Settings

logger = get_logger(__name__)

_provider: TracerProvider | None = None


def configure_tracing(settings: Settings) -> TracerProvider | None:
    """Install a global tracer provider exporting spans over OTLP/HTTP.

    Does nothing when tracing is disabled; the API then hands out no-op
    tracers. Exporter failures fall back to no-op tracing.

    Returns:
        The installed provider, or None when tracing stays disabled.

    """
    global _provider  # noqa: PLW0603
    if not settings.otel_enabled:
        return None
    if _provider is not None:
        return _provider

    logger.info(
        "telemetry.configure",
        service_name=settings.service_name,
        endpoint=settings.otel_exporter_otlp_endpoint,
    )
    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": settings.service_version,
        },
    )
    try:
        provider = TracerProvider(resource=resource)
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)),
        )
    except Exception:
        logger.exception("telemetry.configure_failed")
        return None

    trace.set_tracer_provider(provider)
    _provider = provider
    logger.info("telemetry.configured")
    return provider


def shutdown_tracing() -> None:
    """Flush and stop the installed provider, if any."""
    if _provider is not None:
        _provider.shutdown()


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)
