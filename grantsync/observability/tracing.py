"""
OpenTelemetry tracing.

Tracing is off unless TRACING_ENABLED is set. Until a provider is
installed, get_tracer() hands out the OTel no-op tracer, so sync and
matching code can open spans unconditionally.

Spans emitted by grantsync:
- "sync_source": one per registry per sync run
- "matching_recompute": one per matching recomputation
- "<METHOD> <path>": one per API request (see api.app)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.trace import Span, StatusCode, Tracer
from opentelemetry.trace.propagation import get_current_span

from grantsync.config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_OTLP_ENDPOINT = "http://localhost:4317"

_tracing_enabled = False


def setup_tracing(
    service_name: str,
    otlp_endpoint: str | None = None,
    *,
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """
    Install a global TracerProvider.

    Spans are batched to an OTLP gRPC collector, or handed synchronously
    to ``exporter`` when one is given (tests use InMemorySpanExporter).
    OTel allows one global provider per process; later calls are ignored
    by the SDK with a warning.
    """
    global _tracing_enabled

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

    if exporter is not None:
        provider.add_span_processor(SimpleSpanProcessor(exporter))
    else:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )

        endpoint = otlp_endpoint or DEFAULT_OTLP_ENDPOINT
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True))
        )

    trace.set_tracer_provider(provider)
    _tracing_enabled = True

    endpoint_label = otlp_endpoint or ("(custom exporter)" if exporter else DEFAULT_OTLP_ENDPOINT)
    logger.info(f"Tracing initialized: service={service_name} endpoint={endpoint_label}")
    return provider


def configure_tracing(settings: Settings) -> bool:
    """Install tracing if the settings ask for it. Returns whether it is on."""
    if settings.tracing_enabled and not _tracing_enabled:
        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )
    return _tracing_enabled


def get_tracer(name: str) -> Tracer:
    return trace.get_tracer(name)


def is_tracing_enabled() -> bool:
    return _tracing_enabled


@contextmanager
def traced(
    tracer: Tracer,
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Span]:
    """
    Open a span, tag it with ``attributes`` and mark it failed on error.

    The exception is recorded on the span and re-raised.
    """
    with tracer.start_as_current_span(name, attributes=attributes) as span:
        try:
            yield span
        except Exception as exc:
            span.set_status(StatusCode.ERROR, str(exc))
            span.record_exception(exc)
            raise


def add_trace_context(
    logger_: Any, method: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor: add trace_id/span_id while a span is active."""
    ctx = get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict
