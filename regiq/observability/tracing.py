"""
OpenTelemetry spans around source queries.

The registry opens one "source.query" span per adapter call and stamps the
outcome on it with record_result(). Log lines written inside a span carry
its trace_id/span_id through the add_trace_context structlog processor.

Tracing is off unless TRACING_ENABLED is set; get_tracer() then hands out
OTel's no-op tracer so call sites need no guards.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

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

if TYPE_CHECKING:
    from regiq.ingestion.schemas import SourceResult

logger = logging.getLogger(__name__)

_tracing_enabled = False
_provider: TracerProvider | None = None


def setup_tracing(
    service_name: str,
    otlp_endpoint: str | None = None,
    *,
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """
    Install a global TracerProvider.

    Spans go to the OTLP gRPC collector at otlp_endpoint in batches. An
    explicit exporter is attached synchronously instead, which is what
    tests use with InMemorySpanExporter.
    """
    global _tracing_enabled, _provider

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

    if exporter is not None:
        provider.add_span_processor(SimpleSpanProcessor(exporter))
    else:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )

        provider.add_span_processor(
            BatchSpanProcessor(
                OTLPSpanExporter(endpoint=otlp_endpoint or "http://localhost:4317", insecure=True)
            )
        )
    trace.set_tracer_provider(provider)

    _provider = provider
    _tracing_enabled = True
    logger.info("Tracing enabled for %s (%s)", service_name, otlp_endpoint or "custom exporter")
    return provider


def shutdown_tracing() -> None:
    """Flush pending spans and stop the provider installed by setup_tracing()."""
    global _tracing_enabled, _provider

    if _provider is None:
        return
    _provider.force_flush()
    _provider.shutdown()
    _provider = None
    _tracing_enabled = False
    logger.info("Tracing shut down")


def get_tracer(name: str) -> Tracer:
    return trace.get_tracer(name)


def is_tracing_enabled() -> bool:
    return _tracing_enabled


@contextmanager
def traced(
    tracer: Tracer,
    name: str,
    attributes: dict[str, Any] | None = None,
):
    """Open a span; an escaping exception marks it ERROR and is re-raised."""
    with tracer.start_as_current_span(name, attributes=attributes) as span:
        try:
            yield span
        except Exception as exc:
            span.set_status(StatusCode.ERROR, str(exc))
            span.record_exception(exc)
            raise


def record_result(span: Span, result: SourceResult) -> None:
    """Stamp a source query's outcome on its span."""
    span.set_attribute("success", result.success)
    span.set_attribute("records", len(result.data))
    if result.cache_info is not None:
        span.set_attribute("cache.hit", result.cache_info.hit)
    if not result.success:
        if result.error_type is not None:
            span.set_attribute("error_type", str(result.error_type.value))
        span.set_status(StatusCode.ERROR, result.error or "source query failed")


def add_trace_context(
    logger_: Any, method: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor: add trace_id/span_id when a span is active."""
    ctx = get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict["trace_id"] = f"{ctx.trace_id:032x}"
        event_dict["span_id"] = f"{ctx.span_id:016x}"
    return event_dict
