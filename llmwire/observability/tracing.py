"""
llmwire - OpenTelemetry Tracing

Every adapter call runs inside a CLIENT span named ``<api>.stream``.

Without ``setup_tracing`` spans go to whatever tracer provider the
application installed (a no-op one by default). ``setup_tracing`` installs
an SDK provider with optional OTLP or console export.

Usage:
    from llmwire.observability.tracing import setup_tracing

    setup_tracing(service_name="my-agent", otlp_endpoint="http://localhost:4317")
"""

import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.trace import Span, SpanKind, Status, StatusCode

from ..core.models import AssistantMessage, StopReason

# Optional OTLP exporter (requires opentelemetry-exporter-otlp)
try:
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    OTLP_AVAILABLE = True
except ImportError:
    OTLP_AVAILABLE = False


TRACER_NAME = "llmwire"


class TracingManager:
    """
    Owns an SDK tracer provider.

    The provider is only installed globally when ``set_global`` is true.
    """

    _instance: Optional["TracingManager"] = None

    def __init__(
        self,
        service_name: str = "llmwire",
        service_version: str = "0.1.0",
        otlp_endpoint: Optional[str] = None,
        console_export: bool = False,
        exporter: Optional[SpanExporter] = None,
        set_global: bool = True,
    ):
        """
        Initialize tracing.

        Args:
            service_name: Name of the service
            service_version: Version of the service
            otlp_endpoint: OTLP collector endpoint (e.g., http://localhost:4317)
            console_export: Whether to export spans to console (for debugging)
            exporter: Extra exporter, flushed synchronously (used by tests)
            set_global: Install the provider as the global tracer provider
        """
        self.service_name = service_name
        self.service_version = service_version

        resource = Resource.create({
            SERVICE_NAME: service_name,
            SERVICE_VERSION: service_version,
        })
        self.provider = TracerProvider(resource=resource)

        if otlp_endpoint and OTLP_AVAILABLE:
            self.provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
        if console_export:
            self.provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        if exporter is not None:
            self.provider.add_span_processor(SimpleSpanProcessor(exporter))

        if set_global:
            trace.set_tracer_provider(self.provider)

        self.tracer = self.provider.get_tracer(TRACER_NAME, service_version)

    @classmethod
    def reset_instance(cls):
        """Reset singleton (for testing)."""
        cls._instance = None

    def get_tracer(self) -> trace.Tracer:
        return self.tracer

    def shutdown(self):
        self.provider.shutdown()


_tracing_instance: Optional[TracingManager] = None


def setup_tracing(
    service_name: str = "llmwire",
    service_version: str = "0.1.0",
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False,
    exporter: Optional[SpanExporter] = None,
    set_global: bool = True,
) -> TracingManager:
    """
    Setup tracing.

    ``OTEL_EXPORTER_OTLP_ENDPOINT`` and ``OTEL_CONSOLE_EXPORT=true`` are
    honoured when the arguments are not given.
    """
    global _tracing_instance

    if otlp_endpoint is None:
        otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if os.getenv("OTEL_CONSOLE_EXPORT", "").lower() == "true":
        console_export = True

    _tracing_instance = TracingManager(
        service_name=service_name,
        service_version=service_version,
        otlp_endpoint=otlp_endpoint,
        console_export=console_export,
        exporter=exporter,
        set_global=set_global,
    )
    TracingManager._instance = _tracing_instance
    return _tracing_instance


def reset_tracing():
    """Forget the manager installed by ``setup_tracing`` (for testing)."""
    global _tracing_instance
    _tracing_instance = None
    TracingManager.reset_instance()


def get_tracer() -> trace.Tracer:
    """Tracer of ``setup_tracing`` if called, otherwise the global one."""
    if _tracing_instance is not None:
        return _tracing_instance.get_tracer()
    return trace.get_tracer(TRACER_NAME)


@contextmanager
def trace_provider_call(api: str, provider: str, model: str, operation: str = "stream") -> Iterator[Span]:
    """
    Span around one provider call.

    Usage:
        with trace_provider_call("anthropic-messages", "anthropic", "claude-sonnet-4-5") as span:
            ...
            record_message(span, output)
    """
    with get_tracer().start_as_current_span(
        f"{api}.{operation}",
        kind=SpanKind.CLIENT,
        attributes={
            "llm.api": api,
            "llm.provider": provider,
            "llm.model": model,
            "llm.operation": operation,
        },
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        yield span


def record_message(span: Span, message: AssistantMessage, extra: Optional[Dict[str, Any]] = None):
    """Attach usage and outcome of a finished message to ``span``."""
    usage = message.usage
    span.set_attribute("llm.stop_reason", message.stop_reason.value)
    span.set_attribute("llm.usage.input_tokens", usage.input)
    span.set_attribute("llm.usage.output_tokens", usage.output)
    span.set_attribute("llm.usage.cache_read_tokens", usage.cache_read)
    span.set_attribute("llm.usage.cache_write_tokens", usage.cache_write)
    span.set_attribute("llm.usage.cost_usd", usage.cost.total)
    for key, value in (extra or {}).items():
        if value is not None:
            span.set_attribute(key, value)

    if message.stop_reason == StopReason.ERROR:
        span.set_status(Status(StatusCode.ERROR, message.error_message or "error"))
    elif message.stop_reason != StopReason.ABORTED:
        span.set_status(Status(StatusCode.OK))
