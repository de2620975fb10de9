"""
llmwire - Observability Module

Structured logging, Prometheus metrics and OpenTelemetry tracing for
provider calls. Nothing is configured on import.

Usage:
    from llmwire.observability import setup_logging, setup_tracing

    setup_logging(level="DEBUG", json_output=False)
    setup_tracing(service_name="my-agent")
"""

from .logging import (
    LogContext,
    StructuredLogger,
    get_logger,
    log_context,
    setup_logging,
    setup_logging_from_settings,
)
from .metrics import MetricsCollector, get_metrics, reset_metrics, setup_metrics
from .tracing import TracingManager, get_tracer, reset_tracing, setup_tracing

__all__ = [
    # Metrics
    "MetricsCollector",
    "get_metrics",
    "reset_metrics",
    "setup_metrics",
    # Tracing
    "TracingManager",
    "get_tracer",
    "reset_tracing",
    "setup_tracing",
    # Logging
    "LogContext",
    "StructuredLogger",
    "get_logger",
    "log_context",
    "setup_logging",
    "setup_logging_from_settings",
]
