"""
llmwire - Prometheus Metrics

Metrics collection with the Prometheus client library.

Metrics exposed:
- llmwire_streams_total: Counter of finished streams by api, provider, model, stop_reason
- llmwire_stream_duration_seconds: Histogram of stream duration
- llmwire_time_to_first_event_seconds: Histogram of latency until the first content event
- llmwire_tokens_total: Counter of tokens by type (input/output/cache_read/cache_write)
- llmwire_cost_usd_total: Counter of total cost in USD
- llmwire_retries_total: Counter of retried stream openings by error code
- llmwire_active_streams: Gauge of streams currently running

Usage:
    from llmwire.observability.metrics import get_metrics, setup_metrics

    setup_metrics()

    metrics = get_metrics()
    metrics.record_stream(api="openai-responses", provider="openai", model="gpt-5",
                          stop_reason="stop", duration_seconds=1.5)

Metrics are registered on the default Prometheus registry; expose them with
``prometheus_client.start_http_server`` or the application's own endpoint.
"""

from typing import Dict, Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from ..core.models import Usage


class MetricsCollector:
    """
    Central metrics collector using Prometheus client.

    One set of metric objects exists per registry; constructing a second
    collector for the same registry reuses the first one's metrics.
    """

    _instance: Optional["MetricsCollector"] = None
    _by_registry: Dict[int, "MetricsCollector"] = {}

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.registry = registry

        existing = MetricsCollector._by_registry.get(id(registry))
        if existing is not None:
            self._copy_from(existing)
            return
        MetricsCollector._by_registry[id(registry)] = self

        self.streams_total = Counter(
            "llmwire_streams_total",
            "Total number of finished streams",
            labelnames=["api", "provider", "model", "stop_reason"],
            registry=registry,
        )

        # LLM streams typically range from 0.5s to several minutes
        self.stream_duration = Histogram(
            "llmwire_stream_duration_seconds",
            "Stream duration in seconds",
            labelnames=["api", "provider", "model"],
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 25.0, 50.0, 100.0, 300.0, float("inf")),
            registry=registry,
        )

        self.time_to_first_event = Histogram(
            "llmwire_time_to_first_event_seconds",
            "Time until the first content event of a stream",
            labelnames=["api", "provider", "model"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, float("inf")),
            registry=registry,
        )

        self.tokens_total = Counter(
            "llmwire_tokens_total",
            "Total tokens reported by providers",
            labelnames=["provider", "model", "type"],
            registry=registry,
        )

        self.cost_total = Counter(
            "llmwire_cost_usd_total",
            "Total cost in USD",
            labelnames=["provider", "model"],
            registry=registry,
        )

        self.retries_total = Counter(
            "llmwire_retries_total",
            "Retried stream openings",
            labelnames=["provider", "code"],
            registry=registry,
        )

        self.active_streams = Gauge(
            "llmwire_active_streams",
            "Number of streams currently running",
            labelnames=["api", "provider"],
            registry=registry,
        )

    @classmethod
    def get_instance(cls) -> "MetricsCollector":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Reset singleton (for testing)."""
        cls._instance = None
        cls._by_registry.clear()

    def _copy_from(self, other: "MetricsCollector"):
        self.streams_total = other.streams_total
        self.stream_duration = other.stream_duration
        self.time_to_first_event = other.time_to_first_event
        self.tokens_total = other.tokens_total
        self.cost_total = other.cost_total
        self.retries_total = other.retries_total
        self.active_streams = other.active_streams

    def record_stream(
        self,
        api: str,
        provider: str,
        model: str,
        stop_reason: str,
        duration_seconds: float,
    ):
        """Record a finished stream."""
        self.streams_total.labels(
            api=api,
            provider=provider,
            model=model,
            stop_reason=stop_reason,
        ).inc()
        self.stream_duration.labels(api=api, provider=provider, model=model).observe(duration_seconds)

    def record_time_to_first_event(self, api: str, provider: str, model: str, seconds: float):
        self.time_to_first_event.labels(api=api, provider=provider, model=model).observe(seconds)

    def record_usage(self, provider: str, model: str, usage: Usage):
        """Record token counts and cost of a finished message."""
        for token_type, count in (
            ("input", usage.input),
            ("output", usage.output),
            ("cache_read", usage.cache_read),
            ("cache_write", usage.cache_write),
        ):
            if count:
                self.tokens_total.labels(provider=provider, model=model, type=token_type).inc(count)
        if usage.cost.total > 0:
            self.cost_total.labels(provider=provider, model=model).inc(usage.cost.total)

    def record_retry(self, provider: str, code: str):
        self.retries_total.labels(provider=provider, code=code).inc()

    def track_active_stream(self, api: str, provider: str) -> "ActiveStreamTracker":
        """Context manager to track running streams."""
        return ActiveStreamTracker(self, api, provider)

    def export(self) -> bytes:
        """Prometheus text exposition of this collector's registry."""
        return generate_latest(self.registry)


class ActiveStreamTracker:
    """Context manager for tracking running streams."""

    def __init__(self, collector: MetricsCollector, api: str, provider: str):
        self.collector = collector
        self.api = api
        self.provider = provider

    def __enter__(self):
        self.collector.active_streams.labels(api=self.api, provider=self.provider).inc()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.collector.active_streams.labels(api=self.api, provider=self.provider).dec()


_metrics_instance: Optional[MetricsCollector] = None


def setup_metrics(registry: CollectorRegistry = REGISTRY) -> MetricsCollector:
    """
    Setup metrics collection.

    Safe to call multiple times - returns the existing instance for the
    same registry.
    """
    global _metrics_instance

    if _metrics_instance is not None and _metrics_instance.registry is registry:
        return _metrics_instance

    _metrics_instance = MetricsCollector(registry)
    MetricsCollector._instance = _metrics_instance
    return _metrics_instance


def get_metrics() -> MetricsCollector:
    """The metrics collector, created on the default registry on first use."""
    global _metrics_instance
    if _metrics_instance is None:
        _metrics_instance = MetricsCollector.get_instance()
    return _metrics_instance


def reset_metrics():
    """Forget the current collector (for testing)."""
    global _metrics_instance
    _metrics_instance = None
    MetricsCollector.reset_instance()
