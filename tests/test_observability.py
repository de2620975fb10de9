"""
llmwire - Observability Tests

Covers:
- JSON log formatting, context injection and redaction
- Prometheus metrics recorded by a finished stream
- OpenTelemetry span per provider call
"""

import io
import json
import logging

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from llmwire.adapters.anthropic import AnthropicAdapter, AnthropicOptions
from llmwire.core.models import Context, StopReason, Usage, UserMessage
from llmwire.observability.logging import (
    JSONFormatter,
    get_logger,
    log_context,
    setup_logging,
    setup_logging_from_settings,
)
from llmwire.observability.metrics import get_metrics
from llmwire.observability.tracing import record_message, setup_tracing, trace_provider_call
from llmwire.streaming.event_stream import AssistantMessageEventStream


def _hi_events():
    return [
        {"type": "message_start", "message": {"usage": {"input_tokens": 10}}},
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text"}},
        {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Hi"}},
        {"type": "content_block_stop", "index": 0},
        {"type": "message_delta", "delta": {"stop_reason": "end_turn"}, "usage": {"output_tokens": 5}},
    ]


async def _run_anthropic(model, mock_http, **options):
    adapter = AnthropicAdapter(
        model,
        Context(messages=[UserMessage(content="Hello")]),
        AssistantMessageEventStream(),
        AnthropicOptions(api_key="sk-ant-api-test", http_client=mock_http.client, **options),
    )
    await adapter.run()
    return adapter


@pytest.fixture
def log_output():
    buffer = io.StringIO()
    logger = setup_logging(level="DEBUG", stream=buffer)
    yield buffer
    for handler in logger.handlers[:]:
        if getattr(handler, "_llmwire_handler", False):
            logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


def _records(buffer):
    return [json.loads(line) for line in buffer.getvalue().splitlines() if line.strip()]


class TestLogging:

    def test_json_fields_and_redaction(self, log_output):
        logger = get_logger("llmwire.test")

        logger.info("Opening stream", api_key="sk-secret", authorization="Bearer x", input_tokens=12)

        record = _records(log_output)[-1]
        assert record["message"] == "Opening stream"
        assert record["level"] == "INFO"
        assert record["logger"] == "llmwire.test"
        assert record["api_key"] == "[REDACTED]"
        assert record["authorization"] == "[REDACTED]"
        assert record["input_tokens"] == 12

    def test_context_injection(self, log_output):
        logger = get_logger("llmwire.test")

        with log_context(api="openai-responses", model="gpt-5"):
            with log_context(session_id="s-1"):
                logger.info("inside")
        logger.info("outside")

        inside, outside = _records(log_output)[-2:]
        assert inside["api"] == "openai-responses"
        assert inside["model"] == "gpt-5"
        assert inside["session_id"] == "s-1"
        assert "api" not in outside

    def test_root_logger_untouched(self, log_output):
        assert not any(getattr(h, "_llmwire_handler", False) for h in logging.getLogger().handlers)

    def test_setup_from_settings(self, log_output, monkeypatch):
        from llmwire.core.config import get_settings

        monkeypatch.setenv("LLMWIRE_LOG_LEVEL", "warning")
        monkeypatch.setenv("LLMWIRE_LOG_FORMAT", "text")
        get_settings.cache_clear()

        logger = setup_logging_from_settings()

        handlers = [h for h in logger.handlers if getattr(h, "_llmwire_handler", False)]
        assert logger.level == logging.WARNING
        assert len(handlers) == 1
        assert not isinstance(handlers[0].formatter, JSONFormatter)

    @pytest.mark.asyncio
    async def test_stream_logs_carry_call_context(self, anthropic_model, mock_http, log_output):
        mock_http.add_sse(_hi_events())

        await _run_anthropic(anthropic_model, mock_http, session_id="session-9")

        finished = [r for r in _records(log_output) if r["message"] == "Stream finished"]
        assert finished
        assert finished[0]["api"] == "anthropic-messages"
        assert finished[0]["model"] == "claude-sonnet-4-5"
        assert finished[0]["session_id"] == "session-9"
        assert finished[0]["stop_reason"] == "stop"


class TestMetrics:

    @pytest.mark.asyncio
    async def test_finished_stream_is_recorded(self, anthropic_model, mock_http, metrics_registry):
        mock_http.add_sse(_hi_events())

        await _run_anthropic(anthropic_model, mock_http)

        labels = {"api": "anthropic-messages", "provider": "anthropic", "model": "claude-sonnet-4-5"}
        assert metrics_registry.get_sample_value(
            "llmwire_streams_total", {**labels, "stop_reason": "stop"}
        ) == 1.0
        assert metrics_registry.get_sample_value("llmwire_stream_duration_seconds_count", labels) == 1.0
        assert metrics_registry.get_sample_value("llmwire_time_to_first_event_seconds_count", labels) == 1.0
        assert metrics_registry.get_sample_value(
            "llmwire_tokens_total", {"provider": "anthropic", "model": "claude-sonnet-4-5", "type": "input"}
        ) == 10.0
        assert metrics_registry.get_sample_value(
            "llmwire_cost_usd_total", {"provider": "anthropic", "model": "claude-sonnet-4-5"}
        ) == pytest.approx(3e-5 + 7.5e-5)
        assert metrics_registry.get_sample_value(
            "llmwire_active_streams", {"api": "anthropic-messages", "provider": "anthropic"}
        ) == 0.0

    @pytest.mark.asyncio
    async def test_retries_are_counted(self, anthropic_model, mock_http, metrics_registry, no_backoff):
        mock_http.add_json(503, {"error": {"message": "overloaded"}}).add_sse(_hi_events())

        await _run_anthropic(anthropic_model, mock_http)

        assert metrics_registry.get_sample_value(
            "llmwire_retries_total", {"provider": "anthropic", "code": "network"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_disabled_metrics(self, anthropic_model, mock_http, metrics_registry, monkeypatch):
        from llmwire.core.config import get_settings

        monkeypatch.setenv("LLMWIRE_METRICS_ENABLED", "false")
        get_settings.cache_clear()
        mock_http.add_sse(_hi_events())

        await _run_anthropic(anthropic_model, mock_http)

        assert metrics_registry.get_sample_value(
            "llmwire_streams_total",
            {"api": "anthropic-messages", "provider": "anthropic", "model": "claude-sonnet-4-5", "stop_reason": "stop"},
        ) is None

    def test_record_usage_skips_zero_counts(self, metrics_registry):
        get_metrics().record_usage("openai", "gpt-5", Usage(input=0, output=3))

        assert metrics_registry.get_sample_value(
            "llmwire_tokens_total", {"provider": "openai", "model": "gpt-5", "type": "input"}
        ) is None
        assert metrics_registry.get_sample_value(
            "llmwire_tokens_total", {"provider": "openai", "model": "gpt-5", "type": "output"}
        ) == 3.0


class TestTracing:

    @pytest.mark.asyncio
    async def test_span_per_call(self, anthropic_model, mock_http):
        exporter = InMemorySpanExporter()
        setup_tracing(exporter=exporter, set_global=False)
        mock_http.add_sse(_hi_events())

        await _run_anthropic(anthropic_model, mock_http)

        spans = exporter.get_finished_spans()
        assert [span.name for span in spans] == ["anthropic-messages.stream"]
        attributes = spans[0].attributes
        assert attributes["llm.provider"] == "anthropic"
        assert attributes["llm.stop_reason"] == "stop"
        assert attributes["llm.usage.input_tokens"] == 10
        assert spans[0].status.status_code == StatusCode.OK

    @pytest.mark.asyncio
    async def test_error_status(self, anthropic_model, mock_http, no_backoff):
        exporter = InMemorySpanExporter()
        setup_tracing(exporter=exporter, set_global=False)
        mock_http.add_json(401, {"error": {"message": "invalid x-api-key"}})

        adapter = await _run_anthropic(anthropic_model, mock_http)

        assert adapter.output.stop_reason == StopReason.ERROR
        span = exporter.get_finished_spans()[0]
        assert span.status.status_code == StatusCode.ERROR
        assert "invalid x-api-key" in span.status.description

    @pytest.mark.asyncio
    async def test_disabled_tracing_records_no_span(self, anthropic_model, mock_http, monkeypatch):
        from llmwire.core.config import get_settings

        exporter = InMemorySpanExporter()
        setup_tracing(exporter=exporter, set_global=False)
        monkeypatch.setenv("LLMWIRE_TRACING_ENABLED", "false")
        get_settings.cache_clear()
        mock_http.add_sse(_hi_events())

        adapter = await _run_anthropic(anthropic_model, mock_http)

        assert adapter.output.stop_reason == StopReason.STOP
        assert len(exporter.get_finished_spans()) == 0

    def test_record_message_extra_attributes(self):
        from llmwire.core.models import AssistantMessage

        exporter = InMemorySpanExporter()
        setup_tracing(exporter=exporter, set_global=False)

        with trace_provider_call("openai-responses", "openai", "gpt-5") as span:
            record_message(span, AssistantMessage(stop_reason=StopReason.ABORTED), {"llm.service_tier": "flex", "skip": None})

        finished = exporter.get_finished_spans()[0]
        assert finished.attributes["llm.service_tier"] == "flex"
        assert "skip" not in finished.attributes
        assert finished.status.status_code == StatusCode.UNSET
