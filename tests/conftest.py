"""
llmwire - Pytest Configuration

Configures:
- Integration test markers (skip by default)
- Isolated metrics registry, settings cache and provider registry per test
- Scripted HTTP transport and Bedrock client fakes
"""

import json
import os
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
from prometheus_client import CollectorRegistry

from llmwire.core.catalog import get_model
from llmwire.core.config import ENV_API_KEYS, BEDROCK_CREDENTIAL_VARS, get_settings
from llmwire.observability.metrics import reset_metrics, setup_metrics
from llmwire.observability.tracing import reset_tracing
from llmwire.registry import reset_api_providers


# ============================================================
# Environment Configuration
# ============================================================

def _is_truthy(value: Optional[str]) -> bool:
    """Check if environment variable is truthy."""
    if value is None:
        return False
    return value.lower() in ("1", "true", "yes", "on")


RUN_INTEGRATION = _is_truthy(os.getenv("RUN_INTEGRATION"))


# ============================================================
# Pytest Markers
# ============================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires RUN_INTEGRATION=1)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless RUN_INTEGRATION=1."""
    skip_integration = pytest.mark.skip(
        reason="Integration test - set RUN_INTEGRATION=1 to run"
    )
    for item in items:
        if "integration" in item.keywords and not RUN_INTEGRATION:
            item.add_marker(skip_integration)


# ============================================================
# Isolation
# ============================================================

@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """No ambient credentials leak into tests."""
    for names in ENV_API_KEYS.values():
        for name in names:
            monkeypatch.delenv(name, raising=False)
    for name in BEDROCK_CREDENTIAL_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def metrics_registry():
    """Fresh Prometheus registry per test."""
    reset_metrics()
    registry = CollectorRegistry()
    setup_metrics(registry)
    yield registry
    reset_metrics()


@pytest.fixture(autouse=True)
def isolated_registries():
    yield
    reset_tracing()
    reset_api_providers()


# ============================================================
# Models
# ============================================================

@pytest.fixture
def anthropic_model():
    return get_model("anthropic", "claude-sonnet-4-5")


@pytest.fixture
def openai_model():
    return get_model("openai", "gpt-5")


@pytest.fixture
def bedrock_model():
    return get_model("amazon-bedrock", "us.anthropic.claude-sonnet-4-5-20250929-v1:0")


@pytest.fixture
def kimi_model():
    return get_model("kimi", "kimi-k2-0905-preview")


# ============================================================
# Mock HTTP Transport
# ============================================================

def sse_body(events: List[Dict[str, Any]], named: bool = True, done: bool = False) -> bytes:
    """Encode payloads as SSE frames; ``named`` adds ``event:`` lines from each payload's type."""
    lines = []
    for event in events:
        if named and "type" in event:
            lines.append(f"event: {event['type']}")
        lines.append(f"data: {json.dumps(event)}")
        lines.append("")
    if done:
        lines.extend(["data: [DONE]", ""])
    return ("\n".join(lines) + "\n").encode()


class MockHttp:
    """
    Scripted responses served through ``httpx.MockTransport``.

    Responses are consumed in order; the last one is repeated.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self._responses: List[Tuple[int, Any, Dict[str, str]]] = []
        self.client = httpx.AsyncClient(transport=httpx.MockTransport(self._handle))

    def add_sse(self, events: List[Dict[str, Any]], named: bool = True, done: bool = False) -> "MockHttp":
        self._responses.append((200, sse_body(events, named, done), {"content-type": "text/event-stream"}))
        return self

    def add_broken_sse(
        self,
        events: List[Dict[str, Any]],
        before_failure: Optional[Callable[[], None]] = None,
        error: Optional[Exception] = None,
    ) -> "MockHttp":
        """SSE body that raises after ``events`` were delivered; ``before_failure`` runs first."""

        async def body():
            yield sse_body(events)
            if before_failure is not None:
                before_failure()
            raise error or httpx.ReadError("connection reset")

        self._responses.append((200, body, {"content-type": "text/event-stream"}))
        return self

    def add_json(self, status_code: int, body: Any) -> "MockHttp":
        self._responses.append((status_code, json.dumps(body).encode(), {"content-type": "application/json"}))
        return self

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, content, headers = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if callable(content):
            content = content()
        return httpx.Response(status, content=content, headers=headers)

    def request_json(self, index: int = -1) -> Dict[str, Any]:
        return json.loads(self.requests[index].content)


@pytest.fixture
def mock_http():
    return MockHttp()


# ============================================================
# Mock Bedrock Client
# ============================================================

class FakeBedrockClient:
    """Stands in for a boto3 ``bedrock-runtime`` client."""

    def __init__(self, events: Optional[List[Dict[str, Any]]] = None, errors: Optional[List[Exception]] = None):
        self.events = events or []
        self.errors = list(errors or [])
        self.calls: List[Dict[str, Any]] = []

    def converse_stream(self, **kwargs) -> Dict[str, Any]:
        self.calls.append(kwargs)
        if self.errors:
            raise self.errors.pop(0)
        return {"stream": list(self.events)}


@pytest.fixture
def fake_bedrock() -> Callable[..., FakeBedrockClient]:
    return FakeBedrockClient


@pytest.fixture
def no_backoff(monkeypatch):
    """Make retry backoff instantaneous and record the requested delays."""
    delays: List[float] = []

    async def fake_sleep(delay_ms, signal):
        delays.append(delay_ms)

    monkeypatch.setattr("llmwire.core.retry._sleep", fake_sleep)
    return delays
