"""
llmwire - Retry Tests

Backoff arithmetic, error classification and the retry executor.
"""

import asyncio

import httpx
import pytest

from llmwire.core.errors import (
    AbortedError,
    NormalizedProviderError,
    ProviderError,
    ProviderErrorCode,
    RetryErrorCode,
    format_provider_error,
    is_retryable_error,
    map_provider_stop_reason,
)
from llmwire.core.models import StopReason
from llmwire.core.retry import (
    RetryPolicy,
    calculate_backoff,
    execute_with_retry,
    normalize_provider_error,
)


class _Flaky:
    """Operation that fails with the given errors, then returns ``value``."""

    def __init__(self, errors, value="ok"):
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


class TestBackoff:

    def test_exponential(self):
        assert [calculate_backoff(n, 250) for n in (1, 2, 3)] == [250, 500, 1000]

    def test_capped(self):
        assert calculate_backoff(5, 250, max_delay_ms=1000) == 1000


class TestNormalizeProviderError:

    @pytest.mark.parametrize("code,expected", [
        (ProviderErrorCode.RATE_LIMITED, RetryErrorCode.RATE_LIMIT),
        (ProviderErrorCode.TIMEOUT, RetryErrorCode.TIMEOUT),
        (ProviderErrorCode.NETWORK_ERROR, RetryErrorCode.NETWORK),
        (ProviderErrorCode.SERVICE_UNAVAILABLE, RetryErrorCode.NETWORK),
        (ProviderErrorCode.AUTHENTICATION_FAILED, RetryErrorCode.AUTH),
        (ProviderErrorCode.INVALID_REQUEST, RetryErrorCode.VALIDATION),
    ])
    def test_provider_codes(self, code, expected):
        assert normalize_provider_error(ProviderError("x", code=code)).code == expected

    @pytest.mark.parametrize("message,expected", [
        ("Rate limit reached", RetryErrorCode.RATE_LIMIT),
        ("request timed out", RetryErrorCode.TIMEOUT),
        ("network unreachable", RetryErrorCode.NETWORK),
        ("Unauthorized", RetryErrorCode.AUTH),
        ("schema mismatch", RetryErrorCode.VALIDATION),
        ("something odd", RetryErrorCode.UNKNOWN),
    ])
    def test_message_heuristics(self, message, expected):
        assert normalize_provider_error(RuntimeError(message)).code == expected

    def test_httpx_exceptions(self):
        assert normalize_provider_error(httpx.ReadTimeout("slow")).code == RetryErrorCode.TIMEOUT
        assert normalize_provider_error(httpx.ConnectError("refused")).code == RetryErrorCode.NETWORK

    def test_keeps_cause(self):
        original = RuntimeError("boom")
        assert normalize_provider_error(original).cause is original


class TestExecuteWithRetry:

    @pytest.mark.asyncio
    async def test_succeeds_after_retryable_failures(self, no_backoff):
        operation = _Flaky([
            ProviderError("429", code=ProviderErrorCode.RATE_LIMITED),
            ProviderError("503", code=ProviderErrorCode.SERVICE_UNAVAILABLE),
        ])
        retries = []

        result = await execute_with_retry(
            operation,
            RetryPolicy(max_attempts=3, base_delay_ms=250),
            on_retry=lambda attempt, error, delay: retries.append((attempt, error.code, delay)),
        )

        assert result == "ok"
        assert operation.calls == 3
        assert no_backoff == [250, 500]
        assert retries == [(1, RetryErrorCode.RATE_LIMIT, 250), (2, RetryErrorCode.NETWORK, 500)]

    @pytest.mark.asyncio
    async def test_non_retryable_fails_immediately(self, no_backoff):
        operation = _Flaky([ProviderError("401", code=ProviderErrorCode.AUTHENTICATION_FAILED)])

        with pytest.raises(NormalizedProviderError) as exc_info:
            await execute_with_retry(operation, RetryPolicy(max_attempts=3))

        assert exc_info.value.code == RetryErrorCode.AUTH
        assert operation.calls == 1
        assert no_backoff == []

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, no_backoff):
        operation = _Flaky([httpx.ConnectError("refused")] * 3)

        with pytest.raises(NormalizedProviderError) as exc_info:
            await execute_with_retry(operation, RetryPolicy(max_attempts=3, base_delay_ms=10))

        assert exc_info.value.code == RetryErrorCode.NETWORK
        assert operation.calls == 3
        assert no_backoff == [10, 20]

    @pytest.mark.asyncio
    async def test_custom_should_retry(self, no_backoff):
        operation = _Flaky([RuntimeError("weird"), RuntimeError("weird")])
        policy = RetryPolicy(max_attempts=3, should_retry=lambda error, attempt: attempt < 2)

        with pytest.raises(NormalizedProviderError):
            await execute_with_retry(operation, policy)

        assert operation.calls == 2

    @pytest.mark.asyncio
    async def test_already_set_signal_never_runs(self):
        operation = _Flaky([])
        signal = asyncio.Event()
        signal.set()

        with pytest.raises(AbortedError):
            await execute_with_retry(operation, RetryPolicy(), signal=signal)

        assert operation.calls == 0

    @pytest.mark.asyncio
    async def test_signal_interrupts_backoff(self):
        signal = asyncio.Event()
        operation = _Flaky([ProviderError("429", code=ProviderErrorCode.RATE_LIMITED)])

        async def abort_soon():
            await asyncio.sleep(0.01)
            signal.set()

        aborter = asyncio.create_task(abort_soon())
        with pytest.raises(AbortedError):
            await execute_with_retry(
                operation, RetryPolicy(max_attempts=3, base_delay_ms=5000), signal=signal
            )
        await aborter

        assert operation.calls == 1


class TestErrorHelpers:

    def test_format_provider_error(self):
        error = ProviderError("Too many requests", code=ProviderErrorCode.RATE_LIMITED)

        assert format_provider_error(error, "openai") == "[openai] Too many requests (RATE_LIMITED)"
        assert format_provider_error(ValueError("bad"), "kimi") == "[kimi] bad"

    @pytest.mark.parametrize("error,expected", [
        (ProviderError("slow", code=ProviderErrorCode.RATE_LIMITED), True),
        (ProviderError("down", code=ProviderErrorCode.SERVICE_UNAVAILABLE), True),
        (ProviderError("denied", code=ProviderErrorCode.AUTHENTICATION_FAILED), False),
        (NormalizedProviderError("reset", code=RetryErrorCode.NETWORK), True),
        (NormalizedProviderError("bad", code=RetryErrorCode.VALIDATION), False),
        (httpx.ConnectError("refused"), True),
        (RuntimeError("socket hang up: ECONNRESET"), True),
        (RuntimeError("bad schema"), False),
    ])
    def test_is_retryable_error(self, error, expected):
        assert is_retryable_error(error) is expected

    @pytest.mark.parametrize("reason,provider,expected", [
        (None, "", StopReason.STOP),
        ("end_turn", "anthropic", StopReason.STOP),
        ("length", "kimi", StopReason.LENGTH),
        ("tool_calls", "kimi", StopReason.TOOL_USE),
        ("content_filter", "kimi", StopReason.ERROR),
    ])
    def test_map_provider_stop_reason(self, reason, provider, expected):
        assert map_provider_stop_reason(reason, provider) == expected
