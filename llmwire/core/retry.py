"""
llmwire - Retry Logic

Exponential backoff for opening provider streams.

Errors are normalized into a small set of classes (rate_limit, timeout,
network, validation, auth, unknown); only the first three are retried unless
the policy supplies its own ``should_retry``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from .errors import (
    AbortedError,
    NormalizedProviderError,
    ProviderError,
    ProviderErrorCode,
    RetryErrorCode,
)


logger = logging.getLogger("llmwire.retry")

T = TypeVar("T")

DEFAULT_RETRYABLE = frozenset({RetryErrorCode.RATE_LIMIT, RetryErrorCode.TIMEOUT, RetryErrorCode.NETWORK})

_PROVIDER_CODE_MAP = {
    ProviderErrorCode.RATE_LIMITED: RetryErrorCode.RATE_LIMIT,
    ProviderErrorCode.TIMEOUT: RetryErrorCode.TIMEOUT,
    ProviderErrorCode.NETWORK_ERROR: RetryErrorCode.NETWORK,
    ProviderErrorCode.SERVICE_UNAVAILABLE: RetryErrorCode.NETWORK,
    ProviderErrorCode.AUTHENTICATION_FAILED: RetryErrorCode.AUTH,
    ProviderErrorCode.INVALID_REQUEST: RetryErrorCode.VALIDATION,
    ProviderErrorCode.CONTENT_FILTERED: RetryErrorCode.VALIDATION,
}


@dataclass
class RetryPolicy:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_delay_ms: float = 250.0
    max_delay_ms: Optional[float] = None
    # (error, attempt) -> retry?; overrides the default classification
    should_retry: Optional[Callable[[BaseException, int], bool]] = None


def _classify_message(message: str) -> RetryErrorCode:
    lowered = message.lower()
    if "rate" in lowered and "limit" in lowered:
        return RetryErrorCode.RATE_LIMIT
    if "timeout" in lowered or "timed out" in lowered:
        return RetryErrorCode.TIMEOUT
    if "network" in lowered or "fetch" in lowered:
        return RetryErrorCode.NETWORK
    if "auth" in lowered or "unauthorized" in lowered or "forbidden" in lowered:
        return RetryErrorCode.AUTH
    if "invalid" in lowered or "schema" in lowered or "validation" in lowered:
        return RetryErrorCode.VALIDATION
    return RetryErrorCode.UNKNOWN


def normalize_provider_error(error: BaseException) -> NormalizedProviderError:
    """
    Classify an arbitrary exception for retry purposes.

    Args:
        error: The exception raised by the operation

    Returns:
        NormalizedProviderError carrying the original as ``cause``
    """
    if isinstance(error, NormalizedProviderError):
        return error

    message = str(error) or type(error).__name__

    if isinstance(error, ProviderError):
        code = _PROVIDER_CODE_MAP.get(error.code)
        if code is None:
            code = _classify_message(message)
        return NormalizedProviderError(message, code, error)

    if isinstance(error, httpx.TimeoutException):
        return NormalizedProviderError(message, RetryErrorCode.TIMEOUT, error)
    if isinstance(error, httpx.TransportError):
        return NormalizedProviderError(message, RetryErrorCode.NETWORK, error)

    if isinstance(error, Exception):
        return NormalizedProviderError(message, _classify_message(message), error)

    return NormalizedProviderError("Unknown provider error", RetryErrorCode.UNKNOWN, error)


def calculate_backoff(attempt: int, base_delay_ms: float, max_delay_ms: Optional[float] = None) -> float:
    """
    Delay in milliseconds before the next attempt.

    Args:
        attempt: The attempt that just failed (1-based)
        base_delay_ms: Delay after the first failure
        max_delay_ms: Upper bound, unbounded when None
    """
    delay = base_delay_ms * (2 ** (attempt - 1))
    if max_delay_ms is not None:
        delay = min(delay, max_delay_ms)
    return delay


async def _sleep(delay_ms: float, signal: Optional[asyncio.Event]) -> None:
    if signal is None:
        await asyncio.sleep(delay_ms / 1000)
        return
    try:
        await asyncio.wait_for(signal.wait(), timeout=delay_ms / 1000)
    except asyncio.TimeoutError:
        return
    raise AbortedError()


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    signal: Optional[asyncio.Event] = None,
    on_retry: Optional[Callable[[int, NormalizedProviderError, float], None]] = None,
) -> T:
    """
    Run ``operation`` until it succeeds or the policy gives up.

    Args:
        operation: Zero-argument coroutine factory
        policy: Attempt limits, delays and optional retry predicate
        signal: Cancellation event; already set means the operation never runs
        on_retry: Callback with (attempt, error, delay_ms) before each sleep

    Raises:
        AbortedError: if the signal is set before the first attempt or during backoff
        NormalizedProviderError: on a non-retryable failure or when attempts run out
    """
    if signal is not None and signal.is_set():
        raise AbortedError()

    attempt = 0
    last_error: Optional[BaseException] = None

    while attempt < policy.max_attempts:
        attempt += 1
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            last_error = e
            normalized = normalize_provider_error(e)
            if policy.should_retry is not None:
                retryable = policy.should_retry(e, attempt)
            else:
                retryable = normalized.code in DEFAULT_RETRYABLE

            if not retryable or attempt >= policy.max_attempts:
                raise normalized from e

            delay_ms = calculate_backoff(attempt, policy.base_delay_ms, policy.max_delay_ms)
            logger.warning(
                "Retrying after %s error (attempt %d/%d, delay %.0fms): %s",
                normalized.code.value, attempt, policy.max_attempts, delay_ms, normalized.message,
            )
            if on_retry is not None:
                on_retry(attempt, normalized, delay_ms)
            await _sleep(delay_ms, signal)

    raise normalize_provider_error(last_error or RuntimeError("retry policy allowed no attempts"))
