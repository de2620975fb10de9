"""
llmwire - Error Definitions

Error taxonomy shared by adapters, the retry executor and the public entry
points. Provider failures are classified as retryable (rate limits, timeouts,
transport and availability problems) or terminal (auth, invalid request,
content filtering).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx


class ProviderErrorCode(str, Enum):
    """Canonical provider failure codes."""
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    RATE_LIMITED = "RATE_LIMITED"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    CONTENT_FILTERED = "CONTENT_FILTERED"
    # Detected from finished messages, never raised by adapters
    CONTEXT_OVERFLOW = "CONTEXT_OVERFLOW"
    UNKNOWN = "UNKNOWN"


class RetryErrorCode(str, Enum):
    """Coarse classes used by the retry executor."""
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    NETWORK = "network"
    VALIDATION = "validation"
    AUTH = "auth"
    UNKNOWN = "unknown"


RETRYABLE_PROVIDER_CODES = frozenset({
    ProviderErrorCode.RATE_LIMITED,
    ProviderErrorCode.TIMEOUT,
    ProviderErrorCode.NETWORK_ERROR,
    ProviderErrorCode.SERVICE_UNAVAILABLE,
})


@dataclass
class ErrorDetails:
    """Structured error information."""
    code: str
    message: str
    provider: Optional[str] = None
    retryable: bool = False
    status_code: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.provider:
            result["provider"] = self.provider
        if self.status_code is not None:
            result["status_code"] = self.status_code
        if self.details:
            result["details"] = self.details
        return {"error": result}


class LLMWireError(Exception):
    """Base exception for all llmwire errors."""

    def __init__(self, error: ErrorDetails):
        self.error = error
        super().__init__(error.message)

    @property
    def message(self) -> str:
        return self.error.message


# ============================================================
# Provider Errors
# ============================================================

class ProviderError(LLMWireError):
    """Failure reported by (or while talking to) a vendor API."""

    def __init__(
        self,
        message: str,
        code: ProviderErrorCode = ProviderErrorCode.UNKNOWN,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.code = code
        self.provider = provider
        self.original_error = original_error
        super().__init__(
            ErrorDetails(
                code=code.value,
                message=message,
                provider=provider,
                retryable=code in RETRYABLE_PROVIDER_CODES,
                status_code=status_code,
            )
        )


class NormalizedProviderError(LLMWireError):
    """Error rethrown by the retry executor after classification."""

    def __init__(
        self,
        message: str,
        code: RetryErrorCode = RetryErrorCode.UNKNOWN,
        cause: Optional[BaseException] = None,
    ):
        self.code = code
        self.cause = cause
        super().__init__(
            ErrorDetails(
                code=code.value,
                message=message,
                retryable=code in (RetryErrorCode.RATE_LIMIT, RetryErrorCode.TIMEOUT, RetryErrorCode.NETWORK),
            )
        )


# ============================================================
# Local Errors
# ============================================================

class MessageValidationError(LLMWireError):
    """A message or context violates the structural invariants."""

    def __init__(self, message: str):
        super().__init__(ErrorDetails(code="invalid_message", message=message))


class InvalidInputError(LLMWireError):
    """Invalid model or options passed to a public entry point."""

    def __init__(self, message: str, param: Optional[str] = None):
        details = {"param": param} if param else {}
        super().__init__(ErrorDetails(code="invalid_input", message=message, details=details))


class RegistryError(LLMWireError):
    """Provider registration or lookup failure."""

    def __init__(self, message: str, api: Optional[str] = None):
        details = {"api": api} if api else {}
        super().__init__(ErrorDetails(code="registry_error", message=message, details=details))


class StreamTimeoutError(LLMWireError):
    """Final result did not arrive in time."""

    def __init__(self, timeout_ms: float):
        self.timeout_ms = timeout_ms
        super().__init__(
            ErrorDetails(
                code="stream_timeout",
                message=f"Event stream timed out after {timeout_ms:g}ms",
                retryable=True,
            )
        )


class AbortedError(LLMWireError):
    """The caller's cancellation signal was set."""

    def __init__(self, message: str = "Request was aborted"):
        super().__init__(ErrorDetails(code="aborted", message=message))


# ============================================================
# Factories and helpers
# ============================================================

def _extract_error_message(body: Any) -> str:
    """Pull a human-readable message out of a vendor error body."""
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict):
            message = error.get("message") or error.get("msg")
            if message:
                return str(message)
        elif isinstance(error, str):
            return error
        if body.get("message"):
            return str(body["message"])
        return str(body)
    if body is None:
        return ""
    return str(body)


def error_from_status(provider: str, status_code: int, body: Any = None) -> ProviderError:
    """
    Map an HTTP error response to a ProviderError.

    The message keeps the status code and the vendor's own wording so the
    retry heuristics and the overflow detector can still match on it.
    """
    detail = _extract_error_message(body)
    message = f"{status_code} {detail}".strip() if detail else f"{status_code} status code (no body)"
    lowered = detail.lower()

    if status_code in (401, 403):
        code = ProviderErrorCode.AUTHENTICATION_FAILED
    elif status_code == 429:
        code = ProviderErrorCode.RATE_LIMITED
    elif status_code == 408:
        code = ProviderErrorCode.TIMEOUT
    elif status_code >= 500:
        code = ProviderErrorCode.SERVICE_UNAVAILABLE
    elif "content" in lowered and ("filter" in lowered or "policy" in lowered):
        code = ProviderErrorCode.CONTENT_FILTERED
    elif status_code in (400, 404, 413, 422):
        code = ProviderErrorCode.INVALID_REQUEST
    else:
        code = ProviderErrorCode.UNKNOWN

    return ProviderError(message, code=code, provider=provider, status_code=status_code)


def error_from_exception(provider: str, error: BaseException) -> ProviderError:
    """Wrap a transport-level exception as a ProviderError."""
    if isinstance(error, ProviderError):
        return error
    if isinstance(error, httpx.TimeoutException):
        return ProviderError(
            f"Request to {provider} timed out", code=ProviderErrorCode.TIMEOUT,
            provider=provider, original_error=error,
        )
    if isinstance(error, httpx.TransportError):
        return ProviderError(
            f"Network error talking to {provider}: {error}", code=ProviderErrorCode.NETWORK_ERROR,
            provider=provider, original_error=error,
        )
    return ProviderError(str(error) or type(error).__name__, provider=provider, original_error=error)


def map_provider_stop_reason(reason: Optional[str], provider: str = "") -> "StopReason":
    """Map a vendor stop/finish reason to the canonical StopReason."""
    from .models import StopReason

    if not reason:
        return StopReason.STOP

    lowered = reason.lower()
    if lowered in ("stop", "end_turn", "stop_sequence", "pause_turn", "completed"):
        return StopReason.STOP
    if lowered in ("max_tokens", "length", "max_output_tokens", "model_context_window_exceeded"):
        return StopReason.LENGTH
    if lowered in ("tool_use", "tool_calls", "function_call"):
        return StopReason.TOOL_USE
    if provider == "amazon-bedrock" and "context_window" in lowered:
        return StopReason.LENGTH
    return StopReason.ERROR


def format_provider_error(error: BaseException, provider: str) -> str:
    """Render an error as ``[provider] message (CODE)``."""
    if isinstance(error, ProviderError):
        return f"[{provider}] {error.message} ({error.code.value})"
    if isinstance(error, Exception):
        return f"[{provider}] {error}"
    return f"[{provider}] Unknown error: {error!r}"


def is_retryable_error(error: BaseException) -> bool:
    """Whether an error is worth another attempt."""
    if isinstance(error, ProviderError):
        return error.code in RETRYABLE_PROVIDER_CODES
    if isinstance(error, NormalizedProviderError):
        return error.error.retryable
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        return True
    message = str(error).lower()
    return any(
        marker in message
        for marker in ("rate limit", "timeout", "network", "econnreset", "etimedout")
    )
