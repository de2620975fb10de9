"""
llmwire Core Module

Canonical data model, error taxonomy, retry executor, configuration and the
model catalog.
"""

from .models import (
    AssistantMessage,
    Context,
    Cost,
    ImageContent,
    KnownApi,
    Model,
    ModelCost,
    StopReason,
    TextContent,
    ThinkingBudgets,
    ThinkingContent,
    ThinkingLevel,
    Tool,
    ToolCall,
    ToolResultMessage,
    Usage,
    UserMessage,
    validate_context,
    validate_message,
)
from .errors import (
    AbortedError,
    InvalidInputError,
    LLMWireError,
    MessageValidationError,
    NormalizedProviderError,
    ProviderError,
    ProviderErrorCode,
    RegistryError,
    RetryErrorCode,
    StreamTimeoutError,
    format_provider_error,
    is_retryable_error,
    map_provider_stop_reason,
)
from .options import SimpleStreamOptions, StreamOptions
from .retry import RetryPolicy, execute_with_retry, normalize_provider_error

__all__ = [
    # Models
    "AssistantMessage",
    "Context",
    "Cost",
    "ImageContent",
    "KnownApi",
    "Model",
    "ModelCost",
    "StopReason",
    "TextContent",
    "ThinkingBudgets",
    "ThinkingContent",
    "ThinkingLevel",
    "Tool",
    "ToolCall",
    "ToolResultMessage",
    "Usage",
    "UserMessage",
    "validate_context",
    "validate_message",
    # Errors
    "AbortedError",
    "InvalidInputError",
    "LLMWireError",
    "MessageValidationError",
    "NormalizedProviderError",
    "ProviderError",
    "ProviderErrorCode",
    "RegistryError",
    "RetryErrorCode",
    "StreamTimeoutError",
    "format_provider_error",
    "is_retryable_error",
    "map_provider_stop_reason",
    # Options
    "SimpleStreamOptions",
    "StreamOptions",
    # Retry
    "RetryPolicy",
    "execute_with_retry",
    "normalize_provider_error",
]
