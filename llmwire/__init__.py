"""
llmwire - Streaming LLM Provider Layer

One canonical message and event model over several vendor streaming APIs
(Anthropic Messages, OpenAI Responses, OpenAI-compatible chat completions,
Amazon Bedrock Converse), with cross-model history repair, retry,
cost accounting and context overflow detection.
"""

__version__ = "0.1.0"

from .core.catalog import (
    find_models,
    get_model,
    get_models,
    get_providers,
    load_custom_models,
    model_registry,
    register_custom_model,
    supports_xhigh,
)
from .core.config import get_env_api_key
from .core.errors import (
    AbortedError,
    InvalidInputError,
    LLMWireError,
    ProviderError,
    ProviderErrorCode,
    RegistryError,
)
from .core.models import (
    AssistantMessage,
    Context,
    ImageContent,
    Model,
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
)
from .core.options import SimpleStreamOptions, StreamOptions
from .registry import (
    ApiProvider,
    provider_registry,
    register_api_provider,
    reset_api_providers,
)
from .stream import (
    StreamOptionsBuilder,
    complete,
    complete_simple,
    stream,
    stream_by_api,
    stream_simple,
)
from .streaming.event_stream import AssistantMessageEventStream
from .transform.pipeline import transform_messages
from .usage.overflow import get_overflow_suggestion, is_context_overflow
from .usage.pricing import calculate_cost

__all__ = [
    "__version__",
    # Entry points
    "stream",
    "complete",
    "stream_simple",
    "complete_simple",
    "stream_by_api",
    "StreamOptionsBuilder",
    "StreamOptions",
    "SimpleStreamOptions",
    "AssistantMessageEventStream",
    # Registry
    "ApiProvider",
    "provider_registry",
    "register_api_provider",
    "reset_api_providers",
    # Catalog
    "find_models",
    "get_model",
    "get_models",
    "get_providers",
    "load_custom_models",
    "model_registry",
    "register_custom_model",
    "supports_xhigh",
    "get_env_api_key",
    # Data model
    "AssistantMessage",
    "Context",
    "ImageContent",
    "Model",
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
    # Errors
    "AbortedError",
    "InvalidInputError",
    "LLMWireError",
    "ProviderError",
    "ProviderErrorCode",
    "RegistryError",
    # Utilities
    "calculate_cost",
    "get_overflow_suggestion",
    "is_context_overflow",
    "transform_messages",
]
