"""
llmwire Adapters Module

Protocol adapters that translate between the canonical message model and
each vendor's native streaming API.
"""

from .base import HttpProviderAdapter, ProviderAdapter
from .anthropic import AnthropicAdapter, AnthropicOptions
from .bedrock import BedrockAdapter, BedrockOptions
from .openai_completions import OpenAICompletionsAdapter, OpenAICompletionsOptions
from .openai_responses import OpenAIResponsesAdapter, OpenAIResponsesOptions

__all__ = [
    "ProviderAdapter",
    "HttpProviderAdapter",
    "AnthropicAdapter",
    "AnthropicOptions",
    "BedrockAdapter",
    "BedrockOptions",
    "OpenAICompletionsAdapter",
    "OpenAICompletionsOptions",
    "OpenAIResponsesAdapter",
    "OpenAIResponsesOptions",
]
