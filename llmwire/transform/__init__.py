"""
llmwire Transform Module

Rewrites a conversation so it can be replayed against a different model.
"""

from .pipeline import (
    InsertSyntheticToolResults,
    MessageTransformation,
    MessageTransformationPipeline,
    NormalizeAssistantContent,
    TransformContext,
    normalize_tool_call_id,
    transform_messages,
)

__all__ = [
    "InsertSyntheticToolResults",
    "MessageTransformation",
    "MessageTransformationPipeline",
    "NormalizeAssistantContent",
    "TransformContext",
    "normalize_tool_call_id",
    "transform_messages",
]
