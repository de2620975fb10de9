"""
llmwire - Core Data Models

Canonical content blocks, messages, usage accounting and model descriptors
shared by every protocol adapter.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from .errors import MessageValidationError


# ============================================================
# Enums
# ============================================================

class StopReason(str, Enum):
    """Why an assistant turn ended."""
    STOP = "stop"
    LENGTH = "length"
    TOOL_USE = "toolUse"
    ERROR = "error"
    ABORTED = "aborted"


class ThinkingLevel(str, Enum):
    """Abstract reasoning effort, mapped per vendor."""
    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    XHIGH = "xhigh"


class KnownApi(str, Enum):
    """Protocol identifiers of the built-in adapters."""
    ANTHROPIC_MESSAGES = "anthropic-messages"
    OPENAI_RESPONSES = "openai-responses"
    OPENAI_COMPLETIONS = "openai-completions"
    BEDROCK_CONVERSE_STREAM = "bedrock-converse-stream"


SUCCESS_STOP_REASONS = frozenset({StopReason.STOP, StopReason.LENGTH, StopReason.TOOL_USE})
FAILURE_STOP_REASONS = frozenset({StopReason.ERROR, StopReason.ABORTED})


def now_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


# ============================================================
# Content Blocks
# ============================================================

@dataclass
class TextContent:
    """Plain text block."""
    type: Literal["text"] = "text"
    text: str = ""


@dataclass
class ThinkingContent:
    """Reasoning block. The signature is an opaque vendor continuation token."""
    type: Literal["thinking"] = "thinking"
    thinking: str = ""
    thinking_signature: Optional[str] = None


@dataclass
class ImageContent:
    """Base64 image input."""
    type: Literal["image"] = "image"
    data: str = ""
    mime_type: str = "image/png"


@dataclass
class ToolCall:
    """Tool invocation requested by the model."""
    type: Literal["toolCall"] = "toolCall"
    id: str = ""
    name: str = ""
    arguments: Dict[str, Any] = field(default_factory=dict)
    thought_signature: Optional[str] = None


AssistantContent = Union[TextContent, ThinkingContent, ToolCall]
UserContent = Union[TextContent, ImageContent]


# ============================================================
# Usage
# ============================================================

@dataclass
class Cost:
    """Derived USD cost, one field per token class."""
    input: float = 0.0
    output: float = 0.0
    cache_read: float = 0.0
    cache_write: float = 0.0
    total: float = 0.0


@dataclass
class Usage:
    """Token counts as last reported by the vendor."""
    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_write: int = 0
    total_tokens: int = 0
    cost: Cost = field(default_factory=Cost)


@dataclass
class ThinkingBudgets:
    """Per-level token budgets for vendors that take an explicit budget."""
    minimal: Optional[int] = None
    low: Optional[int] = None
    medium: Optional[int] = None
    high: Optional[int] = None

    def overrides(self) -> Dict[str, int]:
        return {k: v for k, v in self.__dict__.items() if v is not None}


# ============================================================
# Messages
# ============================================================

@dataclass
class UserMessage:
    """User turn; content is a string or a list of text/image blocks."""
    role: Literal["user"] = "user"
    content: Union[str, List[UserContent]] = ""
    timestamp: int = field(default_factory=now_ms)


@dataclass
class AssistantMessage:
    """
    Assistant turn.

    Mutated in place by exactly one adapter task while streaming; treat as
    read-only once the stream has emitted ``done`` or ``error``.
    """
    role: Literal["assistant"] = "assistant"
    content: List[AssistantContent] = field(default_factory=list)
    api: str = ""
    provider: str = ""
    model: str = ""
    usage: Usage = field(default_factory=Usage)
    stop_reason: StopReason = StopReason.STOP
    error_message: Optional[str] = None
    timestamp: int = field(default_factory=now_ms)

    def tool_calls(self) -> List[ToolCall]:
        return [block for block in self.content if isinstance(block, ToolCall)]

    def text(self) -> str:
        return "".join(block.text for block in self.content if isinstance(block, TextContent))


@dataclass
class ToolResultMessage:
    """Result of executing one tool call."""
    role: Literal["toolResult"] = "toolResult"
    tool_call_id: str = ""
    tool_name: str = ""
    content: List[UserContent] = field(default_factory=list)
    is_error: bool = False
    timestamp: int = field(default_factory=now_ms)


Message = Union[UserMessage, AssistantMessage, ToolResultMessage]


# ============================================================
# Models, Tools, Context
# ============================================================

@dataclass
class ModelCost:
    """USD price per 1M tokens."""
    input: float = 0.0
    output: float = 0.0
    cache_read: float = 0.0
    cache_write: float = 0.0


@dataclass
class Model:
    """A concrete model reachable through one protocol adapter."""
    id: str
    name: str = ""
    api: str = ""
    provider: str = ""
    base_url: str = ""
    reasoning: bool = False
    input: List[str] = field(default_factory=lambda: ["text"])
    cost: ModelCost = field(default_factory=ModelCost)
    context_window: int = 128000
    max_tokens: int = 8192
    headers: Optional[Dict[str, str]] = None

    def supports_images(self) -> bool:
        return "image" in self.input


@dataclass
class Tool:
    """Tool definition; parameters is a JSON schema object."""
    name: str
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})


@dataclass
class Context:
    """Everything sent to the model for one call."""
    system_prompt: Optional[str] = None
    messages: List[Message] = field(default_factory=list)
    tools: Optional[List[Tool]] = None


def create_assistant_output(model: Model) -> AssistantMessage:
    """Create the empty accumulator message for a call against ``model``."""
    return AssistantMessage(api=model.api, provider=model.provider, model=model.id)


# ============================================================
# Validation
# ============================================================

def validate_message(message: Any) -> None:
    """
    Check a message against the structural invariants of the data model.

    Raises:
        MessageValidationError: if the message is malformed
    """
    if isinstance(message, UserMessage):
        if isinstance(message.content, str):
            return
        if not isinstance(message.content, list):
            raise MessageValidationError("user message content must be a string or a list of blocks")
        for block in message.content:
            if not isinstance(block, (TextContent, ImageContent)):
                raise MessageValidationError(
                    f"user message contains unsupported block: {type(block).__name__}"
                )
        return

    if isinstance(message, AssistantMessage):
        if not isinstance(message.content, list):
            raise MessageValidationError("assistant message content must be a list of blocks")
        for block in message.content:
            if isinstance(block, ToolCall):
                if not block.id:
                    raise MessageValidationError("tool call is missing an id")
                if not block.name:
                    raise MessageValidationError(f"tool call {block.id} is missing a name")
                if not isinstance(block.arguments, dict):
                    raise MessageValidationError(f"tool call {block.id} arguments must be an object")
            elif not isinstance(block, (TextContent, ThinkingContent)):
                raise MessageValidationError(
                    f"assistant message contains unsupported block: {type(block).__name__}"
                )
        if not isinstance(message.stop_reason, StopReason):
            raise MessageValidationError(f"invalid stop reason: {message.stop_reason!r}")
        return

    if isinstance(message, ToolResultMessage):
        if not message.tool_call_id:
            raise MessageValidationError("tool result is missing tool_call_id")
        for block in message.content:
            if not isinstance(block, (TextContent, ImageContent)):
                raise MessageValidationError(
                    f"tool result contains unsupported block: {type(block).__name__}"
                )
        return

    raise MessageValidationError(f"unknown message type: {type(message).__name__}")


def validate_context(context: Any) -> None:
    """Validate a Context and every message it carries."""
    if not isinstance(context, Context):
        raise MessageValidationError("context must be a Context instance")
    if not isinstance(context.messages, list):
        raise MessageValidationError("context.messages must be a list")
    for message in context.messages:
        validate_message(message)
    for tool in context.tools or []:
        if not isinstance(tool, Tool) or not tool.name:
            raise MessageValidationError("every tool needs a name")
