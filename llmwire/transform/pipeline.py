"""
llmwire - Message Transformation Pipeline

Ordered rewrites applied to conversation history before it is sent to an
adapter, so that history produced by one model/provider can be replayed
against another.

Stages:
1. NormalizeAssistantContent - downgrade foreign thinking, strip foreign
   continuation tokens, rewrite tool call ids for the target vendor
2. InsertSyntheticToolResults - give every dangling tool call a result

Every message is validated before the first stage and after each stage.
"""

import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Set

from ..core.models import (
    AssistantMessage,
    Message,
    Model,
    StopReason,
    TextContent,
    ThinkingContent,
    ToolCall,
    ToolResultMessage,
    validate_message,
)


logger = logging.getLogger("llmwire.transform")

ToolCallIdNormalizer = Callable[[str, Model, AssistantMessage], str]
DebugHook = Callable[[str, Dict[str, Any]], None]

SYNTHETIC_RESULT_TEXT = "No result provided"

_INVALID_ID_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def normalize_tool_call_id(tool_call_id: str, max_length: int = 64) -> str:
    """Replace characters outside ``[A-Za-z0-9_-]`` with ``_`` and truncate."""
    return _INVALID_ID_CHARS.sub("_", tool_call_id)[:max_length]


@dataclass
class TransformContext:
    """Target of the transformation."""
    model: Model
    normalize_tool_call_id: Optional[ToolCallIdNormalizer] = None
    debug: Optional[DebugHook] = None


class MessageTransformation:
    """Base class for a pipeline stage. Stages must not mutate their input."""

    name = "transformation"

    def apply(self, messages: List[Message], context: TransformContext) -> List[Message]:
        raise NotImplementedError


def is_same_model(message: AssistantMessage, model: Model) -> bool:
    """Whether ``message`` was produced by ``model`` through the same protocol."""
    return (
        message.provider == model.provider
        and message.api == model.api
        and message.model == model.id
    )


class NormalizeAssistantContent(MessageTransformation):
    """
    Make assistant content produced by other models safe for the target.

    Tool call id rewrites are recorded while scanning forward and applied to
    later tool results that reference the original id.
    """

    name = "normalize-assistant-content"

    def apply(self, messages: List[Message], context: TransformContext) -> List[Message]:
        model = context.model
        normalizer = context.normalize_tool_call_id
        id_map: Dict[str, str] = {}
        result: List[Message] = []

        for message in messages:
            if isinstance(message, ToolResultMessage):
                new_id = id_map.get(message.tool_call_id)
                if new_id and new_id != message.tool_call_id:
                    message = replace(message, tool_call_id=new_id)
                result.append(message)
                continue

            if not isinstance(message, AssistantMessage):
                result.append(message)
                continue

            same = is_same_model(message, model)
            content = []
            for block in message.content:
                if isinstance(block, ThinkingContent):
                    if same and block.thinking_signature:
                        content.append(block)
                    elif not block.thinking or not block.thinking.strip():
                        continue
                    elif same:
                        content.append(block)
                    else:
                        content.append(TextContent(text=block.thinking))
                elif isinstance(block, TextContent):
                    content.append(block if same else TextContent(text=block.text))
                elif isinstance(block, ToolCall):
                    content.append(self._normalize_tool_call(block, message, same, context, id_map))
                else:
                    content.append(block)

            result.append(replace(message, content=content))

        return result

    @staticmethod
    def _normalize_tool_call(
        tool_call: ToolCall,
        source: AssistantMessage,
        same: bool,
        context: TransformContext,
        id_map: Dict[str, str],
    ) -> ToolCall:
        if same:
            return tool_call

        normalized = tool_call
        if tool_call.thought_signature:
            normalized = replace(normalized, thought_signature=None)

        if context.normalize_tool_call_id is not None:
            new_id = context.normalize_tool_call_id(tool_call.id, context.model, source)
            if new_id != tool_call.id:
                id_map[tool_call.id] = new_id
                normalized = replace(normalized, id=new_id)

        return normalized


class InsertSyntheticToolResults(MessageTransformation):
    """
    Insert an error result for every tool call that never got one.

    Pending calls are flushed when the next assistant or user message (or
    the end of the list) is reached. Assistant turns that ended in error or
    were aborted are dropped: their tool calls never ran and their content
    is incomplete.
    """

    name = "insert-synthetic-tool-results"

    def apply(self, messages: List[Message], context: TransformContext) -> List[Message]:
        result: List[Message] = []
        pending: List[ToolCall] = []
        answered: Set[str] = set()

        def flush() -> None:
            for tool_call in pending:
                if tool_call.id not in answered:
                    result.append(self.synthetic_result(tool_call))
            pending.clear()
            answered.clear()

        for message in messages:
            if isinstance(message, AssistantMessage):
                flush()
                if message.stop_reason in (StopReason.ERROR, StopReason.ABORTED):
                    continue
                pending.extend(message.tool_calls())
                result.append(message)
            elif isinstance(message, ToolResultMessage):
                answered.add(message.tool_call_id)
                result.append(message)
            else:
                flush()
                result.append(message)

        flush()
        return result

    @staticmethod
    def synthetic_result(tool_call: ToolCall) -> ToolResultMessage:
        return ToolResultMessage(
            tool_call_id=tool_call.id,
            tool_name=tool_call.name,
            content=[TextContent(text=SYNTHETIC_RESULT_TEXT)],
            is_error=True,
        )


class MessageTransformationPipeline:
    """Ordered, composable list of stages."""

    def __init__(self):
        self.transformations: List[MessageTransformation] = []

    def add_transformation(self, transformation: MessageTransformation) -> "MessageTransformationPipeline":
        self.transformations.append(transformation)
        return self

    def transform(self, messages: List[Message], context: TransformContext) -> List[Message]:
        """
        Run every stage in order.

        Raises:
            MessageValidationError: if the input or any stage output is malformed
        """
        for message in messages:
            validate_message(message)

        current = list(messages)
        for transformation in self.transformations:
            before = len(current)
            if context.debug:
                context.debug(transformation.name, {"before": before})
            current = transformation.apply(current, context)
            if context.debug:
                context.debug(transformation.name, {"after": len(current)})
            logger.debug(
                "Applied %s: %d -> %d messages", transformation.name, before, len(current)
            )
            for message in current:
                validate_message(message)
        return current


def default_pipeline() -> MessageTransformationPipeline:
    """The two mandatory stages, in order."""
    return (
        MessageTransformationPipeline()
        .add_transformation(NormalizeAssistantContent())
        .add_transformation(InsertSyntheticToolResults())
    )


def transform_messages(
    messages: List[Message],
    model: Model,
    normalize_tool_call_id: Optional[ToolCallIdNormalizer] = None,
    debug: Optional[DebugHook] = None,
) -> List[Message]:
    """Prepare ``messages`` for a call against ``model``."""
    context = TransformContext(model=model, normalize_tool_call_id=normalize_tool_call_id, debug=debug)
    return default_pipeline().transform(messages, context)
