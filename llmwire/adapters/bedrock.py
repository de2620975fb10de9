"""
llmwire - Amazon Bedrock Adapter

Adapter for the Bedrock Converse stream API (``api="bedrock-converse-stream"``)
through boto3.

boto3 is synchronous: the ``converse_stream`` call and every read from its
event stream run in a worker thread via ``asyncio.to_thread``.

Supports:
- Text, reasoning and tool use blocks (text and reasoning blocks start
  lazily on their first delta)
- Cache points for Claude models with prompt caching
- Reasoning signatures, sent back only to Claude models
- Thinking budgets and interleaved thinking for Claude
"""

import asyncio
import base64
from typing import Any, Dict, List, Optional, Union

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import Field

from ..core.config import get_settings
from ..core.errors import ProviderError, ProviderErrorCode, error_from_status
from ..core.models import (
    AssistantMessage,
    Context,
    ImageContent,
    Message,
    Model,
    StopReason,
    TextContent,
    ThinkingBudgets,
    ThinkingContent,
    ThinkingLevel,
    Tool,
    ToolCall,
    ToolResultMessage,
    UserMessage,
)
from ..core.options import SimpleStreamOptions, StreamOptions, coerce_options
from ..streaming.event_stream import AssistantMessageEventStream
from ..transform.pipeline import normalize_tool_call_id
from .base import ProviderAdapter, sanitize_surrogates, start_adapter
from .options import (
    DEFAULT_THINKING_BUDGETS,
    adjust_max_tokens_for_thinking,
    build_base_options,
    clamp_reasoning,
)


INTERLEAVED_THINKING_BETA = "interleaved-thinking-2025-05-14"

CACHE_POINT = {"cachePoint": {"type": "default"}}

IMAGE_FORMATS = {
    "image/jpeg": "jpeg",
    "image/jpg": "jpeg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}

STOP_REASONS = {
    "end_turn": StopReason.STOP,
    "stop_sequence": StopReason.STOP,
    "max_tokens": StopReason.LENGTH,
    "model_context_window_exceeded": StopReason.LENGTH,
    "tool_use": StopReason.TOOL_USE,
}

# Exception members of the event stream union and the message prefix for each
STREAM_EXCEPTIONS = {
    "internalServerException": ("Internal server error", ProviderErrorCode.SERVICE_UNAVAILABLE),
    "modelStreamErrorException": ("Model stream error", ProviderErrorCode.UNKNOWN),
    "validationException": ("Validation error", ProviderErrorCode.INVALID_REQUEST),
    "throttlingException": ("Throttling error", ProviderErrorCode.RATE_LIMITED),
    "serviceUnavailableException": ("Service unavailable", ProviderErrorCode.SERVICE_UNAVAILABLE),
}

_END_OF_STREAM = object()


class BedrockOptions(StreamOptions):
    """Bedrock-specific options."""

    region: Optional[str] = None
    profile: Optional[str] = None
    # "auto" | "any" | "none" | {"type": "tool", "name": ...}
    tool_choice: Optional[Union[str, Dict[str, str]]] = None
    reasoning: Optional[ThinkingLevel] = None
    thinking_budgets: Optional[ThinkingBudgets] = None
    interleaved_thinking: bool = False
    # Pre-built ``bedrock-runtime`` client; when unset one is created per call
    client: Optional[Any] = Field(default=None, exclude=True)


def supports_prompt_caching(model: Model) -> bool:
    """Claude 4.x, Claude 3.7 Sonnet and Claude 3.5 Haiku."""
    model_id = model.id.lower()
    if "claude" in model_id and ("-4-" in model_id or "-4." in model_id):
        return True
    return "claude-3-7-sonnet" in model_id or "claude-3-5-haiku" in model_id


def supports_thinking_signature(model: Model) -> bool:
    """Only Claude models accept ``reasoningText.signature``."""
    model_id = model.id.lower()
    return "anthropic.claude" in model_id or "anthropic/claude" in model_id


def map_stop_reason(reason: Optional[str]) -> StopReason:
    return STOP_REASONS.get(reason or "", StopReason.ERROR)


def _normalize_id(tool_call_id: str, model: Model, source: AssistantMessage) -> str:
    return normalize_tool_call_id(tool_call_id)


# ============================================================
# Request conversion
# ============================================================

def create_image_block(image: ImageContent) -> Dict[str, Any]:
    image_format = IMAGE_FORMATS.get(image.mime_type)
    if image_format is None:
        raise ProviderError(f"Unknown image type: {image.mime_type}", code=ProviderErrorCode.INVALID_REQUEST)
    return {"format": image_format, "source": {"bytes": base64.b64decode(image.data)}}


def _user_block(block: Union[TextContent, ImageContent]) -> Dict[str, Any]:
    if isinstance(block, ImageContent):
        return {"image": create_image_block(block)}
    return {"text": sanitize_surrogates(block.text)}


def build_system_prompt(system_prompt: Optional[str], model: Model) -> Optional[List[Dict[str, Any]]]:
    if not system_prompt:
        return None
    blocks: List[Dict[str, Any]] = [{"text": sanitize_surrogates(system_prompt)}]
    if supports_prompt_caching(model):
        blocks.append(dict(CACHE_POINT))
    return blocks


def _convert_assistant(message: AssistantMessage, model: Model) -> List[Dict[str, Any]]:
    blocks: List[Dict[str, Any]] = []
    for block in message.content:
        if isinstance(block, TextContent):
            if block.text.strip():
                blocks.append({"text": sanitize_surrogates(block.text)})
        elif isinstance(block, ToolCall):
            blocks.append({"toolUse": {"toolUseId": block.id, "name": block.name, "input": block.arguments}})
        elif isinstance(block, ThinkingContent):
            if not block.thinking.strip():
                continue
            reasoning_text: Dict[str, Any] = {"text": sanitize_surrogates(block.thinking)}
            if supports_thinking_signature(model) and block.thinking_signature:
                reasoning_text["signature"] = block.thinking_signature
            blocks.append({"reasoningContent": {"reasoningText": reasoning_text}})
    return blocks


def _tool_result_block(message: ToolResultMessage) -> Dict[str, Any]:
    return {
        "toolResult": {
            "toolUseId": message.tool_call_id,
            "content": [_user_block(block) for block in message.content],
            "status": "error" if message.is_error else "success",
        }
    }


def convert_messages(messages: List[Message], model: Model) -> List[Dict[str, Any]]:
    """
    Transformed messages -> Converse ``messages``.

    Consecutive tool results collapse into one user message; empty
    assistant turns are skipped.
    """
    result: List[Dict[str, Any]] = []

    for message in messages:
        if isinstance(message, UserMessage):
            if isinstance(message.content, str):
                content = [{"text": sanitize_surrogates(message.content)}]
            else:
                content = [_user_block(block) for block in message.content]
            result.append({"role": "user", "content": content})

        elif isinstance(message, AssistantMessage):
            content = _convert_assistant(message, model)
            if content:
                result.append({"role": "assistant", "content": content})

        else:
            block = _tool_result_block(message)
            previous = result[-1] if result else None
            if previous and previous["role"] == "user" and previous.get("_tool_results"):
                previous["content"].append(block)
            else:
                result.append({"role": "user", "content": [block], "_tool_results": True})

    for entry in result:
        entry.pop("_tool_results", None)

    if supports_prompt_caching(model) and result and result[-1]["role"] == "user":
        result[-1]["content"].append(dict(CACHE_POINT))

    return result


def convert_tool_config(
    tools: Optional[List[Tool]],
    tool_choice: Optional[Union[str, Dict[str, str]]],
) -> Optional[Dict[str, Any]]:
    if not tools or tool_choice == "none":
        return None

    config: Dict[str, Any] = {
        "tools": [
            {
                "toolSpec": {
                    "name": tool.name,
                    "description": tool.description,
                    "inputSchema": {"json": tool.parameters},
                }
            }
            for tool in tools
        ]
    }
    if tool_choice == "auto":
        config["toolChoice"] = {"auto": {}}
    elif tool_choice == "any":
        config["toolChoice"] = {"any": {}}
    elif isinstance(tool_choice, dict) and tool_choice.get("type") == "tool":
        config["toolChoice"] = {"tool": {"name": tool_choice["name"]}}
    return config


def build_additional_fields(model: Model, options: BedrockOptions) -> Optional[Dict[str, Any]]:
    """Claude thinking configuration; other models take no extra fields."""
    if not options.reasoning or not model.reasoning or "anthropic.claude" not in model.id:
        return None

    level = clamp_reasoning(options.reasoning)
    budgets = dict(DEFAULT_THINKING_BUDGETS)
    if options.thinking_budgets is not None:
        budgets.update(options.thinking_budgets.overrides())

    fields: Dict[str, Any] = {"thinking": {"type": "enabled", "budget_tokens": budgets[level.value]}}
    if options.interleaved_thinking:
        fields["anthropic_beta"] = [INTERLEAVED_THINKING_BETA]
    return fields


def error_from_client_error(provider: str, error: BaseException) -> ProviderError:
    """Map a botocore failure onto the error taxonomy."""
    if isinstance(error, ClientError):
        response = error.response or {}
        status = (response.get("ResponseMetadata") or {}).get("HTTPStatusCode") or 500
        message = (response.get("Error") or {}).get("Message") or str(error)
        return error_from_status(provider, status, {"message": message})
    return ProviderError(
        f"Network error talking to {provider}: {error}",
        code=ProviderErrorCode.NETWORK_ERROR,
        provider=provider,
        original_error=error,
    )


# ============================================================
# Adapter
# ============================================================

class BedrockAdapter(ProviderAdapter):
    """Streams one Converse call."""

    options_class = BedrockOptions
    retry_base_delay_ms = 300.0

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.client: Any = None
        self._event_stream: Any = None

    def initialize(self) -> None:
        options: BedrockOptions = self.options
        self.region = options.region or get_settings().aws_region
        if options.client is not None:
            self.client = options.client
        else:
            session = boto3.session.Session(profile_name=options.profile, region_name=self.region)
            self.client = session.client(
                "bedrock-runtime",
                config=BotoConfig(read_timeout=get_settings().http_timeout, retries={"max_attempts": 1}),
            )

    def build_request(self) -> Dict[str, Any]:
        options: BedrockOptions = self.options
        model = self.model
        messages = self.transformed_messages(_normalize_id)

        request: Dict[str, Any] = {
            "modelId": model.id,
            "messages": convert_messages(messages, model),
        }

        system = build_system_prompt(self.context.system_prompt, model)
        if system:
            request["system"] = system

        inference: Dict[str, Any] = {}
        if options.max_tokens:
            inference["maxTokens"] = options.max_tokens
        if options.temperature is not None:
            inference["temperature"] = options.temperature
        if inference:
            request["inferenceConfig"] = inference

        tool_config = convert_tool_config(self.context.tools, options.tool_choice)
        if tool_config:
            request["toolConfig"] = tool_config

        additional = build_additional_fields(model, options)
        if additional:
            request["additionalModelRequestFields"] = additional

        return request

    async def execute_stream(self, request: Dict[str, Any]) -> None:
        async def attempt() -> Any:
            try:
                return await asyncio.to_thread(self.client.converse_stream, **request)
            except (ClientError, BotoCoreError) as e:
                raise error_from_client_error(self.provider, e) from e

        response = await self.with_retry(attempt)
        events = iter(response["stream"])
        self._event_stream = response["stream"]

        while True:
            try:
                event = await asyncio.to_thread(next, events, _END_OF_STREAM)
            except (ClientError, BotoCoreError) as e:
                raise error_from_client_error(self.provider, e) from e
            if event is _END_OF_STREAM:
                break
            self.handle_event(event)

    def handle_event(self, event: Dict[str, Any]) -> None:
        """Translate one member of the Converse event stream union."""
        if "messageStart" in event:
            if event["messageStart"].get("role") != "assistant":
                raise ProviderError(
                    "Unexpected assistant message start but got user message start instead",
                    provider=self.provider,
                )

        elif "contentBlockStart" in event:
            start = event["contentBlockStart"]
            tool_use = (start.get("start") or {}).get("toolUse")
            if tool_use:
                self.start_tool_call(start["contentBlockIndex"], ToolCall(
                    id=tool_use.get("toolUseId", ""),
                    name=tool_use.get("name", ""),
                    arguments={},
                ))

        elif "contentBlockDelta" in event:
            self._handle_delta(event["contentBlockDelta"])

        elif "contentBlockStop" in event:
            self.finish_block(event["contentBlockStop"]["contentBlockIndex"])

        elif "messageStop" in event:
            self.state.set_stop_reason(map_stop_reason(event["messageStop"].get("stopReason")))

        elif "metadata" in event:
            usage = event["metadata"].get("usage")
            if usage:
                input_tokens = usage.get("inputTokens") or 0
                output_tokens = usage.get("outputTokens") or 0
                self.update_usage(
                    input=input_tokens,
                    output=output_tokens,
                    cache_read=usage.get("cacheReadInputTokens") or 0,
                    cache_write=usage.get("cacheWriteInputTokens") or 0,
                    total_tokens=usage.get("totalTokens") or input_tokens + output_tokens,
                )

        else:
            for member, (prefix, code) in STREAM_EXCEPTIONS.items():
                if member in event:
                    raise ProviderError(
                        f"{prefix}: {event[member].get('message', '')}",
                        code=code,
                        provider=self.provider,
                    )

    def _handle_delta(self, event: Dict[str, Any]) -> None:
        key = event["contentBlockIndex"]
        delta = event.get("delta") or {}

        if "text" in delta:
            index = self.blocks.resolve(key)
            if index is None:
                index = self.start_text(key)
            if isinstance(self.output.content[index], TextContent):
                self.append_text(index, delta["text"])

        elif "toolUse" in delta:
            index = self.block_at(key, ToolCall)
            if index is not None:
                self.append_tool_json(key, index, delta["toolUse"].get("input") or "")

        elif "reasoningContent" in delta:
            index = self.blocks.resolve(key)
            if index is None:
                index = self.start_thinking(key, signature="")
            block = self.output.content[index]
            if not isinstance(block, ThinkingContent):
                return
            reasoning = delta["reasoningContent"]
            if reasoning.get("text"):
                self.append_thinking(index, reasoning["text"])
            if reasoning.get("signature"):
                block.thinking_signature = (block.thinking_signature or "") + reasoning["signature"]

    async def cleanup(self) -> None:
        if self._event_stream is not None and hasattr(self._event_stream, "close"):
            await asyncio.to_thread(self._event_stream.close)


# ============================================================
# Entry points
# ============================================================

def stream_bedrock(model: Model, context: Context, options: Any = None) -> AssistantMessageEventStream:
    """Start a Converse stream call; events arrive on the returned stream."""
    return start_adapter(BedrockAdapter, model, context, options)


def stream_simple_bedrock(
    model: Model, context: Context, options: Optional[SimpleStreamOptions] = None
) -> AssistantMessageEventStream:
    """
    Map simple options onto BedrockOptions.

    Credentials come from the AWS chain, so no API key is required. For
    Claude models the thinking budget is carved out of ``max_tokens``.
    """
    options = coerce_options(options, SimpleStreamOptions)
    base = build_base_options(model, options)
    base.pop("api_key")

    if not options.reasoning:
        return stream_bedrock(model, context, BedrockOptions(**base))

    if "anthropic.claude" in model.id or "anthropic/claude" in model.id:
        adjusted = adjust_max_tokens_for_thinking(
            base["max_tokens"], model.max_tokens, options.reasoning, options.thinking_budgets
        )
        level = clamp_reasoning(options.reasoning)
        budgets = ThinkingBudgets(**(options.thinking_budgets.overrides() if options.thinking_budgets else {}))
        setattr(budgets, level.value, adjusted.thinking_budget)
        base["max_tokens"] = adjusted.max_tokens
        return stream_bedrock(model, context, BedrockOptions(
            **base, reasoning=options.reasoning, thinking_budgets=budgets,
        ))

    return stream_bedrock(model, context, BedrockOptions(
        **base, reasoning=options.reasoning, thinking_budgets=options.thinking_budgets,
    ))
