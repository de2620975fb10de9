"""
llmwire - OpenAI-Compatible Chat Completions Adapter

Adapter for ``/chat/completions`` SSE endpoints (``api="openai-completions"``).
Used by Kimi / Moonshot and any other OpenAI-compatible vendor.

Chunks carry no block boundaries: a block starts on the first delta of its
kind and ends when a delta of another kind (or another tool call) arrives,
or when the stream ends.
"""

import json
from typing import Any, Dict, List, Optional, Set, Union

from ..core.errors import ProviderError, map_provider_stop_reason
from ..core.models import (
    AssistantMessage,
    Context,
    ImageContent,
    Message,
    Model,
    StopReason,
    TextContent,
    ThinkingContent,
    ThinkingLevel,
    Tool,
    ToolCall,
    ToolResultMessage,
    UserMessage,
)
from ..core.options import SimpleStreamOptions, coerce_options
from ..streaming.event_stream import AssistantMessageEventStream
from ..streaming.sse import iter_sse_json
from ..transform.pipeline import normalize_tool_call_id
from .base import (
    HttpProviderAdapter,
    HttpStreamOptions,
    require_api_key,
    sanitize_surrogates,
    start_adapter,
)
from .options import build_base_options, map_thinking_level


KIMI_BASE_URL = "https://api.kimi.moonshot.cn/v1"
DEFAULT_BASE_URLS = {
    "kimi": KIMI_BASE_URL,
    "kimi-coding": KIMI_BASE_URL,
    "openai": "https://api.openai.com/v1",
}

DEFAULT_TEMPERATURE = 0.5

# Delta fields that carry reasoning text, by vendor
REASONING_FIELDS = ("reasoning_content", "reasoning")

TEXT_KEY = "text"
THINKING_KEY = "thinking"


class OpenAICompletionsOptions(HttpStreamOptions):
    """Chat Completions options."""

    # "auto" | "none" | "required" | {"type": "function", "function": {"name": ...}}
    tool_choice: Optional[Union[str, Dict[str, Any]]] = None
    reasoning_effort: Optional[ThinkingLevel] = None


# ============================================================
# Request conversion
# ============================================================

def _image_part(image: ImageContent) -> Dict[str, Any]:
    return {"type": "image_url", "image_url": {"url": f"data:{image.mime_type};base64,{image.data}"}}


def _convert_user(message: UserMessage, model: Model) -> Optional[Dict[str, Any]]:
    if isinstance(message.content, str):
        return {"role": "user", "content": sanitize_surrogates(message.content)}

    parts = []
    for block in message.content:
        if isinstance(block, TextContent):
            parts.append({"type": "text", "text": sanitize_surrogates(block.text)})
        elif model.supports_images():
            parts.append(_image_part(block))
    return {"role": "user", "content": parts} if parts else None


def _convert_assistant(message: AssistantMessage) -> Optional[Dict[str, Any]]:
    text = "".join(block.text for block in message.content if isinstance(block, TextContent))
    result: Dict[str, Any] = {"role": "assistant", "content": sanitize_surrogates(text) if text else None}

    # Same-model reasoning goes back in the field it arrived in
    for block in message.content:
        if isinstance(block, ThinkingContent) and block.thinking_signature in REASONING_FIELDS:
            field_name = block.thinking_signature
            result[field_name] = result.get(field_name, "") + block.thinking

    tool_calls = [
        {
            "id": block.id,
            "type": "function",
            "function": {"name": block.name, "arguments": json.dumps(block.arguments)},
        }
        for block in message.content
        if isinstance(block, ToolCall)
    ]
    if tool_calls:
        result["tool_calls"] = tool_calls

    if result["content"] is None and not tool_calls:
        return None
    return result


def _convert_tool_result(message: ToolResultMessage, model: Model) -> List[Dict[str, Any]]:
    text = "\n".join(block.text for block in message.content if isinstance(block, TextContent))
    images = [block for block in message.content if isinstance(block, ImageContent)]
    items: List[Dict[str, Any]] = [{
        "role": "tool",
        "tool_call_id": message.tool_call_id,
        "content": sanitize_surrogates(text) if text else "(see attached image)" if images else "",
    }]
    if images and model.supports_images():
        items.append({
            "role": "user",
            "content": [{"type": "text", "text": "Attached image(s) from tool result:"}]
            + [_image_part(image) for image in images],
        })
    return items


def convert_messages(messages: List[Message], context: Context, model: Model) -> List[Dict[str, Any]]:
    """Transformed messages -> chat ``messages``."""
    result: List[Dict[str, Any]] = []
    if context.system_prompt:
        result.append({"role": "system", "content": sanitize_surrogates(context.system_prompt)})

    for message in messages:
        if isinstance(message, UserMessage):
            converted = _convert_user(message, model)
            if converted:
                result.append(converted)
        elif isinstance(message, AssistantMessage):
            converted = _convert_assistant(message)
            if converted:
                result.append(converted)
        else:
            result.extend(_convert_tool_result(message, model))

    return result


def convert_tools(tools: List[Tool]) -> List[Dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters,
            },
        }
        for tool in tools
    ]


def _normalize_id(tool_call_id: str, model: Model, source: AssistantMessage) -> str:
    return normalize_tool_call_id(tool_call_id, max_length=40)


# ============================================================
# Adapter
# ============================================================

class OpenAICompletionsAdapter(HttpProviderAdapter):
    """Streams one chat completions call."""

    options_class = OpenAICompletionsOptions

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._current_key: Any = None
        self._seen_tool_keys: Set[Any] = set()

    def initialize(self) -> None:
        api_key = self.resolve_api_key()
        if not api_key:
            raise ProviderError(f"No API key for provider: {self.provider}", provider=self.provider)
        self.headers = self.request_headers({
            "authorization": f"Bearer {api_key}",
            "content-type": "application/json",
            "accept": "text/event-stream",
        })
        base_url = self.model.base_url or DEFAULT_BASE_URLS.get(self.provider, KIMI_BASE_URL)
        self.url = f"{base_url.rstrip('/')}/chat/completions"
        self.client = self.create_client(self.headers)

    def build_request(self) -> Dict[str, Any]:
        options: OpenAICompletionsOptions = self.options
        messages = self.transformed_messages(_normalize_id)

        body: Dict[str, Any] = {
            "model": self.model.id,
            "messages": convert_messages(messages, self.context, self.model),
            "stream": True,
            "stream_options": {"include_usage": True},
            "temperature": options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE,
        }
        if options.max_tokens:
            body["max_tokens"] = options.max_tokens
        if self.context.tools:
            body["tools"] = convert_tools(self.context.tools)
            if options.tool_choice:
                body["tool_choice"] = options.tool_choice
        if options.reasoning_effort and self.model.reasoning:
            body["reasoning_effort"] = ThinkingLevel(options.reasoning_effort).value
        return body

    async def execute_stream(self, request: Dict[str, Any]) -> None:
        response = await self.open_stream(self.url, request, self.headers)
        async for _, chunk in iter_sse_json(response):
            self.handle_chunk(chunk)
        self._switch_block(None)

    def handle_chunk(self, chunk: Dict[str, Any]) -> None:
        """Translate one decoded chunk."""
        if chunk.get("error"):
            error = chunk["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ProviderError(message or "Unknown error", provider=self.provider)

        choices = chunk.get("choices") or []
        choice = choices[0] if choices else {}

        usage = chunk.get("usage") or choice.get("usage")
        if usage:
            self._update_usage(usage)

        delta = choice.get("delta") or {}

        for field_name in REASONING_FIELDS:
            if delta.get(field_name):
                index = self._switch_block(THINKING_KEY, signature=field_name)
                self.append_thinking(index, delta[field_name])
                break

        if delta.get("content"):
            index = self._switch_block(TEXT_KEY)
            self.append_text(index, delta["content"])

        for tool_delta in delta.get("tool_calls") or []:
            self._apply_tool_delta(tool_delta)

        finish_reason = choice.get("finish_reason")
        if finish_reason:
            reason = map_provider_stop_reason(finish_reason, self.provider)
            self.state.set_stop_reason(reason)
            if reason == StopReason.ERROR:
                self.output.error_message = f"Provider finish_reason: {finish_reason}"

    def _switch_block(self, key: Any, signature: Optional[str] = None, tool_call: Optional[ToolCall] = None) -> int:
        """Make ``key`` the open block, closing the previous one; returns its position."""
        if key is not None and key == self._current_key:
            return self.blocks.resolve(key)
        if self._current_key is not None:
            self.finish_block(self._current_key)
        self._current_key = key
        if key is None:
            return -1
        if key == TEXT_KEY:
            return self.start_text(key)
        if key == THINKING_KEY:
            return self.start_thinking(key, signature=signature)
        return self.start_tool_call(key, tool_call)

    def _apply_tool_delta(self, tool_delta: Dict[str, Any]) -> None:
        function = tool_delta.get("function") or {}
        key = ("tool", tool_delta.get("index", 0))
        if key != self._current_key:
            if key in self._seen_tool_keys:
                self.logger.debug("Ignoring delta for a closed tool call", tool_index=key[1])
                return
            self._seen_tool_keys.add(key)
            self._switch_block(key, tool_call=ToolCall(
                id=tool_delta.get("id") or "",
                name=function.get("name") or "",
                arguments={},
            ))
        index = self.blocks.resolve(key)
        block = self.output.content[index]
        if tool_delta.get("id") and not block.id:
            block.id = tool_delta["id"]
        if function.get("name") and not block.name:
            block.name = function["name"]
        self.append_tool_json(key, index, function.get("arguments") or "")

    def _update_usage(self, usage: Dict[str, Any]) -> None:
        cached = (
            (usage.get("prompt_tokens_details") or {}).get("cached_tokens")
            or usage.get("cached_tokens")
            or 0
        )
        prompt = usage.get("prompt_tokens") or 0
        completion = usage.get("completion_tokens") or 0
        self.update_usage(
            input=prompt - cached,
            output=completion,
            cache_read=cached,
            cache_write=0,
            total_tokens=usage.get("total_tokens") or prompt + completion,
        )


# ============================================================
# Entry points
# ============================================================

def stream_openai_completions(model: Model, context: Context, options: Any = None) -> AssistantMessageEventStream:
    """Start a chat completions call; events arrive on the returned stream."""
    return start_adapter(OpenAICompletionsAdapter, model, context, options)


def stream_simple_openai_completions(
    model: Model, context: Context, options: Optional[SimpleStreamOptions] = None
) -> AssistantMessageEventStream:
    """
    Map simple options onto OpenAICompletionsOptions.

    Raises:
        InvalidInputError: if no API key is configured for the provider
    """
    options = coerce_options(options, SimpleStreamOptions)
    api_key = require_api_key(model, options)
    base = build_base_options(model, options, api_key)
    effort = map_thinking_level(options.reasoning) if model.reasoning else None
    return stream_openai_completions(model, context, OpenAICompletionsOptions(**base, reasoning_effort=effort))
