"""
llmwire - OpenAI Responses Adapter

Adapter for OpenAI's Responses API over SSE (``api="openai-responses"``).

Supports:
- Reasoning effort/summary with encrypted reasoning round-trip (the full
  reasoning item is kept as the thinking signature and replayed verbatim)
- Function calls; canonical tool call ids are ``<call_id>|<item_id>``
- ``prompt_cache_key`` from the session id
- Service tier pricing (flex / priority)
"""

import json
import re
from typing import Any, Dict, List, Optional

from ..core.catalog import supports_xhigh
from ..core.errors import ProviderError
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
from ..streaming.json_parse import parse_tool_arguments
from ..streaming.sse import iter_sse_json
from ..usage.pricing import apply_service_tier_pricing
from .base import (
    HttpProviderAdapter,
    HttpStreamOptions,
    require_api_key,
    sanitize_surrogates,
    start_adapter,
)
from .options import build_base_options, map_thinking_level


DEFAULT_BASE_URL = "https://api.openai.com/v1"

# Providers whose tool call ids follow the call_id|item_id convention
TOOL_CALL_ID_PROVIDERS = frozenset({"openai", "openai-codex", "opencode"})

# Disables hidden reasoning on gpt-5 models when no effort is requested
NO_REASONING_HINT = "# Juice: 0 !important"

_INVALID_ID_CHARS = re.compile(r"[^a-zA-Z0-9_-]")

STATUS_STOP_REASONS = {
    "completed": StopReason.STOP,
    "incomplete": StopReason.LENGTH,
    "failed": StopReason.ERROR,
    "cancelled": StopReason.ERROR,
    "in_progress": StopReason.STOP,
    "queued": StopReason.STOP,
}


class OpenAIResponsesOptions(HttpStreamOptions):
    """OpenAI Responses-specific options."""

    reasoning_effort: Optional[ThinkingLevel] = None
    # "auto" | "detailed" | "concise"
    reasoning_summary: Optional[str] = None
    # "auto" | "default" | "flex" | "priority"
    service_tier: Optional[str] = None


def split_tool_call_id(tool_call_id: str):
    """``call_id|item_id`` -> (call_id, item_id or None)."""
    call_id, _, item_id = tool_call_id.partition("|")
    return call_id, item_id or None


def make_tool_call_id_normalizer(model: Model):
    """
    Normalizer for ids replayed to the Responses API.

    Both halves are restricted to ``[A-Za-z0-9_-]`` and 64 characters, and
    the item id gets the ``fc`` prefix the API requires.
    """

    def normalize(tool_call_id: str, target: Model, source: AssistantMessage) -> str:
        if model.provider not in TOOL_CALL_ID_PROVIDERS or "|" not in tool_call_id:
            return tool_call_id
        call_id, item_id = split_tool_call_id(tool_call_id)
        call_id = _INVALID_ID_CHARS.sub("_", call_id)[:64]
        item_id = _INVALID_ID_CHARS.sub("_", item_id or "")
        if not item_id.startswith("fc"):
            item_id = f"fc_{item_id}"
        return f"{call_id}|{item_id[:64]}"

    return normalize


# ============================================================
# Request conversion
# ============================================================

def _input_image(image: ImageContent) -> Dict[str, Any]:
    return {
        "type": "input_image",
        "detail": "auto",
        "image_url": f"data:{image.mime_type};base64,{image.data}",
    }


def _convert_user(message: UserMessage, model: Model) -> Optional[Dict[str, Any]]:
    if isinstance(message.content, str):
        return {"role": "user", "content": [{"type": "input_text", "text": sanitize_surrogates(message.content)}]}

    content = []
    for item in message.content:
        if isinstance(item, TextContent):
            content.append({"type": "input_text", "text": sanitize_surrogates(item.text)})
        elif model.supports_images():
            content.append(_input_image(item))
    if not content:
        return None
    return {"role": "user", "content": content}


def _convert_assistant(message: AssistantMessage, message_index: int) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    for block in message.content:
        if isinstance(block, ThinkingContent):
            if block.thinking_signature:
                try:
                    items.append(json.loads(block.thinking_signature))
                except ValueError:
                    continue
        elif isinstance(block, TextContent):
            items.append({
                "type": "message",
                "role": "assistant",
                "content": [{"type": "output_text", "text": sanitize_surrogates(block.text), "annotations": []}],
                "status": "completed",
                "id": f"msg_{message_index}",
            })
        elif isinstance(block, ToolCall):
            call_id, item_id = split_tool_call_id(block.id)
            item = {
                "type": "function_call",
                "call_id": call_id,
                "name": block.name,
                "arguments": json.dumps(block.arguments),
            }
            if item_id:
                item["id"] = item_id
            items.append(item)
    return items


def _convert_tool_result(message: ToolResultMessage, model: Model) -> List[Dict[str, Any]]:
    text = "\n".join(block.text for block in message.content if isinstance(block, TextContent))
    images = [block for block in message.content if isinstance(block, ImageContent)]
    call_id, _ = split_tool_call_id(message.tool_call_id)

    items = [{
        "type": "function_call_output",
        "call_id": call_id,
        "output": sanitize_surrogates(text) if text else "(see attached image)" if images else "",
    }]
    if images and model.supports_images():
        items.append({
            "role": "user",
            "content": [{"type": "input_text", "text": "Attached image(s) from tool result:"}]
            + [_input_image(image) for image in images],
        })
    return items


def convert_input(messages: List[Message], context: Context, model: Model) -> List[Dict[str, Any]]:
    """Transformed messages -> Responses ``input`` items."""
    items: List[Dict[str, Any]] = []

    if context.system_prompt:
        items.append({
            "role": "developer" if model.reasoning else "system",
            "content": sanitize_surrogates(context.system_prompt),
        })

    for index, message in enumerate(messages):
        if isinstance(message, UserMessage):
            converted = _convert_user(message, model)
            if converted:
                items.append(converted)
        elif isinstance(message, AssistantMessage):
            items.extend(_convert_assistant(message, index))
        else:
            items.extend(_convert_tool_result(message, model))

    return items


def convert_tools(tools: List[Tool]) -> List[Dict[str, Any]]:
    return [
        {
            "type": "function",
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.parameters,
            "strict": False,
        }
        for tool in tools
    ]


# ============================================================
# Adapter
# ============================================================

class OpenAIResponsesAdapter(HttpProviderAdapter):
    """Streams one Responses API call."""

    options_class = OpenAIResponsesOptions

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # Tier reported by the response wins over the requested one
        self.service_tier: Optional[str] = self.options.service_tier

    def initialize(self) -> None:
        api_key = self.resolve_api_key()
        if not api_key:
            raise ProviderError(
                "OpenAI API key is required. Set OPENAI_API_KEY or pass api_key.",
                provider=self.provider,
            )
        self.headers = self.request_headers({
            "authorization": f"Bearer {api_key}",
            "content-type": "application/json",
            "accept": "text/event-stream",
        })
        self.url = f"{(self.model.base_url or DEFAULT_BASE_URL).rstrip('/')}/responses"
        self.client = self.create_client(self.headers)

    def build_request(self) -> Dict[str, Any]:
        options: OpenAIResponsesOptions = self.options
        model = self.model
        messages = self.transformed_messages(make_tool_call_id_normalizer(model))
        input_items = convert_input(messages, self.context, model)

        params: Dict[str, Any] = {
            "model": model.id,
            "input": input_items,
            "stream": True,
        }
        if options.session_id:
            params["prompt_cache_key"] = options.session_id
        if options.max_tokens:
            params["max_output_tokens"] = options.max_tokens
        if options.temperature is not None:
            params["temperature"] = options.temperature
        if options.service_tier is not None:
            params["service_tier"] = options.service_tier
        if self.context.tools:
            params["tools"] = convert_tools(self.context.tools)

        if model.reasoning:
            if options.reasoning_effort or options.reasoning_summary:
                effort = ThinkingLevel(options.reasoning_effort) if options.reasoning_effort else ThinkingLevel.MEDIUM
                params["reasoning"] = {
                    "effort": effort.value,
                    "summary": options.reasoning_summary or "auto",
                }
                params["include"] = ["reasoning.encrypted_content"]
            elif model.id.startswith("gpt-5"):
                input_items.append({
                    "role": "developer",
                    "content": [{"type": "input_text", "text": NO_REASONING_HINT}],
                })

        return params

    async def execute_stream(self, request: Dict[str, Any]) -> None:
        response = await self.open_stream(self.url, request, self.headers)
        async for _, event in iter_sse_json(response):
            self.handle_event(event)

    def handle_event(self, event: Dict[str, Any]) -> None:
        """Translate one decoded SSE payload."""
        event_type = event.get("type", "")
        key = event.get("output_index")

        if event_type == "response.output_item.added":
            self._start_item(key, event.get("item") or {})

        elif event_type == "response.reasoning_summary_text.delta":
            index = self.block_at(key, ThinkingContent)
            if index is not None:
                self.append_thinking(index, event.get("delta", ""))

        elif event_type == "response.reasoning_summary_part.done":
            index = self.block_at(key, ThinkingContent)
            if index is not None:
                self.append_thinking(index, "\n\n")

        elif event_type in ("response.output_text.delta", "response.refusal.delta"):
            index = self.block_at(key, TextContent)
            if index is not None:
                self.append_text(index, event.get("delta", ""))

        elif event_type == "response.function_call_arguments.delta":
            index = self.block_at(key, ToolCall)
            if index is not None:
                self.append_tool_json(key, index, event.get("delta", ""))

        elif event_type == "response.function_call_arguments.done":
            index = self.block_at(key, ToolCall)
            if index is not None:
                self.output.content[index].arguments = parse_tool_arguments(event.get("arguments"))

        elif event_type == "response.output_item.done":
            self._finish_item(key, event.get("item") or {})

        elif event_type == "response.completed":
            self._complete(event.get("response") or {})

        elif event_type == "response.incomplete":
            self._complete(event.get("response") or {}, default_status="incomplete")

        elif event_type == "error":
            raise ProviderError(
                f"Error Code {event.get('code')}: {event.get('message') or 'Unknown error'}",
                provider=self.provider,
            )

        elif event_type == "response.failed":
            error = (event.get("response") or {}).get("error") or {}
            raise ProviderError(error.get("message") or "Unknown error", provider=self.provider)

    def _start_item(self, key: Any, item: Dict[str, Any]) -> None:
        item_type = item.get("type")
        if item_type == "reasoning":
            self.start_thinking(key)
        elif item_type == "message":
            self.start_text(key)
        elif item_type == "function_call":
            self.start_tool_call(key, ToolCall(
                id=f"{item.get('call_id', '')}|{item.get('id', '')}",
                name=item.get("name", ""),
                arguments={},
            ))
            if item.get("arguments"):
                self.blocks.append_json(key, item["arguments"])

    def _finish_item(self, key: Any, item: Dict[str, Any]) -> None:
        index = self.blocks.resolve(key)
        if index is None:
            return
        block = self.output.content[index]
        item_type = item.get("type")

        if item_type == "reasoning" and isinstance(block, ThinkingContent):
            summary = item.get("summary") or []
            if summary:
                block.thinking = "\n\n".join(part.get("text", "") for part in summary)
            block.thinking_signature = json.dumps(item)
        elif item_type == "message" and isinstance(block, TextContent):
            parts = item.get("content") or []
            if parts:
                block.text = "".join(
                    part.get("text", "") if part.get("type") == "output_text" else part.get("refusal", "")
                    for part in parts
                )
        self.finish_block(key, item.get("arguments") if item_type == "function_call" else None)

    def _complete(self, response: Dict[str, Any], default_status: str = "completed") -> None:
        usage = response.get("usage")
        if usage:
            cached = (usage.get("input_tokens_details") or {}).get("cached_tokens") or 0
            self.service_tier = response.get("service_tier") or self.service_tier
            self.update_usage(
                input=(usage.get("input_tokens") or 0) - cached,
                output=usage.get("output_tokens") or 0,
                cache_read=cached,
                cache_write=0,
                total_tokens=usage.get("total_tokens") or 0,
            )

        reason = STATUS_STOP_REASONS.get(response.get("status") or default_status, StopReason.STOP)
        if reason == StopReason.STOP and self.output.tool_calls():
            reason = StopReason.TOOL_USE
        self.state.set_stop_reason(reason)

    def adjust_cost(self) -> None:
        apply_service_tier_pricing(self.output.usage, self.service_tier)


# ============================================================
# Entry points
# ============================================================

def stream_openai_responses(model: Model, context: Context, options: Any = None) -> AssistantMessageEventStream:
    """Start a Responses API call; events arrive on the returned stream."""
    return start_adapter(OpenAIResponsesAdapter, model, context, options)


def stream_simple_openai_responses(
    model: Model, context: Context, options: Optional[SimpleStreamOptions] = None
) -> AssistantMessageEventStream:
    """
    Map simple options onto OpenAIResponsesOptions.

    ``xhigh`` is passed through only for models that accept it.

    Raises:
        InvalidInputError: if no API key is configured for the provider
    """
    options = coerce_options(options, SimpleStreamOptions)
    api_key = require_api_key(model, options)
    base = build_base_options(model, options, api_key)
    effort = map_thinking_level(
        options.reasoning, "supports-xhigh" if supports_xhigh(model) else "clamp-xhigh"
    )
    return stream_openai_responses(model, context, OpenAIResponsesOptions(**base, reasoning_effort=effort))
