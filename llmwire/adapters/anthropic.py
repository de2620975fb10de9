"""
llmwire - Anthropic Messages Adapter

Adapter for Anthropic's Messages API over SSE (``api="anthropic-messages"``).

Supports:
- Text, thinking (with signatures) and tool_use blocks
- Interleaved thinking and fine-grained tool streaming betas
- Prompt caching (system prompt and last user message)
- OAuth tokens (``sk-ant-oat...``), which require the Claude Code identity,
  its headers and its canonical tool name casing
"""

from typing import Any, Dict, List, Optional, Union

from ..core.errors import ProviderError, ProviderErrorCode, map_provider_stop_reason
from ..core.models import (
    Context,
    ImageContent,
    Message,
    Model,
    StopReason,
    TextContent,
    ThinkingContent,
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
from .options import adjust_max_tokens_for_thinking, build_base_options


API_VERSION = "2023-06-01"
DEFAULT_BASE_URL = "https://api.anthropic.com"

FINE_GRAINED_TOOL_STREAMING_BETA = "fine-grained-tool-streaming-2025-05-14"
INTERLEAVED_THINKING_BETA = "interleaved-thinking-2025-05-14"

CLAUDE_CODE_VERSION = "2.1.2"
CLAUDE_CODE_IDENTITY = "You are Claude Code, Anthropic's official CLI for Claude."

# Claude Code 2.x tool names in canonical casing
CLAUDE_CODE_TOOLS = [
    "Read",
    "Write",
    "Edit",
    "Bash",
    "Grep",
    "Glob",
    "AskUserQuestion",
    "EnterPlanMode",
    "ExitPlanMode",
    "KillShell",
    "NotebookEdit",
    "Skill",
    "Task",
    "TaskOutput",
    "TodoWrite",
    "WebFetch",
    "WebSearch",
]

_CC_TOOL_LOOKUP = {name.lower(): name for name in CLAUDE_CODE_TOOLS}

STOP_REASONS = {
    "end_turn": StopReason.STOP,
    "pause_turn": StopReason.STOP,
    "stop_sequence": StopReason.STOP,
    "max_tokens": StopReason.LENGTH,
    "tool_use": StopReason.TOOL_USE,
    "refusal": StopReason.ERROR,
}

EPHEMERAL = {"type": "ephemeral"}


class AnthropicOptions(HttpStreamOptions):
    """Anthropic-specific options."""

    thinking_enabled: bool = False
    thinking_budget_tokens: Optional[int] = None
    interleaved_thinking: bool = True
    # "auto" | "any" | "none" | {"type": "tool", "name": ...}
    tool_choice: Optional[Union[str, Dict[str, Any]]] = None


def is_oauth_token(api_key: str) -> bool:
    return "sk-ant-oat" in api_key


def to_claude_code_name(name: str) -> str:
    """Canonical Claude Code casing for a tool name, if it is one of its tools."""
    return _CC_TOOL_LOOKUP.get(name.lower(), name)


def from_claude_code_name(name: str, tools: Optional[List[Tool]] = None) -> str:
    """Map a tool name from the wire back to the caller's own tool name."""
    lowered = name.lower()
    for tool in tools or []:
        if tool.name.lower() == lowered:
            return tool.name
    return name


def map_stop_reason(reason: str) -> StopReason:
    """Canonical stop reason; anything unrecognised is an error."""
    if reason in STOP_REASONS:
        return STOP_REASONS[reason]
    return map_provider_stop_reason(reason, "anthropic")


# ============================================================
# Request conversion
# ============================================================

def _image_block(image: ImageContent) -> Dict[str, Any]:
    return {
        "type": "image",
        "source": {"type": "base64", "media_type": image.mime_type, "data": image.data},
    }


def convert_tool_result_content(content: List[Union[TextContent, ImageContent]]) -> Union[str, List[Dict[str, Any]]]:
    """Plain string for text-only results, content blocks when images are present."""
    if not any(isinstance(block, ImageContent) for block in content):
        return sanitize_surrogates("\n".join(block.text for block in content))

    blocks = [
        {"type": "text", "text": sanitize_surrogates(block.text)} if isinstance(block, TextContent)
        else _image_block(block)
        for block in content
    ]
    if not any(block["type"] == "text" for block in blocks):
        blocks.insert(0, {"type": "text", "text": "(see attached image)"})
    return blocks


def _convert_user(message: UserMessage, model: Model) -> Optional[Dict[str, Any]]:
    if isinstance(message.content, str):
        if not message.content.strip():
            return None
        return {"role": "user", "content": sanitize_surrogates(message.content)}

    blocks = []
    for item in message.content:
        if isinstance(item, TextContent):
            if item.text.strip():
                blocks.append({"type": "text", "text": sanitize_surrogates(item.text)})
        elif model.supports_images():
            blocks.append(_image_block(item))
    if not blocks:
        return None
    return {"role": "user", "content": blocks}


def _convert_assistant(content: List[Any], oauth: bool) -> List[Dict[str, Any]]:
    blocks = []
    for block in content:
        if isinstance(block, TextContent):
            if block.text.strip():
                blocks.append({"type": "text", "text": sanitize_surrogates(block.text)})
        elif isinstance(block, ThinkingContent):
            if not block.thinking.strip():
                continue
            # Unsigned thinking (e.g. from an aborted stream) is rejected by the API
            if not block.thinking_signature or not block.thinking_signature.strip():
                blocks.append({"type": "text", "text": sanitize_surrogates(block.thinking)})
            else:
                blocks.append({
                    "type": "thinking",
                    "thinking": sanitize_surrogates(block.thinking),
                    "signature": block.thinking_signature,
                })
        elif isinstance(block, ToolCall):
            blocks.append({
                "type": "tool_use",
                "id": block.id,
                "name": to_claude_code_name(block.name) if oauth else block.name,
                "input": block.arguments,
            })
    return blocks


def _tool_result_block(message: ToolResultMessage) -> Dict[str, Any]:
    return {
        "type": "tool_result",
        "tool_use_id": message.tool_call_id,
        "content": convert_tool_result_content(message.content),
        "is_error": message.is_error,
    }


def convert_messages(messages: List[Message], model: Model, oauth: bool) -> List[Dict[str, Any]]:
    """
    Convert transformed messages to Anthropic message params.

    Consecutive tool results are merged into one user message; the last
    block of a trailing user message gets a cache breakpoint.
    """
    params: List[Dict[str, Any]] = []

    for message in messages:
        if isinstance(message, UserMessage):
            converted = _convert_user(message, model)
            if converted:
                params.append(converted)
        elif isinstance(message, ToolResultMessage):
            block = _tool_result_block(message)
            previous = params[-1] if params else None
            if previous and previous.get("_tool_results"):
                previous["content"].append(block)
            else:
                params.append({"role": "user", "content": [block], "_tool_results": True})
        else:
            blocks = _convert_assistant(message.content, oauth)
            if blocks:
                params.append({"role": "assistant", "content": blocks})

    for param in params:
        param.pop("_tool_results", None)

    if params and params[-1]["role"] == "user" and isinstance(params[-1]["content"], list):
        last_block = params[-1]["content"][-1]
        if last_block["type"] in ("text", "image", "tool_result"):
            last_block["cache_control"] = dict(EPHEMERAL)

    return params


def convert_tools(tools: List[Tool], oauth: bool) -> List[Dict[str, Any]]:
    return [
        {
            "name": to_claude_code_name(tool.name) if oauth else tool.name,
            "description": tool.description,
            "input_schema": {
                "type": "object",
                "properties": tool.parameters.get("properties", {}),
                "required": tool.parameters.get("required", []),
            },
        }
        for tool in tools
    ]


def _normalize_id(tool_call_id: str, model: Model, source: Any) -> str:
    return normalize_tool_call_id(tool_call_id)


# ============================================================
# Adapter
# ============================================================

class AnthropicAdapter(HttpProviderAdapter):
    """Streams one Messages API call."""

    options_class = AnthropicOptions

    def initialize(self) -> None:
        api_key = self.resolve_api_key()
        self.oauth = is_oauth_token(api_key)

        betas = [FINE_GRAINED_TOOL_STREAMING_BETA]
        if self.options.interleaved_thinking:
            betas.append(INTERLEAVED_THINKING_BETA)

        defaults = {
            "accept": "application/json",
            "anthropic-dangerous-direct-browser-access": "true",
            "anthropic-version": API_VERSION,
            "content-type": "application/json",
        }
        if self.oauth:
            defaults.update({
                "authorization": f"Bearer {api_key}",
                "anthropic-beta": ",".join(["claude-code-20250219", "oauth-2025-04-20", *betas]),
                "user-agent": f"claude-cli/{CLAUDE_CODE_VERSION} (external, cli)",
                "x-app": "cli",
            })
        else:
            defaults.update({
                "x-api-key": api_key,
                "anthropic-beta": ",".join(betas),
            })

        self.headers = self.request_headers(defaults)
        self.url = f"{(self.model.base_url or DEFAULT_BASE_URL).rstrip('/')}/v1/messages"
        self.client = self.create_client(self.headers)

    def build_request(self) -> Dict[str, Any]:
        options: AnthropicOptions = self.options
        context = self.context
        messages = self.transformed_messages(_normalize_id)

        params: Dict[str, Any] = {
            "model": self.model.id,
            "messages": convert_messages(messages, self.model, self.oauth),
            "max_tokens": options.max_tokens or self.model.max_tokens // 3,
            "stream": True,
        }

        system = []
        if self.oauth:
            system.append({"type": "text", "text": CLAUDE_CODE_IDENTITY, "cache_control": dict(EPHEMERAL)})
        if context.system_prompt:
            system.append({
                "type": "text",
                "text": sanitize_surrogates(context.system_prompt),
                "cache_control": dict(EPHEMERAL),
            })
        if system:
            params["system"] = system

        if options.temperature is not None:
            params["temperature"] = options.temperature

        if context.tools:
            params["tools"] = convert_tools(context.tools, self.oauth)

        if options.thinking_enabled and self.model.reasoning:
            params["thinking"] = {
                "type": "enabled",
                "budget_tokens": options.thinking_budget_tokens or 1024,
            }

        if options.tool_choice:
            if isinstance(options.tool_choice, str):
                params["tool_choice"] = {"type": options.tool_choice}
            else:
                params["tool_choice"] = options.tool_choice

        return params

    async def execute_stream(self, request: Dict[str, Any]) -> None:
        response = await self.open_stream(self.url, request, self.headers)
        async for _, event in iter_sse_json(response):
            self.handle_event(event)

    def handle_event(self, event: Dict[str, Any]) -> None:
        """Translate one decoded SSE payload."""
        event_type = event.get("type")

        if event_type == "message_start":
            self._update_usage(event.get("message", {}).get("usage") or {})

        elif event_type == "content_block_start":
            self._start_block(event["index"], event.get("content_block") or {})

        elif event_type == "content_block_delta":
            self._apply_delta(event["index"], event.get("delta") or {})

        elif event_type == "content_block_stop":
            self.finish_block(event["index"])

        elif event_type == "message_delta":
            stop_reason = (event.get("delta") or {}).get("stop_reason")
            if stop_reason:
                reason = map_stop_reason(stop_reason)
                self.state.set_stop_reason(reason)
                if reason == StopReason.ERROR:
                    self.output.error_message = f"Provider stop_reason: {stop_reason}"
            if event.get("usage"):
                self._update_usage(event["usage"])

        elif event_type == "error":
            error = event.get("error") or {}
            code = (
                ProviderErrorCode.SERVICE_UNAVAILABLE
                if error.get("type") == "overloaded_error"
                else ProviderErrorCode.UNKNOWN
            )
            raise ProviderError(error.get("message") or "Anthropic stream error", code=code, provider=self.provider)

    def _start_block(self, wire_index: int, block: Dict[str, Any]) -> None:
        block_type = block.get("type")
        if block_type == "text":
            self.start_text(wire_index)
        elif block_type == "thinking":
            self.start_thinking(wire_index, signature="")
        elif block_type == "tool_use":
            name = block.get("name", "")
            self.start_tool_call(wire_index, ToolCall(
                id=block.get("id", ""),
                name=from_claude_code_name(name, self.context.tools) if self.oauth else name,
                arguments=block.get("input") or {},
            ))

    def _apply_delta(self, wire_index: int, delta: Dict[str, Any]) -> None:
        delta_type = delta.get("type")
        if delta_type == "text_delta":
            index = self.block_at(wire_index, TextContent)
            if index is not None:
                self.append_text(index, delta.get("text", ""))
        elif delta_type == "thinking_delta":
            index = self.block_at(wire_index, ThinkingContent)
            if index is not None:
                self.append_thinking(index, delta.get("thinking", ""))
        elif delta_type == "input_json_delta":
            index = self.block_at(wire_index, ToolCall)
            if index is not None:
                self.append_tool_json(wire_index, index, delta.get("partial_json", ""))
        elif delta_type == "signature_delta":
            index = self.block_at(wire_index, ThinkingContent)
            if index is not None:
                block = self.output.content[index]
                block.thinking_signature = (block.thinking_signature or "") + delta.get("signature", "")

    def _update_usage(self, usage: Dict[str, Any]) -> None:
        counts = {
            "input": usage.get("input_tokens"),
            "output": usage.get("output_tokens"),
            "cache_read": usage.get("cache_read_input_tokens"),
            "cache_write": usage.get("cache_creation_input_tokens"),
        }
        self.state.set_usage(**counts)
        current = self.output.usage
        # No total_tokens on the wire
        self.update_usage(
            total_tokens=current.input + current.output + current.cache_read + current.cache_write
        )


# ============================================================
# Entry points
# ============================================================

def stream_anthropic(model: Model, context: Context, options: Any = None) -> AssistantMessageEventStream:
    """Start a Messages API call; events arrive on the returned stream."""
    return start_adapter(AnthropicAdapter, model, context, options)


def stream_simple_anthropic(
    model: Model, context: Context, options: Optional[SimpleStreamOptions] = None
) -> AssistantMessageEventStream:
    """
    Map simple options onto AnthropicOptions.

    Raises:
        InvalidInputError: if no API key is configured for the provider
    """
    options = coerce_options(options, SimpleStreamOptions)
    api_key = require_api_key(model, options)
    base = build_base_options(model, options, api_key)

    if not options.reasoning:
        return stream_anthropic(model, context, AnthropicOptions(**base, thinking_enabled=False))

    adjusted = adjust_max_tokens_for_thinking(
        base["max_tokens"], model.max_tokens, options.reasoning, options.thinking_budgets
    )
    base["max_tokens"] = adjusted.max_tokens
    return stream_anthropic(model, context, AnthropicOptions(
        **base,
        thinking_enabled=True,
        thinking_budget_tokens=adjusted.thinking_budget,
    ))
