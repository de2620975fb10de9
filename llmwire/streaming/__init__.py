"""
llmwire Streaming Module

Event stream, canonical events, per-call state and the tolerant JSON parser
used for tool call arguments.
"""

from .event_stream import AssistantMessageEventStream, EventStream, create_assistant_message_event_stream
from .events import AssistantMessageEvent, DoneEvent, ErrorEvent
from .json_parse import (
    StreamingJsonParseResult,
    parse_partial_json,
    parse_streaming_json,
    parse_streaming_json_with_diagnostics,
)
from .state import BlockTracker, StreamingStateManager

__all__ = [
    "AssistantMessageEvent",
    "AssistantMessageEventStream",
    "BlockTracker",
    "DoneEvent",
    "ErrorEvent",
    "EventStream",
    "StreamingJsonParseResult",
    "StreamingStateManager",
    "create_assistant_message_event_stream",
    "parse_partial_json",
    "parse_streaming_json",
    "parse_streaming_json_with_diagnostics",
]
