"""
llmwire - Server-Sent Events Decoding

Turns the line stream of an ``httpx.Response`` into SSE frames and JSON
payloads. Frames are dispatched on blank lines; multi-line ``data:`` fields
are joined with newlines; comment lines are ignored.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import httpx


logger = logging.getLogger("llmwire.sse")

DONE_SENTINEL = "[DONE]"


@dataclass
class SSEEvent:
    """One dispatched SSE frame."""
    data: str
    event: Optional[str] = None
    id: Optional[str] = None


async def iter_sse_events(response: httpx.Response) -> AsyncIterator[SSEEvent]:
    """Yield SSE frames in arrival order."""
    data_lines: List[str] = []
    event_name: Optional[str] = None
    event_id: Optional[str] = None

    async for line in response.aiter_lines():
        line = line.rstrip("\r")
        if not line:
            if data_lines:
                yield SSEEvent(data="\n".join(data_lines), event=event_name, id=event_id)
            data_lines, event_name, event_id = [], None, None
            continue
        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            data_lines.append(value)
        elif name == "event":
            event_name = value
        elif name == "id":
            event_id = value

    if data_lines:
        yield SSEEvent(data="\n".join(data_lines), event=event_name, id=event_id)


async def iter_sse_json(response: httpx.Response) -> AsyncIterator[Tuple[Optional[str], Dict[str, Any]]]:
    """
    Yield ``(event_name, payload)`` for every JSON frame.

    Stops at the ``[DONE]`` sentinel. Frames that are not valid JSON objects
    are skipped.
    """
    async for frame in iter_sse_events(response):
        data = frame.data.strip()
        if not data:
            continue
        if data == DONE_SENTINEL:
            return
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed SSE frame: %.200s", data)
            continue
        if not isinstance(payload, dict):
            continue
        yield frame.event, payload
