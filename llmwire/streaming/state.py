"""
llmwire - Streaming State

Per-call mutable state shared by an adapter and its event emitter:

- StreamingStateManager wraps the AssistantMessage under construction
- BlockTracker is the side-table of transient decode state (wire index to
  content position, partial tool-call JSON) kept outside the message
"""

from dataclasses import dataclass
from typing import Dict, Hashable, Optional

from ..core.models import AssistantMessage, StopReason, Usage


class StreamingStateManager:
    """Accumulator for one assistant message."""

    def __init__(self, output: AssistantMessage):
        self.output = output
        self._completed = False

    @property
    def usage(self) -> Usage:
        return self.output.usage

    @property
    def stop_reason(self) -> StopReason:
        return self.output.stop_reason

    @property
    def is_complete(self) -> bool:
        return self._completed

    def set_usage(
        self,
        input: Optional[int] = None,
        output: Optional[int] = None,
        cache_read: Optional[int] = None,
        cache_write: Optional[int] = None,
        total_tokens: Optional[int] = None,
    ) -> Usage:
        """Replace the given token counts; fields left as None keep their value."""
        usage = self.output.usage
        if input is not None:
            usage.input = input
        if output is not None:
            usage.output = output
        if cache_read is not None:
            usage.cache_read = cache_read
        if cache_write is not None:
            usage.cache_write = cache_write
        if total_tokens is not None:
            usage.total_tokens = total_tokens
        return usage

    def set_stop_reason(self, reason: StopReason) -> None:
        self.output.stop_reason = reason

    def complete(self) -> None:
        self._completed = True

    def error(self, message: str) -> None:
        """Terminal failure: forces stop_reason=error and records the message."""
        self._completed = True
        self.output.stop_reason = StopReason.ERROR
        self.output.error_message = message

    def abort(self, message: str = "Request was aborted") -> None:
        """Terminal cancellation; takes priority over any pending error."""
        self._completed = True
        self.output.stop_reason = StopReason.ABORTED
        self.output.error_message = message


@dataclass
class _OpenBlock:
    position: int
    partial_json: str = ""


class BlockTracker:
    """
    Maps vendor block identifiers to positions in ``output.content``.

    Vendor indices need not match array positions (blocks can start out of
    order or interleave). Entries are dropped when the block closes.
    """

    def __init__(self):
        self._open: Dict[Hashable, _OpenBlock] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._open

    def __len__(self) -> int:
        return len(self._open)

    def open(self, key: Hashable, position: int) -> None:
        self._open[key] = _OpenBlock(position)

    def resolve(self, key: Hashable) -> Optional[int]:
        entry = self._open.get(key)
        return entry.position if entry else None

    def append_json(self, key: Hashable, chunk: str) -> str:
        """Append to the block's argument buffer and return the whole buffer."""
        entry = self._open[key]
        entry.partial_json += chunk
        return entry.partial_json

    def partial_json(self, key: Hashable) -> str:
        entry = self._open.get(key)
        return entry.partial_json if entry else ""

    def close(self, key: Hashable) -> Optional[_OpenBlock]:
        return self._open.pop(key, None)

    def clear(self) -> None:
        self._open.clear()
