"""
llmwire - Event Stream

Buffered push/pull async channel with a single deferred final result.

Producers call ``push``/``end`` synchronously; one consumer iterates with
``async for``. The final result resolves the first time a pushed event
matches ``is_complete`` (or when ``end`` is given an explicit result) and is
awaited independently of iteration.

Usage:
    stream = AssistantMessageEventStream()
    async for event in stream:
        if event.type == "text_delta":
            print(event.delta, end="")
    message = await stream.result()
"""

import asyncio
from collections import deque
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Deque,
    Generic,
    Optional,
    Tuple,
    TypeVar,
)

from ..core.errors import StreamTimeoutError
from ..core.models import AssistantMessage, StopReason, ToolCall
from .events import (
    AssistantMessageEvent,
    DoneEvent,
    ErrorEvent,
    StartEvent,
    TextDeltaEvent,
    TextEndEvent,
    TextStartEvent,
    ThinkingDeltaEvent,
    ThinkingEndEvent,
    ThinkingStartEvent,
    ToolCallDeltaEvent,
    ToolCallEndEvent,
    ToolCallStartEvent,
)


T = TypeVar("T")
R = TypeVar("R")
U = TypeVar("U")

_END = object()


class EventStream(Generic[T, R]):
    """
    Generic event stream.

    Args:
        is_complete: Predicate marking the event that carries the final result
        extract_result: Maps that event to the final result
        history_limit: Replay history cap, oldest evicted first; None or 0 keeps everything
    """

    def __init__(
        self,
        is_complete: Callable[[T], bool],
        extract_result: Callable[[T], R],
        history_limit: Optional[int] = None,
    ):
        self._is_complete = is_complete
        self._extract_result = extract_result
        self._queue: Deque[T] = deque()
        self._waiters: Deque[asyncio.Future] = deque()
        self._history: Deque[T] = deque(maxlen=history_limit or None)
        self._done = False
        self._result: Optional[R] = None
        self._result_ready = asyncio.Event()

    @property
    def done(self) -> bool:
        """True once a terminal event was pushed or ``end`` was called."""
        return self._done

    @property
    def history(self) -> Tuple[T, ...]:
        return tuple(self._history)

    def push(self, event: T) -> None:
        """Append an event; a no-op once the stream is done."""
        if self._done:
            return

        self._history.append(event)

        if self._is_complete(event):
            self._done = True
            self._resolve(self._extract_result(event))

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(event)
                return
        self._queue.append(event)

    def end(self, result: Optional[R] = None) -> None:
        """Mark the stream complete and release waiting consumers. Idempotent."""
        self._done = True
        if result is not None:
            self._resolve(result)
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(_END)

    def _resolve(self, result: R) -> None:
        if self._result_ready.is_set():
            return
        self._result = result
        self._result_ready.set()

    async def __aiter__(self) -> AsyncIterator[T]:
        while True:
            if self._queue:
                yield self._queue.popleft()
            elif self._done:
                return
            else:
                waiter = asyncio.get_running_loop().create_future()
                self._waiters.append(waiter)
                item = await waiter
                if item is _END:
                    return
                yield item

    async def result(self) -> R:
        """Wait for the final result."""
        await self._result_ready.wait()
        return self._result  # type: ignore[return-value]

    async def result_with_timeout(self, timeout_ms: float) -> R:
        """
        Wait for the final result for at most ``timeout_ms``.

        Raises:
            StreamTimeoutError: if the result is not ready in time; the stream keeps running
        """
        try:
            return await asyncio.wait_for(self.result(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            raise StreamTimeoutError(timeout_ms) from None

    async def filter(self, predicate: Callable[[T], bool]) -> AsyncIterator[T]:
        """Lazy view yielding only matching events."""
        async for event in self:
            if predicate(event):
                yield event

    async def map(self, mapper: Callable[[T], U]) -> AsyncIterator[U]:
        """Lazy view applying ``mapper`` to each event."""
        async for event in self:
            yield mapper(event)


def _is_terminal(event: Any) -> bool:
    return event.type in ("done", "error")


def _final_message(event: Any) -> AssistantMessage:
    if event.type in ("done", "error"):
        return event.message
    raise ValueError(f"Unexpected event type for final result: {event.type}")


class AssistantMessageEventStream(EventStream[AssistantMessageEvent, AssistantMessage]):
    """Event stream of one assistant turn; resolves to the final message."""

    def __init__(self, history_limit: Optional[int] = None):
        super().__init__(_is_terminal, _final_message, history_limit)

    def push_start(self, partial: AssistantMessage) -> None:
        self.push(StartEvent(partial=partial))

    def push_text_start(self, content_index: int, partial: AssistantMessage) -> None:
        self.push(TextStartEvent(content_index=content_index, partial=partial))

    def push_text_delta(self, content_index: int, delta: str, partial: AssistantMessage) -> None:
        self.push(TextDeltaEvent(content_index=content_index, delta=delta, partial=partial))

    def push_text_end(self, content_index: int, content: str, partial: AssistantMessage) -> None:
        self.push(TextEndEvent(content_index=content_index, content=content, partial=partial))

    def push_thinking_start(self, content_index: int, partial: AssistantMessage) -> None:
        self.push(ThinkingStartEvent(content_index=content_index, partial=partial))

    def push_thinking_delta(self, content_index: int, delta: str, partial: AssistantMessage) -> None:
        self.push(ThinkingDeltaEvent(content_index=content_index, delta=delta, partial=partial))

    def push_thinking_end(self, content_index: int, content: str, partial: AssistantMessage) -> None:
        self.push(ThinkingEndEvent(content_index=content_index, content=content, partial=partial))

    def push_tool_call_start(self, content_index: int, partial: AssistantMessage) -> None:
        self.push(ToolCallStartEvent(content_index=content_index, partial=partial))

    def push_tool_call_delta(self, content_index: int, delta: str, partial: AssistantMessage) -> None:
        self.push(ToolCallDeltaEvent(content_index=content_index, delta=delta, partial=partial))

    def push_tool_call_end(self, content_index: int, tool_call: ToolCall, partial: AssistantMessage) -> None:
        self.push(ToolCallEndEvent(content_index=content_index, tool_call=tool_call, partial=partial))

    def push_done(self, reason: StopReason, message: AssistantMessage) -> None:
        if reason not in (StopReason.STOP, StopReason.LENGTH, StopReason.TOOL_USE):
            raise ValueError(f"done requires a success stop reason, got {reason}")
        self.push(DoneEvent(reason=reason, message=message))

    def push_error(self, reason: StopReason, message: AssistantMessage) -> None:
        if reason not in (StopReason.ERROR, StopReason.ABORTED):
            raise ValueError(f"error requires error or aborted, got {reason}")
        self.push(ErrorEvent(reason=reason, message=message))


def create_assistant_message_event_stream(history_limit: Optional[int] = None) -> AssistantMessageEventStream:
    return AssistantMessageEventStream(history_limit)
