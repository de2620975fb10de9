"""
llmwire - Event Stream Tests

Covers buffering, ordering, final result resolution and the derived views.
"""

import asyncio

import pytest

from llmwire.core.errors import StreamTimeoutError
from llmwire.core.models import AssistantMessage, StopReason, TextContent
from llmwire.streaming.event_stream import AssistantMessageEventStream, EventStream


def _int_stream(history_limit=None) -> EventStream:
    return EventStream(lambda n: n < 0, lambda n: -n, history_limit)


class TestEventStream:
    """Generic push/pull behavior."""

    @pytest.mark.asyncio
    async def test_events_pushed_before_iteration_are_buffered(self):
        stream = _int_stream()
        for n in (1, 2, 3, -4):
            stream.push(n)

        received = [n async for n in stream]

        assert received == [1, 2, 3, -4]
        assert await stream.result() == 4

    @pytest.mark.asyncio
    async def test_consumer_waiting_before_producer(self):
        stream = _int_stream()

        async def produce():
            await asyncio.sleep(0)
            stream.push(1)
            await asyncio.sleep(0)
            stream.push(-2)

        producer = asyncio.create_task(produce())
        received = [n async for n in stream]
        await producer

        assert received == [1, -2]

    @pytest.mark.asyncio
    async def test_push_after_terminal_event_is_ignored(self):
        stream = _int_stream()
        stream.push(-1)
        stream.push(5)
        stream.push(-7)

        assert [n async for n in stream] == [-1]
        assert await stream.result() == 1

    @pytest.mark.asyncio
    async def test_end_with_result_resolves_once(self):
        stream = _int_stream()
        stream.push(1)
        stream.end(10)
        stream.end(20)

        assert [n async for n in stream] == [1]
        assert await stream.result() == 10

    @pytest.mark.asyncio
    async def test_end_releases_waiting_consumer(self):
        stream = _int_stream()

        async def finish():
            await asyncio.sleep(0)
            stream.end()

        task = asyncio.create_task(finish())
        received = [n async for n in stream]
        await task

        assert received == []
        assert stream.done

    @pytest.mark.asyncio
    async def test_result_with_timeout(self):
        stream = _int_stream()

        with pytest.raises(StreamTimeoutError):
            await stream.result_with_timeout(10)

        stream.push(-3)
        assert await stream.result_with_timeout(10) == 3

    @pytest.mark.asyncio
    async def test_history_limit_evicts_oldest(self):
        stream = _int_stream(history_limit=2)
        for n in (1, 2, 3):
            stream.push(n)

        assert stream.history == (2, 3)

    @pytest.mark.asyncio
    async def test_filter_and_map(self):
        stream = _int_stream()
        for n in (1, 2, 3, 4, -1):
            stream.push(n)

        evens = [n async for n in stream.filter(lambda n: n > 0 and n % 2 == 0)]
        assert evens == [2, 4]

        other = _int_stream()
        for n in (1, 2, -3):
            other.push(n)
        assert [n async for n in other.map(lambda n: n * 10)] == [10, 20, -30]


class TestAssistantMessageEventStream:
    """Typed helpers and terminal events."""

    @pytest.mark.asyncio
    async def test_done_event_resolves_message(self):
        stream = AssistantMessageEventStream()
        message = AssistantMessage(content=[TextContent(text="Hi")])

        stream.push_start(message)
        stream.push_text_start(0, message)
        stream.push_text_delta(0, "Hi", message)
        stream.push_text_end(0, "Hi", message)
        stream.push_done(StopReason.STOP, message)

        types = [event.type async for event in stream]
        assert types == ["start", "text_start", "text_delta", "text_end", "done"]
        assert await stream.result() is message

    @pytest.mark.asyncio
    async def test_error_event_resolves_message(self):
        stream = AssistantMessageEventStream()
        message = AssistantMessage(stop_reason=StopReason.ERROR, error_message="boom")

        stream.push_error(StopReason.ERROR, message)

        result = await stream.result()
        assert result.error_message == "boom"
        assert stream.done

    def test_done_requires_success_reason(self):
        stream = AssistantMessageEventStream()
        with pytest.raises(ValueError):
            stream.push_done(StopReason.ERROR, AssistantMessage())

    def test_error_requires_failure_reason(self):
        stream = AssistantMessageEventStream()
        with pytest.raises(ValueError):
            stream.push_error(StopReason.STOP, AssistantMessage())
