"""
llmwire - Provider Adapter Base

Abstract base class for protocol adapters.
Each protocol (Anthropic Messages, OpenAI Responses, Bedrock Converse,
OpenAI-compatible chat completions) implements this interface.

The adapter is responsible for:
1. Converting canonical context -> vendor request payload (``build_request``)
2. Opening the vendor stream under the retry executor
3. Translating wire events into canonical events (``execute_stream``)
4. Keeping usage and cost current on the shared AssistantMessage

``run`` owns the lifecycle shared by every adapter: payload hook, start
event, abort priority, bookkeeping cleanup, the single terminal event and
telemetry. Adapters never let an exception escape ``run``.
"""

import asyncio
import inspect
import re
import time
from abc import ABC, abstractmethod
from contextlib import nullcontext
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Type, TypeVar

import httpx
from pydantic import Field

from ..core.catalog import calculate_cost
from ..core.config import get_env_api_key, get_settings
from ..core.errors import (
    AbortedError,
    InvalidInputError,
    NormalizedProviderError,
    ProviderError,
    error_from_exception,
    error_from_status,
)
from ..core.models import (
    FAILURE_STOP_REASONS,
    Context,
    Message,
    Model,
    TextContent,
    ThinkingContent,
    ToolCall,
    create_assistant_output,
)
from ..core.options import StreamOptions, coerce_options
from ..core.retry import RetryPolicy, execute_with_retry
from ..observability.logging import TimedOperation, get_logger, log_context
from ..observability.metrics import get_metrics
from ..observability.tracing import record_message, trace_provider_call
from ..streaming.event_stream import AssistantMessageEventStream
from ..streaming.json_parse import parse_tool_arguments
from ..streaming.state import BlockTracker, StreamingStateManager
from ..transform.pipeline import ToolCallIdNormalizer, transform_messages


T = TypeVar("T")

DEFAULT_RETRY_ATTEMPTS = 3

_LONE_SURROGATE = re.compile(r"[\ud800-\udfff]")


def sanitize_surrogates(text: str) -> str:
    """Drop unpaired UTF-16 surrogates, which cannot be encoded as UTF-8."""
    return _LONE_SURROGATE.sub("", text)


class HttpStreamOptions(StreamOptions):
    """Options of adapters that talk HTTP through httpx."""

    # Caller-owned client; when set the adapter never closes it
    http_client: Optional[httpx.AsyncClient] = Field(default=None, exclude=True)
    timeout: Optional[float] = None


class ProviderAdapter(ABC):
    """
    Abstract base class for protocol adapters.

    One instance drives exactly one call: it owns the AssistantMessage
    accumulator and pushes every event onto ``stream``.
    """

    options_class: Type[StreamOptions] = StreamOptions
    retry_base_delay_ms: float = 250.0

    def __init__(
        self,
        model: Model,
        context: Context,
        stream: AssistantMessageEventStream,
        options: Any = None,
    ):
        self.model = model
        self.context = context
        self.stream = stream
        self.options = coerce_options(options, self.options_class)
        self.signal: Optional[asyncio.Event] = self.options.signal
        self.api = model.api
        self.provider = model.provider

        self.output = create_assistant_output(model)
        self.state = StreamingStateManager(self.output)
        self.blocks = BlockTracker()
        self.logger = get_logger(f"llmwire.adapters.{self.api}")
        self._started_at: Optional[float] = None
        self._first_event_seen = False

    # ============================================================
    # Adapter interface
    # ============================================================

    @abstractmethod
    def initialize(self) -> Optional[Awaitable[None]]:
        """Resolve credentials and construct the client."""

    @abstractmethod
    def build_request(self) -> Dict[str, Any]:
        """Pure mapping of model + transformed context + options to the vendor payload."""

    @abstractmethod
    async def execute_stream(self, request: Dict[str, Any]) -> None:
        """Open the vendor stream and translate every wire event."""

    async def cleanup(self) -> None:
        """Release resources; called once after the terminal event."""

    # ============================================================
    # Lifecycle
    # ============================================================

    async def run(self) -> None:
        """Drive the call to exactly one terminal event; never raises except on cancellation."""
        self._started_at = time.perf_counter()
        settings = get_settings()
        metrics = get_metrics() if settings.metrics_enabled else None

        active = metrics.track_active_stream(self.api, self.provider) if metrics else nullcontext()
        traced = (
            trace_provider_call(self.api, self.provider, self.model.id)
            if settings.tracing_enabled
            else nullcontext()
        )

        with log_context(
            api=self.api,
            provider=self.provider,
            model=self.model.id,
            session_id=self.options.session_id or "",
        ), traced as span, active:
            try:
                await self._run_once()
            except asyncio.CancelledError:
                self._fail(AbortedError())
                raise
            finally:
                self.stream.end()
                await self._cleanup_quietly()
                self._record(span, metrics)

    async def _run_once(self) -> None:
        try:
            maybe = self.initialize()
            if inspect.isawaitable(maybe):
                await maybe
            request = self.build_request()
            self.emit_payload(request)
            self.stream.push_start(self.output)

            await self._until_aborted(self.execute_stream(request))

            if self.is_aborted():
                raise AbortedError()
            if self.output.stop_reason in FAILURE_STOP_REASONS:
                raise ProviderError(
                    self.output.error_message or "An unknown error occurred",
                    provider=self.provider,
                )

            self.state.complete()
            self.stream.push_done(self.output.stop_reason, self.output)
            self.stream.end()
        except Exception as e:
            self._fail(e)

    async def _until_aborted(self, work: Awaitable[None]) -> None:
        """Await ``work`` unless the signal fires first, in which case it is cancelled."""
        if self.signal is None:
            await work
            return

        task = asyncio.ensure_future(work)
        waiter = asyncio.ensure_future(self.signal.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                await asyncio.wait({task})

        if task.cancelled():
            raise AbortedError()
        task.result()

    def _fail(self, error: BaseException) -> None:
        """Strip bookkeeping and push the terminal error event."""
        if self.stream.done:
            return
        self.blocks.clear()
        message = self.describe_error(error)
        if self.is_aborted() or isinstance(error, AbortedError):
            self.state.abort(message)
        else:
            self.state.error(message)
        self.logger.warning(
            "Stream failed",
            stop_reason=self.output.stop_reason.value,
            error=self.output.error_message,
        )
        self.stream.push_error(self.output.stop_reason, self.output)
        self.stream.end()

    @staticmethod
    def describe_error(error: BaseException) -> str:
        if isinstance(error, (ProviderError, NormalizedProviderError, AbortedError)):
            return error.message
        return str(error) or type(error).__name__

    async def _cleanup_quietly(self) -> None:
        try:
            await self.cleanup()
        except Exception as e:
            self.logger.debug("Adapter cleanup failed", error=str(e))

    def _record(self, span, metrics) -> None:
        duration = time.perf_counter() - (self._started_at or time.perf_counter())
        if span is not None:
            record_message(span, self.output)
        if metrics:
            metrics.record_stream(
                api=self.api,
                provider=self.provider,
                model=self.model.id,
                stop_reason=self.output.stop_reason.value,
                duration_seconds=duration,
            )
            metrics.record_usage(self.provider, self.model.id, self.output.usage)
        self.logger.info(
            "Stream finished",
            stop_reason=self.output.stop_reason.value,
            duration_ms=round(duration * 1000, 2),
            input_tokens=self.output.usage.input,
            output_tokens=self.output.usage.output,
        )

    # ============================================================
    # Helpers for subclasses
    # ============================================================

    def is_aborted(self) -> bool:
        return self.signal is not None and self.signal.is_set()

    def resolve_api_key(self) -> str:
        return self.options.api_key or get_env_api_key(self.provider) or ""

    def emit_payload(self, payload: Dict[str, Any]) -> None:
        """Hand the raw request to ``on_payload``; hook failures are ignored."""
        hook = self.options.on_payload
        if hook is None:
            return
        try:
            result = hook(payload)
            if inspect.isawaitable(result):
                pending = asyncio.ensure_future(result)
                pending.add_done_callback(lambda t: t.cancelled() or t.exception())
        except Exception as e:
            self.logger.debug("on_payload hook raised", error=str(e))

    def retry_policy(self) -> RetryPolicy:
        """Single attempt when cancellable; otherwise the default policy."""
        return RetryPolicy(
            max_attempts=1 if self.signal is not None else DEFAULT_RETRY_ATTEMPTS,
            base_delay_ms=self.retry_base_delay_ms,
        )

    async def with_retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        return await execute_with_retry(
            operation,
            self.retry_policy(),
            signal=self.signal,
            on_retry=self._on_retry,
        )

    def _on_retry(self, attempt: int, error: NormalizedProviderError, delay_ms: float) -> None:
        if get_settings().metrics_enabled:
            get_metrics().record_retry(self.provider, error.code.value)

    def transformed_messages(self, normalize_tool_call_id: Optional[ToolCallIdNormalizer] = None) -> List[Message]:
        return transform_messages(self.context.messages, self.model, normalize_tool_call_id)

    def update_usage(self, **counts: Optional[int]) -> None:
        """Replace reported token counts and recompute cost from the model's prices."""
        self.state.set_usage(**counts)
        calculate_cost(self.model, self.output.usage)
        self.adjust_cost()

    def adjust_cost(self) -> None:
        """Hook for vendor-specific cost scaling after the base calculation."""

    def mark_content(self) -> None:
        """Record time to first content event once."""
        if self._first_event_seen:
            return
        self._first_event_seen = True
        if self._started_at is not None and get_settings().metrics_enabled:
            get_metrics().record_time_to_first_event(
                self.api, self.provider, self.model.id, time.perf_counter() - self._started_at
            )

    # ============================================================
    # Content block helpers
    # ============================================================

    def start_text(self, key: Any = None) -> int:
        self.mark_content()
        self.output.content.append(TextContent(text=""))
        index = len(self.output.content) - 1
        if key is not None:
            self.blocks.open(key, index)
        self.stream.push_text_start(index, self.output)
        return index

    def start_thinking(self, key: Any = None, signature: Optional[str] = None) -> int:
        self.mark_content()
        self.output.content.append(ThinkingContent(thinking="", thinking_signature=signature))
        index = len(self.output.content) - 1
        if key is not None:
            self.blocks.open(key, index)
        self.stream.push_thinking_start(index, self.output)
        return index

    def start_tool_call(self, key: Any, tool_call: ToolCall) -> int:
        self.mark_content()
        self.output.content.append(tool_call)
        index = len(self.output.content) - 1
        self.blocks.open(key, index)
        self.stream.push_tool_call_start(index, self.output)
        return index

    def block_at(self, key: Any, kind: type) -> Optional[int]:
        """Position of the open block ``key`` if it has type ``kind``."""
        index = self.blocks.resolve(key)
        if index is None or not isinstance(self.output.content[index], kind):
            return None
        return index

    def append_text(self, index: int, delta: str) -> None:
        block = self.output.content[index]
        block.text += delta
        self.stream.push_text_delta(index, delta, self.output)

    def append_thinking(self, index: int, delta: str) -> None:
        block = self.output.content[index]
        block.thinking += delta
        self.stream.push_thinking_delta(index, delta, self.output)

    def append_tool_json(self, key: Any, index: int, delta: str) -> None:
        buffer = self.blocks.append_json(key, delta)
        self.output.content[index].arguments = parse_tool_arguments(buffer)
        self.stream.push_tool_call_delta(index, delta, self.output)

    def finish_block(self, key: Any, final_json: Optional[str] = None) -> None:
        """Close the open block ``key`` and emit its end event."""
        entry = self.blocks.close(key)
        if entry is None:
            return
        index = entry.position
        block = self.output.content[index]
        if isinstance(block, TextContent):
            self.stream.push_text_end(index, block.text, self.output)
        elif isinstance(block, ThinkingContent):
            self.stream.push_thinking_end(index, block.thinking, self.output)
        elif isinstance(block, ToolCall):
            raw = final_json if final_json is not None else entry.partial_json
            if raw:
                block.arguments = parse_tool_arguments(raw)
            self.stream.push_tool_call_end(index, block, self.output)


class HttpProviderAdapter(ProviderAdapter):
    """Adapter whose vendor stream is an httpx streaming response."""

    options_class: Type[StreamOptions] = HttpStreamOptions
    default_timeout: Optional[float] = None

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.client: Optional[httpx.AsyncClient] = None
        self._owns_client = False
        self._response: Optional[httpx.Response] = None

    def create_client(self, headers: Dict[str, str]) -> httpx.AsyncClient:
        if self.options.http_client is not None:
            return self.options.http_client
        self._owns_client = True
        timeout = self.options.timeout or self.default_timeout or get_settings().http_timeout
        return httpx.AsyncClient(headers=headers, timeout=timeout)

    def request_headers(self, defaults: Dict[str, str]) -> Dict[str, str]:
        """Defaults, then model headers, then option headers (last wins)."""
        headers = dict(defaults)
        headers.update(self.model.headers or {})
        headers.update(self.options.headers or {})
        return headers

    async def open_stream(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> httpx.Response:
        """
        POST ``payload`` and return the streaming response once the status is OK.

        Raises:
            NormalizedProviderError: if every attempt failed
            AbortedError: if the signal was set before or between attempts
        """

        async def attempt() -> httpx.Response:
            try:
                request = self.client.build_request("POST", url, json=payload, headers=headers)
                response = await self.client.send(request, stream=True)
            except httpx.HTTPError as e:
                raise error_from_exception(self.provider, e) from e
            if response.status_code >= 400:
                body = await self._read_error_body(response)
                raise error_from_status(self.provider, response.status_code, body)
            return response

        async with TimedOperation("open_stream", self.logger, extra={"provider": self.provider}):
            self._response = await self.with_retry(attempt)
        return self._response

    @staticmethod
    async def _read_error_body(response: httpx.Response) -> Any:
        try:
            await response.aread()
        finally:
            await response.aclose()
        try:
            return response.json()
        except ValueError:
            return response.text or None

    async def cleanup(self) -> None:
        if self._response is not None:
            await self._response.aclose()
        if self.client is not None and self._owns_client:
            await self.client.aclose()


# ============================================================
# Launching
# ============================================================

# Strong references to running adapter tasks
_running_tasks: Set["asyncio.Task[None]"] = set()


def start_adapter(
    adapter_class: Type[ProviderAdapter],
    model: Model,
    context: Context,
    options: Any = None,
) -> AssistantMessageEventStream:
    """
    Create the event stream and schedule ``adapter_class(...).run()`` on the running loop.

    Must be called from within a running event loop.
    """
    stream = AssistantMessageEventStream(history_limit=get_settings().event_history_limit)
    adapter = adapter_class(model, context, stream, options)
    task = asyncio.get_running_loop().create_task(adapter.run())
    _running_tasks.add(task)
    task.add_done_callback(_running_tasks.discard)
    return stream


def require_api_key(model: Model, options: Optional[StreamOptions]) -> str:
    """
    API key from the options or the environment.

    Raises:
        InvalidInputError: if neither provides one
    """
    api_key = (options.api_key if options else None) or get_env_api_key(model.provider)
    if not api_key:
        raise InvalidInputError(f"No API key for provider: {model.provider}", param="api_key")
    return api_key
