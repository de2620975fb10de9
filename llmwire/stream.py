"""
llmwire - Streaming Entry Points

Public functions that validate the model and context, resolve the adapter
registered for ``model.api`` and start the call.

Usage:
    from llmwire import complete, get_model
    from llmwire.core.models import Context, UserMessage

    model = get_model("anthropic", "claude-sonnet-4-5")
    message = await complete(model, Context(messages=[UserMessage(content="Hi")]))

    async for event in stream(model, context):
        if event.type == "text_delta":
            print(event.delta, end="")
"""

import asyncio
from typing import Any, Dict, Optional

from .core.errors import InvalidInputError, MessageValidationError, RegistryError
from .core.models import AssistantMessage, Context, Model, validate_context
from .core.options import SimpleStreamOptions, StreamOptions
from .observability.logging import get_logger
from .registry import ApiProvider, get_api_provider
from .streaming.event_stream import AssistantMessageEventStream


logger = get_logger("llmwire.stream")


class StreamOptionsBuilder:
    """
    Fluent builder for the options shared by every adapter.

    Example:
        options = StreamOptionsBuilder().with_temperature(0.2).with_max_tokens(1024).build()
    """

    def __init__(self):
        self._options: Dict[str, Any] = {}

    def with_temperature(self, temperature: float) -> "StreamOptionsBuilder":
        self._options["temperature"] = temperature
        return self

    def with_max_tokens(self, max_tokens: int) -> "StreamOptionsBuilder":
        self._options["max_tokens"] = max_tokens
        return self

    def with_api_key(self, api_key: str) -> "StreamOptionsBuilder":
        self._options["api_key"] = api_key
        return self

    def with_header(self, name: str, value: str) -> "StreamOptionsBuilder":
        self._options["headers"] = {**self._options.get("headers", {}), name: value}
        return self

    def with_signal(self, signal: asyncio.Event) -> "StreamOptionsBuilder":
        self._options["signal"] = signal
        return self

    def build(self) -> StreamOptions:
        """Validated snapshot; later builder calls do not affect it."""
        options = dict(self._options)
        if "headers" in options:
            options["headers"] = dict(options["headers"])
        return StreamOptions(**options)


def validate_model(model: Any) -> None:
    """
    Raises:
        InvalidInputError: if the model lacks an id, api or provider
    """
    if not isinstance(model, Model):
        raise InvalidInputError("Invalid model: expected Model", param="model")
    if not model.api or not isinstance(model.api, str):
        raise InvalidInputError("Invalid model: api is required", param="model.api")
    if not model.id or not isinstance(model.id, str):
        raise InvalidInputError("Invalid model: id is required", param="model.id")
    if not model.provider or not isinstance(model.provider, str):
        raise InvalidInputError("Invalid model: provider is required", param="model.provider")


def resolve_api_provider(api: str) -> ApiProvider:
    """
    Raises:
        RegistryError: if no enabled adapter is registered for ``api``
    """
    provider = get_api_provider(api)
    if provider is None:
        raise RegistryError(f"No API provider registered for api: {api}", api=api)
    return provider


def _validate(model: Any, context: Any) -> ApiProvider:
    validate_model(model)
    try:
        validate_context(context)
    except MessageValidationError as e:
        raise InvalidInputError(f"Invalid context: {e}", param="context") from e
    return resolve_api_provider(model.api)


def stream(model: Model, context: Context, options: Any = None) -> AssistantMessageEventStream:
    """
    Start a call with vendor-specific options.

    Must be called from within a running event loop. Validation failures
    raise synchronously; everything after that is reported on the stream.

    Raises:
        InvalidInputError: for a malformed model or context
        RegistryError: if no adapter handles ``model.api``
    """
    provider = _validate(model, context)
    logger.debug(
        "Starting stream",
        api=model.api,
        model=model.id,
        has_tools=bool(context.tools),
    )
    return provider.stream(model, context, options)


async def complete(model: Model, context: Context, options: Any = None) -> AssistantMessage:
    """Run a call to completion; failures come back as a message with stop_reason error/aborted."""
    return await stream(model, context, options).result()


def stream_simple(
    model: Model, context: Context, options: Optional[SimpleStreamOptions] = None
) -> AssistantMessageEventStream:
    """Start a call with the reduced, vendor-neutral option set."""
    provider = _validate(model, context)
    logger.debug("Starting simple stream", api=model.api, model=model.id)
    return provider.stream_simple(model, context, options)


async def complete_simple(
    model: Model, context: Context, options: Optional[SimpleStreamOptions] = None
) -> AssistantMessage:
    return await stream_simple(model, context, options).result()


def stream_by_api(api: str, model: Model, context: Context, options: Any = None) -> AssistantMessageEventStream:
    """
    ``stream`` with an explicit protocol check.

    Raises:
        InvalidInputError: if ``model.api`` differs from ``api``
    """
    if getattr(model, "api", None) != api:
        raise InvalidInputError(
            f"Mismatched api: model={getattr(model, 'api', None)} expected={api}", param="api"
        )
    return stream(model, context, options)
