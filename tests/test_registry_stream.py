"""
llmwire - Registry and Entry Point Tests
"""

import pytest

from llmwire import complete, complete_simple, stream, stream_by_api, stream_simple
from llmwire.core.errors import InvalidInputError, RegistryError
from llmwire.core.models import AssistantMessage, Context, KnownApi, Model, StopReason, ToolCall, UserMessage
from llmwire.core.options import SimpleStreamOptions
from llmwire.registry import (
    BUILTIN_SOURCE_ID,
    ApiProvider,
    clear_api_providers,
    disable_api_provider,
    enable_api_provider,
    get_api_provider,
    get_api_provider_with_metadata,
    get_api_providers,
    register_api_provider,
    unregister_api_providers,
    validate_provider,
)
from llmwire.streaming.event_stream import AssistantMessageEventStream


ECHO_API = "echo"


def _echo_model() -> Model:
    return Model(id="echo-1", api=ECHO_API, provider="local")


class _EchoProvider:
    """Completes immediately with the text of the last user message."""

    def __init__(self):
        self.calls = []

    def _respond(self, model, context, options):
        self.calls.append((model, context, options))
        message = AssistantMessage(api=model.api, provider=model.provider, model=model.id)
        message.content = []
        event_stream = AssistantMessageEventStream()
        event_stream.push_start(message)
        event_stream.push_done(StopReason.STOP, message)
        return event_stream

    def provider(self) -> ApiProvider:
        return ApiProvider(api=ECHO_API, stream=self._respond, stream_simple=self._respond)


def _context():
    return Context(messages=[UserMessage(content="Hello")])


class TestProviderRegistry:

    def test_builtins_registered(self):
        apis = {provider.api for provider in get_api_providers()}
        assert apis == {api.value for api in KnownApi}
        entry = get_api_provider_with_metadata(KnownApi.ANTHROPIC_MESSAGES.value)
        assert entry.metadata.source_id == BUILTIN_SOURCE_ID

    def test_register_and_unregister_by_source(self):
        register_api_provider(_EchoProvider().provider(), source_id="plugin:echo", version="2")

        entry = get_api_provider_with_metadata(ECHO_API)
        assert entry.metadata.version == "2"
        assert get_api_provider(ECHO_API) is not None

        unregister_api_providers("plugin:echo")

        assert get_api_provider(ECHO_API) is None
        assert get_api_provider(KnownApi.ANTHROPIC_MESSAGES.value) is not None

    def test_reregistration_keeps_registered_at(self):
        register_api_provider(_EchoProvider().provider(), source_id="a")
        first = get_api_provider_with_metadata(ECHO_API).metadata.registered_at

        register_api_provider(_EchoProvider().provider(), source_id="b")
        entry = get_api_provider_with_metadata(ECHO_API)

        assert entry.metadata.registered_at == first
        assert entry.metadata.source_id == "b"

    def test_enable_disable(self):
        register_api_provider(_EchoProvider().provider())

        assert disable_api_provider(ECHO_API) is True
        assert get_api_provider(ECHO_API) is None
        assert ECHO_API not in [p.api for p in get_api_providers()]
        assert ECHO_API in [p.api for p in get_api_providers(include_disabled=True)]

        assert enable_api_provider(ECHO_API) is True
        assert get_api_provider(ECHO_API) is not None
        assert disable_api_provider("missing") is False

    def test_clear(self):
        clear_api_providers()
        assert get_api_providers() == []

    @pytest.mark.parametrize("provider,match", [
        (None, "provider object is required"),
        (ApiProvider(api="", stream=print, stream_simple=print), "api must be a non-empty string"),
        (ApiProvider(api="x", stream=None, stream_simple=print), "stream must be callable"),
        (ApiProvider(api="x", stream=print, stream_simple="nope"), "stream_simple must be callable"),
    ])
    def test_validation(self, provider, match):
        with pytest.raises(RegistryError, match=match):
            validate_provider(provider)

    def test_registered_functions_check_api(self):
        register_api_provider(_EchoProvider().provider())
        wrong = Model(id="m", api="other", provider="local")

        with pytest.raises(RegistryError, match="Mismatched api"):
            get_api_provider(ECHO_API).stream(wrong, _context(), None)


class TestEntryPoints:

    @pytest.mark.asyncio
    async def test_complete_dispatches_by_api(self):
        echo = _EchoProvider()
        register_api_provider(echo.provider())

        message = await complete(_echo_model(), _context())

        assert message.stop_reason == StopReason.STOP
        assert message.model == "echo-1"
        assert len(echo.calls) == 1

    @pytest.mark.asyncio
    async def test_complete_simple_passes_options(self):
        echo = _EchoProvider()
        register_api_provider(echo.provider())
        options = SimpleStreamOptions(max_tokens=10)

        await complete_simple(_echo_model(), _context(), options)

        assert echo.calls[0][2] is options

    def test_unknown_api(self):
        model = Model(id="m", api="nobody-home", provider="local")

        with pytest.raises(RegistryError, match="No API provider registered for api: nobody-home"):
            stream(model, _context())

    @pytest.mark.parametrize("model", [
        "gpt-5",
        Model(id="", api=ECHO_API, provider="local"),
        Model(id="m", api="", provider="local"),
        Model(id="m", api=ECHO_API, provider=""),
    ])
    def test_invalid_model(self, model):
        with pytest.raises(InvalidInputError):
            stream(model, _context())

    def test_invalid_context(self):
        register_api_provider(_EchoProvider().provider())
        bad = Context(messages=[AssistantMessage(content=[ToolCall(id="", name="x")])])

        with pytest.raises(InvalidInputError, match="Invalid context"):
            stream_simple(_echo_model(), bad)

        with pytest.raises(InvalidInputError):
            stream(_echo_model(), "not a context")

    @pytest.mark.asyncio
    async def test_invalid_option_dict(self, anthropic_model):
        with pytest.raises(InvalidInputError, match="Invalid options"):
            stream(anthropic_model, _context(), {"temperature": 3.0})

    def test_stream_by_api_mismatch(self):
        with pytest.raises(InvalidInputError, match="Mismatched api"):
            stream_by_api("openai-responses", _echo_model(), _context())

    @pytest.mark.asyncio
    async def test_builtin_adapter_through_entry_point(self, anthropic_model, mock_http):
        from llmwire.adapters.anthropic import AnthropicOptions

        mock_http.add_sse([
            {"type": "message_start", "message": {"usage": {"input_tokens": 4}}},
            {"type": "content_block_start", "index": 0, "content_block": {"type": "text"}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Hi"}},
            {"type": "content_block_stop", "index": 0},
            {"type": "message_delta", "delta": {"stop_reason": "end_turn"}, "usage": {"output_tokens": 1}},
        ])

        message = await complete(
            anthropic_model, _context(), AnthropicOptions(api_key="k", http_client=mock_http.client)
        )

        assert message.text() == "Hi"
        assert message.stop_reason == StopReason.STOP
