"""
llmwire - Message Transformation Tests

Covers cross-model history repair:
- Foreign thinking downgraded to text, same-model signed thinking kept
- Tool call id rewrites propagated to their results
- Synthetic results for dangling tool calls
"""

import copy

import pytest

from llmwire.core.errors import MessageValidationError
from llmwire.core.models import (
    AssistantMessage,
    StopReason,
    TextContent,
    ThinkingContent,
    ToolCall,
    ToolResultMessage,
    UserMessage,
)
from llmwire.transform.pipeline import (
    SYNTHETIC_RESULT_TEXT,
    MessageTransformationPipeline,
    NormalizeAssistantContent,
    TransformContext,
    default_pipeline,
    normalize_tool_call_id,
    transform_messages,
)


def _assistant(model, content, stop_reason=StopReason.STOP):
    return AssistantMessage(
        content=content, api=model.api, provider=model.provider, model=model.id, stop_reason=stop_reason
    )


def _sanitizing_normalizer(tool_call_id, model, source):
    return normalize_tool_call_id(tool_call_id, 40)


class TestNormalizeAssistantContent:

    def test_same_model_keeps_signed_thinking(self, anthropic_model):
        thinking = ThinkingContent(thinking="Plan", thinking_signature="sig")
        messages = [UserMessage(content="hi"), _assistant(anthropic_model, [thinking, TextContent(text="Done")])]

        result = transform_messages(messages, anthropic_model)

        assert result[1].content == [thinking, TextContent(text="Done")]

    def test_foreign_thinking_becomes_text(self, anthropic_model, openai_model):
        messages = [
            UserMessage(content="hi"),
            _assistant(openai_model, [
                ThinkingContent(thinking="Plan", thinking_signature='{"type": "reasoning"}'),
                TextContent(text="Done"),
            ]),
        ]

        result = transform_messages(messages, anthropic_model)

        assert result[1].content == [TextContent(text="Plan"), TextContent(text="Done")]

    def test_empty_thinking_is_dropped(self, anthropic_model, openai_model):
        messages = [
            UserMessage(content="hi"),
            _assistant(anthropic_model, [ThinkingContent(thinking="  "), TextContent(text="a")]),
            _assistant(openai_model, [ThinkingContent(thinking=""), TextContent(text="b")]),
        ]

        result = transform_messages(messages, anthropic_model)

        assert result[1].content == [TextContent(text="a")]
        assert result[2].content == [TextContent(text="b")]

    def test_tool_call_ids_rewritten_for_results(self, anthropic_model, openai_model):
        tool_call = ToolCall(id="call_1|fc_1", name="read", arguments={}, thought_signature="opaque")
        messages = [
            UserMessage(content="hi"),
            _assistant(openai_model, [tool_call], StopReason.TOOL_USE),
            ToolResultMessage(tool_call_id="call_1|fc_1", tool_name="read", content=[TextContent(text="ok")]),
        ]

        result = transform_messages(messages, anthropic_model, normalize_tool_call_id=_sanitizing_normalizer)

        rewritten = result[1].content[0]
        assert rewritten.id == "call_1_fc_1"
        assert rewritten.thought_signature is None
        assert result[2].tool_call_id == "call_1_fc_1"

    def test_same_model_tool_calls_untouched(self, anthropic_model):
        tool_call = ToolCall(id="toolu_1", name="read", arguments={})
        messages = [
            UserMessage(content="hi"),
            _assistant(anthropic_model, [tool_call], StopReason.TOOL_USE),
            ToolResultMessage(tool_call_id="toolu_1", tool_name="read"),
        ]

        result = transform_messages(messages, anthropic_model, normalize_tool_call_id=_sanitizing_normalizer)

        assert result[1].content == [tool_call]
        assert result[2].tool_call_id == "toolu_1"

    def test_normalize_tool_call_id(self):
        assert normalize_tool_call_id("call+1|item.2") == "call_1_item_2"
        assert normalize_tool_call_id("x" * 80) == "x" * 64
        assert len(normalize_tool_call_id("y" * 80, max_length=40)) == 40


class TestSyntheticToolResults:

    def test_dangling_call_before_user_message(self, anthropic_model):
        messages = [
            UserMessage(content="hi"),
            _assistant(anthropic_model, [
                ToolCall(id="t1", name="read"),
                ToolCall(id="t2", name="write"),
            ], StopReason.TOOL_USE),
            ToolResultMessage(tool_call_id="t1", tool_name="read"),
            UserMessage(content="never mind"),
        ]

        result = transform_messages(messages, anthropic_model)

        assert [message.role for message in result] == ["user", "assistant", "toolResult", "toolResult", "user"]
        synthetic = result[3]
        assert synthetic.tool_call_id == "t2"
        assert synthetic.tool_name == "write"
        assert synthetic.is_error is True
        assert synthetic.content == [TextContent(text=SYNTHETIC_RESULT_TEXT)]

    def test_dangling_call_at_end(self, anthropic_model):
        messages = [
            UserMessage(content="hi"),
            _assistant(anthropic_model, [ToolCall(id="t1", name="read")], StopReason.TOOL_USE),
        ]

        result = transform_messages(messages, anthropic_model)

        assert len(result) == 3
        assert result[2].tool_call_id == "t1"

    @pytest.mark.parametrize("stop_reason", [StopReason.ERROR, StopReason.ABORTED])
    def test_failed_turns_are_dropped(self, anthropic_model, stop_reason):
        messages = [
            UserMessage(content="hi"),
            _assistant(anthropic_model, [TextContent(text="par"), ToolCall(id="t1", name="read")], stop_reason),
            UserMessage(content="retry"),
        ]

        result = transform_messages(messages, anthropic_model)

        assert [message.role for message in result] == ["user", "user"]

    def test_idempotent(self, anthropic_model, openai_model):
        messages = [
            UserMessage(content="hi"),
            _assistant(openai_model, [
                ThinkingContent(thinking="Plan"),
                ToolCall(id="call_1|fc_1", name="read"),
            ], StopReason.TOOL_USE),
            UserMessage(content="next"),
        ]

        once = transform_messages(messages, anthropic_model, normalize_tool_call_id=_sanitizing_normalizer)
        twice = transform_messages(once, anthropic_model, normalize_tool_call_id=_sanitizing_normalizer)

        assert [m.role for m in twice] == [m.role for m in once]
        assert twice[2] == once[2]


class TestPipeline:

    def test_input_not_mutated(self, anthropic_model, openai_model):
        messages = [
            UserMessage(content="hi"),
            _assistant(openai_model, [
                ThinkingContent(thinking="Plan", thinking_signature="x"),
                ToolCall(id="call_1|fc_1", name="read"),
            ], StopReason.TOOL_USE),
        ]
        snapshot = copy.deepcopy(messages)

        transform_messages(messages, anthropic_model, normalize_tool_call_id=_sanitizing_normalizer)

        assert messages == snapshot

    def test_invalid_input(self, anthropic_model):
        messages = [_assistant(anthropic_model, [ToolCall(id="", name="read")])]

        with pytest.raises(MessageValidationError):
            transform_messages(messages, anthropic_model)

        with pytest.raises(MessageValidationError):
            transform_messages([ToolResultMessage(tool_name="read")], anthropic_model)

    def test_debug_hook(self, anthropic_model):
        calls = []
        messages = [
            UserMessage(content="hi"),
            _assistant(anthropic_model, [ToolCall(id="t1", name="read")], StopReason.TOOL_USE),
        ]

        transform_messages(messages, anthropic_model, debug=lambda name, info: calls.append((name, info)))

        assert calls == [
            ("normalize-assistant-content", {"before": 2}),
            ("normalize-assistant-content", {"after": 2}),
            ("insert-synthetic-tool-results", {"before": 2}),
            ("insert-synthetic-tool-results", {"after": 3}),
        ]

    def test_custom_stage_output_is_validated(self, anthropic_model):

        class BreakIds(NormalizeAssistantContent):
            name = "break-ids"

            def apply(self, messages, context):
                return [ToolResultMessage(tool_call_id="", tool_name="x") for _ in messages]

        pipeline = MessageTransformationPipeline().add_transformation(BreakIds())

        with pytest.raises(MessageValidationError):
            pipeline.transform([UserMessage(content="hi")], TransformContext(model=anthropic_model))

    def test_default_stage_order(self):
        names = [stage.name for stage in default_pipeline().transformations]
        assert names == ["normalize-assistant-content", "insert-synthetic-tool-results"]
