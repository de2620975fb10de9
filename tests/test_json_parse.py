"""
llmwire - Streaming JSON Tests
"""

import pytest

from llmwire.streaming.json_parse import (
    parse_partial_json,
    parse_streaming_json,
    parse_streaming_json_with_diagnostics,
    parse_tool_arguments,
)


class TestParseStreamingJson:
    """Tolerant parsing of growing tool-call arguments."""

    @pytest.mark.parametrize("text,expected", [
        ('{"a":', {}),
        ('{"a":1,"b"', {"a": 1}),
        ('{"path":"src/ma', {"path": "src/ma"}),
        ('{"flag": tr', {}),
        ('{"items": [1, 2', {"items": [1, 2]}),
        ('{"nested": {"x": "y"', {"nested": {"x": "y"}}),
    ])
    def test_partial_documents(self, text, expected):
        assert parse_streaming_json(text) == expected

    def test_complete_document_uses_strict_parser(self):
        result = parse_streaming_json_with_diagnostics('{"path": "a.txt"}')

        assert result.value == {"path": "a.txt"}
        assert result.parsed
        assert not result.used_partial_parser
        assert result.error is None

    def test_partial_document_reports_partial_parser(self):
        result = parse_streaming_json_with_diagnostics('{"path": "a')

        assert result.value == {"path": "a"}
        assert result.parsed
        assert result.used_partial_parser

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_empty_input_returns_fallback(self, text):
        result = parse_streaming_json_with_diagnostics(text)

        assert result.value == {}
        assert not result.parsed

    def test_malformed_input_never_raises(self):
        result = parse_streaming_json_with_diagnostics('{"a" 1}', fallback={"x": 1})

        assert result.value == {"x": 1}
        assert not result.parsed
        assert result.error

    def test_partial_disabled(self):
        result = parse_streaming_json_with_diagnostics('{"a": 1', allow_partial=False)

        assert result.value == {}
        assert not result.used_partial_parser
        assert result.error

    def test_escapes_in_strings(self):
        assert parse_streaming_json('{"s": "line\\nnext \\u00e9"}') == {"s": "line\nnext é"}
        assert parse_streaming_json('{"s": "tab\\') == {"s": "tab"}

    def test_surrogate_pair_escape(self):
        assert parse_partial_json('{"e": "\\uD83D\\uDE00"}') == {"e": "\U0001F600"}
        assert parse_streaming_json('{"e": "smile \\uD83D\\uDE00') == {"e": "smile \U0001F600"}

    @pytest.mark.parametrize("text", [
        '{"e": "ok \\uD83D',
        '{"e": "ok \\uD83D\\',
        '{"e": "ok \\uD83D\\uDE',
    ])
    def test_split_surrogate_pair_waits_for_low_half(self, text):
        assert parse_partial_json(text) == {"e": "ok "}

    def test_trailing_garbage_rejected_by_partial_parser(self):
        with pytest.raises(ValueError):
            parse_partial_json('{"a": 1} extra')


class TestParseToolArguments:

    def test_non_object_becomes_empty_dict(self):
        assert parse_tool_arguments("[1, 2]") == {}
        assert parse_tool_arguments('"text"') == {}

    def test_object(self):
        assert parse_tool_arguments('{"q": "weather", "n": 3}') == {"q": "weather", "n": 3}
