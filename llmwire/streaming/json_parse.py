"""
llmwire - Streaming JSON Parsing

Best-effort decoding of tool-call arguments that arrive as a growing JSON
string. A strict ``json.loads`` is tried first; when it fails the tolerant
parser returns the deepest well-formed prefix of the document:

    '{"a":'            -> {}
    '{"a":1,"b"'       -> {"a": 1}
    '{"path":"src/ma'  -> {"path": "src/ma"}

Neither function ever raises; failures yield the caller's fallback value.
"""

import json
from dataclasses import dataclass
from typing import Any, Optional, Tuple


_MISSING = object()

_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "/": "/",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}

_WHITESPACE = " \t\n\r"
_NUMBER_CHARS = "+-0123456789.eE"
_LITERALS = (("true", True), ("false", False), ("null", None))


@dataclass
class StreamingJsonParseResult:
    """Parsed value plus diagnostics."""
    value: Any
    parsed: bool
    used_partial_parser: bool
    error: Optional[str] = None


class _PartialParser:
    """Recursive-descent parser that stops cleanly at end of input."""

    def __init__(self, text: str):
        self.text = text
        self.n = len(text)

    def parse(self) -> Any:
        i = self._skip(0)
        if i >= self.n:
            raise ValueError("Unexpected end of JSON input")
        value, i, complete = self._value(i)
        if value is _MISSING:
            raise ValueError("Incomplete JSON value")
        if complete:
            i = self._skip(i)
            if i < self.n:
                raise ValueError(f"Unexpected data after JSON value at position {i}")
        return value

    def _skip(self, i: int) -> int:
        while i < self.n and self.text[i] in _WHITESPACE:
            i += 1
        return i

    def _value(self, i: int) -> Tuple[Any, int, bool]:
        c = self.text[i]
        if c == "{":
            return self._object(i)
        if c == "[":
            return self._array(i)
        if c == '"':
            return self._string(i)
        if c in "-0123456789":
            return self._number(i)
        return self._literal(i)

    def _object(self, i: int) -> Tuple[Any, int, bool]:
        obj = {}
        i += 1
        while True:
            i = self._skip(i)
            if i >= self.n:
                return obj, i, False
            if self.text[i] == "}":
                return obj, i + 1, True
            if self.text[i] != '"':
                raise ValueError(f"Expected property name at position {i}")

            key, i, complete = self._string(i)
            if not complete:
                return obj, i, False

            i = self._skip(i)
            if i >= self.n:
                return obj, i, False
            if self.text[i] != ":":
                raise ValueError(f"Expected ':' at position {i}")
            i = self._skip(i + 1)
            if i >= self.n:
                return obj, i, False

            value, i, complete = self._value(i)
            if value is not _MISSING:
                obj[key] = value
            if not complete:
                return obj, i, False

            i = self._skip(i)
            if i >= self.n:
                return obj, i, False
            if self.text[i] == ",":
                i += 1
            elif self.text[i] == "}":
                return obj, i + 1, True
            else:
                raise ValueError(f"Expected ',' or '}}' at position {i}")

    def _array(self, i: int) -> Tuple[Any, int, bool]:
        arr = []
        i += 1
        while True:
            i = self._skip(i)
            if i >= self.n:
                return arr, i, False
            if self.text[i] == "]":
                return arr, i + 1, True

            value, i, complete = self._value(i)
            if value is not _MISSING:
                arr.append(value)
            if not complete:
                return arr, i, False

            i = self._skip(i)
            if i >= self.n:
                return arr, i, False
            if self.text[i] == ",":
                i += 1
            elif self.text[i] == "]":
                return arr, i + 1, True
            else:
                raise ValueError(f"Expected ',' or ']' at position {i}")

    def _string(self, i: int) -> Tuple[Any, int, bool]:
        chars = []
        i += 1
        while i < self.n:
            c = self.text[i]
            if c == '"':
                return "".join(chars), i + 1, True
            if c == "\\":
                if i + 1 >= self.n:
                    break
                esc = self.text[i + 1]
                if esc == "u":
                    if i + 6 > self.n:
                        break
                    code = int(self.text[i + 2:i + 6], 16)
                    i += 6
                    if 0xD800 <= code <= 0xDBFF:
                        tail = self.text[i:i + 6]
                        if len(tail) < 6 and tail[:2] in ("", "\\", "\\u"):
                            # Low half not arrived yet
                            break
                        if tail.startswith("\\u"):
                            low = int(tail[2:], 16)
                            if 0xDC00 <= low <= 0xDFFF:
                                code = 0x10000 + ((code - 0xD800) << 10) + (low - 0xDC00)
                                i += 6
                    chars.append(chr(code))
                    continue
                if esc not in _ESCAPES:
                    raise ValueError(f"Invalid escape '\\{esc}' at position {i}")
                chars.append(_ESCAPES[esc])
                i += 2
                continue
            chars.append(c)
            i += 1
        return "".join(chars), self.n, False

    def _number(self, i: int) -> Tuple[Any, int, bool]:
        j = i
        while j < self.n and self.text[j] in _NUMBER_CHARS:
            j += 1
        raw = self.text[i:j]
        if j >= self.n:
            try:
                return self._to_number(raw), j, False
            except ValueError:
                return _MISSING, j, False
        return self._to_number(raw), j, True

    @staticmethod
    def _to_number(raw: str) -> Any:
        if any(c in raw for c in ".eE"):
            return float(raw)
        return int(raw)

    def _literal(self, i: int) -> Tuple[Any, int, bool]:
        rest = self.text[i:]
        for word, value in _LITERALS:
            if rest.startswith(word):
                return value, i + len(word), True
            if word.startswith(rest):
                return _MISSING, self.n, False
        raise ValueError(f"Unexpected token at position {i}")


def parse_partial_json(text: str) -> Any:
    """
    Parse a possibly truncated JSON document.

    Raises:
        ValueError: if the text is malformed before it runs out
    """
    return _PartialParser(text).parse()


def parse_streaming_json_with_diagnostics(
    partial_json: Optional[str],
    fallback: Any = None,
    allow_partial: bool = True,
    trim_input: bool = True,
) -> StreamingJsonParseResult:
    """
    Parse accumulated tool-call argument text.

    Args:
        partial_json: The accumulated JSON text (may be None or empty)
        fallback: Value returned when nothing can be parsed; defaults to {}
        allow_partial: Fall back to the tolerant parser when strict parsing fails
        trim_input: Strip surrounding whitespace first

    Returns:
        StreamingJsonParseResult with the value and how it was obtained
    """
    fallback_value = {} if fallback is None else fallback
    text = partial_json.strip() if (trim_input and partial_json) else partial_json
    if not text:
        return StreamingJsonParseResult(fallback_value, parsed=False, used_partial_parser=False)

    try:
        return StreamingJsonParseResult(json.loads(text), parsed=True, used_partial_parser=False)
    except ValueError as json_error:
        if not allow_partial:
            return StreamingJsonParseResult(
                fallback_value, parsed=False, used_partial_parser=False, error=str(json_error)
            )

    try:
        value = parse_partial_json(text)
    except (ValueError, IndexError) as partial_error:
        return StreamingJsonParseResult(
            fallback_value, parsed=False, used_partial_parser=True, error=str(partial_error)
        )
    return StreamingJsonParseResult(
        fallback_value if value is None else value, parsed=True, used_partial_parser=True
    )


def parse_streaming_json(partial_json: Optional[str], fallback: Any = None, allow_partial: bool = True) -> Any:
    """Best-effort value of the accumulated JSON text; never raises."""
    return parse_streaming_json_with_diagnostics(partial_json, fallback, allow_partial).value


def parse_tool_arguments(partial_json: Optional[str]) -> dict:
    """Tool-call arguments as a dict; anything that is not an object becomes {}."""
    value = parse_streaming_json(partial_json)
    return value if isinstance(value, dict) else {}
