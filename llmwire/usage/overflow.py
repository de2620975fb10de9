"""
llmwire - Context Overflow Detection

Heuristic detection of context-window exhaustion from finished assistant
messages. Vendors word overflow errors differently and change the wording
without notice, so this is best-effort pattern matching, not a guarantee.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern

from ..core.models import AssistantMessage, StopReason


@dataclass(frozen=True)
class OverflowPattern:
    """A vendor overflow phrasing with a remediation hint."""
    pattern: Pattern[str]
    suggestion: str


def _p(regex: str, suggestion: str) -> OverflowPattern:
    return OverflowPattern(re.compile(regex, re.IGNORECASE), suggestion)


OVERFLOW_PATTERNS: List[OverflowPattern] = [
    _p(r"prompt is too long", "Trim prior messages or reduce system prompt size."),
    _p(r"input is too long for requested model", "Use a larger context model or shorten history."),
    _p(r"exceeds the context window", "Drop old turns and retry with summarized context."),
    _p(r"input token count.*exceeds the maximum", "Reduce attachments or split the request."),
    _p(r"maximum prompt length is \d+", "Decrease prompt/tool-result verbosity."),
    _p(r"reduce the length of the messages", "Compress or summarize conversation state."),
    _p(r"maximum context length is \d+ tokens", "Select a provider/model with larger window."),
    _p(r"exceeds the limit of \d+", "Remove large blocks in latest user/tool messages."),
    _p(r"exceeds the available context size", "Increase server context if supported."),
    _p(r"greater than the context length", "Lower keep tokens / trim prompt."),
    _p(r"context window exceeds limit", "Summarize earlier turns before retrying."),
    _p(r"context[_ ]length[_ ]exceeded", "Prune context to fit model limits."),
    _p(r"too many tokens", "Shorten request and retry."),
    _p(r"token limit exceeded", "Trim input and reduce output token budget."),
]

# Some vendors answer an oversized request with a bare status and no body
GENERIC_OVERFLOW_PATTERN = _p(
    r"^4(00|13|29)\s*(status code)?\s*\(no body\)",
    "Provider returned a generic overflow-like status. Retry with shorter context.",
)


def get_overflow_patterns() -> List[OverflowPattern]:
    """Copy of the maintained pattern table (without the generic fallback)."""
    return list(OVERFLOW_PATTERNS)


def _match(error_message: str) -> Optional[OverflowPattern]:
    for entry in OVERFLOW_PATTERNS:
        if entry.pattern.search(error_message):
            return entry
    if GENERIC_OVERFLOW_PATTERN.pattern.search(error_message):
        return GENERIC_OVERFLOW_PATTERN
    return None


def get_overflow_suggestion(error_message: Optional[str]) -> Optional[str]:
    """Remediation hint for an overflow error message, or None if it does not look like one."""
    if not error_message:
        return None
    entry = _match(error_message)
    return entry.suggestion if entry else None


def is_context_overflow(message: AssistantMessage, context_window: Optional[int] = None) -> bool:
    """
    Whether a finished message indicates the context window was exhausted.

    Args:
        message: A finished assistant message
        context_window: Window size of the model; enables the silent-overflow
            check for vendors that truncate input instead of failing

    Returns:
        True for an error whose text matches a known overflow phrasing, or a
        successful stop whose input plus cached input exceeds the window
    """
    if message.stop_reason == StopReason.ERROR:
        return bool(message.error_message) and _match(message.error_message) is not None

    if context_window and message.stop_reason == StopReason.STOP:
        usage = message.usage
        return usage.input + usage.cache_read > context_window

    return False
