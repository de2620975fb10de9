"""
llmwire - Simple Option Mapping

Helpers that turn ``SimpleStreamOptions`` into vendor options: base fields,
reasoning level clamping and thinking-budget arithmetic.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..core.models import Model, ThinkingBudgets, ThinkingLevel
from ..core.options import SimpleStreamOptions


DEFAULT_THINKING_BUDGETS: Dict[str, int] = {
    "minimal": 1024,
    "low": 2048,
    "medium": 8192,
    "high": 16384,
}

# Output left for the answer when the model's limit squeezes the budget
MIN_OUTPUT_TOKENS = 1024

SIMPLE_MAX_TOKENS_CAP = 32000


@dataclass
class ThinkingAdjustment:
    max_tokens: int
    thinking_budget: int


def build_base_options(
    model: Model,
    options: Optional[SimpleStreamOptions] = None,
    api_key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Fields shared by every vendor options class.

    ``max_tokens`` defaults to the model limit capped at 32000.
    """
    options = options or SimpleStreamOptions()
    return {
        "temperature": options.temperature,
        "max_tokens": options.max_tokens or min(model.max_tokens, SIMPLE_MAX_TOKENS_CAP),
        "signal": options.signal,
        "api_key": api_key or options.api_key,
        "session_id": options.session_id,
        "headers": options.headers,
        "on_payload": options.on_payload,
    }


def clamp_reasoning(level: Optional[ThinkingLevel]) -> Optional[ThinkingLevel]:
    """``xhigh`` becomes ``high``; everything else is unchanged."""
    if level is None:
        return None
    level = ThinkingLevel(level)
    return ThinkingLevel.HIGH if level == ThinkingLevel.XHIGH else level


def map_thinking_level(level: Optional[ThinkingLevel], mode: str = "clamp-xhigh") -> Optional[ThinkingLevel]:
    """
    Map an abstract level for a vendor.

    Args:
        level: Requested level
        mode: ``"supports-xhigh"`` passes the level through, ``"clamp-xhigh"`` clamps it
    """
    if level is None:
        return None
    if mode == "supports-xhigh":
        return ThinkingLevel(level)
    return clamp_reasoning(level)


def adjust_max_tokens_for_thinking(
    base_max_tokens: int,
    model_max_tokens: int,
    level: ThinkingLevel,
    custom_budgets: Optional[ThinkingBudgets] = None,
) -> ThinkingAdjustment:
    """
    Grow ``max_tokens`` by the thinking budget without exceeding the model limit.

    When the limit leaves no room beyond the budget, the budget shrinks so at
    least ``MIN_OUTPUT_TOKENS`` remain for the answer.

    Example:
        >>> adjust_max_tokens_for_thinking(8000, 64000, ThinkingLevel.MEDIUM)
        ThinkingAdjustment(max_tokens=16192, thinking_budget=8192)
    """
    budgets = dict(DEFAULT_THINKING_BUDGETS)
    if custom_budgets is not None:
        budgets.update(custom_budgets.overrides())

    clamped = clamp_reasoning(level)
    thinking_budget = budgets[clamped.value]
    max_tokens = min(base_max_tokens + thinking_budget, model_max_tokens)

    if max_tokens <= thinking_budget:
        thinking_budget = max(0, max_tokens - MIN_OUTPUT_TOKENS)

    return ThinkingAdjustment(max_tokens=max_tokens, thinking_budget=thinking_budget)
