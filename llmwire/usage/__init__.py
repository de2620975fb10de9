"""
llmwire Usage Module

Cost calculation and context overflow detection.
"""

from .overflow import get_overflow_patterns, get_overflow_suggestion, is_context_overflow
from .pricing import apply_service_tier_pricing, calculate_cost, estimate_cost, service_tier_multiplier

__all__ = [
    "apply_service_tier_pricing",
    "calculate_cost",
    "estimate_cost",
    "get_overflow_patterns",
    "get_overflow_suggestion",
    "is_context_overflow",
    "service_tier_multiplier",
]
