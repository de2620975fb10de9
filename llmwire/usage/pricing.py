"""
llmwire - Pricing

Usage to USD conversion. Prices live on ``Model.cost`` (USD per 1M tokens);
the catalog computes the base cost and some vendors scale it by a service
tier afterwards.
"""

from typing import Dict, Optional

from ..core.catalog import calculate_cost, estimate_cost
from ..core.models import Usage


# Multipliers applied to every cost component after the base calculation
SERVICE_TIER_MULTIPLIERS: Dict[str, float] = {
    "flex": 0.5,
    "priority": 2.0,
}


def service_tier_multiplier(service_tier: Optional[str]) -> float:
    """Multiplier for a service tier; unknown or missing tiers cost 1.0x."""
    if not service_tier:
        return 1.0
    return SERVICE_TIER_MULTIPLIERS.get(service_tier, 1.0)


def apply_service_tier_pricing(usage: Usage, service_tier: Optional[str]) -> Usage:
    """Scale ``usage.cost`` in place and recompute its total."""
    multiplier = service_tier_multiplier(service_tier)
    if multiplier == 1.0:
        return usage

    cost = usage.cost
    cost.input *= multiplier
    cost.output *= multiplier
    cost.cache_read *= multiplier
    cost.cache_write *= multiplier
    cost.total = cost.input + cost.output + cost.cache_read + cost.cache_write
    return usage
