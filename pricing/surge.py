"""
Purpose: Demand-driven surge multiplier.

ratio = active demand (last N minutes) / max(available supply, 1)
The multiplier is recomputed for every request and never cached.
"""

from __future__ import annotations

import logging
from typing import Optional

from dispatch.collaborators import CollaboratorGateway, DemandSupplyCounter, SurgeStatsUnavailable
from dispatch.models import Priority

from .policy import PricingPolicy, default_pricing_policy

logger = logging.getLogger(__name__)


def demand_supply_ratio(active_demand: int, available_supply: int) -> float:
    return max(0, active_demand) / max(available_supply, 1)


def surge_from_ratio(ratio: float, priority: Priority, policy: Optional[PricingPolicy] = None) -> float:
    """
    Map a demand/supply ratio onto the tiered multiplier, add the urgent
    bonus, and clamp into [policy.min_surge, policy.max_surge].
    """
    policy = policy or default_pricing_policy()

    surge = policy.base_surge
    for threshold, multiplier in policy.surge_tiers:
        if ratio > threshold:
            surge = multiplier
            break

    if priority == Priority.URGENT:
        surge += policy.urgent_surge_bonus

    return min(policy.max_surge, max(policy.min_surge, surge))


def estimate_surge(
    counter: DemandSupplyCounter,
    priority: Priority,
    gateway: CollaboratorGateway,
    *,
    policy: Optional[PricingPolicy] = None,
    timeout: float = 3.0,
) -> float:
    """
    Query demand and supply and turn them into a multiplier.

    Missing telemetry never fails a quote: any counter failure gives 1.0.
    """
    policy = policy or default_pricing_policy()

    try:
        active_demand = gateway.call(
            counter.get_active_demand,
            policy.demand_window_minutes,
            timeout=timeout,
            error_cls=SurgeStatsUnavailable,
            name="DemandSupplyCounter.get_active_demand",
        )
        available_supply = gateway.call(
            counter.get_available_supply,
            timeout=timeout,
            error_cls=SurgeStatsUnavailable,
            name="DemandSupplyCounter.get_available_supply",
        )
    except SurgeStatsUnavailable as exc:
        logger.warning("Surge stats unavailable, using 1.0: %s", exc)
        return 1.0

    ratio = demand_supply_ratio(int(active_demand or 0), int(available_supply or 0))
    surge = surge_from_ratio(ratio, priority, policy)
    logger.debug("demand=%s supply=%s ratio=%.2f surge=%.2f", active_demand, available_supply, ratio, surge)
    return surge
