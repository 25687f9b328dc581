"""
Pricing package.

Public API:
- PricingEngine, PriceQuote, compute_fare
- surge_from_ratio, estimate_surge
- PricingPolicy and its factories
"""

from .engine import PricingEngine, PriceQuote, compute_fare
from .surge import demand_supply_ratio, estimate_surge, surge_from_ratio
from .policy import PricingPolicy, default_pricing_policy, peak_pricing_policy, offpeak_pricing_policy

__all__ = [
    "PricingEngine",
    "PriceQuote",
    "compute_fare",
    "demand_supply_ratio",
    "estimate_surge",
    "surge_from_ratio",
    "PricingPolicy",
    "default_pricing_policy",
    "peak_pricing_policy",
    "offpeak_pricing_policy",
]
