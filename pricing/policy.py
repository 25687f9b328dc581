"""
Purpose: Central configuration for fares and surge (single source of truth).
What it does:

Stores all tunable fare defaults and surge thresholds:

DEFAULT_BASE_PRICE = 2000, DEFAULT_PRICE_PER_KM = 300
DEFAULT_TRIP_KM = 5 (used when the request has no destination)

SURGE: ratio > 2 -> 2.5, > 1.5 -> 2.0, > 1 -> 1.5, > 0.7 -> 1.2, else 1.0
URGENT_SURGE_BONUS = 0.5, clamp [1.0, 3.0]

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple

from dispatch.collaborators import FareRule


@dataclass(frozen=True)
class PricingPolicy:
    """
    Central configuration for quoting a dispatch request.

    Notes:
    - surge_tiers are (ratio threshold, multiplier) pairs, checked from the
      highest threshold down; the first threshold the ratio strictly exceeds wins.
    - city_fares overrides the global default fare per city key when the
      rules store has no rule for the request.
    """

    # --- Fare defaults ---
    default_base_price: float = 2000.0
    default_price_per_km: float = 300.0
    default_vehicle_class: str = "standard"

    # Callers should send a destination; without one the quote assumes this trip.
    default_trip_km: float = 5.0

    city_fares: Dict[str, FareRule] = field(default_factory=dict)

    # --- Surge ---
    demand_window_minutes: int = 30
    surge_tiers: Tuple[Tuple[float, float], ...] = ((2.0, 2.5), (1.5, 2.0), (1.0, 1.5), (0.7, 1.2))
    base_surge: float = 1.0
    urgent_surge_bonus: float = 0.5
    min_surge: float = 1.0
    max_surge: float = 3.0

    # --- Fallback quote when pricing itself breaks ---
    fallback_price: int = 3000

    def validate(self) -> None:
        """
        Basic sanity checks. Call once at startup if you want.
        """
        if self.default_base_price < 0 or self.default_price_per_km < 0:
            raise ValueError("default fares must be >= 0")

        if self.default_trip_km <= 0:
            raise ValueError("default_trip_km must be > 0")

        if self.demand_window_minutes <= 0:
            raise ValueError("demand_window_minutes must be > 0")

        if self.min_surge < 1.0:
            raise ValueError("min_surge must be >= 1.0")

        if self.max_surge < self.min_surge:
            raise ValueError("max_surge must be >= min_surge")

        thresholds = [threshold for threshold, _ in self.surge_tiers]
        if thresholds != sorted(thresholds, reverse=True):
            raise ValueError("surge_tiers must be ordered from highest threshold to lowest")

        for _, multiplier in self.surge_tiers:
            if multiplier < self.base_surge:
                raise ValueError("surge tier multipliers must be >= base_surge")

        if self.fallback_price < 0:
            raise ValueError("fallback_price must be >= 0")


def default_pricing_policy() -> PricingPolicy:
    """
    Convenience factory for the default policy.
    """
    p = PricingPolicy()
    p.validate()
    return p


def peak_pricing_policy() -> PricingPolicy:
    """
    Example: surge kicks in earlier during peaks (morning/evening rush).
    """
    p = PricingPolicy(
        surge_tiers=((1.8, 2.5), (1.3, 2.0), (0.9, 1.5), (0.6, 1.2)),
        demand_window_minutes=20,
    )
    p.validate()
    return p


def offpeak_pricing_policy() -> PricingPolicy:
    """
    Example: softer surge off-peak, capped lower.
    """
    p = PricingPolicy(
        surge_tiers=((2.5, 2.0), (1.5, 1.5), (1.0, 1.2)),
        max_surge=2.5,
        demand_window_minutes=45,
    )
    p.validate()
    return p
