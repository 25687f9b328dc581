"""
Purpose: The pricing "orchestrator" (single entry point for a quote).
What it does:

- measures the trip (haversine pickup -> destination, or the default trip)
- looks up the fare rule for (service type, vehicle class)
- asks the surge sub-algorithm for a multiplier
- returns (base + distance * per_km) * surge, halves rounded up

Rule: Engine is the only file other modules should call directly for pricing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from dispatch.collaborators import (
    CollaboratorGateway,
    DemandSupplyCounter,
    FareRule,
    PricingRulesStore,
    RulesUnavailable,
)
from dispatch.models import DispatchRequest
from routing.geo import distance_between

from .policy import PricingPolicy, default_pricing_policy
from .surge import estimate_surge

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceQuote:
    estimated_price: int
    surge_multiplier: float
    trip_distance_km: float
    fare_rule: FareRule
    city: Optional[str] = None
    is_fallback: bool = False


def compute_fare(fare_rule: FareRule, distance_km: float, surge_multiplier: float) -> int:
    """Whole currency units; a fare ending in .5 goes up (2150.5 -> 2151)."""
    amount = (fare_rule.base_price + distance_km * fare_rule.price_per_km) * surge_multiplier
    # str() first so the binary float error does not decide the half
    return int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PricingEngine:
    """
    Quotes one request. Stateless apart from its collaborators; the surge is
    recomputed on every call.
    """

    def __init__(
        self,
        rules: PricingRulesStore,
        counter: DemandSupplyCounter,
        gateway: CollaboratorGateway,
        policy: Optional[PricingPolicy] = None,
        lookup_timeout_seconds: float = 3.0,
    ):
        self.rules = rules
        self.counter = counter
        self.gateway = gateway
        self.policy = policy or default_pricing_policy()
        self.lookup_timeout_seconds = lookup_timeout_seconds

    def price(self, request: DispatchRequest, city: Optional[str] = None) -> PriceQuote:
        """
        Never raises: an unexpected fault returns the fallback quote.
        """
        try:
            return self._price(request, city)
        except Exception:
            logger.exception("Pricing failed for request %s, using fallback quote", request.request_id)
            return self.fallback_quote(request, city)

    def trip_distance_km(self, request: DispatchRequest) -> float:
        if request.destination is None:
            return self.policy.default_trip_km
        return distance_between(request.pickup, request.destination)

    def fare_rule_for(self, request: DispatchRequest, city: Optional[str] = None) -> FareRule:
        vehicle_class = request.vehicle_class or self.policy.default_vehicle_class

        try:
            rule = self.gateway.call(
                self.rules.get_rule,
                request.service_type.value,
                vehicle_class,
                timeout=self.lookup_timeout_seconds,
                error_cls=RulesUnavailable,
                name="PricingRulesStore.get_rule",
            )
        except RulesUnavailable as exc:
            logger.warning("Pricing rules unavailable, using defaults: %s", exc)
            rule = None

        if rule is not None:
            return rule

        if city and city in self.policy.city_fares:
            return self.policy.city_fares[city]

        return FareRule(base_price=self.policy.default_base_price, price_per_km=self.policy.default_price_per_km)

    def fallback_quote(self, request: DispatchRequest, city: Optional[str] = None) -> PriceQuote:
        return PriceQuote(
            estimated_price=self.policy.fallback_price,
            surge_multiplier=1.0,
            trip_distance_km=self.policy.default_trip_km,
            fare_rule=FareRule(self.policy.default_base_price, self.policy.default_price_per_km),
            city=city,
            is_fallback=True,
        )

    def _price(self, request: DispatchRequest, city: Optional[str]) -> PriceQuote:
        distance = self.trip_distance_km(request)
        rule = self.fare_rule_for(request, city)
        surge = estimate_surge(
            self.counter,
            request.priority,
            self.gateway,
            policy=self.policy,
            timeout=self.lookup_timeout_seconds,
        )

        return PriceQuote(
            estimated_price=compute_fare(rule, distance, surge),
            surge_multiplier=surge,
            trip_distance_km=distance,
            fare_rule=rule,
            city=city,
        )
