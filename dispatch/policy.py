"""
Purpose: Central configuration for scoring and the offer loop.
What it does:

Stores all tunable weights, bonuses, retry counts and timeouts:

PROXIMITY 40% / QUALITY 25% / EXPERIENCE 15% / RELIABILITY 10% / RECENCY 10%
URGENT_NEARBY_BONUS = 20, VEHICLE_MATCH_BONUS = 10
RETRY_ATTEMPTS = 3, OFFER_BACKOFF_SECONDS = 1

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ScoreWeights:
    proximity: float = 0.40
    quality: float = 0.25
    experience: float = 0.15
    reliability: float = 0.10
    recency: float = 0.10

    def total(self) -> float:
        return self.proximity + self.quality + self.experience + self.reliability + self.recency


@dataclass(frozen=True)
class DispatchPolicy:
    """
    Central configuration for ranking candidates and offering the request.

    Worst-case cycle latency is roughly
        radius levels * lookup_timeout_seconds
        + retry_attempts * (offer_timeout_seconds + offer_grace_seconds + offer_backoff_seconds)
    """

    # --- Scoring ---
    weights: ScoreWeights = field(default_factory=ScoreWeights)

    # Proximity loses this many points per km (100 at the pickup, 0 at 5 km).
    proximity_points_per_km: float = 20.0
    # Experience gains this many points per completed ride (capped at 100).
    experience_points_per_ride: float = 2.0
    # Recency decays linearly from 100 to 0 over this window since the last ping.
    recency_window_seconds: float = 300.0

    # Additive bonuses, applied after the weighted sum.
    urgent_nearby_bonus: float = 20.0
    urgent_nearby_km: float = 1.0
    vehicle_match_bonus: float = 10.0

    # --- Offer loop ---
    retry_attempts: int = 3
    offer_timeout_seconds: float = 15.0
    offer_backoff_seconds: float = 1.0
    # After a timeout the offer is withdrawn and the late answer awaited this
    # long before the next driver is offered. A transport still silent after
    # that ends the loop: offers never overlap.
    offer_grace_seconds: float = 5.0

    # --- Collaborator lookups (stats, profiles, rules, demand/supply) ---
    lookup_timeout_seconds: float = 3.0

    # --- Result shaping ---
    alternates_count: int = 2

    # --- Worker pools ---
    io_workers: int = 16
    pricing_workers: int = 4

    def validate(self) -> None:
        """
        Basic sanity checks. Call once at startup.
        """
        if abs(self.weights.total() - 1.0) > 1e-6:
            raise ValueError("score weights must sum to 1.0")

        if min(self.weights.proximity, self.weights.quality, self.weights.experience,
               self.weights.reliability, self.weights.recency) < 0:
            raise ValueError("score weights must be >= 0")

        if self.urgent_nearby_bonus < 0 or self.vehicle_match_bonus < 0:
            raise ValueError("bonuses must be >= 0")

        if self.recency_window_seconds <= 0:
            raise ValueError("recency_window_seconds must be > 0")

        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")

        if self.offer_timeout_seconds <= 0 or self.lookup_timeout_seconds <= 0:
            raise ValueError("timeouts must be > 0")

        if self.offer_backoff_seconds < 0:
            raise ValueError("offer_backoff_seconds must be >= 0")

        if self.offer_grace_seconds < 0:
            raise ValueError("offer_grace_seconds must be >= 0")

        if self.alternates_count < 0:
            raise ValueError("alternates_count must be >= 0")

        if self.io_workers < 1 or self.pricing_workers < 1:
            raise ValueError("worker pools need at least one worker")


def default_dispatch_policy() -> DispatchPolicy:
    """
    Convenience factory for the default policy.
    """
    p = DispatchPolicy()
    p.validate()
    return p
