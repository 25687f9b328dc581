"""
Purpose: Central configuration for the Candidate Locator.
What it does:

Stores all tunable thresholds for finding drivers around a pickup:

RADIUS_SEQUENCE_KM = [2, 5, 10, 20]
MIN_CANDIDATES = 3

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class DriverPolicy:
    """
    Central configuration for the progressive-radius driver search.
    """

    # --- Geofencing Rings ---
    # Concentric haversine radii in km. The search stops at the first ring
    # that yields min_candidates drivers.
    radius_sequence_km: List[float] = field(default_factory=lambda: [2.0, 5.0, 10.0, 20.0])
    min_candidates: int = 3

    # --- Performance stats ---
    # Rolling window handed to the stats provider, and the rates used when
    # the provider cannot answer.
    stats_window_days: int = 30
    default_acceptance_rate: float = 80.0
    default_completion_rate: float = 90.0

    # --- Profile defaults ---
    # Drivers with no rating yet are scored as average, not as zero.
    default_rating: float = 3.0
    require_verified: bool = True

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        validate_radius_sequence(self.radius_sequence_km)

        if self.min_candidates < 1:
            raise ValueError("min_candidates must be >= 1")

        if self.stats_window_days <= 0:
            raise ValueError("stats_window_days must be > 0")

        for rate in (self.default_acceptance_rate, self.default_completion_rate):
            if not 0.0 <= rate <= 100.0:
                raise ValueError("default stats rates must be within [0, 100]")

        if not 0.0 <= self.default_rating <= 5.0:
            raise ValueError("default_rating must be within [0, 5]")


def validate_radius_sequence(radii: List[float]) -> None:
    if not radii:
        raise ValueError("radius sequence must not be empty")
    if radii[0] <= 0:
        raise ValueError("radii must be > 0")
    for previous, current in zip(radii, radii[1:]):
        if current <= previous:
            raise ValueError("radius sequence must be strictly increasing")


def default_driver_policy() -> DriverPolicy:
    """
    Convenience factory for the default policy.
    """
    p = DriverPolicy()
    p.validate()
    return p
