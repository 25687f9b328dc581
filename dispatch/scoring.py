#Purpose: Ranking/selection model (the "who is best" layer).
#Takes candidates (already eligible) + features (distance, rating, rides, rates, last ping)
#Produces an ordered list, best first, with the score set on each candidate.
#weighted scoring function: proximity 40 / quality 25 / experience 15 / reliability 10 / recency 10
#additive bonuses: urgent + very close, exact vehicle class
#tie-breaking is deterministic: stable sort keeps locator order for equal scores
#Output: ranked candidates for the offer sequence.

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from drivers.models import DriverCandidate

from .models import DispatchRequest
from .policy import DispatchPolicy, default_dispatch_policy


@dataclass(frozen=True)
class ScoreBreakdown:
    """
    Per-component values, each within [0, 100], before weighting.
    """
    proximity: float
    quality: float
    experience: float
    reliability: float
    recency: float
    bonus: float
    total: float


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _seconds_since(now: datetime, then: datetime) -> float:
    if (now.tzinfo is None) != (then.tzinfo is None):
        # feeds without tz info are treated as UTC
        now = now if now.tzinfo else now.replace(tzinfo=timezone.utc)
        then = then if then.tzinfo else then.replace(tzinfo=timezone.utc)
    return (now - then).total_seconds()


def score_breakdown(
    candidate: DriverCandidate,
    request: DispatchRequest,
    *,
    policy: DispatchPolicy,
    now: datetime,
) -> ScoreBreakdown:
    proximity = _clamp(100.0 - candidate.distance_km * policy.proximity_points_per_km)
    quality = _clamp((candidate.rating / 5.0) * 100.0)
    experience = _clamp(candidate.total_rides * policy.experience_points_per_ride)
    reliability = _clamp(
        (_clamp(candidate.acceptance_rate) + _clamp(candidate.completion_rate)) / 2.0
    )

    if candidate.last_activity is None:
        recency = 0.0
    else:
        elapsed = max(0.0, _seconds_since(now, candidate.last_activity))
        recency = _clamp(100.0 * (1.0 - elapsed / policy.recency_window_seconds))

    weights = policy.weights
    total = (
        proximity * weights.proximity
        + quality * weights.quality
        + experience * weights.experience
        + reliability * weights.reliability
        + recency * weights.recency
    )

    bonus = 0.0
    if request.is_urgent and candidate.distance_km < policy.urgent_nearby_km:
        bonus += policy.urgent_nearby_bonus
    if request.vehicle_class and candidate.vehicle_class == request.vehicle_class:
        bonus += policy.vehicle_match_bonus

    return ScoreBreakdown(
        proximity=proximity,
        quality=quality,
        experience=experience,
        reliability=reliability,
        recency=recency,
        bonus=bonus,
        total=round(total + bonus, 4),
    )


def score_candidates(
    candidates: Sequence[DriverCandidate],
    request: DispatchRequest,
    *,
    now: datetime,
    policy: Optional[DispatchPolicy] = None,
) -> List[DriverCandidate]:
    """
    Score every candidate and return new candidates sorted by score, best first.

    Pure: inputs are not mutated and `now` is required (there is no wall
    clock fallback), so the same candidates, request and clock always give
    the same ranking.
    """
    policy = policy or default_dispatch_policy()

    scored = [
        replace(candidate, score=score_breakdown(candidate, request, policy=policy, now=now).total)
        for candidate in candidates
    ]
    # sorted() is stable: equal scores keep the locator's order
    return sorted(scored, key=lambda candidate: candidate.score, reverse=True)
