"""
Purpose: Progressive-radius search for eligible drivers (the Candidate Locator).
What it does:
Accepts a DispatchRequest, reads the live driver-location feed, filters out
ineligible drivers and widens the haversine radius ring by ring until enough
candidates are found. Ranking is left to dispatch.scoring.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from dispatch.cancellation import CancellationToken
from dispatch.collaborators import (
    CollaboratorGateway,
    DriverProfileStore,
    DriverStatsProvider,
    FeedUnavailable,
    LiveDriverLocationFeed,
    ProfileUnavailable,
    StatsUnavailable,
)
from dispatch.models import DispatchError, DispatchRequest
from routing.eta_service import estimate_arrival_minutes
from routing.geo import haversine_km

from .models import (
    DEFAULT_VEHICLE_CLASS,
    DriverCandidate,
    DriverLocation,
    DriverProfile,
    DriverStats,
    VerificationStatus,
)
from .policy import DriverPolicy, default_driver_policy, validate_radius_sequence

logger = logging.getLogger(__name__)

# profile lookups that failed or returned nothing; cached per cycle so a
# driver is not looked up again on the next ring
_MISSING = object()


@dataclass(frozen=True)
class CandidateSearch:
    """
    Output of one locate() call.
    error is set (NO_CANDIDATES_FOUND) only when every ring came back empty.
    """
    candidates: List[DriverCandidate]
    radius_km: Optional[float]
    radii_searched: List[float] = field(default_factory=list)
    error: Optional[DispatchError] = None

    @property
    def found(self) -> bool:
        return bool(self.candidates)


def effective_radius_sequence(radii: Sequence[float], max_distance_km: Optional[float]) -> List[float]:
    """
    Caps the sequence at the request's max distance: rings beyond it are
    replaced by a single ring at max_distance_km.
    """
    radii = list(radii)
    validate_radius_sequence(radii)
    if max_distance_km is None:
        return radii

    capped = [radius for radius in radii if radius < max_distance_km]
    capped.append(max_distance_km)
    return capped


def dedupe_latest(rows: Sequence[DriverLocation]) -> List[DriverLocation]:
    """
    One row per driver, keeping the most recent ping. Feed order is preserved.
    """
    latest: Dict[str, DriverLocation] = {}
    for row in rows:
        current = latest.get(row.driver_id)
        if current is None or _is_newer(row.last_ping, current.last_ping):
            latest[row.driver_id] = row
    return list(latest.values())


def _is_newer(candidate: Optional[datetime], current: Optional[datetime]) -> bool:
    if candidate is None:
        return False
    if current is None:
        return True
    try:
        return candidate > current
    except TypeError:
        # naive vs aware timestamps from a mixed feed
        return candidate.replace(tzinfo=None) > current.replace(tzinfo=None)


class CandidateLocator:
    """
    Finds eligible, available drivers around a pickup point.

    Read-only against the live feed: every ring takes a fresh snapshot and
    nothing is locked. Stale positions are not rejected here, the scorer's
    recency component penalises them instead.
    """

    def __init__(
        self,
        feed: LiveDriverLocationFeed,
        profiles: DriverProfileStore,
        stats: DriverStatsProvider,
        gateway: CollaboratorGateway,
        policy: Optional[DriverPolicy] = None,
        lookup_timeout_seconds: float = 3.0,
    ):
        self.feed = feed
        self.profiles = profiles
        self.stats = stats
        self.gateway = gateway
        self.policy = policy or default_driver_policy()
        self.lookup_timeout_seconds = lookup_timeout_seconds

    def locate(
        self,
        request: DispatchRequest,
        radius_sequence: Optional[Sequence[float]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> CandidateSearch:
        """
        Widen the radius until at least policy.min_candidates drivers qualify.

        Returns the candidates of the first ring that reaches the minimum, or
        of the last ring whose snapshot could be read if none does. A ring
        whose feed read fails keeps the previous ring's candidates. Raises
        DispatchCancelled if the token is cancelled between rings.
        """
        radii = effective_radius_sequence(
            radius_sequence if radius_sequence is not None else self.policy.radius_sequence_km,
            request.max_distance_km,
        )

        # per-cycle caches, discarded with this call
        profile_cache: Dict[str, object] = {}
        stats_cache: Dict[str, DriverStats] = {}

        candidates: List[DriverCandidate] = []
        found_at: Optional[float] = None
        searched: List[float] = []

        for radius in radii:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            logger.debug("Searching drivers within %.1f km of %s", radius, request.pickup)
            searched.append(radius)

            rows = self._snapshot(request.service_type.value)
            if rows is None:
                continue
            candidates = self._candidates_within(request, rows, radius, profile_cache, stats_cache)
            found_at = radius

            if len(candidates) >= self.policy.min_candidates:
                logger.info("Found %d candidates within %.1f km", len(candidates), radius)
                return CandidateSearch(candidates=candidates, radius_km=radius, radii_searched=searched)

        if not candidates:
            logger.info("No driver within %.1f km of %s", radii[-1], request.pickup)
            return CandidateSearch(
                candidates=[],
                radius_km=None,
                radii_searched=searched,
                error=DispatchError.NO_CANDIDATES_FOUND,
            )

        return CandidateSearch(candidates=candidates, radius_km=found_at, radii_searched=searched)

    # ---- internals ----

    def _snapshot(self, service_type: str) -> Optional[List[DriverLocation]]:
        """Deduplicated feed rows, or None when the feed could not be read."""
        try:
            rows = self.gateway.call(
                self.feed.query_online_available,
                service_type,
                timeout=self.lookup_timeout_seconds,
                error_cls=FeedUnavailable,
                name="LiveDriverLocationFeed.query_online_available",
            )
        except FeedUnavailable as exc:
            #fail closed : an unreadable ring adds no drivers
            logger.warning("Driver location feed unavailable: %s", exc)
            return None
        return dedupe_latest(rows or [])

    def _candidates_within(
        self,
        request: DispatchRequest,
        rows: List[DriverLocation],
        radius: float,
        profile_cache: Dict[str, object],
        stats_cache: Dict[str, DriverStats],
    ) -> List[DriverCandidate]:
        pickup_lat, pickup_lng = request.pickup
        service_type = request.service_type.value
        candidates: List[DriverCandidate] = []

        for row in rows:
            distance = haversine_km(pickup_lat, pickup_lng, row.lat, row.lng)
            if distance > radius:
                continue

            profile = self._profile(row.driver_id, profile_cache)
            if profile is None or not self._eligible(profile, service_type):
                continue

            stats = self._stats(row.driver_id, stats_cache)

            candidates.append(
                DriverCandidate(
                    driver_id=row.driver_id,
                    lat=row.lat,
                    lng=row.lng,
                    distance_km=distance,
                    rating=profile.rating if profile.rating is not None else self.policy.default_rating,
                    total_rides=profile.total_rides or 0,
                    vehicle_class=row.vehicle_class or DEFAULT_VEHICLE_CLASS,
                    service_type=profile.service_type,
                    last_activity=row.last_ping,
                    acceptance_rate=stats.acceptance_rate,
                    completion_rate=stats.completion_rate,
                    estimated_arrival=estimate_arrival_minutes(distance),
                )
            )

        return candidates

    def _eligible(self, profile: DriverProfile, service_type: str) -> bool:
        if not profile.is_active:
            return False
        if self.policy.require_verified and profile.verification_status != VerificationStatus.VERIFIED.value:
            return False
        return profile.serves(service_type)

    def _profile(self, driver_id: str, cache: Dict[str, object]) -> Optional[DriverProfile]:
        cached = cache.get(driver_id)
        if cached is not None:
            return None if cached is _MISSING else cached

        try:
            profile = self.gateway.call(
                self.profiles.get_profile,
                driver_id,
                timeout=self.lookup_timeout_seconds,
                error_cls=ProfileUnavailable,
                name="DriverProfileStore.get_profile",
            )
        except ProfileUnavailable as exc:
            logger.warning("Skipping driver %s, profile unavailable: %s", driver_id, exc)
            profile = None

        cache[driver_id] = profile if profile is not None else _MISSING
        return profile

    def _stats(self, driver_id: str, cache: Dict[str, DriverStats]) -> DriverStats:
        if driver_id in cache:
            return cache[driver_id]

        try:
            stats = self.gateway.call(
                self.stats.get_stats,
                driver_id,
                self.policy.stats_window_days,
                timeout=self.lookup_timeout_seconds,
                error_cls=StatsUnavailable,
                name="DriverStatsProvider.get_stats",
            )
            if stats is None:
                raise StatsUnavailable(f"no stats for driver {driver_id}")
        except StatsUnavailable as exc:
            logger.warning("Stats unavailable for driver %s, using defaults: %s", driver_id, exc)
            stats = DriverStats(
                acceptance_rate=self.policy.default_acceptance_rate,
                completion_rate=self.policy.default_completion_rate,
            )

        cache[driver_id] = stats
        return stats
