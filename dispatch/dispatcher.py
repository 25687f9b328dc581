"""
Purpose: Orchestrator / decision pipeline (the "glue").
What it does:
Accepts a DispatchRequest, resolves its city, finds candidates ring by ring,
ranks them, quotes the trip in parallel and runs the sequential offer loop.
Every path ends in a DispatchResult; nothing is raised to the caller.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence, Tuple

from drivers.policy import DriverPolicy, default_driver_policy
from drivers.selection import CandidateLocator
from pricing.engine import PriceQuote, PricingEngine
from pricing.policy import PricingPolicy, default_pricing_policy
from routing.zones import CITY_ZONES, CityZone, ZoneResolution, resolve_zone

from .assignment import AssignmentCoordinator
from .cancellation import CancellationToken, DispatchCancelled
from .collaborators import (
    BookingStore,
    CollaboratorGateway,
    DemandSupplyCounter,
    DriverProfileStore,
    DriverStatsProvider,
    LiveDriverLocationFeed,
    OfferTransport,
    PricingRulesStore,
)
from .metrics import CycleRecord, DispatchMetrics, MetricsSnapshot
from .models import DispatchError, DispatchRequest, DispatchResult, DispatchStatus
from .policy import DispatchPolicy, default_dispatch_policy
from .scoring import score_candidates
from .state_machines.assignment_state import AssignmentState

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DispatchEngine:
    """
    The dispatch entry point. Build one per process with its collaborators
    injected, then call dispatch() from as many threads as needed: cycles
    share nothing but the read-only feeds and the reporting metrics.
    """

    def __init__(
        self,
        feed: LiveDriverLocationFeed,
        profiles: DriverProfileStore,
        stats: DriverStatsProvider,
        rules: PricingRulesStore,
        counter: DemandSupplyCounter,
        transport: OfferTransport,
        booking_store: BookingStore,
        *,
        driver_policy: Optional[DriverPolicy] = None,
        dispatch_policy: Optional[DispatchPolicy] = None,
        pricing_policy: Optional[PricingPolicy] = None,
        zones: Tuple[CityZone, ...] = CITY_ZONES,
        clock: Callable[[], datetime] = _utcnow,
        metrics: Optional[DispatchMetrics] = None,
    ):
        self.driver_policy = driver_policy or default_driver_policy()
        self.dispatch_policy = dispatch_policy or default_dispatch_policy()
        self.pricing_policy = pricing_policy or default_pricing_policy()
        self.driver_policy.validate()
        self.dispatch_policy.validate()
        self.pricing_policy.validate()

        self.zones = zones
        self.clock = clock
        self.metrics = metrics or DispatchMetrics()

        self._gateway = CollaboratorGateway(max_workers=self.dispatch_policy.io_workers)
        self._pricing_pool = ThreadPoolExecutor(
            max_workers=self.dispatch_policy.pricing_workers, thread_name_prefix="dispatch-pricing"
        )

        lookup_timeout = self.dispatch_policy.lookup_timeout_seconds
        self.locator = CandidateLocator(
            feed, profiles, stats, self._gateway,
            policy=self.driver_policy,
            lookup_timeout_seconds=lookup_timeout,
        )
        self.pricing = PricingEngine(
            rules, counter, self._gateway,
            policy=self.pricing_policy,
            lookup_timeout_seconds=lookup_timeout,
        )
        self.coordinator = AssignmentCoordinator(
            transport, booking_store, self._gateway, policy=self.dispatch_policy
        )

    # ---- public API ----

    def dispatch(
        self,
        request: DispatchRequest,
        cancel_token: Optional[CancellationToken] = None,
        radius_sequence: Optional[Sequence[float]] = None,
    ) -> DispatchResult:
        """
        Run one dispatch cycle. Always returns a DispatchResult.
        """
        cancel_token = cancel_token or CancellationToken()
        started = time.monotonic()
        logger.info("Dispatch %s started (%s, %s)", request.request_id,
                    request.service_type.value, request.priority.value)

        zone: Optional[ZoneResolution] = None
        try:
            zone = resolve_zone(request.pickup[0], request.pickup[1], self.zones)
            result = self._run_cycle(request, zone, cancel_token, radius_sequence)
        except DispatchCancelled:
            logger.info("Dispatch %s cancelled before any offer", request.request_id)
            result = DispatchResult.failure(
                request.request_id, DispatchError.CANCELLED, **self._zone_fields(zone)
            )
        except Exception:
            logger.exception("Dispatch %s failed unexpectedly", request.request_id)
            result = DispatchResult.failure(
                request.request_id, DispatchError.INTERNAL_ERROR, **self._zone_fields(zone)
            )

        self._record(result, time.monotonic() - started)
        return result

    def get_metrics(self, window_hours: float = 24) -> MetricsSnapshot:
        """
        Best-effort reporting; never raises.
        """
        try:
            return self.metrics.snapshot(window_hours=window_hours, now=self.clock())
        except Exception:
            logger.exception("Could not compute dispatch metrics")
            return MetricsSnapshot(0.0, 0.0, 0.0, 0.0, 0)

    def close(self) -> None:
        self._pricing_pool.shutdown(wait=False)
        self._gateway.shutdown(wait=False)

    def __enter__(self) -> DispatchEngine:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ---- cycle ----

    def _run_cycle(
        self,
        request: DispatchRequest,
        zone: ZoneResolution,
        cancel_token: CancellationToken,
        radius_sequence: Optional[Sequence[float]],
    ) -> DispatchResult:
        zone_fields = self._zone_fields(zone)
        cancel_token.raise_if_cancelled()

        # 1. Widen the search ring until enough drivers qualify
        search = self.locator.locate(request, radius_sequence=radius_sequence, cancel_token=cancel_token)
        if search.error is not None:
            return DispatchResult.failure(request.request_id, search.error, **zone_fields)

        # 2. Rank
        cancel_token.raise_if_cancelled()
        ranked = score_candidates(search.candidates, request, policy=self.dispatch_policy, now=self.clock())

        # 3. Quote in parallel with the offer loop
        quote_future = self._pricing_pool.submit(self.pricing.price, request, zone.city)

        # 4. Offer one driver at a time
        outcome = self.coordinator.assign(request, ranked, cancel_token)

        if outcome.state == AssignmentState.CANCELLED:
            quote_future.cancel()
            return DispatchResult.failure(
                request.request_id, DispatchError.CANCELLED, offers=outcome.attempts, **zone_fields
            )

        if not outcome.accepted:
            quote = self._await_quote(quote_future, request, zone.city)
            return DispatchResult.failure(
                request.request_id,
                DispatchError.ALL_OFFERS_DECLINED,
                offers=outcome.attempts,
                surge_multiplier=quote.surge_multiplier,
                **zone_fields,
            )

        quote = self._await_quote(quote_future, request, zone.city)
        assigned = outcome.assigned
        alternates = [c for c in ranked if c.driver_id != assigned.driver_id][: self.dispatch_policy.alternates_count]

        return DispatchResult(
            success=True,
            status=DispatchStatus.ACCEPTED,
            request_id=request.request_id,
            assigned_driver=assigned,
            alternates=alternates,
            estimated_price=quote.estimated_price,
            estimated_arrival=assigned.estimated_arrival,
            surge_multiplier=quote.surge_multiplier,
            offers=outcome.attempts,
            **zone_fields,
        )

    def _await_quote(self, future: Future, request: DispatchRequest, city: str) -> PriceQuote:
        # rules + demand + supply lookups, each bounded by the lookup timeout
        budget = self.dispatch_policy.lookup_timeout_seconds * 3 + 1.0
        try:
            return future.result(timeout=budget)
        except FuturesTimeoutError:
            logger.warning("Quote for request %s not ready after %.1fs, using fallback", request.request_id, budget)
            return self.pricing.fallback_quote(request, city)

    @staticmethod
    def _zone_fields(zone: Optional[ZoneResolution]) -> dict:
        if zone is None:
            return {}
        return {"city": zone.city, "landmark": zone.landmark}

    def _record(self, result: DispatchResult, latency_seconds: float) -> None:
        # withdrawn requests say nothing about matching quality
        if result.error == DispatchError.CANCELLED:
            return
        try:
            self.metrics.record(
                CycleRecord(
                    finished_at=self.clock(),
                    success=result.success,
                    latency_seconds=latency_seconds,
                    driver_distance_km=result.assigned_driver.distance_km if result.assigned_driver else None,
                    surge_multiplier=result.surge_multiplier,
                    error=result.error.value if result.error else None,
                )
            )
        except Exception:
            logger.exception("Could not record metrics for request %s", result.request_id)
