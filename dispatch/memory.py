"""
Purpose: In-memory collaborators.
What it does:
Implements every consumed interface over plain dicts and lists so the engine
can run without any backing services: local simulation, the demo HTTP
backend, and the test suite all wire the engine with these.
"""

from __future__ import annotations

import random
import threading
from collections import Counter
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from drivers.models import DriverLocation, DriverProfile, DriverStats

from .collaborators import FareRule, OfferReply


class InMemoryDriverFeed:
    """
    Live location feed backed by a list. Drivers with service_type "all" in
    their profile are returned for every query, so the feed itself does not
    filter by service type.
    """

    def __init__(self, locations: Iterable[DriverLocation] = ()):
        self._lock = threading.Lock()
        self._locations: List[DriverLocation] = list(locations)
        self.queries: List[str] = []

    def push(self, location: DriverLocation) -> None:
        with self._lock:
            self._locations.append(location)

    def remove(self, driver_id: str) -> None:
        with self._lock:
            self._locations = [loc for loc in self._locations if loc.driver_id != driver_id]

    def query_online_available(self, service_type: str) -> List[DriverLocation]:
        with self._lock:
            self.queries.append(service_type)
            return list(self._locations)

    def __len__(self) -> int:
        return len(self._locations)


class InMemoryProfileStore:
    def __init__(self, profiles: Optional[Mapping[str, DriverProfile]] = None):
        self._profiles: Dict[str, DriverProfile] = dict(profiles or {})

    def put(self, driver_id: str, profile: DriverProfile) -> None:
        self._profiles[driver_id] = profile

    def get_profile(self, driver_id: str) -> Optional[DriverProfile]:
        return self._profiles.get(driver_id)


class InMemoryStatsProvider:
    """
    Unknown drivers raise KeyError, which the locator treats as
    "stats unavailable" and replaces with the default rates.
    """

    def __init__(self, stats: Optional[Mapping[str, DriverStats]] = None):
        self._stats: Dict[str, DriverStats] = dict(stats or {})
        self.calls: List[Tuple[str, int]] = []

    def put(self, driver_id: str, stats: DriverStats) -> None:
        self._stats[driver_id] = stats

    def get_stats(self, driver_id: str, window_days: int) -> DriverStats:
        self.calls.append((driver_id, window_days))
        return self._stats[driver_id]


class InMemoryPricingRules:
    def __init__(self, rules: Optional[Mapping[Tuple[str, str], FareRule]] = None):
        self._rules: Dict[Tuple[str, str], FareRule] = dict(rules or {})

    def put(self, service_type: str, vehicle_class: str, rule: FareRule) -> None:
        self._rules[(service_type, vehicle_class)] = rule

    def get_rule(self, service_type: str, vehicle_class: str) -> Optional[FareRule]:
        return self._rules.get((service_type, vehicle_class))


class StaticDemandSupplyCounter:
    def __init__(self, active_demand: int = 0, available_supply: int = 0):
        self.active_demand = active_demand
        self.available_supply = available_supply

    def get_active_demand(self, window_minutes: int) -> int:
        return self.active_demand

    def get_available_supply(self) -> int:
        return self.available_supply


class ScriptedOfferTransport:
    """
    Answers offers from a per-driver script.

    responses maps driver_id -> True (accept), False (decline), or a callable
    taking the request summary and returning an OfferReply / bool (use it to
    sleep past the offer timeout or raise). Drivers not in the script get
    `default`. Every offer is logged in `sent`.

    Exclusivity: once a request id has been accepted, later offers for it
    are declined ("first accept wins"). withdraw_offer releases a driver: an
    offer still being answered settles as a decline, and an acceptance
    already held for the request is dropped. Withdrawals are logged in
    `withdrawn`.
    """

    def __init__(self, responses: Optional[Mapping[str, Any]] = None, default: bool = False):
        self.responses: Dict[str, Any] = dict(responses or {})
        self.default = default
        self.sent: List[Tuple[str, Dict[str, Any]]] = []
        self.withdrawn: List[Tuple[str, str]] = []
        self._accepted: Dict[str, str] = {}
        self._lock = threading.Lock()

    def send_offer(self, driver_id: str, request_summary: Mapping[str, Any]) -> OfferReply:
        with self._lock:
            self.sent.append((driver_id, dict(request_summary)))

        response = self.responses.get(driver_id, self.default)
        if callable(response):
            response = response(request_summary)
        if isinstance(response, OfferReply):
            accepted = response.accepted
        else:
            accepted = bool(response)

        return self._settle(driver_id, request_summary, accepted)

    def _settle(self, driver_id: str, request_summary: Mapping[str, Any], accepted: bool) -> OfferReply:
        if not accepted:
            return OfferReply(accepted=False, reason="declined")

        request_id = request_summary.get("request_id")
        with self._lock:
            if (driver_id, request_id) in self.withdrawn:
                return OfferReply(accepted=False, reason="withdrawn")
            if request_id in self._accepted:
                return OfferReply(accepted=False, reason="already taken")
            self._accepted[request_id] = driver_id
        return OfferReply(accepted=True)

    def withdraw_offer(self, driver_id: str, request_id: str) -> None:
        with self._lock:
            self.withdrawn.append((driver_id, request_id))
            if self._accepted.get(request_id) == driver_id:
                del self._accepted[request_id]

    def holder_of(self, request_id: str) -> Optional[str]:
        """The driver currently holding an accepted request, if any."""
        with self._lock:
            return self._accepted.get(request_id)

    @property
    def offered_driver_ids(self) -> List[str]:
        return [driver_id for driver_id, _ in self.sent]


class RandomOfferTransport(ScriptedOfferTransport):
    """
    Each driver accepts with a fixed probability. Used by the simulation script.
    """

    def __init__(self, acceptance_probability: float = 0.6, seed: Optional[int] = None):
        super().__init__()
        self._random = random.Random(seed)
        self.acceptance_probability = acceptance_probability

    def send_offer(self, driver_id: str, request_summary: Mapping[str, Any]) -> OfferReply:
        with self._lock:
            self.sent.append((driver_id, dict(request_summary)))
            accepted = self._random.random() < self.acceptance_probability
        return self._settle(driver_id, request_summary, accepted)


class InMemoryBookingStore:
    def __init__(self):
        self.assignments: List[Tuple[str, str]] = []
        self._lock = threading.Lock()

    def record_assignment(self, driver_id: str, request_id: str) -> bool:
        with self._lock:
            self.assignments.append((driver_id, request_id))
        return True

    def count_by_driver(self) -> Counter:
        return Counter(driver_id for driver_id, _ in self.assignments)


def build_in_memory_collaborators(
    drivers: Sequence[Tuple[DriverLocation, DriverProfile, Optional[DriverStats]]] = (),
    *,
    transport=None,
    active_demand: int = 0,
    available_supply: Optional[int] = None,
    rules: Optional[Mapping[Tuple[str, str], FareRule]] = None,
) -> Dict[str, Any]:
    """
    Keyword arguments for DispatchEngine(**...) over the given drivers.
    """
    feed = InMemoryDriverFeed(location for location, _, _ in drivers)
    profiles = InMemoryProfileStore({location.driver_id: profile for location, profile, _ in drivers})
    stats = InMemoryStatsProvider(
        {location.driver_id: driver_stats for location, _, driver_stats in drivers if driver_stats is not None}
    )
    supply = len(drivers) if available_supply is None else available_supply

    return {
        "feed": feed,
        "profiles": profiles,
        "stats": stats,
        "rules": InMemoryPricingRules(rules),
        "counter": StaticDemandSupplyCounter(active_demand, supply),
        "transport": transport if transport is not None else ScriptedOfferTransport(default=True),
        "booking_store": InMemoryBookingStore(),
    }


def build_demo_engine(**engine_kwargs):
    """
    Engine over empty in-memory collaborators. The default
    DISPATCH_ENGINE_FACTORY of the HTTP backend.
    """
    from .dispatcher import DispatchEngine

    return DispatchEngine(**build_in_memory_collaborators(), **engine_kwargs)
