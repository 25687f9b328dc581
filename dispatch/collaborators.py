"""
Purpose: The boundary between the dispatch core and everything it talks to.
What it does:
- Declares the seven external collaborators as typing Protocols so the
  engine can be wired with real adapters or in-memory fakes.
- Owns the CollaboratorGateway: every collaborator call goes through it so
  each one carries a bounded timeout and any fault comes back as a
  CollaboratorError subclass chosen by the caller.

Rule: No dispatch rules here. Callers decide what a failure means.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Protocol, Type

from drivers.models import DriverLocation, DriverProfile, DriverStats

logger = logging.getLogger(__name__)


class CollaboratorError(Exception):
    """Base class for any failed or timed-out collaborator call."""

    def __init__(self, message: str, collaborator: Optional[str] = None):
        super().__init__(message)
        self.collaborator = collaborator


class CollaboratorTimeout(CollaboratorError):
    pass


class FeedUnavailable(CollaboratorError):
    pass


class ProfileUnavailable(CollaboratorError):
    pass


class StatsUnavailable(CollaboratorError):
    pass


class RulesUnavailable(CollaboratorError):
    pass


class SurgeStatsUnavailable(CollaboratorError):
    pass


class TransportTimeout(CollaboratorTimeout):
    pass


class OfferTransportError(CollaboratorError):
    pass


class BookingUnavailable(CollaboratorError):
    pass


@dataclass(frozen=True)
class FareRule:
    base_price: float
    price_per_km: float


@dataclass(frozen=True)
class OfferReply:
    accepted: bool
    reason: Optional[str] = None


# ---- Consumed interfaces ----

class LiveDriverLocationFeed(Protocol):
    def query_online_available(self, service_type: str) -> List[DriverLocation]: ...


class DriverProfileStore(Protocol):
    def get_profile(self, driver_id: str) -> Optional[DriverProfile]: ...


class DriverStatsProvider(Protocol):
    def get_stats(self, driver_id: str, window_days: int) -> DriverStats: ...


class PricingRulesStore(Protocol):
    def get_rule(self, service_type: str, vehicle_class: str) -> Optional[FareRule]: ...


class DemandSupplyCounter(Protocol):
    def get_active_demand(self, window_minutes: int) -> int: ...

    def get_available_supply(self) -> int: ...


class OfferTransport(Protocol):
    """
    Delivers one offer to one driver and blocks until they answer.
    Must provide atomic "first accept wins" across dispatch cycles.

    withdraw_offer releases a driver from an offer the cycle no longer
    stands behind (timed out, or cancelled after the driver accepted). After
    it returns, a pending send_offer for that driver and request must not
    report an acceptance. Adapters without it are only ever waited on.
    """
    def send_offer(self, driver_id: str, request_summary: Mapping[str, Any]) -> OfferReply: ...

    def withdraw_offer(self, driver_id: str, request_id: str) -> Any: ...


class BookingStore(Protocol):
    def record_assignment(self, driver_id: str, request_id: str) -> Any: ...


class CollaboratorGateway:
    """
    Runs collaborator calls on a worker pool so the calling dispatch cycle can
    stop waiting after `timeout` seconds.

    A call that times out keeps running on its worker. call() drops its
    result; callers that must not overlap calls use submit() and wait().
    """

    def __init__(self, max_workers: int = 16, thread_name_prefix: str = "dispatch-io"):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=thread_name_prefix)

    def call(
        self,
        fn: Callable[..., Any],
        *args: Any,
        timeout: float,
        error_cls: Type[CollaboratorError] = CollaboratorError,
        timeout_cls: Optional[Type[CollaboratorError]] = None,
        name: Optional[str] = None,
    ) -> Any:
        """
        Call fn(*args) with a deadline.

        Raises timeout_cls (default: error_cls) when the deadline passes and
        error_cls for any exception fn raised. Nothing else escapes.
        """
        name = name or getattr(fn, "__qualname__", repr(fn))
        return self.wait(self.submit(fn, *args), timeout=timeout, error_cls=error_cls,
                         timeout_cls=timeout_cls, name=name)

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        """
        Start fn(*args) on the pool. Pair with wait() when the caller has to
        keep hold of a call that may outlive its first deadline.
        """
        return self._executor.submit(fn, *args)

    def wait(
        self,
        future: Future,
        *,
        timeout: float,
        error_cls: Type[CollaboratorError] = CollaboratorError,
        timeout_cls: Optional[Type[CollaboratorError]] = None,
        name: str = "collaborator",
    ) -> Any:
        """
        Wait up to `timeout` seconds for a submitted call, with the same error
        mapping as call(). A call that has not started yet is cancelled on
        timeout; one already running is left running.
        """
        timeout_cls = timeout_cls or error_cls

        try:
            return future.result(timeout=timeout)
        except (FuturesTimeoutError, TimeoutError) as exc:
            future.cancel()
            # a collaborator raising TimeoutError itself is the same outcome
            raise timeout_cls(f"{name} timed out after {timeout}s", collaborator=name) from exc
        except CollaboratorError as exc:
            if isinstance(exc, (error_cls, timeout_cls)):
                raise
            if isinstance(exc, CollaboratorTimeout):
                raise timeout_cls(f"{name} timed out: {exc}", collaborator=name) from exc
            raise error_cls(f"{name} failed: {exc}", collaborator=name) from exc
        except Exception as exc:
            raise error_cls(f"{name} failed: {exc}", collaborator=name) from exc

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)
