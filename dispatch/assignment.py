"""
Purpose: Sequential, bounded-retry offer protocol (the Assignment Coordinator).
What it does:
Walks the ranked candidate list best-first and offers the request to one
driver at a time until someone accepts, the retry budget runs out, or the
cycle is cancelled. Offers never overlap, so at most one driver can accept
within a cycle.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from drivers.models import DriverCandidate

from .cancellation import CancellationToken, DispatchCancelled
from .collaborators import (
    BookingStore,
    BookingUnavailable,
    CollaboratorGateway,
    OfferTransport,
    OfferTransportError,
    TransportTimeout,
)
from .models import DispatchRequest, OfferAttempt, OfferOutcome
from .policy import DispatchPolicy, default_dispatch_policy
from .state_machines.assignment_state import AssignmentCycle, AssignmentState

logger = logging.getLogger(__name__)


class OfferStillOpen(Exception):
    """The transport has not returned from a withdrawn offer within the grace period."""


@dataclass
class AssignmentOutcome:
    state: AssignmentState
    assigned: Optional[DriverCandidate] = None
    attempts: List[OfferAttempt] = field(default_factory=list)
    booking_recorded: bool = False

    @property
    def accepted(self) -> bool:
        return self.state == AssignmentState.ACCEPTED


class AssignmentCoordinator:
    """
    Offers a request to ranked candidates strictly one after another.

    Cross-cycle exclusivity ("first accept wins" when two cycles target the
    same driver) is the transport's job; this class only guarantees that one
    cycle never has two offers in flight and never offers a driver twice.
    """

    def __init__(
        self,
        transport: OfferTransport,
        booking_store: BookingStore,
        gateway: CollaboratorGateway,
        policy: Optional[DispatchPolicy] = None,
    ):
        self.transport = transport
        self.booking_store = booking_store
        self.gateway = gateway
        self.policy = policy or default_dispatch_policy()

    def assign(
        self,
        request: DispatchRequest,
        ranked: Sequence[DriverCandidate],
        cancel_token: Optional[CancellationToken] = None,
    ) -> AssignmentOutcome:
        """
        Run the offer loop over at most policy.retry_attempts candidates.

        Never raises: cancellation ends in CANCELLED, an empty list or an
        exhausted budget ends in EXHAUSTED.
        """
        cancel_token = cancel_token or CancellationToken()
        cycle = AssignmentCycle()
        attempts: List[OfferAttempt] = []

        try:
            pool = self._offer_pool(ranked)

            for index, candidate in enumerate(pool):
                cancel_token.raise_if_cancelled()

                cycle.begin_offer(candidate.driver_id)
                logger.info(
                    "Offering request %s to driver %s (attempt %d/%d)",
                    request.request_id, candidate.driver_id, index + 1, len(pool),
                )
                try:
                    outcome = self._send_offer(candidate, request)
                except OfferStillOpen:
                    # offering the next driver now would put two offers in flight
                    attempts.append(OfferAttempt(driver_id=candidate.driver_id, outcome=OfferOutcome.TIMEOUT))
                    cycle.decline()
                    logger.error(
                        "Request %s: offer to driver %s still open after withdrawal, no further offers",
                        request.request_id, candidate.driver_id,
                    )
                    break
                attempts.append(OfferAttempt(driver_id=candidate.driver_id, outcome=outcome))

                if outcome == OfferOutcome.ACCEPTED:
                    if cancel_token.cancelled:
                        # a cancel that raced the acceptance still wins: release the driver, write no booking
                        self._withdraw(candidate, request)
                        raise DispatchCancelled("cancelled while the offer was being accepted")
                    cycle.accept()
                    recorded = self._record_booking(candidate, request)
                    logger.info("Request %s accepted by driver %s", request.request_id, candidate.driver_id)
                    return AssignmentOutcome(
                        state=cycle.state, assigned=candidate, attempts=attempts, booking_recorded=recorded
                    )

                cycle.decline()

                if index < len(pool) - 1:
                    if cancel_token.wait(self.policy.offer_backoff_seconds):
                        raise DispatchCancelled("cancelled during offer backoff")

            cycle.exhaust()
            logger.info("Request %s: no acceptance after %d offers", request.request_id, len(attempts))
            return AssignmentOutcome(state=cycle.state, attempts=attempts)

        except DispatchCancelled:
            cycle.cancel()
            logger.info("Request %s cancelled after %d offers", request.request_id, len(attempts))
            return AssignmentOutcome(state=cycle.state, attempts=attempts)

    def _offer_pool(self, ranked: Sequence[DriverCandidate]) -> List[DriverCandidate]:
        """
        The first retry_attempts distinct drivers, in ranked order.
        """
        pool: List[DriverCandidate] = []
        seen = set()
        for candidate in ranked:
            if candidate.driver_id in seen:
                continue
            seen.add(candidate.driver_id)
            pool.append(candidate)
            if len(pool) >= self.policy.retry_attempts:
                break
        return pool

    def _send_offer(self, candidate: DriverCandidate, request: DispatchRequest) -> OfferOutcome:
        """
        One offer, finished before it returns.

        On timeout the offer is withdrawn and the late answer awaited for
        policy.offer_grace_seconds. A late acceptance the transport still
        reports is honoured. Raises OfferStillOpen if the call outlives the
        grace period too.
        """
        summary = dict(request.summary())
        summary["estimated_arrival"] = candidate.estimated_arrival
        summary["distance_km"] = round(candidate.distance_km, 3)

        future = self.gateway.submit(self.transport.send_offer, candidate.driver_id, summary)
        try:
            reply = self._wait_for_reply(future, self.policy.offer_timeout_seconds)
        except TransportTimeout:
            logger.warning("Offer to driver %s timed out, withdrawing it", candidate.driver_id)
            self._withdraw(candidate, request)
            return self._late_outcome(future, candidate)
        except OfferTransportError as exc:
            logger.warning("Offer to driver %s failed: %s", candidate.driver_id, exc)
            return OfferOutcome.ERROR

        return OfferOutcome.ACCEPTED if _is_accept(reply) else OfferOutcome.DECLINED

    def _late_outcome(self, future: Future, candidate: DriverCandidate) -> OfferOutcome:
        try:
            reply = self._wait_for_reply(future, self.policy.offer_grace_seconds)
        except TransportTimeout:
            if not future.done():
                raise OfferStillOpen(candidate.driver_id)
            return OfferOutcome.TIMEOUT
        except OfferTransportError:
            return OfferOutcome.TIMEOUT

        if _is_accept(reply):
            logger.warning("Driver %s accepted after the offer timeout; honouring it", candidate.driver_id)
            return OfferOutcome.ACCEPTED
        return OfferOutcome.TIMEOUT

    def _wait_for_reply(self, future: Future, timeout: float):
        return self.gateway.wait(
            future,
            timeout=timeout,
            error_cls=OfferTransportError,
            timeout_cls=TransportTimeout,
            name="OfferTransport.send_offer",
        )

    def _withdraw(self, candidate: DriverCandidate, request: DispatchRequest) -> None:
        withdraw = getattr(self.transport, "withdraw_offer", None)
        if withdraw is None:
            return
        try:
            self.gateway.call(
                withdraw,
                candidate.driver_id,
                request.request_id,
                timeout=self.policy.lookup_timeout_seconds,
                error_cls=OfferTransportError,
                name="OfferTransport.withdraw_offer",
            )
        except OfferTransportError as exc:
            logger.error("Could not withdraw offer of request %s from driver %s: %s",
                         request.request_id, candidate.driver_id, exc)

    def _record_booking(self, candidate: DriverCandidate, request: DispatchRequest) -> bool:
        try:
            self.gateway.call(
                self.booking_store.record_assignment,
                candidate.driver_id,
                request.request_id,
                timeout=self.policy.lookup_timeout_seconds,
                error_cls=BookingUnavailable,
                name="BookingStore.record_assignment",
            )
        except BookingUnavailable as exc:
            # the driver has accepted through the transport; the acceptance stands
            logger.error("Booking for request %s / driver %s not recorded: %s",
                         request.request_id, candidate.driver_id, exc)
            return False
        return True


def _is_accept(reply) -> bool:
    return reply is not None and bool(getattr(reply, "accepted", False))
