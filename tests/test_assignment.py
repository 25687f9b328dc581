import threading
import time

import pytest

from dispatch.assignment import AssignmentCoordinator
from dispatch.cancellation import CancellationToken
from dispatch.collaborators import CollaboratorGateway, OfferReply
from dispatch.memory import InMemoryBookingStore, ScriptedOfferTransport
from dispatch.models import OfferOutcome
from dispatch.policy import DispatchPolicy
from dispatch.state_machines.assignment_state import AssignmentCycle, AssignmentState, AssignmentStateException
from drivers.models import DriverCandidate


def candidate(driver_id, distance_km=1.0, score=50.0):
    return DriverCandidate(
        driver_id=driver_id,
        lat=-4.31,
        lng=15.30,
        distance_km=distance_km,
        rating=4.5,
        total_rides=20,
        vehicle_class="standard",
        service_type="transport",
        last_activity=None,
        acceptance_rate=90.0,
        completion_rate=90.0,
        estimated_arrival=2,
        score=score,
    )


@pytest.fixture
def gateway():
    gw = CollaboratorGateway(max_workers=4)
    yield gw
    gw.shutdown()


@pytest.fixture
def make_coordinator(gateway, fast_dispatch_policy):
    def _make(transport, booking_store=None, policy=None):
        return AssignmentCoordinator(
            transport,
            booking_store if booking_store is not None else InMemoryBookingStore(),
            gateway,
            policy=policy or fast_dispatch_policy,
        )

    return _make


def test_first_acceptance_wins(make_coordinator, make_request):
    transport = ScriptedOfferTransport({"a": False, "b": True, "c": True})
    booking = InMemoryBookingStore()
    coordinator = make_coordinator(transport, booking)
    request = make_request()

    outcome = coordinator.assign(request, [candidate("a"), candidate("b"), candidate("c")])

    assert outcome.accepted
    assert outcome.assigned.driver_id == "b"
    assert outcome.booking_recorded is True
    assert transport.offered_driver_ids == ["a", "b"]
    assert [a.outcome for a in outcome.attempts] == [OfferOutcome.DECLINED, OfferOutcome.ACCEPTED]
    assert booking.assignments == [("b", request.request_id)]


def test_at_most_retry_attempts_offers(make_coordinator, make_request):
    transport = ScriptedOfferTransport(default=False)
    coordinator = make_coordinator(transport)

    outcome = coordinator.assign(make_request(), [candidate(f"d{i}") for i in range(6)])

    assert outcome.state == AssignmentState.EXHAUSTED
    assert outcome.assigned is None
    assert transport.offered_driver_ids == ["d0", "d1", "d2"]


def test_fewer_candidates_than_retry_budget(make_coordinator, make_request):
    transport = ScriptedOfferTransport(default=False)
    coordinator = make_coordinator(transport)

    outcome = coordinator.assign(make_request(), [candidate("only_one"), candidate("only_two")])

    assert outcome.state == AssignmentState.EXHAUSTED
    assert len(outcome.attempts) == 2


def test_no_candidates_is_exhausted_without_offers(make_coordinator, make_request):
    transport = ScriptedOfferTransport(default=True)

    outcome = make_coordinator(transport).assign(make_request(), [])

    assert outcome.state == AssignmentState.EXHAUSTED
    assert transport.sent == []


def test_never_offers_the_same_driver_twice(make_coordinator, make_request):
    transport = ScriptedOfferTransport(default=False)
    ranked = [candidate("a"), candidate("a"), candidate("b"), candidate("b"), candidate("c")]

    make_coordinator(transport).assign(make_request(), ranked)

    assert transport.offered_driver_ids == ["a", "b", "c"]


def test_timeout_counts_as_decline(make_coordinator, make_request):
    def slow(summary):
        time.sleep(1.5)
        return True

    transport = ScriptedOfferTransport({"slow": slow, "quick": True})
    policy = DispatchPolicy(offer_timeout_seconds=0.2, offer_backoff_seconds=0.0)

    outcome = make_coordinator(transport, policy=policy).assign(
        make_request(), [candidate("slow"), candidate("quick")]
    )

    assert outcome.assigned.driver_id == "quick"
    assert [a.outcome for a in outcome.attempts] == [OfferOutcome.TIMEOUT, OfferOutcome.ACCEPTED]


def test_transport_error_counts_as_decline(make_coordinator, make_request):
    def broken(summary):
        raise ConnectionError("push gateway down")

    transport = ScriptedOfferTransport({"broken": broken, "ok": OfferReply(accepted=True)})

    outcome = make_coordinator(transport).assign(make_request(), [candidate("broken"), candidate("ok")])

    assert outcome.assigned.driver_id == "ok"
    assert outcome.attempts[0].outcome == OfferOutcome.ERROR


def test_offer_summary_carries_pickup_distance_and_eta(make_coordinator, make_request):
    transport = ScriptedOfferTransport(default=True)
    request = make_request()

    make_coordinator(transport).assign(request, [candidate("a", distance_km=1.23456)])

    _, summary = transport.sent[0]
    assert summary["request_id"] == request.request_id
    assert summary["distance_km"] == 1.235
    assert summary["estimated_arrival"] == 2
    assert summary["pickup"] == {"lat": request.pickup[0], "lng": request.pickup[1]}


def test_cancel_during_backoff_stops_the_loop(make_coordinator, make_request):
    token = CancellationToken()

    def decline_then_cancel(summary):
        token.cancel()
        return False

    transport = ScriptedOfferTransport({"a": decline_then_cancel}, default=True)
    # a long backoff that the cancel must cut short
    policy = DispatchPolicy(offer_timeout_seconds=1.0, offer_backoff_seconds=30.0)

    started = time.monotonic()
    outcome = make_coordinator(transport, policy=policy).assign(
        make_request(), [candidate("a"), candidate("b")], cancel_token=token
    )

    assert outcome.state == AssignmentState.CANCELLED
    assert transport.offered_driver_ids == ["a"]
    assert time.monotonic() - started < 5.0


def test_cancel_racing_acceptance_writes_no_booking(make_coordinator, make_request):
    token = CancellationToken()
    booking = InMemoryBookingStore()

    def accept_then_cancel(summary):
        token.cancel()
        return True

    transport = ScriptedOfferTransport({"a": accept_then_cancel})

    outcome = make_coordinator(transport, booking).assign(make_request(), [candidate("a")], cancel_token=token)

    assert outcome.state == AssignmentState.CANCELLED
    assert booking.assignments == []


def test_booking_failure_keeps_the_acceptance(make_coordinator, make_request):
    class BrokenBookingStore:
        calls = 0

        def record_assignment(self, driver_id, request_id):
            BrokenBookingStore.calls += 1
            raise RuntimeError("database unavailable")

    outcome = make_coordinator(ScriptedOfferTransport(default=True), BrokenBookingStore()).assign(
        make_request(), [candidate("a")]
    )

    assert outcome.accepted
    assert outcome.assigned.driver_id == "a"
    assert outcome.booking_recorded is False
    assert BrokenBookingStore.calls == 1


def test_second_cycle_cannot_take_an_accepted_request(make_coordinator, make_request):
    transport = ScriptedOfferTransport(default=True)
    request = make_request()

    first = make_coordinator(transport).assign(request, [candidate("a")])
    second = make_coordinator(transport).assign(request, [candidate("b")])

    assert first.accepted
    assert second.state == AssignmentState.EXHAUSTED


def test_assignment_cycle_transitions():
    cycle = AssignmentCycle()
    cycle.begin_offer("a")
    cycle.decline()
    cycle.begin_offer("b")
    cycle.accept()

    assert cycle.history == [
        AssignmentState.SELECTING,
        AssignmentState.OFFERING,
        AssignmentState.SELECTING,
        AssignmentState.OFFERING,
        AssignmentState.ACCEPTED,
    ]
    assert cycle.has_offered("a") and cycle.has_offered("b")

    # terminal: cancel is a no-op, anything else is rejected
    cycle.cancel()
    assert cycle.state == AssignmentState.ACCEPTED
    with pytest.raises(AssignmentStateException):
        cycle.decline()


def test_assignment_cycle_rejects_repeat_offer_and_accept_without_offer():
    cycle = AssignmentCycle()
    with pytest.raises(AssignmentStateException):
        cycle.accept()

    cycle.begin_offer("a")
    cycle.decline()
    with pytest.raises(AssignmentStateException):
        cycle.begin_offer("a")


def test_late_acceptance_is_withdrawn_before_the_next_offer(make_coordinator, make_request):
    """
    drv_top answers "yes" after the offer timeout. The offer is withdrawn, the
    late yes settles as a decline, and only then is the next driver offered.
    """
    request = make_request()
    booking = InMemoryBookingStore()
    finished = {}

    def slow_accept(summary):
        time.sleep(0.3)
        finished["drv_top"] = time.monotonic()
        return True

    def quick_accept(summary):
        finished["drv_b_offered"] = time.monotonic()
        return True

    transport = ScriptedOfferTransport({"drv_top": slow_accept, "drv_b": quick_accept})
    policy = DispatchPolicy(offer_timeout_seconds=0.1, offer_backoff_seconds=0.3, lookup_timeout_seconds=1.0)

    outcome = make_coordinator(transport, booking, policy=policy).assign(
        request, [candidate("drv_top"), candidate("drv_b")]
    )

    assert outcome.assigned.driver_id == "drv_b"
    assert [a.outcome for a in outcome.attempts] == [OfferOutcome.TIMEOUT, OfferOutcome.ACCEPTED]
    assert ("drv_top", request.request_id) in transport.withdrawn
    assert finished["drv_top"] <= finished["drv_b_offered"]
    # the transport and the booking agree on who holds the job
    assert transport.holder_of(request.request_id) == "drv_b"
    assert booking.assignments == [("drv_b", request.request_id)]


def test_late_acceptance_is_honoured_when_the_transport_cannot_withdraw(make_coordinator, make_request):
    class NoWithdrawTransport:
        def __init__(self):
            self.sent = []

        def send_offer(self, driver_id, summary):
            self.sent.append(driver_id)
            if driver_id == "drv_top":
                time.sleep(0.3)
            return OfferReply(accepted=True)

    request = make_request()
    booking = InMemoryBookingStore()
    transport = NoWithdrawTransport()
    policy = DispatchPolicy(offer_timeout_seconds=0.1, offer_backoff_seconds=0.3, lookup_timeout_seconds=1.0)

    outcome = make_coordinator(transport, booking, policy=policy).assign(
        request, [candidate("drv_top"), candidate("drv_b")]
    )

    assert outcome.state == AssignmentState.ACCEPTED
    assert outcome.assigned.driver_id == "drv_top"
    assert transport.sent == ["drv_top"]
    assert booking.assignments == [("drv_top", request.request_id)]


def test_offers_never_overlap_when_every_driver_is_slow(make_coordinator, make_request):
    lock = threading.Lock()
    in_flight = {"now": 0, "peak": 0}

    def slow_decline(summary):
        with lock:
            in_flight["now"] += 1
            in_flight["peak"] = max(in_flight["peak"], in_flight["now"])
        time.sleep(0.25)
        with lock:
            in_flight["now"] -= 1
        return False

    transport = ScriptedOfferTransport(default=slow_decline)
    policy = DispatchPolicy(offer_timeout_seconds=0.05, offer_backoff_seconds=0.0, lookup_timeout_seconds=1.0)

    outcome = make_coordinator(transport, policy=policy).assign(
        make_request(), [candidate("a"), candidate("b"), candidate("c")]
    )

    assert outcome.state == AssignmentState.EXHAUSTED
    assert [a.outcome for a in outcome.attempts] == [OfferOutcome.TIMEOUT] * 3
    assert in_flight["peak"] == 1


def test_offer_still_open_after_grace_period_stops_the_loop(make_coordinator, make_request):
    def stuck(summary):
        time.sleep(1.0)
        return False

    transport = ScriptedOfferTransport({"a": stuck}, default=True)
    policy = DispatchPolicy(
        offer_timeout_seconds=0.1, offer_grace_seconds=0.1, offer_backoff_seconds=0.0, lookup_timeout_seconds=1.0
    )

    outcome = make_coordinator(transport, policy=policy).assign(make_request(), [candidate("a"), candidate("b")])

    assert outcome.state == AssignmentState.EXHAUSTED
    assert transport.offered_driver_ids == ["a"]
    assert [a.outcome for a in outcome.attempts] == [OfferOutcome.TIMEOUT]


def test_cancel_racing_acceptance_releases_the_driver(make_coordinator, make_request):
    token = CancellationToken()
    request = make_request()

    def accept_then_cancel(summary):
        token.cancel()
        return True

    transport = ScriptedOfferTransport({"a": accept_then_cancel})

    outcome = make_coordinator(transport).assign(request, [candidate("a")], cancel_token=token)

    assert outcome.state == AssignmentState.CANCELLED
    assert transport.withdrawn == [("a", request.request_id)]
    assert transport.holder_of(request.request_id) is None


def test_failed_withdrawal_does_not_break_the_cycle(make_coordinator, make_request):
    class StickyTransport(ScriptedOfferTransport):
        def withdraw_offer(self, driver_id, request_id):
            raise ConnectionError("push gateway down")

    token = CancellationToken()

    def accept_then_cancel(summary):
        token.cancel()
        return True

    outcome = make_coordinator(StickyTransport({"a": accept_then_cancel})).assign(
        make_request(), [candidate("a")], cancel_token=token
    )

    assert outcome.state == AssignmentState.CANCELLED
