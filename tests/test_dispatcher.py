import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from dispatch.cancellation import CancellationToken
from dispatch.collaborators import FareRule
from dispatch.memory import ScriptedOfferTransport
from dispatch.models import DispatchError, DispatchStatus, OfferOutcome
from dispatch.policy import DispatchPolicy
from pricing.engine import compute_fare
from routing.geo import distance_between

DESTINATION = (-4.3835, 15.2943)  # Limete


def test_gombe_request_assigns_best_driver(build_engine, make_request, five_nearby_drivers):
    engine, collaborators = build_engine(five_nearby_drivers)
    request = make_request(destination=DESTINATION)

    result = engine.dispatch(request)

    assert result.success is True
    assert result.status == DispatchStatus.ACCEPTED
    assert result.error is None
    assert result.assigned_driver.driver_id == "drv_top"
    assert result.city == "kinshasa"
    assert result.landmark == "Gombe"

    trip_km = distance_between(request.pickup, DESTINATION)
    assert result.surge_multiplier == 1.0
    assert result.estimated_price == compute_fare(FareRule(2000, 300), trip_km, 1.0)
    assert result.estimated_arrival == 1

    # alternates: the next best two, never the assigned driver
    assert [c.driver_id for c in result.alternates] == ["drv_b", "drv_c"]
    assert result.assigned_driver.score > result.alternates[0].score >= result.alternates[1].score

    assert result.offered_driver_ids == ["drv_top"]
    assert collaborators["booking_store"].assignments == [("drv_top", request.request_id)]


def test_no_drivers_anywhere(build_engine, make_request):
    engine, collaborators = build_engine([])

    result = engine.dispatch(make_request())

    assert result.success is False
    assert result.error == DispatchError.NO_CANDIDATES_FOUND
    assert result.status == DispatchStatus.FAILED
    assert result.assigned_driver is None
    assert result.city == "kinshasa"
    assert collaborators["transport"].sent == []
    # one snapshot per ring
    assert len(collaborators["feed"].queries) == 4


def test_timed_out_top_driver_falls_through_to_second(build_engine, make_request, five_nearby_drivers):
    def never_answers(summary):
        time.sleep(1.5)
        return True

    transport = ScriptedOfferTransport({"drv_top": never_answers}, default=True)
    policy = DispatchPolicy(offer_timeout_seconds=0.2, offer_backoff_seconds=0.0, lookup_timeout_seconds=1.0)
    engine, _ = build_engine(five_nearby_drivers, transport=transport, dispatch_policy=policy)

    result = engine.dispatch(make_request())

    assert result.success is True
    assert result.assigned_driver.driver_id == "drv_b"
    assert len(result.offers) == 2
    assert [a.outcome for a in result.offers] == [OfferOutcome.TIMEOUT, OfferOutcome.ACCEPTED]


def test_late_acceptance_never_leaves_the_driver_holding_a_failed_request(build_engine, make_request,
                                                                        five_nearby_drivers):
    def accepts_too_late(summary):
        time.sleep(0.3)
        return True

    transport = ScriptedOfferTransport({"drv_top": accepts_too_late}, default=False)
    policy = DispatchPolicy(offer_timeout_seconds=0.1, offer_backoff_seconds=0.3, lookup_timeout_seconds=1.0)
    engine, collaborators = build_engine(five_nearby_drivers, transport=transport, dispatch_policy=policy)
    request = make_request()

    result = engine.dispatch(request)

    assert result.success is False
    assert result.error == DispatchError.ALL_OFFERS_DECLINED
    assert transport.holder_of(request.request_id) is None
    assert collaborators["booking_store"].assignments == []


@pytest.mark.parametrize("priority, surge", [("normal", 2.5), ("high", 2.5), ("urgent", 3.0)])
def test_high_demand_prices_with_surge(build_engine, make_request, five_nearby_drivers, priority, surge):
    engine, _ = build_engine(five_nearby_drivers, active_demand=12, available_supply=4)
    request = make_request(destination=DESTINATION, priority=priority)

    result = engine.dispatch(request)

    trip_km = distance_between(request.pickup, DESTINATION)
    assert result.surge_multiplier == surge
    assert result.estimated_price == compute_fare(FareRule(2000, 300), trip_km, surge)


def test_cancel_during_radius_search_sends_no_offer(build_engine, make_request, driver_row, monkeypatch):
    # the only driver sits in the 10 km ring, so the search has to widen
    engine, collaborators = build_engine([driver_row("far", km_north=8.0)])
    token = CancellationToken()
    feed = collaborators["feed"]
    query = feed.query_online_available

    def cancelling_query(service_type):
        token.cancel()
        return query(service_type)

    monkeypatch.setattr(feed, "query_online_available", cancelling_query)

    result = engine.dispatch(make_request(), cancel_token=token)

    assert result.success is False
    assert result.status == DispatchStatus.CANCELLED
    assert result.error == DispatchError.CANCELLED
    assert collaborators["transport"].sent == []
    assert collaborators["booking_store"].assignments == []
    assert len(feed.queries) == 1
    # withdrawn requests are left out of the metrics
    assert engine.get_metrics().total_dispatches == 0


def test_cancelled_before_start(build_engine, make_request, five_nearby_drivers):
    engine, collaborators = build_engine(five_nearby_drivers)
    token = CancellationToken()
    token.cancel()

    result = engine.dispatch(make_request(), cancel_token=token)

    assert result.status == DispatchStatus.CANCELLED
    assert collaborators["feed"].queries == []


def test_everyone_declines(build_engine, make_request, five_nearby_drivers):
    engine, collaborators = build_engine(
        five_nearby_drivers, transport=ScriptedOfferTransport(default=False), active_demand=5, available_supply=5
    )

    result = engine.dispatch(make_request())

    assert result.success is False
    assert result.status == DispatchStatus.EXHAUSTED
    assert result.error == DispatchError.ALL_OFFERS_DECLINED
    assert result.offered_driver_ids == ["drv_top", "drv_b", "drv_c"]
    assert result.surge_multiplier == 1.2
    assert result.estimated_price is None
    assert collaborators["booking_store"].assignments == []


def test_service_type_mismatch_finds_nobody(build_engine, make_request, five_nearby_drivers):
    engine, _ = build_engine(five_nearby_drivers)

    result = engine.dispatch(make_request(service_type="marketplace"))

    assert result.error == DispatchError.NO_CANDIDATES_FOUND


def test_max_distance_limits_the_search(build_engine, make_request, driver_row):
    engine, _ = build_engine([driver_row("d3", km_north=3.0)])

    assert engine.dispatch(make_request(max_distance_km=2.5)).error == DispatchError.NO_CANDIDATES_FOUND
    assert engine.dispatch(make_request(max_distance_km=3.5)).assigned_driver.driver_id == "d3"


def test_custom_radius_sequence(build_engine, make_request, driver_row):
    engine, collaborators = build_engine([driver_row("d1", km_north=0.5)])

    result = engine.dispatch(make_request(), radius_sequence=[1.0, 3.0])

    assert result.success is True
    assert len(collaborators["feed"].queries) == 2


def test_unexpected_fault_is_reported_not_raised(build_engine, make_request, five_nearby_drivers, monkeypatch):
    engine, _ = build_engine(five_nearby_drivers)

    def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(engine.locator, "locate", explode)

    result = engine.dispatch(make_request())

    assert result.success is False
    assert result.status == DispatchStatus.FAILED
    assert result.error == DispatchError.INTERNAL_ERROR
    assert result.city == "kinshasa"


def test_concurrent_cycles_are_independent(build_engine, make_request, five_nearby_drivers):
    engine, collaborators = build_engine(five_nearby_drivers)
    requests = [make_request(customer_id=f"CUS-{i}") for i in range(8)]

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(engine.dispatch, requests))

    assert all(result.success for result in results)
    booked = [request_id for _, request_id in collaborators["booking_store"].assignments]
    assert sorted(booked) == sorted(request.request_id for request in requests)


def test_metrics_reflect_finished_cycles(build_engine, make_request, five_nearby_drivers):
    engine, _ = build_engine(five_nearby_drivers, active_demand=12, available_supply=4)

    engine.dispatch(make_request())
    engine.dispatch(make_request(service_type="marketplace"))

    snapshot = engine.get_metrics(window_hours=1)

    assert snapshot.total_dispatches == 2
    assert snapshot.success_rate == 50.0
    assert snapshot.avg_driver_distance == pytest.approx(0.4, abs=1e-3)
    assert snapshot.surge_frequency == 100.0


def test_result_serialises_for_http(build_engine, make_request, five_nearby_drivers):
    engine, _ = build_engine(five_nearby_drivers)

    payload = engine.dispatch(make_request(destination=DESTINATION)).to_dict()

    assert payload["success"] is True
    assert payload["status"] == "accepted"
    assert payload["error"] is None
    assert payload["assigned_driver"]["driver_id"] == "drv_top"
    assert len(payload["alternatives"]) == 2
    assert payload["offers"] == [{"driver_id": "drv_top", "outcome": "accepted"}]
