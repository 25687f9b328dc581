import os
from datetime import datetime, timedelta, timezone

import pytest

from dispatch.dispatcher import DispatchEngine
from dispatch.memory import ScriptedOfferTransport, build_in_memory_collaborators
from dispatch.models import DispatchRequest
from dispatch.policy import DispatchPolicy
from drivers.models import DriverLocation, DriverProfile, DriverStats
from drivers.policy import DriverPolicy

GOMBE = (-4.3199, 15.3074)
FIXED_NOW = datetime(2026, 3, 2, 8, 30, tzinfo=timezone.utc)

# roughly 0.111 km per 0.001 degree of latitude
KM_PER_DEGREE_LAT = 111.195


def pytest_configure(config):
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "dispatch_backend.settings")
    import django

    django.setup()


def make_driver(
    driver_id,
    km_north=0.5,
    rating=4.5,
    total_rides=50,
    service_type="transport",
    vehicle_class="standard",
    ping_age_s=10,
    stats=(90.0, 95.0),
    is_active=True,
    verification_status="verified",
    pickup=GOMBE,
):
    """
    One (location, profile, stats) row placed km_north kilometres due north of the pickup.
    stats=None leaves the driver without performance stats.
    """
    location = DriverLocation(
        driver_id=driver_id,
        lat=pickup[0] + km_north / KM_PER_DEGREE_LAT,
        lng=pickup[1],
        vehicle_class=vehicle_class,
        last_ping=FIXED_NOW - timedelta(seconds=ping_age_s),
    )
    profile = DriverProfile(
        rating=rating,
        total_rides=total_rides,
        service_type=service_type,
        is_active=is_active,
        verification_status=verification_status,
    )
    driver_stats = DriverStats(*stats) if stats is not None else None
    return location, profile, driver_stats


@pytest.fixture
def driver_row():
    return make_driver


@pytest.fixture
def gombe_pickup():
    return GOMBE


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def make_request():
    def _make(**overrides):
        fields = {
            "pickup": GOMBE,
            "service_type": "transport",
            "customer_id": "CUS-0001",
        }
        fields.update(overrides)
        return DispatchRequest(**fields)

    return _make


@pytest.fixture
def fast_dispatch_policy():
    # no backoff and short timeouts so offer-loop tests finish quickly
    return DispatchPolicy(offer_timeout_seconds=0.5, offer_backoff_seconds=0.0, lookup_timeout_seconds=1.0)


@pytest.fixture
def driver_policy():
    return DriverPolicy()


@pytest.fixture
def five_nearby_drivers():
    """
    Five verified transport drivers inside the 2 km ring around Gombe.
    drv_top has the best rating, experience and reliability.
    """
    return [
        make_driver("drv_top", km_north=0.4, rating=4.8, total_rides=180, stats=(95.0, 95.0)),
        make_driver("drv_b", km_north=0.6, rating=4.2, total_rides=40, stats=(85.0, 90.0)),
        make_driver("drv_c", km_north=1.1, rating=4.0, total_rides=25, stats=(80.0, 85.0)),
        make_driver("drv_d", km_north=1.5, rating=3.9, total_rides=10, stats=(75.0, 80.0)),
        make_driver("drv_e", km_north=1.9, rating=3.5, total_rides=5, stats=(70.0, 75.0)),
    ]


@pytest.fixture
def build_engine(fast_dispatch_policy):
    """
    Factory for a DispatchEngine over in-memory collaborators with a fixed clock.
    Returns (engine, collaborators) so tests can inspect the fakes.
    """
    engines = []

    def _build(drivers, transport=None, dispatch_policy=None, **kwargs):
        collaborator_kwargs = {
            key: kwargs.pop(key)
            for key in ("active_demand", "available_supply", "rules")
            if key in kwargs
        }
        collaborators = build_in_memory_collaborators(
            drivers,
            transport=transport if transport is not None else ScriptedOfferTransport(default=True),
            **collaborator_kwargs,
        )
        engine = DispatchEngine(
            **collaborators,
            dispatch_policy=dispatch_policy or fast_dispatch_policy,
            clock=lambda: FIXED_NOW,
            **kwargs,
        )
        engines.append(engine)
        return engine, collaborators

    yield _build

    for engine in engines:
        engine.close()
