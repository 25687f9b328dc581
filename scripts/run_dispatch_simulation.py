import argparse
import os
import random
import sys
import time
from datetime import datetime, timedelta, timezone
from typing import List, Tuple

import pandas as pd

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dispatch.dispatcher import DispatchEngine
from dispatch.memory import RandomOfferTransport, build_in_memory_collaborators
from dispatch.models import DispatchRequest, Priority
from dispatch.policy import DispatchPolicy
from drivers.models import DriverLocation, DriverProfile, DriverStats, VerificationStatus
from scripts.generate_mock_drivers import generate_mock_drivers


def load_drivers(filepath: str) -> List[Tuple[DriverLocation, DriverProfile, DriverStats]]:
    df = pd.read_csv(filepath)
    now = datetime.now(timezone.utc)

    drivers = []
    for _, row in df.iterrows():
        location = DriverLocation(
            driver_id=str(row["driver_id"]),
            lat=float(row["lat"]),
            lng=float(row["lon"]),
            vehicle_class=str(row["vehicle_class"]),
            last_ping=now - timedelta(seconds=int(row["ping_age_s"])),
        )
        profile = DriverProfile(
            rating=float(row["rating"]),
            total_rides=int(row["total_rides"]),
            service_type=str(row["service_type"]),
            is_active=True,
            verification_status=(
                VerificationStatus.VERIFIED.value if bool(row["verified"]) else VerificationStatus.PENDING.value
            ),
        )
        stats = DriverStats(
            acceptance_rate=float(row["acceptance_rate"]),
            completion_rate=float(row["completion_rate"]),
        )
        drivers.append((location, profile, stats))
    return drivers


def random_request(rng: random.Random) -> DispatchRequest:
    # Pickups and drop-offs scattered across central Kinshasa
    pickup = (-4.3199 + rng.uniform(-0.06, 0.06), 15.3074 + rng.uniform(-0.06, 0.06))
    destination = (-4.3199 + rng.uniform(-0.12, 0.12), 15.3074 + rng.uniform(-0.12, 0.12))
    return DispatchRequest(
        pickup=pickup,
        destination=destination,
        service_type=rng.choice(["transport", "delivery"]),
        vehicle_class=rng.choice([None, "standard", "comfort", "moto"]),
        priority=rng.choices(list(Priority), weights=[0.7, 0.2, 0.1])[0],
        customer_id=f"CUS-{rng.randint(1, 500):04d}",
    )


def run_simulation(drivers_csv: str, requests_count: int, acceptance: float, seed: int):
    print("=== STARTING END-TO-END DISPATCH SIMULATION ===")

    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    drivers_path = os.path.join(base_dir, drivers_csv)

    # 1. Load Data
    if not os.path.exists(drivers_path):
        generate_mock_drivers(drivers_path, seed=seed)
    drivers = load_drivers(drivers_path)
    print(f"Loaded {len(drivers)} Drivers.\n")

    # 2. Configure System (no real backoff, offers answer instantly here)
    collaborators = build_in_memory_collaborators(
        drivers,
        transport=RandomOfferTransport(acceptance_probability=acceptance, seed=seed),
        active_demand=requests_count // 2,
    )
    policy = DispatchPolicy(offer_backoff_seconds=0.0)

    rng = random.Random(seed)
    rows = []

    # 3. Dispatch every request through the engine
    with DispatchEngine(**collaborators, dispatch_policy=policy) as engine:
        start_time = time.time()
        for _ in range(requests_count):
            request = random_request(rng)
            result = engine.dispatch(request)
            rows.append({
                "request_id": result.request_id,
                "service_type": request.service_type.value,
                "priority": request.priority.value,
                "city": result.city,
                "landmark": result.landmark,
                "status": result.status.value,
                "error": result.error.value if result.error else None,
                "assigned_driver": result.assigned_driver.driver_id if result.assigned_driver else None,
                "driver_distance_km": (
                    round(result.assigned_driver.distance_km, 3) if result.assigned_driver else None
                ),
                "offers_sent": len(result.offers),
                "estimated_price": result.estimated_price,
                "surge_multiplier": result.surge_multiplier,
                "estimated_arrival_min": result.estimated_arrival,
            })
        elapsed = time.time() - start_time
        metrics = engine.get_metrics(window_hours=1)

    results = pd.DataFrame(rows)
    output_path = os.path.join(base_dir, "dispatch_results.csv")
    results.to_csv(output_path, index=False)

    print(f"Dispatched {requests_count} requests in {elapsed:.2f}s.\n")
    print("--- Outcomes ---")
    print(results.groupby("status").size().to_string())
    print("\n--- Offers per request ---")
    print(results["offers_sent"].describe().to_string())

    print("\n=== SIMULATION COMPLETE ===")
    print(f"Success rate: {metrics.success_rate:.1f}%")
    print(f"Average driver distance: {metrics.avg_driver_distance:.2f} km")
    print(f"Surge frequency: {metrics.surge_frequency:.1f}%")
    print(f"Results written to '{output_path}'.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run dispatch cycles against mock Kinshasa drivers.")
    parser.add_argument("--drivers", default="mock_drivers_100.csv")
    parser.add_argument("--requests", type=int, default=50)
    parser.add_argument("--acceptance", type=float, default=0.6)
    parser.add_argument("--seed", type=int, default=7)
    args = parser.parse_args()

    run_simulation(args.drivers, args.requests, args.acceptance, args.seed)
