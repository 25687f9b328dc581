import numpy as np
import pandas as pd

SERVICE_TYPES = ["transport", "delivery", "marketplace", "all"]
VEHICLE_CLASSES = ["standard", "comfort", "moto", "van"]


def generate_mock_drivers(filename="mock_drivers_100.csv", count=100, seed=None):
    # Base coordinate: Gombe, the commercial heart of Kinshasa.
    base_lat = -4.3199
    base_lon = 15.3074

    rng = np.random.default_rng(seed)

    # Scatter drivers around Gombe, denser near the center (roughly +/- 15km)
    lat = base_lat + rng.normal(0, 0.05, count)
    lon = base_lon + rng.normal(0, 0.05, count)

    drivers = pd.DataFrame({
        "driver_id": [f"DRV-{str(i + 1).zfill(3)}" for i in range(count)],
        "lat": np.round(lat, 6),
        "lon": np.round(lon, 6),
        "vehicle_class": rng.choice(VEHICLE_CLASSES, count, p=[0.55, 0.2, 0.2, 0.05]),
        "service_type": rng.choice(SERVICE_TYPES, count, p=[0.4, 0.25, 0.05, 0.3]),
        "rating": np.round(np.clip(rng.normal(4.3, 0.4, count), 1.0, 5.0), 2),
        "total_rides": rng.integers(0, 400, count),
        "acceptance_rate": np.round(rng.uniform(55, 100, count), 1),
        "completion_rate": np.round(rng.uniform(70, 100, count), 1),
        # seconds since last ping; most drivers pinged within the last minute
        "ping_age_s": rng.exponential(60, count).round().astype(int),
        # 90% verified, the rest still pending review
        "verified": rng.random(count) < 0.9,
    })

    drivers.to_csv(filename, index=False)
    print(f"Successfully generated {count} mock drivers into '{filename}'.")
    return drivers


if __name__ == "__main__":
    generate_mock_drivers()
