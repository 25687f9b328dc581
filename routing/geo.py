#Purpose: Straight-line geometry shared by the zone resolver, candidate locator and pricing.
#Everything here is great-circle (haversine) math on (lat, lon) pairs.
#No road network, no I/O.

from __future__ import annotations

import math
from typing import Tuple

#internal coordinate type :(lat,lon)
LatLon = Tuple[float, float]

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance between two points in kilometres.
    Always >= 0.
    """
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    # float noise can push a a hair outside [0, 1]
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_between(origin: LatLon, destination: LatLon) -> float:
    """(lat, lon) tuple convenience wrapper around haversine_km."""
    return haversine_km(origin[0], origin[1], destination[0], destination[1])


def is_valid_coordinate(coordinate: LatLon) -> bool:
    lat, lng = coordinate
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0
