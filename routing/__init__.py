#Marks routing as a package.
#Re-exports the geometry, zone resolution and ETA helpers so other modules
#import from routing without knowing internal file names.
#No business logic.

from .geo import LatLon, haversine_km, distance_between
from .zones import CityZone, Landmark, LandmarkType, ZoneResolution, resolve_zone, city_landmarks, get_zone
from .eta_service import estimate_arrival_minutes

__all__ = [
    "LatLon",
    "haversine_km",
    "distance_between",
    "CityZone",
    "Landmark",
    "LandmarkType",
    "ZoneResolution",
    "resolve_zone",
    "city_landmarks",
    "get_zone",
    "estimate_arrival_minutes",
]
