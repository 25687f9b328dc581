#Purpose: City / landmark resolution (the "where are we" layer).
#Maps a coordinate onto one of the served cities using static bounding boxes
#and haversine distance, then enriches it with the nearest named landmark.
#Typical responsibilities:
#bounding-box containment against the zone table
#nearest-center tie-break between overlapping zones
#nearest-landmark lookup inside the chosen zone
#nearest-center fallback when the point is outside every box
#Output: a ZoneResolution that always carries a city.

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from routing.geo import LatLon, haversine_km


class LandmarkType(str, Enum):
    COMMERCIAL = "commercial"
    RESIDENTIAL = "residential"
    INDUSTRIAL = "industrial"
    TRANSPORT = "transport"


@dataclass(frozen=True)
class BoundingBox:
    north: float
    south: float
    east: float
    west: float

    def contains(self, lat: float, lng: float) -> bool:
        return self.south <= lat <= self.north and self.west <= lng <= self.east


@dataclass(frozen=True)
class Landmark:
    name: str
    coordinates: LatLon
    landmark_type: LandmarkType


@dataclass(frozen=True)
class CityZone:
    """
    A served city: its bounding box, its reference center and the landmarks
    used to describe a pickup point to drivers ("near Marché Central").
    """
    key: str
    name: str
    bounds: BoundingBox
    center: LatLon
    landmarks: Tuple[Landmark, ...] = ()

    def distance_to_center(self, lat: float, lng: float) -> float:
        return haversine_km(lat, lng, self.center[0], self.center[1])


@dataclass(frozen=True)
class ZoneResolution:
    """
    Output of resolve_zone.
    within_bounds is False when the city is only the nearest-center approximation.
    """
    city: str
    city_name: str
    landmark: Optional[str] = None
    within_bounds: bool = True


def _zone(key, name, bounds, center, landmarks) -> CityZone:
    return CityZone(
        key=key,
        name=name,
        bounds=BoundingBox(*bounds),
        center=center,
        landmarks=tuple(Landmark(n, c, LandmarkType(t)) for n, c, t in landmarks),
    )


# bounds are (north, south, east, west)
CITY_ZONES: Tuple[CityZone, ...] = (
    _zone("kinshasa", "Kinshasa", (-4.20, -4.70, 15.50, 15.00), (-4.4419, 15.2663), [
        ("Gombe", (-4.3199, 15.3074), "commercial"),
        ("Kinshasa Centre", (-4.3297, 15.3075), "commercial"),
        ("Limete", (-4.3835, 15.2943), "residential"),
        ("Matete", (-4.4031, 15.3413), "residential"),
        ("Kalamu", (-4.3789, 15.3010), "residential"),
        ("Aéroport de N'djili", (-4.3857, 15.4446), "transport"),
        ("Marché Central", (-4.3225, 15.3095), "commercial"),
    ]),
    _zone("lubumbashi", "Lubumbashi", (-11.50, -11.80, 27.60, 27.30), (-11.6609, 27.4794), [
        ("Centre-ville Lubumbashi", (-11.6609, 27.4794), "commercial"),
        ("Université de Lubumbashi", (-11.6545, 27.4636), "commercial"),
        ("Aéroport Luano", (-11.5913, 27.5308), "transport"),
        ("Marché de la Liberté", (-11.6649, 27.4753), "commercial"),
        ("Zone industrielle", (-11.6890, 27.4521), "industrial"),
    ]),
    _zone("kolwezi", "Kolwezi", (-10.60, -10.80, 25.60, 25.30), (-10.7143, 25.4731), [
        ("Centre-ville Kolwezi", (-10.7143, 25.4731), "commercial"),
        ("Aéroport de Kolwezi", (-10.7548, 25.5056), "transport"),
        ("Zone minière", (-10.7200, 25.4500), "industrial"),
        ("Marché central", (-10.7130, 25.4750), "commercial"),
    ]),
    _zone("likasi", "Likasi", (-10.90, -11.10, 26.80, 26.60), (-10.9836, 26.7312), [
        ("Centre-ville Likasi", (-10.9836, 26.7312), "commercial"),
        ("Panda", (-10.9900, 26.7400), "residential"),
        ("Shituru", (-10.9750, 26.7200), "industrial"),
        ("Marché de Likasi", (-10.9840, 26.7320), "commercial"),
    ]),
    _zone("abidjan", "Abidjan", (5.50, 5.20, -3.80, -4.20), (5.3364, -4.0267), [
        ("Plateau", (5.3208, -4.0267), "commercial"),
        ("Cocody", (5.3467, -3.9831), "residential"),
        ("Adjamé", (5.3669, -4.0219), "commercial"),
        ("Yopougon", (5.3364, -4.0889), "residential"),
        ("Aéroport Félix Houphouët-Boigny", (5.2614, -3.9263), "transport"),
        ("Port d'Abidjan", (5.2947, -4.0164), "transport"),
        ("Marché de Treichville", (5.2922, -4.0058), "commercial"),
    ]),
)

_ZONES_BY_KEY: Dict[str, CityZone] = {zone.key: zone for zone in CITY_ZONES}


def resolve_zone(lat: float, lng: float, zones: Tuple[CityZone, ...] = CITY_ZONES) -> ZoneResolution:
    """
    Resolve a coordinate to a city and, when inside a city box, its nearest landmark.

    Rules:
    - among zones whose bounding box contains the point, the nearest center wins
    - the landmark is the nearest landmark of that winning zone
    - outside every box: the globally nearest center, no landmark

    Pure and stateless, safe to call from any number of dispatch cycles at once.
    """
    if not zones:
        raise ValueError("zone table is empty")

    containing = [zone for zone in zones if zone.bounds.contains(lat, lng)]

    if containing:
        best = min(containing, key=lambda zone: zone.distance_to_center(lat, lng))
        landmark = nearest_landmark(best, lat, lng)
        return ZoneResolution(
            city=best.key,
            city_name=best.name,
            landmark=landmark.name if landmark else None,
            within_bounds=True,
        )

    #fallback : approximate with the closest city center
    nearest = min(zones, key=lambda zone: zone.distance_to_center(lat, lng))
    return ZoneResolution(city=nearest.key, city_name=nearest.name, landmark=None, within_bounds=False)


def nearest_landmark(zone: CityZone, lat: float, lng: float) -> Optional[Landmark]:
    if not zone.landmarks:
        return None
    return min(
        zone.landmarks,
        key=lambda landmark: haversine_km(lat, lng, landmark.coordinates[0], landmark.coordinates[1]),
    )


def get_zone(city: str) -> Optional[CityZone]:
    return _ZONES_BY_KEY.get(city)


def city_landmarks(city: str) -> List[Landmark]:
    """Landmarks of a city, empty for cities we do not serve."""
    zone = _ZONES_BY_KEY.get(city)
    return list(zone.landmarks) if zone else []
