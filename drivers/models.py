"""
Purpose: Core data models for the drivers domain.
What it does:
Defines the rows read from the live location feed, the profile and stats
records the locator joins onto them, and the DriverCandidate that flows
through scoring and assignment.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

LatLon = Tuple[float, float]

ALL_SERVICES = "all"
DEFAULT_VEHICLE_CLASS = "standard"


class ServiceType(str, Enum):
    TRANSPORT = "transport"
    DELIVERY = "delivery"
    MARKETPLACE = "marketplace"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


@dataclass(frozen=True)
class DriverLocation:
    """
    One row of the live driver-location feed: an online, available driver
    and the last position they pushed.
    """
    driver_id: str
    lat: float
    lng: float
    vehicle_class: Optional[str] = None
    last_ping: Optional[datetime] = None

    @property
    def location(self) -> LatLon:
        return (self.lat, self.lng)


@dataclass(frozen=True)
class DriverProfile:
    rating: Optional[float]
    total_rides: int
    service_type: str
    is_active: bool = True
    verification_status: str = VerificationStatus.VERIFIED.value

    def serves(self, service_type: str) -> bool:
        """
        A driver registered for "all" serves every request type.
        """
        return self.service_type == ALL_SERVICES or self.service_type == service_type


@dataclass(frozen=True)
class DriverStats:
    """
    Rolling performance rates in percent (0-100).
    """
    acceptance_rate: float
    completion_rate: float


@dataclass(frozen=True)
class DriverCandidate:
    """
    A driver considered eligible for one dispatch cycle.
    score stays 0.0 until the scorer returns a ranked copy.
    """
    driver_id: str
    lat: float
    lng: float
    distance_km: float
    rating: float
    total_rides: int
    vehicle_class: str
    service_type: str
    last_activity: Optional[datetime]
    acceptance_rate: float
    completion_rate: float
    estimated_arrival: int
    score: float = 0.0

    @property
    def location(self) -> LatLon:
        return (self.lat, self.lng)

    def to_dict(self) -> dict:
        return {
            "driver_id": self.driver_id,
            "latitude": self.lat,
            "longitude": self.lng,
            "distance": round(self.distance_km, 3),
            "score": self.score,
            "rating": self.rating,
            "total_rides": self.total_rides,
            "vehicle_class": self.vehicle_class,
            "service_type": self.service_type,
            "last_activity": self.last_activity.isoformat() if self.last_activity else None,
            "acceptance_rate": self.acceptance_rate,
            "completion_rate": self.completion_rate,
            "estimated_arrival": self.estimated_arrival,
        }
