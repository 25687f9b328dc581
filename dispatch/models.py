"""
Purpose: Domain models for a dispatch cycle.
What it does:
- DispatchRequest (pickup/destination, service type, priority, customer)
- DispatchResult (the structured outcome every caller receives)
- OfferAttempt (one offer sent during the assignment loop)

Defines enums/constants:
- Priority = NORMAL | HIGH | URGENT
- DispatchStatus = ACCEPTED | EXHAUSTED | CANCELLED | FAILED
- DispatchError = NO_CANDIDATES_FOUND | ALL_OFFERS_DECLINED | CANCELLED | INTERNAL_ERROR

Rule: No collaborator calls, no scoring logic. Models only.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import uuid

from drivers.models import DriverCandidate, ServiceType

LatLon = Tuple[float, float]


class Priority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class DispatchStatus(str, Enum):
    ACCEPTED = "accepted"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"
    FAILED = "failed"


class DispatchError(str, Enum):
    NO_CANDIDATES_FOUND = "NoCandidatesFound"
    ALL_OFFERS_DECLINED = "AllOffersDeclined"
    CANCELLED = "Cancelled"
    INTERNAL_ERROR = "InternalError"


class OfferOutcome(str, Enum):
    ACCEPTED = "accepted"
    DECLINED = "declined"
    TIMEOUT = "timeout"
    ERROR = "error"


@dataclass
class DispatchRequest:
    """
    One incoming transport/delivery request.
    """
    pickup: LatLon
    service_type: ServiceType
    customer_id: str
    destination: Optional[LatLon] = None
    vehicle_class: Optional[str] = None
    priority: Priority = Priority.NORMAL
    max_distance_km: Optional[float] = None
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if isinstance(self.service_type, str):
            self.service_type = ServiceType(self.service_type)
        if isinstance(self.priority, str):
            self.priority = Priority(self.priority)

        self.pickup = _as_latlon(self.pickup, "pickup")
        if self.destination is not None:
            self.destination = _as_latlon(self.destination, "destination")

        if self.max_distance_km is not None and self.max_distance_km <= 0:
            raise ValueError("max_distance_km must be > 0")
        if not self.customer_id:
            raise ValueError("customer_id is required")

    @property
    def is_urgent(self) -> bool:
        return self.priority == Priority.URGENT

    def summary(self) -> Dict[str, Any]:
        """
        What a driver sees on the offer card.
        """
        return {
            "request_id": self.request_id,
            "customer_id": self.customer_id,
            "service_type": self.service_type.value,
            "vehicle_class": self.vehicle_class,
            "priority": self.priority.value,
            "pickup": {"lat": self.pickup[0], "lng": self.pickup[1]},
            "destination": (
                {"lat": self.destination[0], "lng": self.destination[1]} if self.destination else None
            ),
        }


def _as_latlon(value, label: str) -> LatLon:
    lat, lng = float(value[0]), float(value[1])
    if not -90.0 <= lat <= 90.0:
        raise ValueError(f"{label} latitude out of range: {lat}")
    if not -180.0 <= lng <= 180.0:
        raise ValueError(f"{label} longitude out of range: {lng}")
    return (lat, lng)


@dataclass(frozen=True)
class OfferAttempt:
    driver_id: str
    outcome: OfferOutcome


@dataclass
class DispatchResult:
    """
    Structured outcome of one dispatch cycle. Failures are values, not exceptions.
    """
    success: bool
    status: DispatchStatus
    request_id: str
    assigned_driver: Optional[DriverCandidate] = None
    alternates: List[DriverCandidate] = field(default_factory=list)
    estimated_price: Optional[int] = None
    estimated_arrival: Optional[int] = None
    surge_multiplier: Optional[float] = None
    error: Optional[DispatchError] = None
    city: Optional[str] = None
    landmark: Optional[str] = None
    offers: List[OfferAttempt] = field(default_factory=list)

    @property
    def offered_driver_ids(self) -> List[str]:
        return [attempt.driver_id for attempt in self.offers]

    @classmethod
    def failure(cls, request_id: str, error: DispatchError, **extra) -> DispatchResult:
        status = {
            DispatchError.ALL_OFFERS_DECLINED: DispatchStatus.EXHAUSTED,
            DispatchError.CANCELLED: DispatchStatus.CANCELLED,
        }.get(error, DispatchStatus.FAILED)
        return cls(success=False, status=status, request_id=request_id, error=error, **extra)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "request_id": self.request_id,
            "assigned_driver": self.assigned_driver.to_dict() if self.assigned_driver else None,
            "alternatives": [candidate.to_dict() for candidate in self.alternates],
            "estimated_price": self.estimated_price,
            "estimated_arrival": self.estimated_arrival,
            "surge_multiplier": self.surge_multiplier,
            "error": self.error.value if self.error else None,
            "city": self.city,
            "landmark": self.landmark,
            "offers": [
                {"driver_id": attempt.driver_id, "outcome": attempt.outcome.value} for attempt in self.offers
            ],
        }
