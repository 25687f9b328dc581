#Purpose: ETA estimation policy.
#Converts a straight-line pickup distance into the "arrives in X" minutes shown
#to customers and carried on every candidate.
#There is no traffic or road data behind this: it is a flat 2 minutes per km
#approximation. A routing service can replace estimate_arrival_minutes without
#touching its callers.

from __future__ import annotations

import math

MINUTES_PER_KM = 2.0


def estimate_arrival_minutes(distance_km: float, minutes_per_km: float = MINUTES_PER_KM) -> int:
    """
    ceil(distance_km * minutes_per_km), never negative.
    """
    if distance_km <= 0:
        return 0
    return int(math.ceil(distance_km * minutes_per_km))
