"""
Purpose: Best-effort aggregation of dispatch outcomes for reporting.
What it does:
Keeps a bounded in-memory log of finished cycles and summarises the last N
hours on demand. Nothing in the dispatch decision reads from it.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Deque, List, Optional


@dataclass(frozen=True)
class CycleRecord:
    finished_at: datetime
    success: bool
    latency_seconds: float
    driver_distance_km: Optional[float] = None
    surge_multiplier: Optional[float] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class MetricsSnapshot:
    """
    success_rate and surge_frequency are percentages; latency in seconds,
    distance in km. All zero when the window is empty.
    """
    success_rate: float
    avg_assignment_latency: float
    avg_driver_distance: float
    surge_frequency: float
    total_dispatches: int = 0

    def to_dict(self) -> dict:
        return {
            "success_rate": self.success_rate,
            "average_assignment_time": self.avg_assignment_latency,
            "average_driver_distance": self.avg_driver_distance,
            "surge_frequency": self.surge_frequency,
            "total_dispatches": self.total_dispatches,
        }


class DispatchMetrics:
    def __init__(self, max_records: int = 10000):
        self._records: Deque[CycleRecord] = deque(maxlen=max_records)
        self._lock = threading.Lock()

    def record(self, record: CycleRecord) -> None:
        with self._lock:
            self._records.append(record)

    def snapshot(self, window_hours: float = 24, now: Optional[datetime] = None) -> MetricsSnapshot:
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(hours=window_hours)

        with self._lock:
            records: List[CycleRecord] = [r for r in self._records if r.finished_at >= since]

        if not records:
            return MetricsSnapshot(0.0, 0.0, 0.0, 0.0, 0)

        successes = [r for r in records if r.success]
        distances = [r.driver_distance_km for r in successes if r.driver_distance_km is not None]
        priced = [r for r in records if r.surge_multiplier is not None]
        surged = [r for r in priced if r.surge_multiplier > 1.0]

        return MetricsSnapshot(
            success_rate=round(100.0 * len(successes) / len(records), 2),
            avg_assignment_latency=(
                round(sum(r.latency_seconds for r in successes) / len(successes), 3) if successes else 0.0
            ),
            avg_driver_distance=round(sum(distances) / len(distances), 3) if distances else 0.0,
            surge_frequency=round(100.0 * len(surged) / len(priced), 2) if priced else 0.0,
            total_dispatches=len(records),
        )
