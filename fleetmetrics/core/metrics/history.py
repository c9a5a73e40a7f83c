from __future__ import annotations

import bisect
import threading
from typing import List, Optional, Tuple

from fleetmetrics.core.metrics.models import MAX_QUERY_HOURS, MS_PER_HOUR, Sample


def clamp_hours(hours: float) -> float:
    return min(float(MAX_QUERY_HOURS), max(1.0, float(hours)))


class HistoryStore:
    """
    Time-ordered, bounded list of samples (oldest first).

    Overflow is trimmed from the front in a single slice deletion, so the
    length is exactly `capacity` afterwards.
    """

    def __init__(self, capacity: int):
        if int(capacity) < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = int(capacity)
        self._lock = threading.Lock()
        self._items: List[Sample] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def append(self, sample: Sample) -> int:
        """Returns how many samples were evicted."""
        with self._lock:
            if self._items and sample.ts < self._items[-1].ts:
                raise ValueError("sample timestamp went backwards")
            self._items.append(sample)
            excess = len(self._items) - self.capacity
            if excess > 0:
                del self._items[:excess]
                return excess
            return 0

    def latest(self) -> Optional[Sample]:
        with self._lock:
            return self._items[-1] if self._items else None

    def latest_ts(self) -> Optional[int]:
        s = self.latest()
        return s.ts if s is not None else None

    def window(self, hours: float, *, now_ms: int) -> List[Sample]:
        start = int(now_ms) - int(clamp_hours(hours) * MS_PER_HOUR)
        with self._lock:
            i = bisect.bisect_left(self._items, start, key=lambda s: s.ts)
            return self._items[i:]

    def snapshot(self) -> Tuple[Sample, ...]:
        with self._lock:
            return tuple(self._items)
