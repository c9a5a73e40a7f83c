from __future__ import annotations

import math
import time
from typing import Any, Callable, List, Optional

from fleetmetrics.core.metrics.history import HistoryStore
from fleetmetrics.core.metrics.models import MAX_QUERY_HOURS, Sample


class MetricsQuery:
    """Read-only view over a HistoryStore."""

    def __init__(self, store: HistoryStore, *, now: Callable[[], float] = time.time):
        self._store = store
        self._now = now

    def latest(self) -> Optional[Sample]:
        return self._store.latest()

    def history(self, hours: Any = MAX_QUERY_HOURS) -> List[Sample]:
        return self._store.window(coerce_hours(hours), now_ms=int(self._now() * 1000))


def coerce_hours(hours: Any) -> float:
    # missing or non-numeric -> the full window; range clamping is the store's job
    try:
        h = float(hours)
    except OverflowError:
        # integer too large for a float; keep its sign and let the store clamp it
        return math.inf if hours > 0 else -math.inf
    except (TypeError, ValueError):
        return float(MAX_QUERY_HOURS)
    if math.isnan(h):
        return float(MAX_QUERY_HOURS)
    return h
