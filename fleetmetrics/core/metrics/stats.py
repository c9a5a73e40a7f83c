from __future__ import annotations

import math
import threading
from collections import deque
from typing import Any, Deque, Dict, Iterable, Optional, Tuple

_Key = Tuple[str, Tuple[Tuple[str, str], ...]]


def _key(name: str, tags: Optional[Dict[str, Any]]) -> _Key:
    if not tags:
        return (str(name), tuple())
    return (str(name), tuple(sorted((str(k), str(v)) for k, v in tags.items() if v is not None)))


def _flat(key: _Key) -> str:
    name, tagt = key
    if not tagt:
        return name
    return name + "{" + ",".join(f"{k}={v}" for k, v in tagt) + "}"


class CollectorStats:
    """
    Self-observation of the sampler: tick counters and collection latency.
    Histograms keep the last N observations only.
    """

    def __init__(self, *, max_observations: int = 200):
        self.max_observations = max(10, int(max_observations))
        self._lock = threading.Lock()
        self._counters: Dict[_Key, int] = {}
        self._hist: Dict[_Key, Deque[float]] = {}

    def inc(self, name: str, n: int = 1, tags: Optional[Dict[str, Any]] = None) -> None:
        k = _key(name, tags)
        with self._lock:
            self._counters[k] = self._counters.get(k, 0) + int(n)

    def observe(self, name: str, value: float, tags: Optional[Dict[str, Any]] = None) -> None:
        k = _key(name, tags)
        with self._lock:
            if k not in self._hist:
                self._hist[k] = deque(maxlen=self.max_observations)
            self._hist[k].append(float(value))

    def counter(self, name: str, tags: Optional[Dict[str, Any]] = None) -> int:
        with self._lock:
            return int(self._counters.get(_key(name, tags), 0))

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            counters = dict(self._counters)
            hist = {k: list(v) for k, v in self._hist.items()}
        return {
            "counters": {_flat(k): v for k, v in counters.items()},
            "histograms": {_flat(k): _summary(v) for k, v in hist.items()},
        }


def _percentile(sorted_vals: list[float], p: float) -> float:
    if p <= 0:
        return sorted_vals[0]
    if p >= 100:
        return sorted_vals[-1]
    k = (len(sorted_vals) - 1) * (p / 100.0)
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return sorted_vals[int(k)]
    return sorted_vals[int(f)] * (c - k) + sorted_vals[int(c)] * (k - f)


def _summary(samples: Iterable[float]) -> Dict[str, float]:
    xs = sorted(float(x) for x in samples)
    if not xs:
        return {"count": 0.0}
    return {
        "count": float(len(xs)),
        "min": xs[0],
        "max": xs[-1],
        "avg": sum(xs) / len(xs),
        "p50": _percentile(xs, 50),
        "p95": _percentile(xs, 95),
    }
