from __future__ import annotations

import math
from typing import Optional

from fleetmetrics.core.metrics.models import CpuTimes, NetCounters, NetRates, ProcessCpuSnapshot


class DeltaCalculator:
    """
    Turns consecutive cumulative counters into point-in-time rates.

    Holds only the most recent observation of each counter family. Every rate
    is None on the first observation, on zero/negative elapsed time and on
    counter regression.
    """

    def __init__(self) -> None:
        self._prev_cpu: Optional[CpuTimes] = None
        self._prev_proc: Optional[ProcessCpuSnapshot] = None
        self._prev_net: Optional[NetCounters] = None
        self._prev_net_ts: Optional[float] = None

    def system_cpu_percent(self, curr: Optional[CpuTimes]) -> Optional[float]:
        if curr is None:
            return None
        prev = self._prev_cpu
        self._prev_cpu = curr
        if prev is None:
            return None
        idle_diff = curr.idle - prev.idle
        total_diff = curr.total - prev.total
        if total_diff <= 0:
            return None
        return _clamp_pct((1.0 - idle_diff / total_diff) * 100.0)

    def process_cpu_percent(self, cpu_seconds: Optional[float], cores: int, now: float) -> Optional[float]:
        """`now` is wall-clock seconds; the snapshot moves to `now` on every call."""
        if cpu_seconds is None:
            # no baseline to diff against next time
            self._prev_proc = None
            return None
        prev = self._prev_proc
        self._prev_proc = ProcessCpuSnapshot(cpu_seconds=float(cpu_seconds), taken_at=now)
        if prev is None:
            return None
        elapsed_us = (now - prev.taken_at) * 1_000_000.0
        if elapsed_us <= 0:
            return None
        used_us = (float(cpu_seconds) - prev.cpu_seconds) * 1_000_000.0
        return _clamp_pct((used_us / elapsed_us) * 100.0 / max(1, int(cores)))

    def network_rates(self, curr: Optional[NetCounters], now: float) -> NetRates:
        if curr is None:
            return NetRates()
        prev = self._prev_net
        prev_ts = self._prev_net_ts
        self._prev_net = curr
        self._prev_net_ts = now
        if prev is None or prev_ts is None:
            return NetRates(rx_bytes=curr.rx_bytes, tx_bytes=curr.tx_bytes)
        dt = max(1.0, now - prev_ts)
        return NetRates(
            rx_bps=_rate(curr.rx_bytes - prev.rx_bytes, dt),
            tx_bps=_rate(curr.tx_bytes - prev.tx_bytes, dt),
            rx_bytes=curr.rx_bytes,
            tx_bytes=curr.tx_bytes,
        )


def _rate(diff: int, dt: float) -> Optional[int]:
    if diff < 0:
        return None
    # round half up
    return int(math.floor(diff / dt + 0.5))


def _clamp_pct(value: float) -> Optional[float]:
    if math.isnan(value):
        return None
    return max(0.0, min(100.0, value))
