from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from fleetmetrics.core.errors import ConfigError

MS_PER_HOUR = 3_600_000
MIN_CAPACITY = 60
MAX_QUERY_HOURS = 24


class SystemMetricsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    sample_interval_ms: int = Field(default=10_000, ge=1)
    retention_hours: int = Field(default=24, ge=1)
    lag_resolution_ms: int = Field(default=20, ge=1)

    @property
    def capacity(self) -> int:
        return max(MIN_CAPACITY, math.ceil(self.retention_hours * MS_PER_HOUR / self.sample_interval_ms))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SystemMetricsConfig":
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for key, field_name in (
            ("SYSTEM_METRICS_SAMPLE_MS", "sample_interval_ms"),
            ("SYSTEM_METRICS_RETAIN_HOURS", "retention_hours"),
            ("SYSTEM_METRICS_LAG_RESOLUTION_MS", "lag_resolution_ms"),
        ):
            raw = env.get(key)
            if raw is None or not str(raw).strip():
                continue
            try:
                values[field_name] = int(str(raw).strip())
            except ValueError:
                raise ConfigError(f"{key} must be an integer.", key=key, value=raw) from None
        raw_enabled = env.get("SYSTEM_METRICS_ENABLED")
        if raw_enabled is not None and str(raw_enabled).strip():
            values["enabled"] = str(raw_enabled).strip().lower() not in {"0", "false", "no", "off"}
        try:
            return cls(**values)
        except ValueError as e:
            raise ConfigError("Invalid system metrics configuration.", error=str(e)) from None


class Sample(BaseModel):
    """One telemetry record. Unavailable metrics are None, never zero."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    ts: int
    uptime_sec: int
    process_cpu_pct: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    system_cpu_pct: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    process_mem_mb: Optional[float] = None
    heap_used_mb: Optional[float] = None
    heap_total_mb: Optional[float] = None
    system_mem_used_pct: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    load1: Optional[float] = None
    event_loop_lag_mean_ms: Optional[float] = None
    event_loop_lag_max_ms: Optional[float] = None
    active_handles: Optional[int] = None
    active_requests: Optional[int] = None
    net_rx_bps: Optional[int] = Field(default=None, ge=0)
    net_tx_bps: Optional[int] = Field(default=None, ge=0)
    net_rx_bytes: Optional[int] = None
    net_tx_bytes: Optional[int] = None

    def public_dict(self) -> Dict[str, Any]:
        return {
            "ts": self.ts,
            "uptimeSec": self.uptime_sec,
            "processCpuPct": self.process_cpu_pct,
            "systemCpuPct": self.system_cpu_pct,
            "processMemMb": self.process_mem_mb,
            "heapUsedMb": self.heap_used_mb,
            "heapTotalMb": self.heap_total_mb,
            "systemMemUsedPct": self.system_mem_used_pct,
            "load1": self.load1,
            "eventLoopLagMeanMs": self.event_loop_lag_mean_ms,
            "eventLoopLagMaxMs": self.event_loop_lag_max_ms,
            "activeHandles": self.active_handles,
            "activeRequests": self.active_requests,
            "netRxBps": self.net_rx_bps,
            "netTxBps": self.net_tx_bps,
            "netRxBytes": self.net_rx_bytes,
            "netTxBytes": self.net_tx_bytes,
        }


# ---- raw probe readings (never exposed by queries) ----
@dataclass(frozen=True)
class CpuTimes:
    idle: float
    total: float
    cores: int


@dataclass(frozen=True)
class ProcessCpuSnapshot:
    cpu_seconds: float
    taken_at: float


@dataclass(frozen=True)
class NetCounters:
    rx_bytes: int
    tx_bytes: int


@dataclass(frozen=True)
class NetRates:
    rx_bps: Optional[int] = None
    tx_bps: Optional[int] = None
    rx_bytes: Optional[int] = None
    tx_bytes: Optional[int] = None


@dataclass(frozen=True)
class ProcessMemory:
    rss_bytes: Optional[int] = None
    heap_used_bytes: Optional[int] = None
    heap_total_bytes: Optional[int] = None


def bytes_to_mb(value: Optional[int]) -> Optional[float]:
    if value is None:
        return None
    return round(float(value) / (1024 * 1024), 2)
