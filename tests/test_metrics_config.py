from __future__ import annotations

import pytest

from fleetmetrics.core.errors import ConfigError
from fleetmetrics.core.metrics.models import Sample, SystemMetricsConfig


def test_defaults_without_environment():
    cfg = SystemMetricsConfig.from_env({})
    assert cfg.enabled is True
    assert cfg.sample_interval_ms == 10_000
    assert cfg.retention_hours == 24
    assert cfg.capacity == 8640


def test_reads_process_environment(monkeypatch):
    monkeypatch.setenv("SYSTEM_METRICS_SAMPLE_MS", "5000")
    monkeypatch.setenv("SYSTEM_METRICS_RETAIN_HOURS", "2")
    monkeypatch.setenv("SYSTEM_METRICS_ENABLED", "off")
    cfg = SystemMetricsConfig.from_env()
    assert cfg.sample_interval_ms == 5000
    assert cfg.retention_hours == 2
    assert cfg.enabled is False
    assert cfg.capacity == 1440


def test_blank_values_fall_back_to_defaults():
    cfg = SystemMetricsConfig.from_env({"SYSTEM_METRICS_SAMPLE_MS": "  ", "SYSTEM_METRICS_ENABLED": ""})
    assert cfg.sample_interval_ms == 10_000
    assert cfg.enabled is True


@pytest.mark.parametrize(
    "env",
    [
        {"SYSTEM_METRICS_SAMPLE_MS": "fast"},
        {"SYSTEM_METRICS_SAMPLE_MS": "0"},
        {"SYSTEM_METRICS_RETAIN_HOURS": "-1"},
    ],
)
def test_invalid_values_raise_config_error(env):
    with pytest.raises(ConfigError) as ei:
        SystemMetricsConfig.from_env(env)
    d = ei.value.to_dict()
    assert d["code"] == "config_error"
    assert d["message"]
    assert set(d) == {"code", "message", "context"}


def test_sample_public_dict_uses_dashboard_keys():
    s = Sample(ts=1, uptime_sec=2, system_cpu_pct=12.5, net_rx_bps=10)
    d = s.public_dict()
    assert d["ts"] == 1
    assert d["uptimeSec"] == 2
    assert d["systemCpuPct"] == 12.5
    assert d["processCpuPct"] is None
    assert d["netRxBps"] == 10
    assert set(d) == {
        "ts", "uptimeSec", "processCpuPct", "systemCpuPct", "processMemMb", "heapUsedMb", "heapTotalMb",
        "systemMemUsedPct", "load1", "eventLoopLagMeanMs", "eventLoopLagMaxMs", "activeHandles",
        "activeRequests", "netRxBps", "netTxBps", "netRxBytes", "netTxBytes",
    }


def test_sample_is_immutable():
    s = Sample(ts=1, uptime_sec=0)
    with pytest.raises(Exception):
        s.ts = 2
