from __future__ import annotations

import pytest

from fleetmetrics.core.metrics.delta import DeltaCalculator
from fleetmetrics.core.metrics.models import CpuTimes, NetCounters


def test_system_cpu_first_call_is_unavailable_then_percent():
    d = DeltaCalculator()
    assert d.system_cpu_percent(CpuTimes(idle=100, total=200, cores=4)) is None
    assert d.system_cpu_percent(CpuTimes(idle=150, total=300, cores=4)) == pytest.approx(50.0)


def test_system_cpu_zero_or_negative_total_diff_is_unavailable():
    d = DeltaCalculator()
    d.system_cpu_percent(CpuTimes(idle=100, total=200, cores=1))
    assert d.system_cpu_percent(CpuTimes(idle=100, total=200, cores=1)) is None
    # counter reset
    assert d.system_cpu_percent(CpuTimes(idle=10, total=20, cores=1)) is None
    # next interval is measured from the reset values
    assert d.system_cpu_percent(CpuTimes(idle=20, total=40, cores=1)) == pytest.approx(50.0)


@pytest.mark.parametrize(
    "prev,curr",
    [
        ((100, 200), (400, 300)),  # idle grew more than total
        ((100, 200), (50, 300)),  # idle went backwards
    ],
)
def test_system_cpu_is_clamped_for_adversarial_counters(prev, curr):
    d = DeltaCalculator()
    d.system_cpu_percent(CpuTimes(idle=prev[0], total=prev[1], cores=2))
    pct = d.system_cpu_percent(CpuTimes(idle=curr[0], total=curr[1], cores=2))
    assert pct is not None
    assert 0.0 <= pct <= 100.0


def test_system_cpu_missing_reading_keeps_previous_snapshot():
    d = DeltaCalculator()
    d.system_cpu_percent(CpuTimes(idle=100, total=200, cores=1))
    assert d.system_cpu_percent(None) is None
    assert d.system_cpu_percent(CpuTimes(idle=150, total=300, cores=1)) == pytest.approx(50.0)


def test_process_cpu_first_call_unavailable_then_divided_by_cores():
    d = DeltaCalculator()
    assert d.process_cpu_percent(10.0, 2, now=1000.0) is None
    # 1s of cpu over 2s of wall time on 2 cores -> 25%
    assert d.process_cpu_percent(11.0, 2, now=1002.0) == pytest.approx(25.0)


def test_process_cpu_zero_elapsed_is_unavailable_and_snapshot_refreshed():
    d = DeltaCalculator()
    d.process_cpu_percent(1.0, 1, now=50.0)
    assert d.process_cpu_percent(2.0, 1, now=50.0) is None
    # measured from the refreshed snapshot (2.0 @ 50.0), not the first one
    assert d.process_cpu_percent(2.5, 1, now=51.0) == pytest.approx(50.0)


def test_process_cpu_is_clamped_to_100():
    d = DeltaCalculator()
    d.process_cpu_percent(0.0, 1, now=0.0)
    assert d.process_cpu_percent(5.0, 1, now=1.0) == 100.0


def test_process_cpu_missing_reading_rebootstraps():
    d = DeltaCalculator()
    d.process_cpu_percent(1.0, 1, now=0.0)
    assert d.process_cpu_percent(None, 1, now=1.0) is None
    assert d.process_cpu_percent(3.0, 1, now=2.0) is None
    assert d.process_cpu_percent(3.5, 1, now=3.0) == pytest.approx(50.0)


def test_network_rates_and_counter_reset():
    d = DeltaCalculator()
    first = d.network_rates(NetCounters(rx_bytes=1000, tx_bytes=0), now=10.0)
    assert first.rx_bps is None and first.tx_bps is None
    assert first.rx_bytes == 1000

    second = d.network_rates(NetCounters(rx_bytes=1500, tx_bytes=300), now=11.0)
    assert second.rx_bps == 500
    assert second.tx_bps == 300

    reset = d.network_rates(NetCounters(rx_bytes=200, tx_bytes=400), now=12.0)
    assert reset.rx_bps is None
    assert reset.tx_bps == 100
    assert reset.rx_bytes == 200
    assert reset.tx_bytes == 400


def test_network_dt_has_one_second_floor():
    d = DeltaCalculator()
    d.network_rates(NetCounters(rx_bytes=0, tx_bytes=0), now=10.0)
    r = d.network_rates(NetCounters(rx_bytes=800, tx_bytes=0), now=10.1)
    assert r.rx_bps == 800


def test_network_rates_round_half_up():
    d = DeltaCalculator()
    d.network_rates(NetCounters(rx_bytes=0, tx_bytes=0), now=0.0)
    r = d.network_rates(NetCounters(rx_bytes=5, tx_bytes=3), now=2.0)
    assert r.rx_bps == 3
    assert r.tx_bps == 2


def test_network_unavailable_counters_blank_all_fields():
    d = DeltaCalculator()
    d.network_rates(NetCounters(rx_bytes=100, tx_bytes=100), now=0.0)
    r = d.network_rates(None, now=1.0)
    assert (r.rx_bps, r.tx_bps, r.rx_bytes, r.tx_bytes) == (None, None, None, None)
    # previous counters survive an unreadable tick
    r2 = d.network_rates(NetCounters(rx_bytes=300, tx_bytes=100), now=2.0)
    assert r2.rx_bps == 100
    assert r2.tx_bps == 0
