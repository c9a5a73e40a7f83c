from __future__ import annotations

import os
import sys
import tracemalloc
from typing import Any, Iterable, Optional

import psutil

from fleetmetrics.core.errors import ProbeError
from fleetmetrics.core.metrics.models import CpuTimes, NetCounters, ProcessMemory

PROC_NET_DEV = "/proc/net/dev"
_LOOPBACK_NAMES = {"lo", "lo0"}
# user + nice + system + idle + irq, summed per core
_CPU_TOTAL_FIELDS = ("user", "nice", "system", "idle", "irq")


class PlatformProbe:
    """
    Raw, cumulative OS/process counters. Stateless per call.

    Every read returns a value or None; nothing here raises for a metric the
    platform cannot provide.
    """

    def __init__(self, *, psutil_module: Any = None, pid: Optional[int] = None, logger=None):
        self._psutil = psutil_module if psutil_module is not None else psutil
        self.logger = logger
        self._proc = None
        try:
            self._proc = self._psutil.Process(pid if pid is not None else os.getpid())
        except Exception as e:  # noqa: BLE001
            self._debug(f"process handle unavailable: {e}")
            self._proc = None

    # ---- cpu ----
    def cpu_times(self) -> Optional[CpuTimes]:
        try:
            per_core = list(self._psutil.cpu_times(percpu=True) or [])
        except Exception as e:  # noqa: BLE001
            self._debug(f"cpu_times unavailable: {e}")
            return None
        idle = 0.0
        total = 0.0
        for t in per_core:
            total += sum(float(getattr(t, name, 0.0) or 0.0) for name in _CPU_TOTAL_FIELDS)
            idle += float(getattr(t, "idle", 0.0) or 0.0)
        return CpuTimes(idle=idle, total=total, cores=len(per_core) or 1)

    def process_cpu_seconds(self) -> Optional[float]:
        if self._proc is None:
            return None
        try:
            t = self._proc.cpu_times()
            return float(t.user) + float(t.system)
        except Exception as e:  # noqa: BLE001
            self._debug(f"process cpu_times unavailable: {e}")
            return None

    def process_start_time(self) -> Optional[float]:
        if self._proc is None:
            return None
        try:
            return float(self._proc.create_time())
        except Exception as e:  # noqa: BLE001
            self._debug(f"create_time unavailable: {e}")
            return None

    # ---- memory ----
    def process_memory(self) -> ProcessMemory:
        rss: Optional[int] = None
        if self._proc is not None:
            try:
                rss = int(self._proc.memory_info().rss)
            except Exception as e:  # noqa: BLE001
                self._debug(f"memory_info unavailable: {e}")
        heap_used: Optional[int] = None
        heap_total: Optional[int] = None
        # Python has no fixed-size managed heap; traced allocations stand in when tracing is on.
        if tracemalloc.is_tracing():
            current, peak = tracemalloc.get_traced_memory()
            heap_used = int(current)
            heap_total = int(peak)
        return ProcessMemory(rss_bytes=rss, heap_used_bytes=heap_used, heap_total_bytes=heap_total)

    def system_memory_used_pct(self) -> Optional[float]:
        try:
            vm = self._psutil.virtual_memory()
            total = float(vm.total)
            free = float(vm.available)
        except Exception as e:  # noqa: BLE001
            self._debug(f"virtual_memory unavailable: {e}")
            return None
        if total <= 0:
            return None
        pct = round((1.0 - free / total) * 100.0, 2)
        return max(0.0, min(100.0, pct))

    def load_average(self) -> Optional[float]:
        try:
            return round(float(self._psutil.getloadavg()[0]), 2)
        except Exception as e:  # noqa: BLE001
            self._debug(f"load average unavailable: {e}")
            return None

    # ---- handles ----
    def active_handles(self) -> Optional[int]:
        if self._proc is None:
            return None
        for name in ("num_fds", "num_handles"):
            fn = getattr(self._proc, name, None)
            if fn is None:
                continue
            try:
                return int(fn())
            except Exception as e:  # noqa: BLE001
                self._debug(f"{name} unavailable: {e}")
                return None
        return None

    def active_requests(self) -> Optional[int]:
        if self._proc is None:
            return None
        try:
            return int(self._proc.num_threads())
        except Exception as e:  # noqa: BLE001
            self._debug(f"num_threads unavailable: {e}")
            return None

    # ---- network ----
    def net_counters(self) -> Optional[NetCounters]:
        try:
            per_nic = self._psutil.net_io_counters(pernic=True) or {}
        except Exception as e:  # noqa: BLE001
            self._debug(f"net_io_counters unavailable: {e}")
            return None
        if not per_nic:
            return None
        rx = 0
        tx = 0
        for name, c in per_nic.items():
            if _is_loopback(name):
                continue
            rx += int(c.bytes_recv)
            tx += int(c.bytes_sent)
        return NetCounters(rx_bytes=rx, tx_bytes=tx)

    def _debug(self, msg: str) -> None:
        if self.logger is not None:
            self.logger.debug(f"probe: {msg}")


class LinuxProbe(PlatformProbe):
    """Reads network totals straight from /proc/net/dev."""

    def __init__(self, *, net_dev_path: str = PROC_NET_DEV, **kwargs: Any):
        super().__init__(**kwargs)
        self.net_dev_path = net_dev_path

    def net_counters(self) -> Optional[NetCounters]:
        try:
            text = _read_text(self.net_dev_path)
        except ProbeError as e:
            self._debug(f"{e.message} ({self.net_dev_path})")
            return None
        return parse_proc_net_dev(text.splitlines())


def parse_proc_net_dev(lines: Iterable[str]) -> NetCounters:
    """
    Sum rx/tx byte columns over every interface except loopback.
    The first two lines are the column headers.
    """
    rx_total = 0
    tx_total = 0
    for i, line in enumerate(lines):
        if i < 2 or not line.strip():
            continue
        iface, sep, data = line.partition(":")
        iface = iface.strip()
        if not sep or not iface or _is_loopback(iface):
            continue
        cols = data.split()
        rx = _as_int(cols[0]) if len(cols) > 0 else None
        tx = _as_int(cols[8]) if len(cols) > 8 else None
        if rx is not None:
            rx_total += rx
        if tx is not None:
            tx_total += tx
    return NetCounters(rx_bytes=rx_total, tx_bytes=tx_total)


def create_probe(*, platform: Optional[str] = None, logger=None) -> PlatformProbe:
    plat = sys.platform if platform is None else platform
    if plat.startswith("linux") and os.path.exists(PROC_NET_DEV):
        return LinuxProbe(logger=logger)
    return PlatformProbe(logger=logger)


def _read_text(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ProbeError("network", "Counter source unreadable.", path=path, error=str(e)) from e


def _as_int(raw: str) -> Optional[int]:
    try:
        return int(raw)
    except ValueError:
        return None


def _is_loopback(name: str) -> bool:
    n = str(name).strip()
    return n in _LOOPBACK_NAMES or n.lower().startswith("loopback")
