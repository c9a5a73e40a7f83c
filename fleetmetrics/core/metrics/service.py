from __future__ import annotations

import os
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from fleetmetrics.core.errors import ProbeError
from fleetmetrics.core.metrics.delta import DeltaCalculator
from fleetmetrics.core.metrics.history import HistoryStore
from fleetmetrics.core.metrics.lag import LagMonitor
from fleetmetrics.core.metrics.models import ProcessMemory, Sample, SystemMetricsConfig, bytes_to_mb
from fleetmetrics.core.metrics.probe import PlatformProbe, create_probe
from fleetmetrics.core.metrics.query import MetricsQuery
from fleetmetrics.core.metrics.stats import CollectorStats


class SystemMetricsService:
    """
    Periodic host/process sampler with a bounded in-memory history.

    - one timer thread, collections never overlap
    - start()/stop() are idempotent
    - nothing is appended once stop() has returned
    - queries work before start() and keep the frozen history after stop()
    """

    def __init__(
        self,
        *,
        cfg: Optional[SystemMetricsConfig] = None,
        probe: Optional[PlatformProbe] = None,
        lag_monitor: Optional[LagMonitor] = None,
        logger=None,
        now: Callable[[], float] = time.time,
        process_started_at: Optional[float] = None,
    ):
        self.cfg = cfg if cfg is not None else SystemMetricsConfig.from_env()
        self.logger = logger
        self._now = now
        self._probe = probe if probe is not None else create_probe(logger=logger)
        self._lag = lag_monitor if lag_monitor is not None else LagMonitor(resolution_ms=self.cfg.lag_resolution_ms)
        self._delta = DeltaCalculator()
        self._store = HistoryStore(self.cfg.capacity)
        self.query = MetricsQuery(self._store, now=now)
        self.stats = CollectorStats()

        started = process_started_at
        if started is None:
            started = self._probe.process_start_time()
        self._process_started_at = float(started) if started is not None else float(now())

        self._state_lock = threading.Lock()
        self._tick_lock = threading.Lock()
        self._generation = 0
        self._running = False
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._last_errors: Dict[str, Dict[str, Any]] = {}

    # -------- lifecycle --------
    def start(self) -> None:
        if not self.cfg.enabled:
            return
        with self._state_lock:
            if self._running:
                return
            self._running = True
            self._generation += 1
            generation = self._generation
            stop_event = threading.Event()
            self._stop_event = stop_event
            # monitor state only changes under the lock
            self._lag.start()
        self._tick(generation)
        thread = threading.Thread(target=self._run, args=(generation, stop_event), name="system-metrics", daemon=True)
        with self._state_lock:
            stale = generation != self._generation
            if not stale:
                self._thread = thread
        if stale:
            # stop() raced the first collection and already stopped the monitor
            return
        thread.start()
        if self.logger is not None:
            self.logger.info(f"System metrics sampling started (interval={self.cfg.sample_interval_ms}ms, capacity={self._store.capacity})")

    def stop(self) -> None:
        with self._state_lock:
            if not self._running:
                return
            self._running = False
            self._generation += 1
            thread = self._thread
            stop_event = self._stop_event
            self._thread = None
            self._stop_event = None
            self._lag.stop()
        if stop_event is not None:
            stop_event.set()
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        if self.logger is not None:
            self.logger.info("System metrics sampling stopped")

    def is_running(self) -> bool:
        with self._state_lock:
            return self._running

    def __enter__(self) -> "SystemMetricsService":
        self.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.stop()

    # -------- queries --------
    def get_latest(self) -> Optional[Sample]:
        return self.query.latest()

    def get_history(self, hours: Any = 24) -> List[Sample]:
        return self.query.history(hours)

    def get_stats(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "running": self.is_running(),
            "capacity": self._store.capacity,
            "stored": len(self._store),
        }
        with self._state_lock:
            out["last_errors"] = {k: dict(v) for k, v in self._last_errors.items()}
        out.update(self.stats.snapshot())
        return out

    # -------- collection --------
    def collect_once(self) -> Sample:
        """Collect and store one sample right now, outside the timer."""
        with self._tick_lock:
            sample = self._collect()
            self._store.append(sample)
        self.stats.inc("ticks_total")
        return sample

    def _run(self, generation: int, stop_event: threading.Event) -> None:
        interval = self.cfg.sample_interval_ms / 1000.0
        next_due = time.monotonic() + interval
        while not stop_event.wait(max(0.0, next_due - time.monotonic())):
            self._tick(generation)
            next_due += interval
            now = time.monotonic()
            if next_due <= now:
                # overran: realign instead of firing a burst of catch-up ticks
                next_due = now + interval

    def _tick(self, generation: int) -> None:
        with self._tick_lock:
            t0 = time.perf_counter()
            try:
                sample = self._collect()
            except Exception as e:  # noqa: BLE001
                self.stats.inc("tick_errors_total")
                if self.logger is not None:
                    self.logger.warning(f"System metrics tick failed: {e}")
                return
            with self._state_lock:
                if generation != self._generation:
                    self.stats.inc("ticks_discarded_total")
                    return
                self._store.append(sample)
            self.stats.inc("ticks_total")
            self.stats.observe("collect_latency_ms", (time.perf_counter() - t0) * 1000.0)

    def _collect(self) -> Sample:
        now = float(self._now())
        ts = int(now * 1000)
        last_ts = self._store.latest_ts()
        if last_ts is not None and ts < last_ts:
            # wall clock stepped back; keep the history ordered
            ts = last_ts

        cpu = self._read("cpu", self._probe.cpu_times)
        system_cpu = self._delta.system_cpu_percent(cpu)
        cores = cpu.cores if cpu is not None else (os.cpu_count() or 1)
        process_cpu = self._delta.process_cpu_percent(self._read("process_cpu", self._probe.process_cpu_seconds), cores, now)

        mem = self._read("process_memory", self._probe.process_memory) or ProcessMemory()
        net = self._delta.network_rates(self._read("network", self._probe.net_counters), now)
        lag_mean, lag_max = self._lag.read_and_reset()

        return Sample(
            ts=ts,
            uptime_sec=max(0, int(now - self._process_started_at + 0.5)),
            process_cpu_pct=process_cpu,
            system_cpu_pct=system_cpu,
            process_mem_mb=bytes_to_mb(mem.rss_bytes),
            heap_used_mb=bytes_to_mb(mem.heap_used_bytes),
            heap_total_mb=bytes_to_mb(mem.heap_total_bytes),
            system_mem_used_pct=self._read("system_memory", self._probe.system_memory_used_pct),
            load1=self._read("load", self._probe.load_average),
            event_loop_lag_mean_ms=lag_mean,
            event_loop_lag_max_ms=lag_max,
            active_handles=self._read("handles", self._probe.active_handles),
            active_requests=self._read("threads", self._probe.active_requests),
            net_rx_bps=net.rx_bps,
            net_tx_bps=net.tx_bps,
            net_rx_bytes=net.rx_bytes,
            net_tx_bytes=net.tx_bytes,
        )

    def _read(self, group: str, fn: Callable[[], Any]) -> Any:
        try:
            value = fn()
        except Exception as e:  # noqa: BLE001
            err = e if isinstance(e, ProbeError) else ProbeError(group, "Metric group degraded.", error=str(e))
            self.stats.inc("probe_failures_total", tags={"group": group})
            with self._state_lock:
                self._last_errors[group] = err.to_dict()
            if self.logger is not None:
                self.logger.debug(f"probe group {group} degraded: {e}")
            return None
        if value is None:
            self.stats.inc("metrics_unavailable_total", tags={"group": group})
        return value
