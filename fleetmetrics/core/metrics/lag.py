from __future__ import annotations

import asyncio
import threading
import time
from typing import Optional, Tuple


class LagMonitor:
    """
    Passive scheduling-delay observer.

    Without a loop, a daemon thread sleeps `resolution_ms` over and over and
    records how late it wakes up (interpreter/GIL scheduling delay). With an
    asyncio loop, timer callbacks are chained on that loop and their lateness
    is recorded instead, which is the loop's own lag.

    `read_and_reset()` reports only what was observed since the previous read.
    """

    def __init__(self, *, resolution_ms: int = 20, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.resolution_s = max(1, int(resolution_ms)) / 1000.0
        self._loop = loop
        self._lock = threading.Lock()
        self._count = 0
        self._sum_ms = 0.0
        self._max_ms = 0.0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._running = False

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._stop.clear()
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._arm)
            return
        self._thread = threading.Thread(target=self._run, name="lag-monitor", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._stop.set()
        if self._loop is not None:
            handle = self._handle
            if handle is not None and not self._loop.is_closed():
                self._loop.call_soon_threadsafe(handle.cancel)
            self._handle = None
            return
        if self._thread is not None and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
        self._thread = None

    def is_running(self) -> bool:
        return self._running

    def observe(self, delay_ms: float) -> None:
        d = max(0.0, float(delay_ms))
        with self._lock:
            self._count += 1
            self._sum_ms += d
            if d > self._max_ms:
                self._max_ms = d

    def read_and_reset(self) -> Tuple[Optional[float], Optional[float]]:
        with self._lock:
            count, total, peak = self._count, self._sum_ms, self._max_ms
            self._count = 0
            self._sum_ms = 0.0
            self._max_ms = 0.0
        if count == 0:
            return None, None
        return round(total / count, 2), round(peak, 2)

    # ---- thread mode ----
    def _run(self) -> None:
        while not self._stop.is_set():
            t0 = time.perf_counter()
            if self._stop.wait(self.resolution_s):
                break
            late_s = (time.perf_counter() - t0) - self.resolution_s
            self.observe(late_s * 1000.0)

    # ---- asyncio mode (runs on the loop) ----
    def _arm(self) -> None:
        if not self._running or self._loop is None:
            return
        due = self._loop.time() + self.resolution_s
        self._handle = self._loop.call_later(self.resolution_s, self._fire, due)

    def _fire(self, due: float) -> None:
        if not self._running or self._loop is None:
            return
        self.observe((self._loop.time() - due) * 1000.0)
        self._arm()
