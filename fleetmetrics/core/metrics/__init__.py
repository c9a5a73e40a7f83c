"""
System metrics sampling (process-local, in-memory only).

Periodically measures:
- CPU usage (system and this process), derived from cumulative counters
- Memory (process RSS, traced heap, system used percent) and load average
- Network throughput across non-loopback interfaces
- Scheduling lag observed between ticks

and keeps a bounded, time-ordered history of the samples. Nothing is
persisted or exported over the network.
"""

from fleetmetrics.core.metrics.models import Sample, SystemMetricsConfig
from fleetmetrics.core.metrics.service import SystemMetricsService

__all__ = ["Sample", "SystemMetricsConfig", "SystemMetricsService"]
