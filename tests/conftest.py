from __future__ import annotations

import pytest

from tests.helpers.fakes import FakeClock


@pytest.fixture(autouse=True)
def _clean_metrics_env(monkeypatch):
    """
    Keeps SYSTEM_METRICS_* from the developer shell out of config defaults.
    """
    for key in ("SYSTEM_METRICS_SAMPLE_MS", "SYSTEM_METRICS_RETAIN_HOURS", "SYSTEM_METRICS_ENABLED", "SYSTEM_METRICS_LAG_RESOLUTION_MS"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def fake_clock():
    return FakeClock()
