"""
Shared fixtures for control plane tests.

Provides a fresh ControlPlane per test with a controllable clock and a
fixed memory reading, so health results never depend on the memory of
the test process.
"""

from __future__ import annotations

import pytest

from civicops.observability.metrics import MemoryUsage
from civicops.runtime import ControlPlane, set_control_plane

START_TS = 1_738_627_200.0  # 2025-02-04T00:00:00Z


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: float = START_TS):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FixedMemory:
    """Memory reader returning a configurable value."""

    def __init__(self, heap_used_mb: int = 40):
        self.heap_used_mb = heap_used_mb

    def __call__(self) -> MemoryUsage:
        return MemoryUsage(
            heap_used_mb=self.heap_used_mb,
            heap_total_mb=self.heap_used_mb * 2,
            rss_mb=self.heap_used_mb,
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory() -> FixedMemory:
    return FixedMemory()


@pytest.fixture
def plane(clock, memory) -> ControlPlane:
    """Fresh control plane with default thresholds and migrations."""
    return ControlPlane(clock=clock, memory_reader=memory)


@pytest.fixture
def global_plane(plane):
    """Install the fresh control plane as the process-wide instance."""
    set_control_plane(plane)
    yield plane
    set_control_plane(None)
