"""
Runtime — The process-wide control plane handle.

Bundles the metrics registry, health evaluator, version manifest and
migration registry. Host code creates one at startup (or uses the
global accessor) and passes it to collaborators; tests build a fresh
instance instead of resetting shared state.

## Usage

    from civicops.runtime import get_control_plane

    plane = get_control_plane()
    plane.metrics.record_request(12.5)
    print(plane.health.get_health()["status"])
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Optional

from .clock import Clock, system_clock
from .observability.health import AlertThresholds, HealthEvaluator
from .observability.metrics import MemoryReader, MetricsRegistry, read_memory_usage
from .versioning.manifest import VersionManifest
from .versioning.migrations import MigrationRegistry, register_default_migrations

logger = logging.getLogger(__name__)


class ControlPlane:
    """Owner of the observability and versioning components."""

    def __init__(
        self,
        thresholds: Optional[AlertThresholds] = None,
        manifest: Optional[VersionManifest] = None,
        clock: Clock = system_clock,
        memory_reader: MemoryReader = read_memory_usage,
        register_defaults: bool = True,
    ):
        self.metrics = MetricsRegistry(clock=clock, memory_reader=memory_reader)
        self.health = HealthEvaluator(self.metrics, thresholds)
        self.manifest = manifest or VersionManifest(clock=clock)
        self.migrations = MigrationRegistry(self.manifest, clock=clock)

        if register_defaults:
            register_default_migrations(self.migrations)

    def reset(self) -> None:
        """Zero metrics and drop active alerts (tests only)."""
        self.metrics.reset_metrics()
        self.health.clear_alerts()


# Global control plane instance
_control_plane: Optional[ControlPlane] = None
_control_plane_lock = Lock()


def get_control_plane() -> ControlPlane:
    """Get the global control plane, loading thresholds on first access."""
    global _control_plane
    if _control_plane is None:
        with _control_plane_lock:
            if _control_plane is None:
                from .config.loader import load_thresholds

                _control_plane = ControlPlane(thresholds=load_thresholds())
                logger.debug("Control plane initialized")
    return _control_plane


def set_control_plane(plane: Optional[ControlPlane]) -> None:
    """Install (or clear, with None) the global control plane."""
    global _control_plane
    with _control_plane_lock:
        _control_plane = plane
