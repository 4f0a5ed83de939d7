"""
Migrations — Registry of migration procedures and rollback planning.

Procedures are stored by reference and never called here. Rolling back
live infrastructure is an operator decision; this module only works out
which registered rollback procedures apply, and in what order.

## Usage

    from civicops.versioning import MigrationRegistry, VersionManifest

    registry = MigrationRegistry(VersionManifest())
    registry.register_migration("2.0.0", "3.0.0", upgrade, downgrade)

    plan = registry.rollback("2.0.0")
    for step in plan.steps:
        print(step.from_version, "->", step.to_version)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..clock import Clock, system_clock, to_iso
from ..validation import RollbackError
from .manifest import VersionManifest

logger = logging.getLogger(__name__)

Procedure = Callable[[], Any]

ROLLBACK_NOTE = "Execute rollback scripts manually for safety"


def migration_key(from_version: str, to_version: str) -> str:
    return f"{from_version}->{to_version}"


def _procedure_name(procedure: Optional[Procedure]) -> Optional[str]:
    if procedure is None:
        return None
    return getattr(procedure, "__qualname__", repr(procedure))


@dataclass(frozen=True)
class MigrationRecord:
    """Forward and backward procedures for one directed version pair."""

    from_version: str
    to_version: str
    migrate: Optional[Procedure]
    rollback: Optional[Procedure]
    registered_at: float

    @property
    def key(self) -> str:
        return migration_key(self.from_version, self.to_version)


@dataclass(frozen=True)
class RollbackStep:
    """Undo one release: from the newer version back to the older one."""

    from_version: str
    to_version: str
    script: Procedure

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_version,
            "to": self.to_version,
            "script": _procedure_name(self.script),
        }


@dataclass(frozen=True)
class RollbackPlan:
    """Ordered rollback steps, most recent release first."""

    from_version: str
    to_version: str
    steps: Tuple[RollbackStep, ...]

    @property
    def rollback_steps(self) -> int:
        return len(self.steps)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_version,
            "to": self.to_version,
            "rollback_steps": self.rollback_steps,
            "steps": [s.to_dict() for s in self.steps],
            "note": ROLLBACK_NOTE,
        }


class MigrationRegistry:
    """
    Migration procedures keyed by "<from>-><to>".

    Records are registered once at startup and never removed.
    """

    def __init__(self, manifest: VersionManifest, clock: Clock = system_clock):
        self.manifest = manifest
        self._clock = clock
        self._migrations: Dict[str, MigrationRecord] = {}
        self._lock = Lock()

    def register_migration(
        self,
        from_version: str,
        to_version: str,
        migrate: Optional[Procedure] = None,
        rollback: Optional[Procedure] = None,
    ) -> MigrationRecord:
        """Store procedures for a version pair, replacing any earlier registration."""
        record = MigrationRecord(
            from_version=from_version,
            to_version=to_version,
            migrate=migrate,
            rollback=rollback,
            registered_at=self._clock(),
        )
        with self._lock:
            replaced = record.key in self._migrations
            self._migrations[record.key] = record

        action = "Replaced" if replaced else "Registered"
        logger.info(f"{action} migration {record.key}", extra={"migration": record.key})
        return record

    def get(self, from_version: str, to_version: str) -> Optional[MigrationRecord]:
        return self._migrations.get(migration_key(from_version, to_version))

    def keys(self) -> List[str]:
        """Registered pair keys in registration order."""
        return list(self._migrations)

    def get_migration_plan(self, from_version: str, to_version: str) -> Dict[str, Any]:
        """
        Look up a single directly registered hop.

        No multi-hop search is done; an unregistered pair is reported as
        unavailable rather than raised.
        """
        record = self.get(from_version, to_version)
        if record is None:
            return {"available": False, "from": from_version, "to": to_version}

        return {
            "available": True,
            "from": from_version,
            "to": to_version,
            "has_migrate": record.migrate is not None,
            "has_rollback": record.rollback is not None,
        }

    def rollback(self, target_version: str) -> RollbackPlan:
        """
        Plan a rollback from the current system version to target_version.

        Walks the history from the current release back towards the
        target. Adjacent pairs without a registered rollback procedure are
        skipped, so the plan may hold fewer steps than releases crossed.
        Nothing is executed.

        Raises:
            RollbackError: Target not in history, or not strictly older
                than the current version
        """
        current = self.manifest.system
        history = self.manifest.get_version_history()
        current_idx = self.manifest.index_of(current)
        target_idx = self.manifest.index_of(target_version)

        if target_idx == -1:
            raise RollbackError(
                f"Version {target_version} not found in history",
                field="target_version",
            )

        if target_idx >= current_idx:
            raise RollbackError(
                f"Cannot rollback from {current} to same or newer version {target_version}",
                field="target_version",
                details={"current": current, "target": target_version},
            )

        steps = []
        for i in range(current_idx, target_idx, -1):
            newer = history[i].version
            older = history[i - 1].version
            record = self.get(older, newer)
            if record is not None and record.rollback is not None:
                steps.append(RollbackStep(from_version=newer, to_version=older, script=record.rollback))
            else:
                logger.debug(f"No rollback registered for {migration_key(older, newer)}")

        plan = RollbackPlan(from_version=current, to_version=target_version, steps=tuple(steps))
        logger.info(
            f"Rollback plan {current} → {target_version}: {plan.rollback_steps} step(s)",
            extra={"version": target_version},
        )
        return plan

    def export_manifest(self) -> Dict[str, Any]:
        """Read-only snapshot of versions, history and registered pairs."""
        return {
            "versions": self.manifest.versions_dict(),
            "history": [e.model_dump() for e in self.manifest.get_version_history()],
            "migrations": self.keys(),
            "exported_at": to_iso(self._clock()),
        }


def _upgrade_phase2_to_phase3() -> Dict[str, bool]:
    logger.info("[Migration] Upgrading from 2.0.0 to 3.0.0: start job queues, batch handlers, metrics collection")
    return {"success": True}


def _rollback_phase3_to_phase2() -> Dict[str, bool]:
    logger.info("[Migration] Rolling back from 3.0.0 to 2.0.0: stop schedulers, clear queue state")
    return {"success": True}


def register_default_migrations(registry: MigrationRegistry) -> None:
    """Register the migrations shipped with the current release."""
    registry.register_migration(
        "2.0.0",
        "3.0.0",
        _upgrade_phase2_to_phase3,
        _rollback_phase3_to_phase2,
    )
