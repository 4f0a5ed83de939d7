"""
Version Manifest — Versions of AI models, cache schemas and pipelines.

Versions change with deployments, not at runtime. Cached values carry the
version they were written under; a version bump changes every cache key
(namespace invalidation) and compatibility checks decide whether an
entry written by another version can still be trusted.

## Usage

    from civicops.versioning.manifest import VersionManifest, is_cache_compatible

    manifest = VersionManifest()
    key = manifest.create_versioned_cache_key("abc123", "searchIndex")
    # "v1.0.0:abc123"

    is_cache_compatible("1.2.0", "1.1.0")  # True
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

from ..clock import Clock, parse_date, system_clock, to_iso
from ..validation import ValidationError

logger = logging.getLogger(__name__)

SEMVER_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")

DEFAULT_VERSIONS: Dict[str, Dict[str, str]] = {
    "ai": {
        "preprocessor": "1.0.0",
        "classifier": "1.0.0",
        "priorityScorer": "1.0.0",
        "duplicateDetector": "1.0.0",
        "searchService": "1.0.0",
        "templates": "1.0.0",
        "trends": "1.0.0",
        "verification": "1.0.0",
    },
    "cache": {
        "translationCache": "1.0.0",
        "searchIndex": "1.0.0",
        "embeddings": "1.0.0",
        "lruCache": "1.0.0",
    },
    "pipeline": {
        "complaintProcessing": "1.0.0",
        "batchDaily": "1.0.0",
        "batchWeekly": "1.0.0",
    },
}

DEFAULT_SYSTEM_VERSION = "3.0.0"


class VersionHistoryEntry(BaseModel):
    """One released system version."""

    model_config = ConfigDict(frozen=True)

    version: str
    date: str
    phase: int
    description: str = ""

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        if not SEMVER_PATTERN.match(value):
            raise ValueError(f"not a MAJOR.MINOR.PATCH version: {value!r}")
        return value

    @field_validator("date")
    @classmethod
    def _check_date(cls, value: str) -> str:
        parse_date(value)
        return value


DEFAULT_HISTORY: Tuple[VersionHistoryEntry, ...] = (
    VersionHistoryEntry(version="1.0.0", date="2025-02-04", phase=1, description="Initial AI implementation"),
    VersionHistoryEntry(version="2.0.0", date="2025-02-04", phase=2, description="Productivity features"),
    VersionHistoryEntry(version="3.0.0", date="2025-02-04", phase=3, description="Engineering maturity"),
)


def _major_minor(version: Any) -> Optional[Tuple[int, int]]:
    """Read MAJOR.MINOR from "MAJOR.MINOR[.PATCH]"; None when unreadable."""
    if not isinstance(version, str):
        return None
    parts = version.split(".")
    if len(parts) < 2:
        return None
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        return None


def is_cache_compatible(cached_version: Optional[str], required_version: Optional[str]) -> bool:
    """
    Decide whether a cache entry written under cached_version may serve a
    reader that requires required_version.

    Patch levels are ignored. Majors must match; the cached minor must be
    at least the required minor, so a newer minor can serve an older
    requirement but not the other way round. A missing or unreadable
    version is incompatible, never an error.
    """
    if not cached_version:
        return False

    cached = _major_minor(cached_version)
    required = _major_minor(required_version)
    if cached is None or required is None:
        return False

    cached_major, cached_minor = cached
    required_major, required_minor = required

    if cached_major != required_major:
        return False

    return cached_minor >= required_minor


@dataclass(frozen=True)
class CacheValidation:
    """Whether entries written under one version are usable for a service."""

    service: str
    cached_version: Optional[str]
    expected_version: str
    compatible: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service": self.service,
            "cached_version": self.cached_version,
            "expected_version": self.expected_version,
            "compatible": self.compatible,
        }


class VersionManifest:
    """
    Current component versions plus the chronological release history.
    """

    def __init__(
        self,
        versions: Optional[Dict[str, Dict[str, str]]] = None,
        system: str = DEFAULT_SYSTEM_VERSION,
        history: Optional[Iterable[VersionHistoryEntry]] = None,
        clock: Clock = system_clock,
    ):
        self._versions = copy.deepcopy(versions if versions is not None else DEFAULT_VERSIONS)
        self._system = system
        self._history = list(history if history is not None else DEFAULT_HISTORY)
        self._clock = clock

    @property
    def system(self) -> str:
        """Current system version."""
        return self._system

    def get_version(self, category: str, name: str) -> Optional[str]:
        return self._versions.get(category, {}).get(name)

    def get_versions(self) -> Dict[str, Any]:
        """Copy of every tracked version with a generation timestamp."""
        return {
            **self.versions_dict(),
            "generated_at": to_iso(self._clock()),
        }

    def versions_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = copy.deepcopy(self._versions)
        result["system"] = self._system
        return result

    def get_version_history(self) -> Tuple[VersionHistoryEntry, ...]:
        """Release history, oldest first."""
        return tuple(self._history)

    def index_of(self, version: str) -> int:
        """Position of version in the history by exact match, -1 if absent."""
        for i, entry in enumerate(self._history):
            if entry.version == version:
                return i
        return -1

    def record_version(self, entry: VersionHistoryEntry) -> None:
        """
        Append a release to the history.

        Raises:
            ValidationError: If the version is already recorded or the
                entry is dated before the latest release
        """
        if self.index_of(entry.version) != -1:
            raise ValidationError(
                f"Version {entry.version} already in history",
                field="version",
            )
        if self._history:
            latest = self._history[-1]
            if parse_date(entry.date) < parse_date(latest.date):
                raise ValidationError(
                    f"Version {entry.version} dated {entry.date} precedes latest release "
                    f"{latest.version} ({latest.date})",
                    field="date",
                )
        self._history.append(entry)
        logger.info(f"Recorded version {entry.version} (phase {entry.phase})", extra={"version": entry.version})

    def cache_version(self, service: str) -> str:
        """Cache schema version for a service, falling back to the system version."""
        return self._versions.get("cache", {}).get(service) or self._system

    def create_versioned_cache_key(self, base_key: str, service: str) -> str:
        """Prefix a cache key with the service's cache schema version."""
        return f"v{self.cache_version(service)}:{base_key}"

    def validate_cache_version(self, service: str, cached_version: Optional[str]) -> CacheValidation:
        """Check entries written under cached_version against the current schema."""
        expected = self.cache_version(service)
        compatible = is_cache_compatible(cached_version, expected)
        if not compatible:
            logger.info(
                f"Cache entries for {service} at {cached_version} are stale (expected {expected})",
                extra={"version": expected},
            )
        return CacheValidation(
            service=service,
            cached_version=cached_version,
            expected_version=expected,
            compatible=compatible,
        )
