"""
Versioning Module — Component versions, cache compatibility, rollback plans.
"""

from .manifest import (
    CacheValidation,
    VersionHistoryEntry,
    VersionManifest,
    is_cache_compatible,
)
from .migrations import (
    MigrationRecord,
    MigrationRegistry,
    RollbackPlan,
    RollbackStep,
    register_default_migrations,
)

__all__ = [
    "VersionManifest",
    "VersionHistoryEntry",
    "CacheValidation",
    "is_cache_compatible",
    "MigrationRegistry",
    "MigrationRecord",
    "RollbackPlan",
    "RollbackStep",
    "register_default_migrations",
]
