"""
Validation — Error types and validation helpers.

Provides consistent validation patterns across the codebase.

## Usage

    from civicops.validation import ValidationError, validate_thresholds

    for issue in validate_thresholds(thresholds):
        print(f"Suspicious threshold: {issue}")
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional


class ValidationError(Exception):
    """Raised when validation fails."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict] = None):
        self.message = message
        self.field = field
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.field:
            return f"{self.field}: {self.message}"
        return self.message


class RollbackError(ValidationError):
    """Raised when a rollback target is missing or not older than current."""
    pass


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""
    pass


def validate_known_fields(data: Dict[str, Any], allowed: Iterable[str], description: str) -> None:
    """Reject keys that are not part of a known field set."""
    allowed = set(allowed)
    unknown = sorted(k for k in data if k not in allowed)
    if unknown:
        raise ValidationError(
            f"Unknown {description} fields: {unknown}",
            details={"unknown": unknown, "allowed": sorted(allowed)},
        )


def validate_thresholds(values: Dict[str, float]) -> List[str]:
    """
    Report threshold values that will alert always or never.

    Nothing is corrected here; the caller decides what to do with the
    returned messages.

    Returns:
        Human-readable issues, empty when nothing looks wrong
    """
    issues = []

    for name, value in sorted(values.items()):
        if value < 0:
            issues.append(f"{name} is negative ({value})")

    if values.get("error_rate_percent", 1) == 0:
        issues.append("error_rate_percent is 0: any error will alert")
    if values.get("p95_latency_ms", 1) == 0:
        issues.append("p95_latency_ms is 0: any non-zero latency will alert")
    if values.get("memory_mb", 1) == 0:
        issues.append("memory_mb is 0: memory check will always be critical")

    hit_rate = values.get("cache_hit_rate_percent", 0)
    if hit_rate > 100:
        issues.append(f"cache_hit_rate_percent above 100 ({hit_rate}): cache alert always fires")

    error_rate = values.get("error_rate_percent", 0)
    if error_rate >= 100:
        issues.append(f"error_rate_percent at or above 100 ({error_rate}): error alert never fires")

    return issues
