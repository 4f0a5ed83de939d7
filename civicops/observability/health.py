"""
Health Evaluation — Derive health and alerts from collected metrics.

Each evaluation is computed from a fresh metrics snapshot and the live
alert thresholds. The active alert set is replaced wholesale on every
check; alerts never accumulate across checks.

## Usage

    from civicops.runtime import get_control_plane

    evaluator = get_control_plane().health

    report = evaluator.check_health()
    if not report.healthy:
        print("Critical alerts present")

    evaluator.update_thresholds({"p95_latency_ms": 500})
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..clock import to_iso
from ..validation import ValidationError, validate_known_fields, validate_thresholds
from .metrics import MetricsRegistry, MetricsSnapshot, format_uptime, round_percent

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Overall health levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"


class AlertLevel(str, Enum):
    """Alert severities."""
    WARNING = "warning"
    CRITICAL = "critical"


class CheckResult(str, Enum):
    """Outcome of a single health check."""
    PASS = "pass"
    FAIL = "fail"
    NOT_APPLICABLE = "N/A"


class AlertThresholds(BaseModel):
    """Alert thresholds. Values are not range-checked."""

    error_rate_percent: float = 5
    p95_latency_ms: float = 300
    memory_mb: float = 100
    cache_hit_rate_percent: float = 70
    queue_depth: float = 50


# Cache hit rate is only judged once this many lookups were seen
CACHE_ALERT_MIN_SAMPLES = 100


@dataclass(frozen=True)
class Alert:
    """A threshold violation found by one health evaluation."""

    level: AlertLevel
    type: str
    message: str
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.value,
            "type": self.type,
            "message": self.message,
            "value": self.value,
        }


@dataclass(frozen=True)
class HealthReport:
    """Result of a full health evaluation."""

    status: HealthStatus
    alerts: Tuple[Alert, ...]
    snapshot: MetricsSnapshot
    thresholds: AlertThresholds

    @property
    def healthy(self) -> bool:
        # Warning-only reports stay healthy while the status says degraded
        return not any(a.level == AlertLevel.CRITICAL for a in self.alerts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "healthy": self.healthy,
            "status": self.status.value,
            "alerts": [a.to_dict() for a in self.alerts],
            "metrics": self.snapshot.to_dict(),
            "thresholds": self.thresholds.model_dump(),
        }


def _displayed_percent(value: float) -> float:
    # Compare against the two-decimal value the metrics summary shows
    return float(round_percent(value))


def evaluate_alerts(snapshot: MetricsSnapshot, thresholds: AlertThresholds) -> Tuple[Alert, ...]:
    """
    Compute the alerts for a snapshot.

    Every signal is judged independently with a strict comparison.

    Returns:
        Alerts in signal order: error rate, latency, memory, cache, queue
    """
    alerts = []

    error_rate = _displayed_percent(snapshot.error_rate)
    if error_rate > thresholds.error_rate_percent:
        alerts.append(Alert(
            level=AlertLevel.WARNING,
            type="error_rate",
            message=f"Error rate {error_rate:.1f}% exceeds threshold {thresholds.error_rate_percent:g}%",
            value=error_rate,
        ))

    p95 = snapshot.latency_percentile(95)
    if p95 > thresholds.p95_latency_ms:
        alerts.append(Alert(
            level=AlertLevel.WARNING,
            type="latency",
            message=f"P95 latency {p95}ms exceeds threshold {thresholds.p95_latency_ms:g}ms",
            value=p95,
        ))

    memory_mb = snapshot.memory.heap_used_mb
    if memory_mb > thresholds.memory_mb:
        alerts.append(Alert(
            level=AlertLevel.CRITICAL,
            type="memory",
            message=f"Memory usage {memory_mb}MB exceeds threshold {thresholds.memory_mb:g}MB",
            value=memory_mb,
        ))

    hit_rate = _displayed_percent(snapshot.cache_hit_rate)
    if (
        hit_rate < thresholds.cache_hit_rate_percent
        and snapshot.cache_samples > CACHE_ALERT_MIN_SAMPLES
    ):
        alerts.append(Alert(
            level=AlertLevel.WARNING,
            type="cache_hit_rate",
            message=f"Cache hit rate {hit_rate:.1f}% below threshold {thresholds.cache_hit_rate_percent:g}%",
            value=hit_rate,
        ))

    if snapshot.queue_depth > thresholds.queue_depth:
        alerts.append(Alert(
            level=AlertLevel.WARNING,
            type="queue_depth",
            message=f"Queue depth {snapshot.queue_depth} exceeds threshold {thresholds.queue_depth:g}",
            value=snapshot.queue_depth,
        ))

    return tuple(alerts)


def overall_status(alerts: Tuple[Alert, ...]) -> HealthStatus:
    """Critical beats degraded beats healthy."""
    if any(a.level == AlertLevel.CRITICAL for a in alerts):
        return HealthStatus.CRITICAL
    if alerts:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


class HealthEvaluator:
    """
    Health classifier over a MetricsRegistry.

    Owns the alert thresholds and the most recent alert set.
    """

    def __init__(
        self,
        metrics: MetricsRegistry,
        thresholds: Optional[AlertThresholds] = None,
    ):
        self.metrics = metrics
        self._thresholds = thresholds or AlertThresholds()
        self._alerts: Tuple[Alert, ...] = ()
        self._lock = Lock()

    @property
    def thresholds(self) -> AlertThresholds:
        return self._thresholds

    @property
    def active_alerts(self) -> Tuple[Alert, ...]:
        return self._alerts

    def check_health(self) -> HealthReport:
        """Evaluate every signal, replace the active alerts, stamp last_check."""
        snapshot = self.metrics.snapshot()
        thresholds = self._thresholds
        alerts = evaluate_alerts(snapshot, thresholds)

        with self._lock:
            self._alerts = alerts
        self.metrics.mark_checked()

        for alert in alerts:
            log_level = logging.ERROR if alert.level == AlertLevel.CRITICAL else logging.WARNING
            logger.log(
                log_level,
                alert.message,
                extra={"alert_type": alert.type, "alert_level": alert.level.value},
            )

        return HealthReport(
            status=overall_status(alerts),
            alerts=alerts,
            snapshot=snapshot,
            thresholds=thresholds,
        )

    def get_health(self) -> Dict[str, Any]:
        """Health summary with a pass/fail checklist for uptime monitors."""
        report = self.check_health()
        snap = report.snapshot
        t = report.thresholds

        def check(passed: bool) -> str:
            return (CheckResult.PASS if passed else CheckResult.FAIL).value

        if snap.cache_samples == 0:
            cache_check = CheckResult.NOT_APPLICABLE.value
        else:
            cache_check = check(_displayed_percent(snap.cache_hit_rate) > t.cache_hit_rate_percent)

        return {
            "status": report.status.value,
            "healthy": report.healthy,
            "uptime": format_uptime(snap.uptime_ms),
            "checks": {
                "memory": check(snap.memory.heap_used_mb < t.memory_mb),
                "latency": check(snap.latency_percentile(95) < t.p95_latency_ms),
                "error_rate": check(_displayed_percent(snap.error_rate) < t.error_rate_percent),
                "cache_hit_rate": cache_check,
            },
            "timestamp": to_iso(snap.taken_at),
        }

    def get_alerts(self) -> Dict[str, Any]:
        """Alerts from the most recent evaluation."""
        alerts = self._alerts
        last_check = self.metrics.last_check
        return {
            "count": len(alerts),
            "alerts": [a.to_dict() for a in alerts],
            "last_check": to_iso(last_check) if last_check is not None else None,
            "thresholds": self._thresholds.model_dump(),
        }

    def update_thresholds(self, partial: Dict[str, float]) -> Dict[str, float]:
        """
        Merge the given fields into the live thresholds.

        Unspecified fields keep their value. Suspicious values are logged
        but applied as given.

        Returns:
            The full threshold set after the merge

        Raises:
            ValidationError: Unknown field name or non-numeric value
        """
        validate_known_fields(partial, AlertThresholds.model_fields, "threshold")

        with self._lock:
            merged = {**self._thresholds.model_dump(), **partial}
            try:
                self._thresholds = AlertThresholds(**merged)
            except PydanticValidationError as e:
                raise ValidationError(
                    "Invalid threshold value",
                    details={"errors": e.errors()},
                ) from e
            current = self._thresholds.model_dump()

        logger.info(f"Alert thresholds updated: {partial}")
        for issue in validate_thresholds(current):
            logger.warning(f"Threshold configuration: {issue}")

        return current

    def clear_alerts(self) -> None:
        with self._lock:
            self._alerts = ()
