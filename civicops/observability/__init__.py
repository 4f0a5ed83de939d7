"""
Observability Module — Metrics, health evaluation, and alerting.
"""

from .health import (
    Alert,
    AlertLevel,
    AlertThresholds,
    CheckResult,
    HealthEvaluator,
    HealthReport,
    HealthStatus,
)
from .metrics import MemoryUsage, MetricsRegistry, MetricsSnapshot, format_uptime, percentile

__all__ = [
    "MetricsRegistry",
    "MetricsSnapshot",
    "MemoryUsage",
    "percentile",
    "format_uptime",
    "HealthEvaluator",
    "HealthReport",
    "HealthStatus",
    "Alert",
    "AlertLevel",
    "AlertThresholds",
    "CheckResult",
]
