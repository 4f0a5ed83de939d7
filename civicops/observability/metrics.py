"""
Metrics — Bounded request, cache and AI-service counters.

Collaborators push point-in-time events; the registry keeps cheap
aggregates suitable for sampling, not exact analytics. Request
latencies live in a fixed-size FIFO window so percentiles always
describe the most recent traffic.

## Usage

    from civicops.runtime import get_control_plane

    metrics = get_control_plane().metrics

    metrics.record_request(42.0)
    metrics.record_cache_op(hit=True)
    metrics.record_ai_op("classification")

    summary = metrics.get_metrics()
    output = metrics.export_prometheus()
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from threading import RLock
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Tuple

import psutil

from ..clock import Clock, system_clock, to_iso

logger = logging.getLogger(__name__)

LATENCY_WINDOW_SIZE = 100

# record_ai_op service name -> AI counter
AI_SERVICE_COUNTERS = {
    "classification": "classifications",
    "priority": "priority_scores",
    "duplicate": "duplicate_checks",
    "search": "searches",
}

_BYTES_PER_MB = 1024 * 1024
_CENT = Decimal("0.01")


@dataclass(frozen=True)
class MemoryUsage:
    """Process memory in whole megabytes."""

    heap_used_mb: int
    heap_total_mb: int
    rss_mb: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "heap_used_mb": self.heap_used_mb,
            "heap_total_mb": self.heap_total_mb,
            "rss_mb": self.rss_mb,
        }


MemoryReader = Callable[[], MemoryUsage]


def read_memory_usage() -> MemoryUsage:
    """
    Read memory usage of the current process.

    CPython has no separate managed heap, so the resident set stands in
    for heap usage and the virtual size for the heap total.
    """
    info = psutil.Process().memory_info()
    return MemoryUsage(
        heap_used_mb=round_half_up(info.rss / _BYTES_PER_MB),
        heap_total_mb=round_half_up(info.vms / _BYTES_PER_MB),
        rss_mb=round_half_up(info.rss / _BYTES_PER_MB),
    )


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from negative infinity."""
    return int(math.floor(value + 0.5))


def percentile(samples: Sequence[float], p: float) -> float:
    """
    Nearest-rank percentile.

    Returns an existing sample, never an interpolated value:
    index = ceil(p / 100 * n) - 1, clamped to [0, n - 1].

    Args:
        samples: Unsorted samples (not modified)
        p: Percentile in [0, 100]

    Returns:
        The sample at the computed rank, or 0 for an empty sequence
    """
    if not samples:
        return 0
    ordered = sorted(samples)
    index = math.ceil(p / 100 * len(ordered)) - 1
    index = min(max(index, 0), len(ordered) - 1)
    return ordered[index]


def format_uptime(ms: float) -> str:
    """Format milliseconds as "2d 3h", "2h 14m", "5m 3s" or "42s"."""
    seconds = int(ms // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def round_percent(value: float) -> Decimal:
    """
    Round a percentage to two decimals, halves up.

    Works on the exact binary value, so 0.125 becomes 0.13 while 2.675
    (stored just below) becomes 2.67.
    """
    return Decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def format_percent(value: float) -> str:
    """Format a percentage with two decimals, e.g. "97.50%"."""
    return f"{round_percent(value)}%"


@dataclass
class RequestStats:
    """Request counters plus the rolling latency window."""

    total: int = 0
    errors: int = 0
    latencies: Deque[float] = field(
        default_factory=lambda: deque(maxlen=LATENCY_WINDOW_SIZE)
    )


@dataclass
class CacheStats:
    """Cache hit/miss/eviction counters."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0


@dataclass
class AIStats:
    """Per-service AI call counters."""

    classifications: int = 0
    priority_scores: int = 0
    duplicate_checks: int = 0
    searches: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "classifications": self.classifications,
            "priority_scores": self.priority_scores,
            "duplicate_checks": self.duplicate_checks,
            "searches": self.searches,
            "errors": self.errors,
        }


@dataclass(frozen=True)
class MetricsSnapshot:
    """
    Point-in-time copy of the registry.

    Taken under the registry lock so derived values (percentiles in
    particular) are computed over a window nobody is mutating.
    """

    taken_at: float
    start_time: float
    last_check: Optional[float]
    requests_total: int
    requests_errors: int
    latencies: Tuple[float, ...]
    cache_hits: int
    cache_misses: int
    cache_evictions: int
    ai: Dict[str, int]
    queue_depth: int
    memory: MemoryUsage

    @property
    def uptime_ms(self) -> float:
        return max(0.0, (self.taken_at - self.start_time) * 1000)

    @property
    def error_rate(self) -> float:
        """Error percentage, 0 when no requests were seen."""
        if self.requests_total == 0:
            return 0.0
        return self.requests_errors / self.requests_total * 100

    @property
    def cache_samples(self) -> int:
        return self.cache_hits + self.cache_misses

    @property
    def cache_hit_rate(self) -> float:
        """Hit percentage; an unused cache counts as fully healthy (100)."""
        if self.cache_samples == 0:
            return 100.0
        return self.cache_hits / self.cache_samples * 100

    def latency_percentile(self, p: float) -> int:
        return round_half_up(percentile(self.latencies, p))

    def to_dict(self) -> Dict[str, Any]:
        """Render the public metrics summary."""
        uptime_ms = self.uptime_ms
        return {
            "uptime": {
                "ms": round_half_up(uptime_ms),
                "formatted": format_uptime(uptime_ms),
            },
            "requests": {
                "total": self.requests_total,
                "errors": self.requests_errors,
                "error_rate": format_percent(self.error_rate),
                "latency": {
                    "p50": self.latency_percentile(50),
                    "p95": self.latency_percentile(95),
                    "p99": self.latency_percentile(99),
                },
            },
            "cache": {
                "hits": self.cache_hits,
                "misses": self.cache_misses,
                "evictions": self.cache_evictions,
                "hit_rate": format_percent(self.cache_hit_rate),
            },
            "ai": dict(self.ai),
            "queue_depth": self.queue_depth,
            "memory": self.memory.to_dict(),
            "timestamp": to_iso(self.taken_at),
        }


class MetricsRegistry:
    """
    Owner of all request, cache and AI counters.

    Every mutator and every reader of the latency window takes the same
    lock, so append-plus-eviction is atomic from a caller's view.
    """

    def __init__(
        self,
        clock: Clock = system_clock,
        memory_reader: MemoryReader = read_memory_usage,
        prefix: str = "civicops",
    ):
        self.prefix = prefix
        self._clock = clock
        self._memory_reader = memory_reader
        self._lock = RLock()

        self.start_time = clock()
        self.last_check: Optional[float] = None

        self._requests = RequestStats()
        self._cache = CacheStats()
        self._ai = AIStats()
        self._queue_depth = 0

    # Ingestion

    def record_request(self, latency_ms: float, is_error: bool = False) -> None:
        """Count a request and push its latency into the rolling window."""
        with self._lock:
            self._requests.total += 1
            if is_error:
                self._requests.errors += 1
            # deque(maxlen) drops the oldest sample on overflow
            self._requests.latencies.append(latency_ms)

    def record_cache_op(self, hit: bool) -> None:
        """Count a cache lookup as a hit or a miss."""
        with self._lock:
            if hit:
                self._cache.hits += 1
            else:
                self._cache.misses += 1

    def record_cache_eviction(self, count: int = 1) -> None:
        """Count entries evicted by the cache layer."""
        with self._lock:
            self._cache.evictions += count

    def record_ai_op(self, service: str, is_error: bool = False) -> None:
        """
        Count an AI service call.

        Errors only bump the shared error counter. Unknown service names
        are dropped: metrics ingestion must never fail the caller.
        """
        with self._lock:
            if is_error:
                self._ai.errors += 1
                return

            counter = AI_SERVICE_COUNTERS.get(service)
            if counter is None:
                logger.debug(f"Ignoring AI op for unknown service {service!r}")
                return
            setattr(self._ai, counter, getattr(self._ai, counter) + 1)

    def set_queue_depth(self, depth: int) -> None:
        """Record the latest observed AI job queue depth."""
        with self._lock:
            self._queue_depth = depth

    def mark_checked(self) -> float:
        """Stamp the time of a health evaluation and return it."""
        with self._lock:
            self.last_check = self._clock()
            return self.last_check

    # Queries

    @property
    def latencies(self) -> List[float]:
        """Copy of the latency window, oldest first."""
        with self._lock:
            return list(self._requests.latencies)

    def snapshot(self) -> MetricsSnapshot:
        """Copy every counter and the latency window atomically."""
        memory = self._memory_reader()
        with self._lock:
            return MetricsSnapshot(
                taken_at=self._clock(),
                start_time=self.start_time,
                last_check=self.last_check,
                requests_total=self._requests.total,
                requests_errors=self._requests.errors,
                latencies=tuple(self._requests.latencies),
                cache_hits=self._cache.hits,
                cache_misses=self._cache.misses,
                cache_evictions=self._cache.evictions,
                ai=self._ai.to_dict(),
                queue_depth=self._queue_depth,
                memory=memory,
            )

    def get_metrics(self) -> Dict[str, Any]:
        """Structured metrics summary."""
        return self.snapshot().to_dict()

    def reset_metrics(self) -> None:
        """Zero every counter and clear the latency window (tests only)."""
        with self._lock:
            self._requests = RequestStats()
            self._cache = CacheStats()
            self._ai = AIStats()
            self._queue_depth = 0
        logger.debug("Metrics reset")

    # Export

    def export_prometheus(self) -> str:
        """Export current values in Prometheus text format."""
        snap = self.snapshot()
        lines: List[str] = []

        def emit(name: str, kind: str, help_text: str, samples: List[Tuple[Dict[str, str], float]]) -> None:
            full_name = f"{self.prefix}_{name}"
            lines.append(f"# HELP {full_name} {help_text}")
            lines.append(f"# TYPE {full_name} {kind}")
            for labels, value in samples:
                lines.append(f"{full_name}{self._format_labels(labels)} {value}")

        emit("requests_total", "counter", "Total requests recorded", [({}, snap.requests_total)])
        emit("request_errors_total", "counter", "Requests that ended in error", [({}, snap.requests_errors)])
        emit(
            "request_latency_ms",
            "gauge",
            "Nearest-rank latency percentiles over the rolling window",
            [({"quantile": q}, snap.latency_percentile(p)) for q, p in (("0.5", 50), ("0.95", 95), ("0.99", 99))],
        )
        emit(
            "cache_operations_total",
            "counter",
            "Cache operations by result",
            [
                ({"result": "hit"}, snap.cache_hits),
                ({"result": "miss"}, snap.cache_misses),
                ({"result": "eviction"}, snap.cache_evictions),
            ],
        )
        emit(
            "ai_operations_total",
            "counter",
            "AI service operations by counter",
            [({"counter": name}, value) for name, value in snap.ai.items()],
        )
        emit("queue_depth", "gauge", "Last reported AI job queue depth", [({}, snap.queue_depth)])
        emit("memory_rss_mb", "gauge", "Resident set size in MB", [({}, snap.memory.rss_mb)])
        emit("uptime_seconds", "gauge", "Seconds since the registry was created", [({}, snap.uptime_ms / 1000)])

        return "\n".join(lines)

    def _format_labels(self, labels: Dict[str, str]) -> str:
        """Format labels for Prometheus."""
        if not labels:
            return ""
        pairs = [f'{k}="{v}"' for k, v in sorted(labels.items())]
        return "{" + ",".join(pairs) + "}"
