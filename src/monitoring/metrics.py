"""
Metrics collection for the royalty ledger.

Thread-safe counters, gauges and histograms with optional labels, exported
as JSON or in Prometheus text format. The settlement engine records listing,
settlement and claim counts plus the held and unallocated balances; the
Flask middleware records request counts and latency.
"""

import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

METRIC_PREFIX = "royalty_ledger"

# Latency buckets in milliseconds
DEFAULT_BUCKETS = [1, 5, 10, 25, 50, 100, 250, 500, 1000, 5000]


@dataclass
class HistogramBucket:
    """A histogram bucket for tracking value distributions."""

    le: float  # Less than or equal to
    count: int = 0


@dataclass
class Histogram:
    """Cumulative histogram of observed values."""

    name: str
    buckets: list[HistogramBucket] = field(default_factory=list)
    sum: float = 0.0
    count: int = 0

    def __post_init__(self):
        if not self.buckets:
            self.buckets = [HistogramBucket(le=b) for b in DEFAULT_BUCKETS]
            self.buckets.append(HistogramBucket(le=float("inf")))

    def observe(self, value: float) -> None:
        """Record an observation."""
        self.sum += value
        self.count += 1
        for bucket in self.buckets:
            if value <= bucket.le:
                bucket.count += 1


class MetricsCollector:
    """
    Thread-safe metrics collector.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._counters: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._gauges: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))
        self._histograms: dict[str, dict[str, Histogram]] = defaultdict(dict)
        self._start_time = time.time()

    def _labels_key(self, labels: dict[str, str] | None) -> str:
        """Convert labels dict to a hashable key."""
        if not labels:
            return ""
        return ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))

    # Counter operations

    def increment(self, name: str, value: int = 1, labels: dict[str, str] | None = None) -> None:
        with self._lock:
            self._counters[name][self._labels_key(labels)] += value

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> int:
        with self._lock:
            return self._counters[name].get(self._labels_key(labels), 0)

    # Gauge operations

    def set_gauge(self, name: str, value: float, labels: dict[str, str] | None = None) -> None:
        with self._lock:
            self._gauges[name][self._labels_key(labels)] = value

    def increment_gauge(self, name: str, value: float = 1.0, labels: dict[str, str] | None = None) -> None:
        with self._lock:
            self._gauges[name][self._labels_key(labels)] += value

    def decrement_gauge(self, name: str, value: float = 1.0, labels: dict[str, str] | None = None) -> None:
        with self._lock:
            self._gauges[name][self._labels_key(labels)] -= value

    def get_gauge(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self._gauges[name].get(self._labels_key(labels), 0.0)

    # Histogram operations

    def timing(self, name: str, value_ms: float, labels: dict[str, str] | None = None) -> None:
        """Record a timing observation in milliseconds."""
        with self._lock:
            key = self._labels_key(labels)
            if key not in self._histograms[name]:
                self._histograms[name][key] = Histogram(name=name)
            self._histograms[name][key].observe(value_ms)

    @contextmanager
    def timer(self, name: str, labels: dict[str, str] | None = None):
        """Time a block of code, recording even when it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.timing(name, (time.perf_counter() - start) * 1000, labels)

    # Export methods

    def get_all(self) -> dict[str, Any]:
        """Get all metrics as a dictionary."""
        with self._lock:
            result: dict[str, Any] = {
                "uptime_seconds": time.time() - self._start_time,
                "counters": {},
                "gauges": {},
                "histograms": {},
            }

            for section, store in (("counters", self._counters), ("gauges", self._gauges)):
                for name, values in store.items():
                    if len(values) == 1 and "" in values:
                        result[section][name] = values[""]
                    else:
                        result[section][name] = dict(values)

            for name, histograms in self._histograms.items():
                result["histograms"][name] = {
                    (key or "_total"): {
                        "count": hist.count,
                        "sum": hist.sum,
                        "avg": hist.sum / hist.count if hist.count > 0 else 0,
                        "buckets": {str(b.le): b.count for b in hist.buckets},
                    }
                    for key, hist in histograms.items()
                }

            return result

    def to_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []

        def series(metric: str, key: str, value: Any) -> str:
            return f"{metric}{{{key}}} {value}" if key else f"{metric} {value}"

        with self._lock:
            lines.append(f"# HELP {METRIC_PREFIX}_uptime_seconds Time since application start")
            lines.append(f"# TYPE {METRIC_PREFIX}_uptime_seconds gauge")
            lines.append(f"{METRIC_PREFIX}_uptime_seconds {time.time() - self._start_time:.2f}")
            lines.append("")

            for kind, store in (("counter", self._counters), ("gauge", self._gauges)):
                for name, values in store.items():
                    metric = f"{METRIC_PREFIX}_{name}"
                    lines.append(f"# TYPE {metric} {kind}")
                    lines.extend(series(metric, key, value) for key, value in values.items())
                    lines.append("")

            for name, histograms in self._histograms.items():
                metric = f"{METRIC_PREFIX}_{name}"
                lines.append(f"# TYPE {metric} histogram")
                for key, hist in histograms.items():
                    for bucket in hist.buckets:
                        le_val = "+Inf" if bucket.le == float("inf") else bucket.le
                        bucket_key = f'{key},le="{le_val}"' if key else f'le="{le_val}"'
                        lines.append(f"{metric}_bucket{{{bucket_key}}} {bucket.count}")
                    lines.append(series(f"{metric}_sum", key, f"{hist.sum:.2f}"))
                    lines.append(series(f"{metric}_count", key, hist.count))
                lines.append("")

        return "\n".join(lines)

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()
            self._start_time = time.time()


# Global metrics instance
metrics = MetricsCollector()
