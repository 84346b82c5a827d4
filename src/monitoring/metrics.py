"""
Metrics collection for PrivateArt.

Thread-safe counters, gauges and timing histograms, exportable as a
dictionary or in Prometheus text format.

Ledger metrics:
- decryption_requests_total, distributions_total, refunds_total{path}
- transfer_failures_total, operations_rejected_total{reason}
- pending_requests (gauge)
"""

import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

METRIC_PREFIX = "privateart_"


@dataclass
class Histogram:
    """Distribution of observed values with fixed bucket bounds (ms)."""

    name: str
    bounds: tuple[float, ...] = (5, 10, 25, 50, 100, 250, 500, 1000, float("inf"))
    counts: list[int] = field(default_factory=list)
    sum: float = 0.0
    count: int = 0

    def __post_init__(self):
        if not self.counts:
            self.counts = [0] * len(self.bounds)

    def observe(self, value: float) -> None:
        """Record an observation."""
        self.sum += value
        self.count += 1
        for i, bound in enumerate(self.bounds):
            if value <= bound:
                self.counts[i] += 1


class MetricsCollector:
    """
    Thread-safe metrics collector.

    Collects counters, gauges, and histograms with optional labels.
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

    def increment(self, name: str, value: int = 1, labels: dict[str, str] | None = None) -> None:
        """Increment a counter."""
        with self._lock:
            self._counters[name][self._labels_key(labels)] += value

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> int:
        with self._lock:
            return self._counters[name].get(self._labels_key(labels), 0)

    def set_gauge(self, name: str, value: float, labels: dict[str, str] | None = None) -> None:
        with self._lock:
            self._gauges[name][self._labels_key(labels)] = value

    def get_gauge(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self._gauges[name].get(self._labels_key(labels), 0.0)

    def timing(self, name: str, value_ms: float, labels: dict[str, str] | None = None) -> None:
        """Record a timing observation in milliseconds."""
        with self._lock:
            key = self._labels_key(labels)
            if key not in self._histograms[name]:
                self._histograms[name][key] = Histogram(name=name)
            self._histograms[name][key].observe(value_ms)

    @contextmanager
    def timer(self, name: str, labels: dict[str, str] | None = None):
        """Context manager for timing code blocks."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.timing(name, (time.perf_counter() - start) * 1000, labels)

    def get_all(self) -> dict[str, Any]:
        """Get all metrics as a dictionary."""
        with self._lock:
            def flatten(values):
                if len(values) == 1 and "" in values:
                    return values[""]
                return dict(values)

            return {
                "uptime_seconds": time.time() - self._start_time,
                "counters": {name: flatten(v) for name, v in self._counters.items()},
                "gauges": {name: flatten(v) for name, v in self._gauges.items()},
                "histograms": {
                    name: {
                        (key or "_total"): {"count": h.count, "sum": h.sum}
                        for key, h in hists.items()
                    }
                    for name, hists in self._histograms.items()
                },
            }

    def to_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []
        with self._lock:
            lines.append(f"# TYPE {METRIC_PREFIX}uptime_seconds gauge")
            lines.append(f"{METRIC_PREFIX}uptime_seconds {time.time() - self._start_time:.2f}")

            for kind, store in (("counter", self._counters), ("gauge", self._gauges)):
                for name, values in store.items():
                    metric_name = f"{METRIC_PREFIX}{name}"
                    lines.append(f"# TYPE {metric_name} {kind}")
                    for key, value in values.items():
                        lines.append(f"{metric_name}{{{key}}} {value}" if key else f"{metric_name} {value}")

            for name, hists in self._histograms.items():
                metric_name = f"{METRIC_PREFIX}{name}"
                lines.append(f"# TYPE {metric_name} histogram")
                for key, hist in hists.items():
                    prefix = f"{key}," if key else ""
                    for bound, count in zip(hist.bounds, hist.counts):
                        le_val = "+Inf" if bound == float("inf") else bound
                        lines.append(f'{metric_name}_bucket{{{prefix}le="{le_val}"}} {count}')
                    suffix = f"{{{key}}}" if key else ""
                    lines.append(f"{metric_name}_sum{suffix} {hist.sum:.2f}")
                    lines.append(f"{metric_name}_count{suffix} {hist.count}")

        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()
            self._start_time = time.time()


# Global metrics instance
metrics = MetricsCollector()
