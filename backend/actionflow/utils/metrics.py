"""
In-process engine metrics, served at ``GET /api/executions/metrics/summary``.

Counters:
- runs_started_total
- runs_completed_total{status=...}
- node_results_total{status=...}

Gauges:
- runs_in_progress

Histograms (most recent observations only):
- run_duration_seconds
- node_duration_seconds
"""
from collections import defaultdict, deque
from typing import Any
import logging

logger = logging.getLogger("actionflow.metrics")

# Observations kept per histogram; older ones fall off.
HISTOGRAM_WINDOW = 1000


class MetricsCollector:
    """Counters, gauges and windowed histograms keyed by name plus labels."""

    def __init__(self, window: int = HISTOGRAM_WINDOW):
        self.window = window
        self.counters: dict[str, int] = defaultdict(int)
        self.gauges: dict[str, float] = defaultdict(float)
        self.histograms: dict[str, deque[float]] = defaultdict(lambda: deque(maxlen=self.window))

    def increment_counter(self, name: str, value: int = 1, labels: dict[str, str] | None = None):
        self.counters[self._build_key(name, labels)] += value

    def add_gauge(self, name: str, delta: float, labels: dict[str, str] | None = None):
        key = self._build_key(name, labels)
        self.gauges[key] = max(0.0, self.gauges[key] + delta)

    def observe_histogram(self, name: str, value: float, labels: dict[str, str] | None = None):
        self.histograms[self._build_key(name, labels)].append(value)

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> int:
        return self.counters.get(self._build_key(name, labels), 0)

    def get_gauge(self, name: str, labels: dict[str, str] | None = None) -> float:
        return self.gauges.get(self._build_key(name, labels), 0.0)

    def get_histogram_stats(self, name: str, labels: dict[str, str] | None = None) -> dict[str, Any]:
        """count / sum / min / max / avg / p95 over the retained window."""
        values = sorted(self.histograms.get(self._build_key(name, labels), ()))
        if not values:
            return {"count": 0, "sum": 0, "min": 0, "max": 0, "avg": 0, "p95": 0}

        n = len(values)
        total = sum(values)
        return {
            "count": n,
            "sum": total,
            "min": values[0],
            "max": values[-1],
            "avg": total / n,
            "p95": values[max(0, int(n * 0.95) - 1)],
        }

    def get_all_metrics(self) -> dict[str, Any]:
        return {
            "counters": dict(self.counters),
            "gauges": dict(self.gauges),
            "histograms": {key: self.get_histogram_stats(key) for key in list(self.histograms)},
        }

    def reset(self):
        self.counters.clear()
        self.gauges.clear()
        self.histograms.clear()

    @staticmethod
    def _build_key(name: str, labels: dict[str, str] | None) -> str:
        """``name`` or ``name{a=1,b=2}`` with labels sorted."""
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"


# Global metrics collector instance
metrics = MetricsCollector()


def record_run_started():
    metrics.increment_counter("runs_started_total")
    metrics.add_gauge("runs_in_progress", 1)


def record_run_completed(duration_seconds: float, status: str):
    """
    Record a run reaching its terminal status.

    Args:
        duration_seconds: Run wall-clock time in seconds
        status: Final execution status (succeeded, failed, cancelled, persistence_error)
    """
    metrics.increment_counter("runs_completed_total", labels={"status": status})
    metrics.add_gauge("runs_in_progress", -1)
    metrics.observe_histogram("run_duration_seconds", duration_seconds)


def record_node_result(status: str, duration_seconds: float | None = None):
    metrics.increment_counter("node_results_total", labels={"status": status})
    if duration_seconds is not None:
        metrics.observe_histogram("node_duration_seconds", duration_seconds)


def get_metrics_summary() -> dict:
    return metrics.get_all_metrics()
