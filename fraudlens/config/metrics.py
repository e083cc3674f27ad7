"""
FraudLens Metrics Collection

In-process counters and timing histograms for the scoring engine.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, List, Optional


@dataclass
class MetricSample:
    """Single metric sample with timestamp."""

    value: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    labels: Dict[str, str] = field(default_factory=dict)


# =============================================================================
# Metrics Collector
# =============================================================================


class MetricsCollector:
    """
    Collects and aggregates engine metrics.

    Thread-safe: calculators may record from worker threads.
    """

    def __init__(self, max_samples: int = 10000):
        self._lock = Lock()
        self._max_samples = max_samples
        self._counters: Dict[str, float] = defaultdict(float)
        self._timings: Dict[str, List[MetricSample]] = defaultdict(list)

    def _make_key(self, name: str, labels: Optional[Dict[str, str]] = None) -> str:
        """Create a unique key from metric name and labels."""
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"

    def increment_counter(
        self,
        name: str,
        value: float = 1.0,
        labels: Optional[Dict[str, str]] = None,
    ) -> None:
        """Increment a counter metric."""
        key = self._make_key(name, labels)
        with self._lock:
            self._counters[key] += value

    def get_counter(
        self,
        name: str,
        labels: Optional[Dict[str, str]] = None,
    ) -> float:
        """Get current counter value."""
        key = self._make_key(name, labels)
        with self._lock:
            return self._counters.get(key, 0.0)

    def record_timing(
        self,
        name: str,
        duration_ms: float,
        labels: Optional[Dict[str, str]] = None,
    ) -> None:
        """Record a timing measurement."""
        key = self._make_key(name, labels)
        with self._lock:
            samples = self._timings[key]
            samples.append(MetricSample(value=duration_ms, labels=labels or {}))
            if len(samples) > self._max_samples:
                self._timings[key] = samples[-self._max_samples :]

    def get_timing_stats(
        self,
        name: str,
        labels: Optional[Dict[str, str]] = None,
    ) -> Dict[str, float]:
        """Get count/min/max/avg/p95 for a timing metric."""
        key = self._make_key(name, labels)
        with self._lock:
            values = sorted(sample.value for sample in self._timings.get(key, []))

        if not values:
            return {"count": 0, "min": 0.0, "max": 0.0, "avg": 0.0, "p95": 0.0}

        count = len(values)
        p95_index = min(int(0.95 * count), count - 1)
        return {
            "count": count,
            "min": values[0],
            "max": values[-1],
            "avg": sum(values) / count,
            "p95": values[p95_index],
        }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._counters.clear()
            self._timings.clear()


_metrics = MetricsCollector()


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector instance."""
    return _metrics


class MetricNames:
    """Standard metric names for the engine."""

    ANALYSES_TOTAL = "fraudlens_analyses_total"
    ANALYSIS_DURATION_MS = "fraudlens_analysis_duration_ms"
    ANALYSIS_ERRORS_TOTAL = "fraudlens_analysis_errors_total"

    MODEL_RUNS_TOTAL = "fraudlens_model_runs_total"
    MODEL_DURATION_MS = "fraudlens_model_duration_ms"

    RED_FLAGS_TOTAL = "fraudlens_red_flags_total"
    RISK_LEVEL_TOTAL = "fraudlens_risk_level_total"


class EngineMetrics:
    """Helper for recording engine-level metrics."""

    def __init__(self, collector: Optional[MetricsCollector] = None):
        self.metrics = collector or _metrics

    def record_model(self, model: str, scored: bool, duration_ms: float) -> None:
        """Record one calculator run and whether it produced a score."""
        outcome = "scored" if scored else "insufficient"
        self.metrics.increment_counter(
            MetricNames.MODEL_RUNS_TOTAL,
            labels={"model": model, "outcome": outcome},
        )
        self.metrics.record_timing(
            MetricNames.MODEL_DURATION_MS, duration_ms, labels={"model": model}
        )

    def record_analysis(
        self,
        level: str,
        flag_count: int,
        duration_ms: float,
        success: bool = True,
    ) -> None:
        """Record a completed (or failed) analysis."""
        self.metrics.increment_counter(MetricNames.ANALYSES_TOTAL)
        self.metrics.record_timing(MetricNames.ANALYSIS_DURATION_MS, duration_ms)

        if not success:
            self.metrics.increment_counter(MetricNames.ANALYSIS_ERRORS_TOTAL)
            return

        self.metrics.increment_counter(MetricNames.RISK_LEVEL_TOTAL, labels={"level": level})
        self.metrics.increment_counter(MetricNames.RED_FLAGS_TOTAL, value=float(flag_count))


engine_metrics = EngineMetrics()
