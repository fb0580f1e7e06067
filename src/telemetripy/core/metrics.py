"""Metric helper functions and the in-process self-metrics collector."""

import threading
import time
from collections import deque
from collections.abc import Callable
from typing import Any

from telemetripy.core.models import MetricSample

DEFAULT_MAX_POINTS = 1000

SeriesKey = tuple[str, tuple[tuple[str, str], ...]]


def counter(
    name: str,
    value: float = 1.0,
    labels: dict[str, str] | None = None,
) -> MetricSample:
    """Create a counter metric sample.

    Args:
        name: Metric name (e.g., "errors_total")
        value: Increment value (default: 1.0)
        labels: Optional dimension labels

    Returns:
        MetricSample with current timestamp
    """
    return MetricSample(
        name=name,
        timestamp=time.time(),
        value=value,
        labels=labels or {},
    )


def gauge(
    name: str,
    value: float,
    labels: dict[str, str] | None = None,
) -> MetricSample:
    """Create a gauge metric sample.

    Args:
        name: Metric name (e.g., "memory_usage_ratio")
        value: Current gauge value
        labels: Optional dimension labels

    Returns:
        MetricSample with current timestamp
    """
    return MetricSample(
        name=name,
        timestamp=time.time(),
        value=value,
        labels=labels or {},
    )


def _series_key(name: str, labels: dict[str, str] | None) -> SeriesKey:
    return name, tuple(sorted((labels or {}).items()))


class MetricsCollector:
    """Thread-safe counters, gauges and timings describing the pipeline itself.

    Each label set of a metric is a separate series. Counters keep a running
    total; gauges and timings keep their latest value. Every series also
    keeps its last ``max_points`` raw samples for summaries.
    """

    def __init__(
        self,
        max_points: int = DEFAULT_MAX_POINTS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_points = max_points
        self._clock = clock
        self._points: dict[SeriesKey, deque[MetricSample]] = {}
        self._values: dict[SeriesKey, float] = {}
        self._kinds: dict[str, str] = {}
        self._lock = threading.RLock()

    def _record(self, kind: str, sample: MetricSample, accumulate: bool) -> None:
        key = _series_key(sample.name, sample.labels)
        sample = MetricSample(
            name=sample.name, timestamp=self._clock(), value=sample.value, labels=sample.labels
        )
        with self._lock:
            self._kinds.setdefault(sample.name, kind)
            points = self._points.get(key)
            if points is None:
                points = self._points[key] = deque(maxlen=self._max_points)
            points.append(sample)
            if accumulate:
                self._values[key] = self._values.get(key, 0.0) + sample.value
            else:
                self._values[key] = sample.value

    def increment(
        self, name: str, value: float = 1.0, labels: dict[str, str] | None = None
    ) -> None:
        """Add ``value`` to a counter series."""
        self._record("counter", counter(name, value, labels), accumulate=True)

    def gauge(self, name: str, value: float, labels: dict[str, str] | None = None) -> None:
        """Set a gauge series to ``value``."""
        self._record("gauge", gauge(name, value, labels), accumulate=False)

    def timing(self, name: str, duration: float, labels: dict[str, str] | None = None) -> None:
        """Record a duration observation; the series reports its latest value."""
        self._record("summary", gauge(name, duration, labels), accumulate=False)

    def value(self, name: str, labels: dict[str, str] | None = None) -> float:
        """Return the counter total or latest gauge value of one series."""
        with self._lock:
            return self._values.get(_series_key(name, labels), 0.0)

    def total(self, name: str) -> float:
        """Return the sum over every series of ``name``."""
        with self._lock:
            return sum(value for (metric, _), value in self._values.items() if metric == name)

    def kind(self, name: str) -> str | None:
        with self._lock:
            return self._kinds.get(name)

    def samples(self, name: str | None = None) -> list[MetricSample]:
        """Return the current value of every series as samples.

        Args:
            name: Restrict to one metric name.
        """
        with self._lock:
            result = []
            for (metric, labels), value in self._values.items():
                if name is not None and metric != name:
                    continue
                points = self._points[(metric, labels)]
                result.append(
                    MetricSample(
                        name=metric,
                        timestamp=points[-1].timestamp,
                        value=value,
                        labels=dict(labels),
                    )
                )
            return result

    def summary(self) -> dict[str, dict[str, Any]]:
        """Return count, sum, average, min, max and latest per metric name."""
        with self._lock:
            grouped: dict[str, list[float]] = {}
            for (metric, _), points in self._points.items():
                grouped.setdefault(metric, []).extend(p.value for p in points)
        result = {}
        for metric, values in grouped.items():
            result[metric] = {
                "count": len(values),
                "sum": sum(values),
                "average": sum(values) / len(values),
                "min": min(values),
                "max": max(values),
                "latest": values[-1],
            }
        return result

    def clear(self) -> None:
        with self._lock:
            self._points.clear()
            self._values.clear()
            self._kinds.clear()
