"""Performance collection: web vitals, custom metrics, timings and resources."""

import inspect
import math
import threading
import time
from collections import deque
from collections.abc import Awaitable, Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any, TypeVar

from telemetripy.core.budgets import BudgetEvaluator
from telemetripy.core.config import PerformanceConfig
from telemetripy.core.diagnostics import get_logger
from telemetripy.core.events import (
    CUSTOM_METRIC,
    PERFORMANCE_ALERT,
    PERFORMANCE_REPORT,
    WEB_VITAL,
    EventEmitter,
)
from telemetripy.core.memory import MemoryMonitor
from telemetripy.core.metrics import MetricsCollector
from telemetripy.core.models import (
    METRIC_CATEGORIES,
    METRIC_UNITS,
    MetricCategory,
    MetricUnit,
    PerformanceAlert,
    PerformanceBudget,
    PerformanceMetric,
    PerformanceReport,
    Rating,
    ResourceTiming,
    WebVitalsMetric,
    new_id,
)

logger = get_logger(__name__)

T = TypeVar("T")

# (good, poor) upper bounds per vital
WEB_VITAL_THRESHOLDS: dict[str, tuple[float, float]] = {
    "FCP": (1800, 3000),
    "LCP": (2500, 4000),
    "FID": (100, 300),
    "INP": (200, 500),
    "CLS": (0.1, 0.25),
    "TTFB": (800, 1800),
}

_VITAL_CATEGORIES: dict[str, MetricCategory] = {
    "FCP": "paint",
    "LCP": "paint",
    "CLS": "layout",
    "TTFB": "navigation",
    "FID": "navigation",
    "INP": "navigation",
}

SLOW_RESOURCE_MS = 1000.0
VERY_SLOW_RESOURCE_MS = 2000.0
LARGE_RESOURCE_BYTES = 1024 * 1024

_RESOURCE_EXTENSIONS = {
    "script": (".js", ".mjs"),
    "stylesheet": (".css",),
    "image": (".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".avif"),
    "font": (".woff", ".woff2", ".ttf", ".otf"),
}


def rate_web_vital(name: str, value: float) -> Rating:
    """Rate a vital: good up to the first bound, poor beyond the second."""
    thresholds = WEB_VITAL_THRESHOLDS.get(name.upper())
    if thresholds is None:
        return "good"
    good, poor = thresholds
    if value <= good:
        return "good"
    if value <= poor:
        return "needs-improvement"
    return "poor"


def performance_score(vitals: Iterable[WebVitalsMetric]) -> int:
    """Start at 100; lose 30 per poor vital and 15 per needs-improvement, floor 0."""
    score = 100
    for vital in vitals:
        if vital.rating == "poor":
            score -= 30
        elif vital.rating == "needs-improvement":
            score -= 15
    return max(0, score)


def classify_resource(url: str) -> str:
    """Guess a resource type from its URL."""
    path = url.split("?", 1)[0].split("#", 1)[0].lower()
    for resource_type, extensions in _RESOURCE_EXTENSIONS.items():
        if path.endswith(extensions):
            return resource_type
    if "/api/" in path:
        return "api"
    return "other"


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) or math.isinf(number) else number


class PerformanceCollector:
    """Collects performance signals and checks them against budgets.

    Args:
        config: Collector settings.
        budgets: Budget evaluator; built from ``config.budgets`` when omitted.
        memory: Memory monitor; a source-less one is built when omitted.
        metrics: Self-metrics collector.
        emitter: Event emitter for ``web-vital``, ``custom-metric``,
            ``performance-alert`` and ``performance-report``.
        clock: Time source.
    """

    def __init__(
        self,
        config: PerformanceConfig | None = None,
        *,
        budgets: BudgetEvaluator | None = None,
        memory: MemoryMonitor | None = None,
        metrics: MetricsCollector | None = None,
        emitter: EventEmitter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or PerformanceConfig()
        self.config.validate()
        self.events = emitter or EventEmitter()
        self.metrics = metrics or MetricsCollector(clock=clock)
        self._clock = clock
        if budgets is None:
            budgets = BudgetEvaluator(
                self.config.budgets, emitter=self.events, metrics=self.metrics, clock=clock
            )
        elif budgets.events is not self.events:
            budgets.events.on(PERFORMANCE_ALERT, lambda alert: self.events.emit(PERFORMANCE_ALERT, alert))
        self.budgets = budgets
        self.memory = memory or MemoryMonitor(
            max_samples=self.config.max_memory_samples,
            interval=self.config.memory_interval,
            clock=clock,
        )
        self._custom: deque[PerformanceMetric] = deque(maxlen=self.config.max_custom_metrics)
        self._resources: deque[ResourceTiming] = deque(maxlen=self.config.max_resource_timings)
        self._vitals: dict[str, WebVitalsMetric] = {}
        self._lock = threading.RLock()

    # --- Web vitals ---

    def record_web_vital(
        self, name: str, value: float, navigation_type: str = "navigate"
    ) -> WebVitalsMetric | None:
        """Store the latest reading of a vital and check it against budgets.

        Returns None when web vitals are disabled or ``value`` is not a number.
        """
        if not self.config.enable_web_vitals:
            return None
        number = _as_number(value)
        if number is None:
            logger.warning("Dropping web vital %s with non-numeric value %r", name, value)
            return None
        name = str(name).upper()
        vital = WebVitalsMetric(
            name=name,
            value=number,
            rating=rate_web_vital(name, number),
            timestamp=self._clock(),
            navigation_type=navigation_type,
        )
        with self._lock:
            self._vitals[name] = vital
        self.metrics.gauge("web_vital_value", number, labels={"metric": name})
        self.events.emit(WEB_VITAL, vital)
        self._check_budgets(
            PerformanceMetric(
                id=new_id("vital"),
                name=name,
                value=number,
                unit="score" if name == "CLS" else "ms",
                category=_VITAL_CATEGORIES.get(name, "custom"),
                timestamp=vital.timestamp,
                tags={"rating": vital.rating},
            )
        )
        return vital

    def record_layout_shift(
        self, value: float, had_recent_input: bool = False
    ) -> WebVitalsMetric | None:
        """Accumulate a layout shift into CLS; shifts right after user input are ignored."""
        with self._lock:
            current = self._vitals.get("CLS")
        if had_recent_input:
            return current
        number = _as_number(value)
        if number is None:
            return current
        total = (current.value if current else 0.0) + number
        return self.record_web_vital("CLS", total)

    def ingest_web_vital_beacon(self, payload: Mapping[str, Any]) -> WebVitalsMetric | None:
        """Record a vital sent by a browser (``{"name", "value", "navigationType"}``)."""
        name = payload.get("name")
        if not isinstance(name, str) or not name:
            logger.warning("Ignoring web vital beacon without a name: %r", payload)
            return None
        navigation_type = payload.get("navigationType") or payload.get("navigation_type")
        return self.record_web_vital(name, payload.get("value"), str(navigation_type or "navigate"))

    def get_web_vitals(self) -> list[WebVitalsMetric]:
        with self._lock:
            return list(self._vitals.values())

    def get_web_vital(self, name: str) -> WebVitalsMetric | None:
        with self._lock:
            return self._vitals.get(name.upper())

    # --- Custom metrics ---

    def record_metric(
        self,
        name: str,
        value: float,
        unit: MetricUnit = "ms",
        *,
        category: MetricCategory = "custom",
        tags: Mapping[str, str] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> PerformanceMetric | None:
        """Record a custom metric; non-numeric values are dropped with a warning."""
        number = _as_number(value)
        if number is None:
            logger.warning("Dropping metric %s with non-numeric value %r", name, value)
            return None
        metric = PerformanceMetric(
            id=new_id("metric"),
            name=name,
            value=number,
            unit=unit if unit in METRIC_UNITS else "count",
            category=category if category in METRIC_CATEGORIES else "custom",
            timestamp=self._clock(),
            tags={str(k): str(v) for k, v in (tags or {}).items()},
            metadata=dict(metadata or {}),
        )
        with self._lock:
            self._custom.append(metric)
        self.metrics.increment("custom_metrics_total")
        self.events.emit(CUSTOM_METRIC, metric)
        self._check_budgets(metric)
        return metric

    def get_custom_metrics(self, name: str | None = None) -> list[PerformanceMetric]:
        with self._lock:
            return [m for m in self._custom if name is None or m.name == name]

    def _check_budgets(self, metric: PerformanceMetric) -> None:
        if self.config.enable_budgets:
            self.budgets.check([metric])

    # --- Measurement wrappers ---

    def _record_duration(
        self, name: str, started: float, kind: str, tags: Mapping[str, str] | None
    ) -> None:
        duration = (time.perf_counter() - started) * 1000
        self.record_metric(
            f"{name}_duration", duration, "ms", tags={**(tags or {}), "type": kind}
        )

    def measure_function(
        self,
        name: str,
        fn: Callable[..., T],
        *args: Any,
        tags: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> T:
        """Call ``fn`` and record ``<name>_duration`` in milliseconds.

        The duration is recorded even if ``fn`` raises; the exception then
        propagates unchanged. When ``fn`` returns an awaitable, the returned
        coroutine records the duration once that awaitable settles.
        """
        started = time.perf_counter()
        try:
            result = fn(*args, **kwargs)
        except BaseException:
            self._record_duration(name, started, "error", tags)
            raise
        if inspect.isawaitable(result):
            return self._settle(name, result, started, tags)  # type: ignore[return-value]
        self._record_duration(name, started, "sync", tags)
        return result

    async def _settle(
        self,
        name: str,
        awaitable: Awaitable[T],
        started: float,
        tags: Mapping[str, str] | None,
    ) -> T:
        try:
            result = await awaitable
        except BaseException:
            self._record_duration(name, started, "error", tags)
            raise
        self._record_duration(name, started, "async", tags)
        return result

    async def measure_async(
        self,
        name: str,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        tags: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> T:
        """Await ``fn(*args, **kwargs)`` and record ``<name>_duration``."""
        started = time.perf_counter()
        try:
            result = await fn(*args, **kwargs)
        except BaseException:
            self._record_duration(name, started, "error", tags)
            raise
        self._record_duration(name, started, "async", tags)
        return result

    @contextmanager
    def measure(self, name: str, tags: Mapping[str, str] | None = None) -> Iterator[None]:
        """Context manager recording how long its block took."""
        started = time.perf_counter()
        try:
            yield
        except BaseException:
            self._record_duration(name, started, "error", tags)
            raise
        self._record_duration(name, started, "sync", tags)

    # --- Resource timings ---

    def record_resource_timing(self, timing: ResourceTiming | Mapping[str, Any]) -> ResourceTiming:
        if isinstance(timing, Mapping):
            timing = ResourceTiming(
                name=str(timing["name"]),
                type=str(timing.get("type") or classify_resource(str(timing["name"]))),
                start_time=float(timing.get("start_time", timing.get("startTime", 0.0))),
                duration=float(timing.get("duration", 0.0)),
                transfer_size=int(timing.get("transfer_size", timing.get("transferSize", 0))),
                response_start=float(timing.get("response_start", timing.get("responseStart", 0.0))),
                response_end=float(timing.get("response_end", timing.get("responseEnd", 0.0))),
            )
        with self._lock:
            self._resources.append(timing)
        return timing

    def get_resource_timings(self) -> list[ResourceTiming]:
        with self._lock:
            return list(self._resources)

    def get_slow_resources(self, threshold: float = SLOW_RESOURCE_MS) -> list[ResourceTiming]:
        return [r for r in self.get_resource_timings() if r.duration > threshold]

    def get_large_resources(self, threshold: int = LARGE_RESOURCE_BYTES) -> list[ResourceTiming]:
        return [r for r in self.get_resource_timings() if r.transfer_size > threshold]

    def get_total_transfer_size(self) -> int:
        return sum(r.transfer_size for r in self.get_resource_timings())

    def get_average_response_time(self) -> float:
        timings = self.get_resource_timings()
        if not timings:
            return 0.0
        return sum(r.response_end - r.response_start for r in timings) / len(timings)

    # --- Budgets ---

    def add_performance_budget(self, budget: PerformanceBudget | Mapping[str, Any]) -> PerformanceBudget:
        return self.budgets.add_budget(budget)

    def remove_performance_budget(self, metric: str) -> int:
        return self.budgets.remove_budget(metric)

    def get_performance_alerts(self) -> list[PerformanceAlert]:
        return self.budgets.alerts()

    def clear_performance_alerts(self) -> None:
        self.budgets.clear_alerts()

    # --- Analysis ---

    def score(self) -> int:
        return performance_score(self.get_web_vitals())

    def recommendations(self) -> list[str]:
        """Suggest fixes for poor vitals, slow or large resources and memory growth."""
        vitals = {v.name: v for v in self.get_web_vitals()}
        advice = []
        lcp = vitals.get("LCP")
        if lcp is not None and lcp.rating != "good":
            advice.append("Optimize Largest Contentful Paint: compress images and preload key resources")
        fid = vitals.get("FID") or vitals.get("INP")
        if fid is not None and fid.rating != "good":
            advice.append("Reduce interaction delay: split long tasks and defer non-critical JavaScript")
        cls = vitals.get("CLS")
        if cls is not None and cls.rating != "good":
            advice.append("Reduce layout shift: reserve space for images, ads and embeds")
        fcp = vitals.get("FCP")
        if fcp is not None and fcp.rating != "good":
            advice.append("Improve First Contentful Paint: inline critical CSS and remove render-blocking resources")
        ttfb = vitals.get("TTFB")
        if ttfb is not None and ttfb.rating != "good":
            advice.append("Improve server response time: add caching or a CDN")
        slow = self.get_slow_resources(VERY_SLOW_RESOURCE_MS)
        if slow:
            advice.append(f"Optimize {len(slow)} slow-loading resources")
        large = self.get_large_resources()
        if large:
            advice.append(f"Compress or lazy-load {len(large)} large resources")
        if self.memory.trend() == "increasing":
            advice.append("Memory usage is increasing; check for leaks")
        return advice

    def analyze(self) -> dict[str, list[str]]:
        """Group findings into ``critical``, ``warnings`` and ``info``."""
        critical = [
            f"{v.name} is poor ({v.value:g})" for v in self.get_web_vitals() if v.rating == "poor"
        ]
        warnings = [
            f"{v.name} needs improvement ({v.value:g})"
            for v in self.get_web_vitals()
            if v.rating == "needs-improvement"
        ]
        if self.memory.is_leak_suspected():
            critical.append("Possible memory leak detected")
        slow = self.get_slow_resources()
        if slow:
            warnings.append(f"{len(slow)} resources took longer than {SLOW_RESOURCE_MS:g}ms")
        info = [
            f"Performance score: {self.score()}",
            f"Resources loaded: {len(self.get_resource_timings())}",
            f"Total transfer size: {self.get_total_transfer_size()} bytes",
        ]
        return {"critical": critical, "warnings": warnings, "info": info}

    def generate_report(self) -> PerformanceReport:
        report = PerformanceReport(
            timestamp=self._clock(),
            web_vitals=self.get_web_vitals(),
            memory=self.memory.current(),
            custom_metrics=self.get_custom_metrics(),
            resource_timings=self.get_resource_timings(),
            alerts=self.get_performance_alerts(),
            score=self.score(),
            recommendations=self.recommendations(),
        )
        self.events.emit(PERFORMANCE_REPORT, report)
        return report

    # --- Lifecycle ---

    def start(self) -> None:
        if self.config.enable_memory_monitoring:
            self.memory.start()

    async def stop(self) -> None:
        await self.memory.stop()

    def clear(self) -> None:
        with self._lock:
            self._custom.clear()
            self._resources.clear()
            self._vitals.clear()
        self.memory.clear()
        self.budgets.clear_alerts()
