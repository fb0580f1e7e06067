"""Integration hub wiring error tracking, logging and performance together.

The hub is constructed explicitly and passed to whatever needs it. It owns
none of the subsystem stores; it subscribes to their events, forwards the
inbound API, and builds reports, health analyses, insights and the
Prometheus exposition.
"""

import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

from telemetripy.core.config import MonitoringConfig
from telemetripy.core.diagnostics import get_logger
from telemetripy.core.encoding.prometheus import MetricFamily, encode_families
from telemetripy.core.errors import ErrorTracker
from telemetripy.core.events import (
    ALERT_TRIGGERED,
    ERROR_NEW,
    HUB_STARTED,
    HUB_STOPPED,
    LOG,
    PERFORMANCE_ALERT,
    REPORT_GENERATED,
    WEB_VITAL,
    EventEmitter,
    Listener,
)
from telemetripy.core.logs import LogPipeline
from telemetripy.core.memory import MemoryMonitor
from telemetripy.core.metrics import MetricsCollector
from telemetripy.core.models import (
    LOG_LEVELS,
    AlertNotification,
    HealthAnalysis,
    HealthStatus,
    Insights,
    LogEntry,
    MetricSample,
    MonitoringReport,
    PerformanceAlert,
    PerformanceMetric,
    TrackedError,
    WebVitalsMetric,
    new_id,
)
from telemetripy.core.performance import (
    SLOW_RESOURCE_MS,
    VERY_SLOW_RESOURCE_MS,
    PerformanceCollector,
    classify_resource,
    performance_score,
)
from telemetripy.core.ports import MemorySource
from telemetripy.runtime.dispatch import BackgroundDispatcher
from telemetripy.runtime.tasks import BackgroundTasks

logger = get_logger(__name__)

T = TypeVar("T")

Source = Literal["errors", "logs", "performance"]

HEALTHY_SCORE = 80
DEGRADED_SCORE = 50


def health_status(score: int) -> HealthStatus:
    if score >= HEALTHY_SCORE:
        return "healthy"
    if score >= DEGRADED_SCORE:
        return "degraded"
    return "critical"


@dataclass
class HubWiring:
    """Switches for the hub's cross-subsystem reactions."""

    new_error_to_log: bool = True
    alert_to_log: bool = True
    error_log_to_error: bool = True
    performance_alert_to_log: bool = True
    performance_alert_to_error: bool = True
    poor_vital_to_log: bool = True


class MonitoringHub:
    """Single entry point for errors, logs and performance data.

    Args:
        config: Hub configuration; validated on construction.
        error_tracker: Use this tracker instead of building one.
        logger: Use this log pipeline instead of building one.
        performance: Use this collector instead of building one.
        wiring: Which reactions to install.
        metrics: Self-metrics shared by the subsystems the hub builds.
        dispatcher: Background dispatcher shared by alert actions.
        memory_source: Memory source for the collector the hub builds.
        clock: Time source.
    """

    def __init__(
        self,
        config: MonitoringConfig | None = None,
        *,
        error_tracker: ErrorTracker | None = None,
        logger: LogPipeline | None = None,
        performance: PerformanceCollector | None = None,
        wiring: HubWiring | None = None,
        metrics: MetricsCollector | None = None,
        dispatcher: BackgroundDispatcher | None = None,
        memory_source: MemorySource | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = (config or MonitoringConfig()).validate()
        self.events = EventEmitter()
        self.metrics = metrics or MetricsCollector(clock=clock)
        self.dispatcher = dispatcher or BackgroundDispatcher()
        self._clock = clock
        self.session_id = self.config.session_id or new_id("sess")
        self.session_start = clock()
        self.last_report: MonitoringReport | None = None
        self._scrapes = 0
        self._started = False

        ambient = {
            "session_id": self.session_id,
            "user_id": self.config.user_id,
            "environment": self.config.environment,
            "service": self.config.service,
            "version": self.config.version,
        }
        if error_tracker is None and self.config.error_tracking.enabled:
            error_tracker = ErrorTracker(
                self.config.error_tracking,
                metrics=self.metrics,
                dispatcher=self.dispatcher,
                context=ambient,
                clock=clock,
            )
        elif error_tracker is not None:
            error_tracker.set_context(ambient)
        self.error_tracker = error_tracker

        if logger is None and self.config.logging.enabled:
            logger = LogPipeline(
                self.config.logging,
                environment=self.config.environment,
                service=self.config.service,
                version=self.config.version,
                context={"session_id": self.session_id, "user_id": self.config.user_id},
                metrics=self.metrics,
                clock=clock,
            )
        elif logger is not None:
            logger.set_context(session_id=self.session_id, user_id=self.config.user_id)
        self.logger = logger

        if performance is None and self.config.performance.enabled:
            performance = PerformanceCollector(
                self.config.performance,
                memory=MemoryMonitor(
                    memory_source,
                    max_samples=self.config.performance.max_memory_samples,
                    interval=self.config.performance.memory_interval,
                    clock=clock,
                ),
                metrics=self.metrics,
                clock=clock,
            )
        self.performance = performance

        self.tasks = BackgroundTasks()
        if self.error_tracker is not None:
            self.tasks.add_task(self.error_tracker.cleanup_task)
        if self.logger is not None:
            self.tasks.add_task(self.logger.flush_task)
        if self.performance is not None and self.config.performance.enable_memory_monitoring:
            self.tasks.add_task(self.performance.memory.sample_task)
        self.tasks.add("monitoring-report", self.config.report_interval, self.generate_report)

        self._unsubscribers: list[Callable[[], None]] = []
        self.wiring = wiring or HubWiring()
        self._wire(self.wiring)

    # --- Wiring ---

    def _emitter(self, source: Source) -> EventEmitter | None:
        component = {
            "errors": self.error_tracker,
            "logs": self.logger,
            "performance": self.performance,
        }[source]
        return component.events if component is not None else None

    def subscribe(self, source: Source, event: str, handler: Listener) -> Callable[[], None]:
        """Subscribe ``handler`` to ``event`` of one subsystem.

        Returns:
            A callable removing the subscription; a no-op when the
            subsystem is disabled.
        """
        emitter = self._emitter(source)
        if emitter is None:
            return lambda: None
        unsubscribe = emitter.on(event, handler)
        self._unsubscribers.append(unsubscribe)
        return unsubscribe

    def _wire(self, wiring: HubWiring) -> None:
        if wiring.new_error_to_log:
            self.subscribe("errors", ERROR_NEW, self._log_new_error)
        if wiring.alert_to_log:
            self.subscribe("errors", ALERT_TRIGGERED, self._log_alert)
        if wiring.error_log_to_error:
            self.subscribe("logs", LOG, self._track_logged_error)
        if wiring.performance_alert_to_log:
            self.subscribe("performance", PERFORMANCE_ALERT, self._log_performance_alert)
        if wiring.performance_alert_to_error:
            self.subscribe("performance", PERFORMANCE_ALERT, self._track_performance_alert)
        if wiring.poor_vital_to_log:
            self.subscribe("performance", WEB_VITAL, self._log_poor_vital)

    def rewire(self, wiring: HubWiring) -> None:
        """Replace every subscription with the reactions ``wiring`` enables."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.wiring = wiring
        self._wire(wiring)

    def _log_new_error(self, error: TrackedError) -> None:
        if self.logger is None:
            return
        self.logger.error(
            f"New error tracked: {error.message}",
            {
                "error_id": error.id,
                "fingerprint": error.fingerprint,
                "type": error.type,
                "severity": error.severity,
            },
        )

    def _log_alert(self, notification: AlertNotification) -> None:
        if self.logger is None:
            return
        self.logger.warn(
            f"Error alert triggered: {notification.rule.name}",
            {
                "rule_id": notification.rule.id,
                "error_id": notification.error.id,
                "error_count": notification.error.count,
            },
        )

    def _track_logged_error(self, entry: LogEntry) -> None:
        if self.error_tracker is None or entry.error is None:
            return
        if entry.level not in ("error", "fatal"):
            return
        context = {
            "component": entry.metadata.component,
            "action": entry.metadata.action,
            "log_id": entry.id,
        }
        if entry.metadata.user_id:
            context["user_id"] = entry.metadata.user_id
        self.error_tracker.track_error(
            {
                "name": entry.error.name,
                "message": entry.error.message,
                "stack": entry.error.stack,
                "code": entry.error.code,
            },
            context,
        )

    def _log_performance_alert(self, alert: PerformanceAlert) -> None:
        if self.logger is None:
            return
        self.logger.warn(
            f"Performance budget exceeded: {alert.metric}",
            {
                "value": alert.value,
                "threshold": alert.threshold,
                "operator": alert.operator,
                "severity": alert.severity,
            },
        )

    def _track_performance_alert(self, alert: PerformanceAlert) -> None:
        if self.error_tracker is None or alert.severity != "error":
            return
        self.error_tracker.track_error(
            {
                "name": "PerformanceBudgetError",
                "message": f"Performance budget violation: {alert.message}",
                "severity": "high",
            },
            {"component": "performance-monitor", "action": "budget-violation", "alert": alert.to_dict()},
        )

    def _log_poor_vital(self, vital: WebVitalsMetric) -> None:
        if self.logger is None or vital.rating != "poor":
            return
        self.logger.warn(
            f"Poor Web Vital: {vital.name}",
            {"value": vital.value, "rating": vital.rating, "navigation_type": vital.navigation_type},
        )

    # --- Inbound API ---

    def track_error(
        self, error: Any, context: Mapping[str, Any] | None = None
    ) -> TrackedError | None:
        """Track an error; returns None when error tracking is disabled."""
        if self.error_tracker is None:
            return None
        return self.error_tracker.track_error(error, context)

    def log(
        self,
        level: str,
        message: str,
        context: Mapping[str, Any] | None = None,
        error: BaseException | None = None,
    ) -> None:
        if self.logger is not None:
            self.logger.log(level, message, context, error)

    def debug(self, message: str, context: Mapping[str, Any] | None = None) -> None:
        self.log("debug", message, context)

    def info(self, message: str, context: Mapping[str, Any] | None = None) -> None:
        self.log("info", message, context)

    def warn(self, message: str, context: Mapping[str, Any] | None = None) -> None:
        self.log("warn", message, context)

    def error(
        self,
        message: str,
        context: Mapping[str, Any] | None = None,
        error: BaseException | None = None,
    ) -> None:
        self.log("error", message, context, error)

    def fatal(
        self,
        message: str,
        context: Mapping[str, Any] | None = None,
        error: BaseException | None = None,
    ) -> None:
        self.log("fatal", message, context, error)

    def record_metric(
        self, name: str, value: float, unit: Any = "ms", **options: Any
    ) -> PerformanceMetric | None:
        if self.performance is None:
            return None
        return self.performance.record_metric(name, value, unit, **options)

    def record_web_vital(
        self, name: str, value: float, navigation_type: str = "navigate"
    ) -> WebVitalsMetric | None:
        if self.performance is None:
            return None
        return self.performance.record_web_vital(name, value, navigation_type)

    def measure_function(self, name: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Measure ``fn``; without performance monitoring it is simply called."""
        if self.performance is None:
            return fn(*args, **kwargs)
        return self.performance.measure_function(name, fn, *args, **kwargs)

    async def measure_async(
        self, name: str, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        if self.performance is None:
            return await fn(*args, **kwargs)
        return await self.performance.measure_async(name, fn, *args, **kwargs)

    def set_context(self, context: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        """Update the ambient context of the tracker and the log pipeline."""
        values = {**(context or {}), **kwargs}
        if self.error_tracker is not None:
            self.error_tracker.set_context(values)
        if self.logger is not None:
            self.logger.set_context(values)
            self.logger.debug("Context updated", {"keys": sorted(values)})

    def set_user(self, user_id: str | None) -> None:
        self.config.user_id = user_id
        self.set_context(user_id=user_id)

    # --- Reports ---

    def generate_report(self) -> MonitoringReport:
        """Build a report of the current state and emit ``report-generated``."""
        now = self._clock()
        error_metrics = self.error_tracker.get_metrics() if self.error_tracker else None
        vitals = self.performance.get_web_vitals() if self.performance else []
        memory = self.performance.memory.current() if self.performance else None
        total_errors = error_metrics.total_errors if error_metrics else 0

        perf_score = performance_score(vitals)
        error_score = 50 if total_errors > 10 else 100
        memory_score = 30 if memory is not None and memory.usage_ratio > 0.9 else 100
        score = max(0, min(perf_score, error_score, memory_score))
        issues = []
        if perf_score < 100:
            issues.append("Web vitals outside the good range")
        if error_score < 100:
            issues.append(f"High error volume ({total_errors} errors)")
        if memory_score < 100:
            issues.append("Memory usage above 90% of the limit")

        report = MonitoringReport(
            timestamp=now,
            environment=self.config.environment,
            service=self.config.service,
            version=self.config.version,
            session={
                "id": self.session_id,
                "duration": now - self.session_start,
                "user_id": self.config.user_id,
            },
            errors={
                "total": total_errors,
                "unique": error_metrics.unique_errors if error_metrics else 0,
                "by_type": error_metrics.errors_by_type if error_metrics else {},
                "by_severity": error_metrics.errors_by_severity if error_metrics else {},
                "top_errors": [e.to_dict() for e in error_metrics.top_errors] if error_metrics else [],
            },
            performance={
                "web_vitals": [
                    {"name": v.name, "value": v.value, "rating": v.rating} for v in vitals
                ],
                "score": perf_score,
                "memory_usage": memory.used_bytes if memory is not None else None,
                "memory_ratio": memory.usage_ratio if memory is not None else None,
                "resource_count": len(self.performance.get_resource_timings()) if self.performance else 0,
                "alerts": len(self.performance.get_performance_alerts()) if self.performance else 0,
            },
            logs=self.logger.get_stats() if self.logger else {},
            health={"score": score, "status": health_status(score), "issues": issues},
        )
        self.last_report = report
        self.metrics.gauge("health_score", score)
        self.events.emit(REPORT_GENERATED, report)
        if self.logger is not None:
            self.logger.debug(
                "Monitoring report generated",
                {"health_score": score, "total_errors": total_errors},
            )
        return report

    def analyze_health(self) -> HealthAnalysis:
        """Score overall health from error volume, vitals, memory and slow resources."""
        score = 100
        recommendations = []
        if self.error_tracker is not None:
            total = self.error_tracker.get_metrics().total_errors
            if total > 50:
                score -= 30
                recommendations.append("High error rate detected. Review error logs and fix critical issues.")
        if self.performance is not None:
            poor = [v for v in self.performance.get_web_vitals() if v.rating == "poor"]
            for vital in poor:
                score -= 20
                recommendations.append(f"Improve {vital.name}: currently {vital.value:g}")
            memory = self.performance.memory.latest()
            if memory is not None and memory.usage_ratio > 0.8:
                score -= 25
                recommendations.append("High memory usage detected. Check for memory leaks.")
            very_slow = self.performance.get_slow_resources(VERY_SLOW_RESOURCE_MS)
            if len(very_slow) > 5:
                score -= 15
                recommendations.append("Multiple slow resources detected. Optimize resource loading.")
        score = max(0, score)
        return HealthAnalysis(score=score, status=health_status(score), recommendations=recommendations)

    def get_insights(self) -> Insights:
        """Top errors with trend, budget violations, slow resources and advice."""
        top_errors: list[dict[str, Any]] = []
        if self.error_tracker is not None:
            for top in self.error_tracker.get_metrics(top_n=5).top_errors:
                top_errors.append(
                    {
                        "fingerprint": top.fingerprint,
                        "message": top.message,
                        "count": top.count,
                        "trend": self.error_tracker.error_trend(top.fingerprint),
                    }
                )
        issues: list[dict[str, Any]] = []
        bottlenecks: list[dict[str, Any]] = []
        recommendations: list[str] = []
        if self.performance is not None:
            issues = [
                {"metric": a.metric, "value": a.value, "threshold": a.threshold, "severity": a.severity}
                for a in self.performance.get_performance_alerts()
            ]
            bottlenecks = [
                {
                    "name": r.name,
                    "type": classify_resource(r.name),
                    "duration": r.duration,
                    "size": r.transfer_size,
                }
                for r in self.performance.get_slow_resources(SLOW_RESOURCE_MS)
            ]
            recommendations = self.performance.recommendations()
        recommendations = [*recommendations, *self.analyze_health().recommendations]
        return Insights(
            top_errors=top_errors,
            performance_issues=issues,
            resource_bottlenecks=bottlenecks,
            recommendations=list(dict.fromkeys(recommendations)),
        )

    # --- Exposition ---

    def metric_families(self) -> list[MetricFamily]:
        """Build the metric families exposed on ``/metrics``."""
        ns = self.config.namespace
        now = self._clock()
        self._scrapes += 1

        def sample(name: str, value: float, labels: dict[str, str] | None = None) -> MetricSample:
            return MetricSample(name=name, timestamp=now, value=value, labels=labels or {})

        families = [
            MetricFamily(
                name=f"{ns}_frontend_info",
                help="Service information",
                type="gauge",
                samples=[
                    sample(
                        f"{ns}_frontend_info",
                        1,
                        {"version": self.config.version, "environment": self.config.environment},
                    )
                ],
            )
        ]

        error_metrics = self.error_tracker.get_metrics() if self.error_tracker else None
        if error_metrics is not None:
            families.append(
                MetricFamily(
                    name=f"{ns}_errors_total",
                    help="Total number of tracked error occurrences",
                    type="counter",
                    samples=[sample(f"{ns}_errors_total", error_metrics.total_errors)],
                )
            )
            families.append(
                MetricFamily(
                    name=f"{ns}_error_rate",
                    help="Share of error occurrences attributed to known users, in percent",
                    type="gauge",
                    samples=[sample(f"{ns}_error_rate", error_metrics.user_impact.error_rate * 100)],
                )
            )

        if self.performance is not None:
            vitals = self.performance.get_web_vitals()
            if vitals:
                families.append(
                    MetricFamily(
                        name=f"{ns}_web_vitals",
                        help="Latest Core Web Vitals readings",
                        type="gauge",
                        samples=[
                            sample(f"{ns}_web_vitals", v.value, {"metric": v.name.lower(), "rating": v.rating})
                            for v in vitals
                        ],
                    )
                )
            families.append(
                MetricFamily(
                    name=f"{ns}_performance_alerts_total",
                    help="Performance budget violations",
                    type="counter",
                    samples=[
                        sample(f"{ns}_performance_alerts_total", self.metrics.total("performance_alerts_total"))
                    ],
                )
            )

        alert_samples = [
            sample(f"{ns}_alerts_total", s.value, s.labels) for s in self.metrics.samples("alerts_total")
        ]
        if alert_samples:
            families.append(
                MetricFamily(
                    name=f"{ns}_alerts_total",
                    help="Alert rule firings and action deliveries by outcome",
                    type="counter",
                    samples=alert_samples,
                )
            )

        if self.logger is not None:
            families.append(
                MetricFamily(
                    name=f"{ns}_logs_total",
                    help="Accepted log entries by level",
                    type="counter",
                    samples=[
                        sample(f"{ns}_logs_total", self.metrics.value("logs_total", {"level": level}), {"level": level})
                        for level in LOG_LEVELS
                    ],
                )
            )
            families.append(
                MetricFamily(
                    name=f"{ns}_log_transport_errors_total",
                    help="Log transport delivery failures",
                    type="counter",
                    samples=[
                        sample(f"{ns}_log_transport_errors_total", self.metrics.total("log_transport_errors_total"))
                    ],
                )
            )

        health = self.last_report.health["score"] if self.last_report else self.analyze_health().score
        families.extend(
            [
                MetricFamily(
                    name=f"{ns}_health_score",
                    help="Overall health score (0-100)",
                    type="gauge",
                    samples=[sample(f"{ns}_health_score", health)],
                ),
                MetricFamily(
                    name=f"{ns}_http_requests_total",
                    help="Scrapes of the metrics endpoint",
                    type="counter",
                    samples=[
                        sample(
                            f"{ns}_http_requests_total",
                            self._scrapes,
                            {"method": "GET", "endpoint": "/metrics"},
                        )
                    ],
                ),
                MetricFamily(
                    name=f"{ns}_last_scrape_timestamp_seconds",
                    help="Unix time of the last scrape",
                    type="gauge",
                    samples=[sample(f"{ns}_last_scrape_timestamp_seconds", int(now))],
                ),
            ]
        )
        return families

    def render_prometheus(self, extra: list[MetricFamily] | None = None) -> str:
        """Render the exposition document; ``extra`` families go after the service info."""
        families = self.metric_families()
        if extra:
            families = [families[0], *extra, *families[1:]]
        return encode_families(families)

    # --- Lifecycle ---

    async def start(self) -> None:
        """Start every background task; requires a running event loop."""
        if self._started:
            return
        self._started = True
        if self.error_tracker is not None and self.config.error_tracking.capture_unhandled:
            self.error_tracker.install_global_handlers()
            self.error_tracker.install_loop_handler()
        self.tasks.start()
        if self.logger is not None:
            self.logger.info(
                "Monitoring started",
                {"environment": self.config.environment, "session_id": self.session_id},
            )
        self.events.emit(HUB_STARTED, self)

    async def shutdown(self) -> None:
        """Cancel background tasks, write a final report, flush logs and drain dispatches."""
        await self.tasks.stop()
        if self.error_tracker is not None:
            self.error_tracker.uninstall_global_handlers()
        self.generate_report()
        if self.logger is not None:
            self.logger.info("Monitoring stopped", {"session_id": self.session_id})
            self.logger.flush()
        await self.dispatcher.drain()
        if self.logger is not None:
            for transport in self.logger.transports:
                drain = getattr(transport, "drain", None)
                if drain is not None:
                    await drain()
        self.dispatcher.close()
        self._started = False
        self.events.emit(HUB_STOPPED, self)

    async def __aenter__(self) -> "MonitoringHub":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()
