"""Error tracking: classification, deduplication by fingerprint, metrics and alerts.

Each reported error is coerced, classified and fingerprinted. The first
occurrence of a fingerprint creates a ``TrackedError``; later occurrences
increment its ``count`` and move ``last_seen``. The store is bounded by a
retention period and a maximum size.
"""

import asyncio
import logging
import random as _random
import sys
import threading
import time
from collections import deque
from collections.abc import Callable, Mapping
from typing import Any

from telemetripy.core.alerts import AlertRuleEngine, default_alert_rules
from telemetripy.core.classification import DefaultErrorClassifier, coerce_error
from telemetripy.core.config import ErrorTrackingConfig
from telemetripy.core.diagnostics import get_logger
from telemetripy.core.events import ERROR_NEW, ERROR_RESOLVED, ERROR_UPDATED, EventEmitter
from telemetripy.core.fingerprint import fingerprint
from telemetripy.core.metrics import MetricsCollector
from telemetripy.core.models import (
    ERROR_TYPES,
    SEVERITIES,
    ErrorContext,
    ErrorMetrics,
    ErrorType,
    RawError,
    Severity,
    TopError,
    TrackedError,
    Trend,
    TrendPoint,
    UserImpact,
    new_id,
)
from telemetripy.core.ports import ErrorClassifier
from telemetripy.runtime.dispatch import BackgroundDispatcher
from telemetripy.runtime.tasks import PeriodicTask

logger = get_logger(__name__)

SAMPLED_OUT_ID = "sample"
OCCURRENCE_HISTORY = 100
HOUR = 3600.0
DAY = 24 * HOUR

_SEVERITY_LOG_LEVELS = {
    "critical": logging.CRITICAL,
    "high": logging.ERROR,
    "medium": logging.WARNING,
    "low": logging.INFO,
}


class ErrorTracker:
    """Deduplicating store of tracked errors.

    Args:
        config: Tracker settings.
        alert_engine: Engine evaluated on every occurrence; one sharing this
            tracker's store and emitter is built when omitted.
        classifier: Type and severity heuristic.
        metrics: Self-metrics collector.
        emitter: Event emitter for ``error-*`` and ``alert-*`` events.
        dispatcher: Background dispatcher for alert actions.
        context: Initial ambient context (session, user, service ...).
        clock: Time source.
        random: Source of uniform floats for sampling.
    """

    def __init__(
        self,
        config: ErrorTrackingConfig | None = None,
        *,
        alert_engine: AlertRuleEngine | None = None,
        classifier: ErrorClassifier | None = None,
        metrics: MetricsCollector | None = None,
        emitter: EventEmitter | None = None,
        dispatcher: BackgroundDispatcher | None = None,
        context: Mapping[str, Any] | None = None,
        clock: Callable[[], float] = time.time,
        random: Callable[[], float] = _random.random,
    ) -> None:
        self.config = config or ErrorTrackingConfig()
        self.config.validate()
        self.events = emitter or EventEmitter()
        self.metrics = metrics or MetricsCollector(clock=clock)
        self.classifier: ErrorClassifier = classifier or DefaultErrorClassifier()
        self._clock = clock
        self._random = random
        self._errors: dict[str, TrackedError] = {}
        self._occurrences: dict[str, deque[float]] = {}
        self._lock = threading.RLock()
        self._context: dict[str, Any] = {"session_id": new_id("sess"), **(context or {})}
        self._previous_hooks: tuple[Any, Any] | None = None

        if alert_engine is None:
            alert_engine = AlertRuleEngine(
                self.get_all_errors,
                metrics=self.metrics,
                dispatcher=dispatcher,
                emitter=self.events,
                clock=clock,
            )
            if self.config.install_default_rules:
                for rule in default_alert_rules():
                    alert_engine.add_rule(rule)
        self.alerts = alert_engine
        for rule in self.config.alert_rules:
            self.alerts.add_rule(rule)

        self.cleanup_task = PeriodicTask(
            "error-retention", self.config.cleanup_interval, self.cleanup
        )

    # --- Tracking ---

    def track_error(
        self, raw: Any, context: Mapping[str, Any] | ErrorContext | None = None
    ) -> TrackedError:
        """Record one occurrence of an error.

        Args:
            raw: An exception, a mapping with ``message``/``name``/``stack``/
                ``status``/``code``/``severity``, or any other value.
            context: Per-occurrence context merged over the ambient context.

        Returns:
            The record for the error's fingerprint, or a throwaway record
            with id ``"sample"`` when the occurrence was sampled out.
        """
        now = self._clock()
        error = coerce_error(raw)
        error_type, severity = self._classify(error)
        record_context = self._build_context(context, now)
        key = fingerprint(error_type, error.message, error.status, error.code, error.stack)

        if self._random() > self.config.sample_rate:
            return self._new_record(SAMPLED_OUT_ID, key, error, error_type, severity, record_context, now)

        with self._lock:
            record = self._errors.get(key)
            is_new = record is None
            if record is None:
                record = self._new_record(
                    new_id("err"), key, error, error_type, severity, record_context, now
                )
                self._errors[key] = record
            else:
                record.count += 1
                record.last_seen = now
            history = self._occurrences.get(key)
            if history is None:
                history = self._occurrences[key] = deque(maxlen=OCCURRENCE_HISTORY)
            history.append(now)

        self.events.emit(ERROR_NEW if is_new else ERROR_UPDATED, record)
        if self.config.enable_metrics:
            self._record_metrics(record)
        if self.config.enable_alerts:
            self.alerts.evaluate(record)
        logger.log(
            _SEVERITY_LOG_LEVELS[record.severity],
            "Tracked %s error %s (x%d): %s",
            record.type,
            record.fingerprint,
            record.count,
            record.message,
        )
        return record

    def _classify(self, error: RawError) -> tuple[ErrorType, Severity]:
        try:
            error_type, severity = self.classifier.classify(error)
        except Exception:
            logger.exception("Error classifier %r failed", self.classifier)
            return "javascript", "medium"
        if error_type not in ERROR_TYPES:
            error_type = "javascript"
        if severity not in SEVERITIES:
            severity = "medium"
        return error_type, severity

    def _build_context(
        self, context: Mapping[str, Any] | ErrorContext | None, now: float
    ) -> ErrorContext:
        if isinstance(context, ErrorContext):
            defaults = ErrorContext().to_dict()
            overrides = {k: v for k, v in context.to_dict().items() if v != defaults.get(k)}
        else:
            overrides = dict(context or {})
        with self._lock:
            merged = {**self._context, **overrides, "timestamp": now}
        return ErrorContext.from_mapping(merged)

    def _new_record(
        self,
        record_id: str,
        key: str,
        error: RawError,
        error_type: ErrorType,
        severity: Severity,
        context: ErrorContext,
        now: float,
    ) -> TrackedError:
        return TrackedError(
            id=record_id,
            fingerprint=key,
            type=error_type,
            severity=severity,
            message=error.message,
            context=context,
            stack=error.stack,
            status=error.status,
            code=error.code,
            count=1,
            first_seen=now,
            last_seen=now,
            tags=self._tags(error, context),
        )

    @staticmethod
    def _tags(error: RawError, context: ErrorContext) -> list[str]:
        tags = []
        if error.status is not None:
            tags.append(f"status:{error.status}")
        if error.code:
            tags.append(f"code:{error.code}")
        if context.feature:
            tags.append(f"feature:{context.feature}")
        if context.component:
            tags.append(f"component:{context.component}")
        if context.user_id:
            tags.append("authenticated")
        return tags

    def _record_metrics(self, record: TrackedError) -> None:
        self.metrics.increment(
            "errors_total", labels={"type": record.type, "severity": record.severity}
        )
        for tag in record.tags:
            self.metrics.increment("errors_by_tag_total", labels={"tag": tag})

    # --- Queries ---

    def resolve_error(self, key: str) -> bool:
        """Mark the record for fingerprint ``key`` resolved."""
        with self._lock:
            record = self._errors.get(key)
            if record is None:
                return False
            record.resolved = True
        self.events.emit(ERROR_RESOLVED, record)
        return True

    def get_error(self, key: str) -> TrackedError | None:
        with self._lock:
            return self._errors.get(key)

    def get_all_errors(self) -> list[TrackedError]:
        with self._lock:
            return list(self._errors.values())

    def get_errors_by_type(self, error_type: str) -> list[TrackedError]:
        return [e for e in self.get_all_errors() if e.type == error_type]

    def get_errors_by_severity(self, severity: str) -> list[TrackedError]:
        return [e for e in self.get_all_errors() if e.severity == severity]

    def get_metrics(self, top_n: int = 10) -> ErrorMetrics:
        """Aggregate the store: totals, breakdowns, hourly trend and user impact."""
        now = self._clock()
        errors = self.get_all_errors()
        by_type = dict.fromkeys(ERROR_TYPES, 0)
        by_severity = dict.fromkeys(SEVERITIES, 0)
        buckets: dict[float, int] = {}
        users: set[str] = set()
        day_ago = now - DAY
        for error in errors:
            by_type[error.type] += error.count
            by_severity[error.severity] += error.count
            if error.last_seen >= day_ago:
                hour = error.last_seen - (error.last_seen % HOUR)
                buckets[hour] = buckets.get(hour, 0) + error.count
                if error.context.user_id:
                    users.add(error.context.user_id)

        total = sum(error.count for error in errors)
        ranked = sorted(errors, key=lambda e: e.count, reverse=True)[:top_n]
        affected = len(users)
        return ErrorMetrics(
            total_errors=total,
            unique_errors=len(errors),
            errors_by_type=by_type,
            errors_by_severity=by_severity,
            error_trends=[TrendPoint(timestamp=t, count=c) for t, c in sorted(buckets.items())],
            top_errors=[
                TopError(fingerprint=e.fingerprint, message=e.message, count=e.count)
                for e in ranked
            ],
            user_impact=UserImpact(
                affected_users=affected,
                error_rate=affected / total if total else 0.0,
                average_errors_per_user=total / affected if affected else 0.0,
            ),
        )

    def error_trend(self, key: str, window: float = HOUR) -> Trend:
        """Compare occurrences in the last ``window`` seconds with the window before."""
        now = self._clock()
        with self._lock:
            history = list(self._occurrences.get(key, ()))
        recent = sum(1 for t in history if now - window < t <= now)
        previous = sum(1 for t in history if now - 2 * window < t <= now - window)
        if previous == 0:
            return "increasing" if recent > 0 else "stable"
        if recent > previous * 1.1:
            return "increasing"
        if recent < previous * 0.9:
            return "decreasing"
        return "stable"

    # --- Maintenance ---

    def cleanup(self, now: float | None = None) -> int:
        """Drop records past retention, then evict the least recently seen over ``max_errors``.

        Returns:
            Number of records removed.
        """
        now = self._clock() if now is None else now
        cutoff = now - self.config.retention_days * DAY
        with self._lock:
            expired = [key for key, error in self._errors.items() if error.last_seen < cutoff]
            for key in expired:
                del self._errors[key]
                self._occurrences.pop(key, None)
            removed = len(expired)
            overflow = len(self._errors) - self.config.max_errors
            if overflow > 0:
                oldest = sorted(self._errors.values(), key=lambda e: e.last_seen)[:overflow]
                for error in oldest:
                    del self._errors[error.fingerprint]
                    self._occurrences.pop(error.fingerprint, None)
                removed += overflow
        if removed:
            logger.info("Error store cleanup removed %d records", removed)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._errors.clear()
            self._occurrences.clear()

    # --- Context ---

    def set_context(self, context: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        """Update the ambient context used for records created from now on."""
        with self._lock:
            self._context.update(context or {}, **kwargs)

    def get_context(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._context)

    # --- Process hooks ---

    def install_global_handlers(self) -> None:
        """Route uncaught exceptions from ``sys`` and ``threading`` hooks into the tracker.

        Previously installed hooks still run afterwards.
        """
        if self._previous_hooks is not None:
            return
        previous_sys_hook = sys.excepthook
        previous_thread_hook = threading.excepthook

        def sys_hook(exc_type: Any, exc: BaseException, tb: Any) -> None:
            self.track_error(exc, {"component": "global-error-handler", "action": "uncaught-exception"})
            previous_sys_hook(exc_type, exc, tb)

        def thread_hook(args: Any) -> None:
            if args.exc_value is not None:
                thread_name = args.thread.name if args.thread is not None else None
                self.track_error(
                    args.exc_value,
                    {"component": "thread", "action": "uncaught-exception", "thread": thread_name},
                )
            previous_thread_hook(args)

        sys.excepthook = sys_hook
        threading.excepthook = thread_hook
        self._previous_hooks = (previous_sys_hook, previous_thread_hook)

    def install_loop_handler(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Track exceptions reported to an event loop's exception handler."""
        loop = loop or asyncio.get_running_loop()

        def handler(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
            exc = context.get("exception")
            raw = exc if exc is not None else {"name": "UnhandledRejection", "message": context.get("message", "")}
            self.track_error(raw, {"component": "event-loop", "action": "unhandled-exception"})
            loop.default_exception_handler(context)

        loop.set_exception_handler(handler)

    def uninstall_global_handlers(self) -> None:
        if self._previous_hooks is None:
            return
        sys.excepthook, threading.excepthook = self._previous_hooks
        self._previous_hooks = None

    # --- Lifecycle ---

    def start(self) -> None:
        """Start the periodic retention sweep; requires a running event loop."""
        self.cleanup_task.start()
        if self.config.capture_unhandled:
            self.install_global_handlers()
            self.install_loop_handler()

    async def stop(self) -> None:
        await self.cleanup_task.stop()
        self.uninstall_global_handlers()
        await self.alerts.drain()
