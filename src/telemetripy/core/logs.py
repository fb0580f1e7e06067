"""Structured log pipeline.

Entries pass a filter chain (level, user filters, sampling), are emitted as
``log`` events and buffered. The buffer is flushed to every enabled
transport when it reaches ``buffer_size``, immediately for ``error`` and
``fatal`` entries, and periodically once the pipeline is started. Transport
failures are isolated per transport and never reach the caller.
"""

import random as _random
import threading
import time
from collections.abc import Awaitable, Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, fields
from typing import Any, TypeVar

from telemetripy.core.config import LoggingConfig
from telemetripy.core.diagnostics import get_logger
from telemetripy.core.events import FLUSH, LOG, TRANSPORT_ERROR, EventEmitter
from telemetripy.core.filters import ComponentFilter, LevelFilter, SamplingFilter
from telemetripy.core.metrics import MetricsCollector
from telemetripy.core.models import (
    LEVEL_ORDER,
    LOG_LEVELS,
    LogEntry,
    LogError,
    LogMetadata,
    new_id,
    normalize_level,
)
from telemetripy.core.ports import LogFilter, LogTransport
from telemetripy.runtime.tasks import PeriodicTask

logger = get_logger(__name__)

T = TypeVar("T")

IMMEDIATE_FLUSH_LEVELS = frozenset({"error", "fatal"})

_METADATA_FIELDS = frozenset(f.name for f in fields(LogMetadata)) - {
    "environment",
    "service",
    "version",
}


@dataclass(frozen=True)
class TransportFailure:
    """Payload of the ``transport-error`` event."""

    transport: str
    error: BaseException


class _LevelMethods:
    """Level sugar and structured helpers shared by pipelines and bound loggers."""

    def log(
        self,
        level: str,
        message: str,
        context: Mapping[str, Any] | None = None,
        error: BaseException | LogError | None = None,
    ) -> None:
        raise NotImplementedError

    def with_context(self, **context: Any) -> "BoundLogger":
        raise NotImplementedError

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
        error: BaseException | LogError | None = None,
    ) -> None:
        self.log("error", message, context, error)

    def fatal(
        self,
        message: str,
        context: Mapping[str, Any] | None = None,
        error: BaseException | LogError | None = None,
    ) -> None:
        self.log("fatal", message, context, error)

    def log_operation(
        self,
        operation: str,
        result: str = "success",
        data: Mapping[str, Any] | None = None,
        duration: float | None = None,
    ) -> None:
        """Log the outcome of an operation (``success``, ``failure`` or ``warning``)."""
        level = {"failure": "error", "warning": "warn"}.get(result, "info")
        self.with_context(component="operation", action=operation, duration=duration).log(
            level, f"Operation {operation} {result}", data
        )

    def log_performance(
        self, operation: str, duration: float, metadata: Mapping[str, Any] | None = None
    ) -> None:
        self.with_context(component="performance", action=operation, duration=duration).info(
            f"Performance: {operation} took {duration:g}ms", metadata
        )

    def log_security(
        self, event: str, severity: str, data: Mapping[str, Any] | None = None
    ) -> None:
        level = {"critical": "fatal", "high": "error"}.get(severity, "warn")
        self.with_context(component="security", action=event, tags=("security", severity)).log(
            level, f"Security event: {event}", data
        )

    def log_user_action(
        self,
        user_id: str,
        action: str,
        data: Mapping[str, Any] | None = None,
        duration: float | None = None,
    ) -> None:
        self.with_context(
            component="user-action", action=action, user_id=user_id, duration=duration
        ).info(f"User action: {action}", data)

    def log_api_call(
        self,
        method: str,
        url: str,
        status: int,
        duration: float,
        data: Mapping[str, Any] | None = None,
    ) -> None:
        """Log an HTTP call; 5xx logs at error, 4xx at warn, else info."""
        if status >= 500:
            level = "error"
        elif status >= 400:
            level = "warn"
        else:
            level = "info"
        context = {"method": method, "url": url, "status": status, **(data or {})}
        self.with_context(
            component="api", action=f"{method} {url}", duration=duration
        ).log(level, f"API {method} {url} - {status}", context)


class LogPipeline(_LevelMethods):
    """Filters, buffers and fans structured log entries out to transports.

    Args:
        config: Pipeline settings.
        transports: Initial transports.
        filters: User filters, run between the level and sampling filters.
        environment: Stamped on every entry's metadata.
        service: Stamped on every entry's metadata.
        version: Stamped on every entry's metadata.
        context: Initial ambient context.
        metrics: Collector for ``logs_total`` and related counters.
        emitter: Event emitter for ``log``, ``flush`` and ``transport-error``.
        clock: Time source for entry timestamps.
        random: Source of uniform floats for sampling.
    """

    def __init__(
        self,
        config: LoggingConfig | None = None,
        *,
        transports: Iterable[LogTransport] | None = None,
        filters: Iterable[LogFilter] | None = None,
        environment: str = "development",
        service: str = "frontend",
        version: str = "1.0.0",
        context: Mapping[str, Any] | None = None,
        metrics: MetricsCollector | None = None,
        emitter: EventEmitter | None = None,
        clock: Callable[[], float] = time.time,
        random: Callable[[], float] = _random.random,
    ) -> None:
        self.config = config or LoggingConfig()
        self.config.validate()
        self.environment = environment
        self.service = service
        self.version = version
        self.events = emitter or EventEmitter()
        self.metrics = metrics or MetricsCollector(clock=clock)
        self._clock = clock
        self._random = random

        self._level_filter = LevelFilter(self.config.level)
        self._filters: list[LogFilter] = list(filters or ())
        if self.config.allow_components or self.config.block_components:
            self._filters.append(
                ComponentFilter(self.config.allow_components, self.config.block_components)
            )
        self._sampling_filter = SamplingFilter(self.config.sample_rate, random)

        self._transports: dict[str, LogTransport] = {}
        self._context: dict[str, Any] = dict(context or {})
        self._buffer: list[LogEntry] = []
        self._buffer_lock = threading.RLock()
        self._flush_lock = threading.RLock()
        self._state_lock = threading.RLock()
        self._timers: dict[str, tuple[float, Mapping[str, Any] | None]] = {}
        self._accepted: dict[str, int] = dict.fromkeys(LOG_LEVELS, 0)
        self._dropped = 0
        self._flushes = 0
        self._transport_errors = 0
        self.flush_task = PeriodicTask("log-flush", self.config.flush_interval, self.flush_buffer)

        for transport in transports or ():
            self.add_transport(transport)

    # --- Entry creation and filtering ---

    def log(
        self,
        level: str,
        message: str,
        context: Mapping[str, Any] | None = None,
        error: BaseException | LogError | None = None,
    ) -> None:
        """Log ``message`` at ``level``; unknown levels are treated as ``info``."""
        self._dispatch(level, message, context, error, self._context)

    def _dispatch(
        self,
        level: str,
        message: str,
        context: Mapping[str, Any] | None,
        error: Any,
        ambient: Mapping[str, Any],
    ) -> None:
        if not self.config.enabled:
            return
        entry = self._create_entry(level, message, context, error, ambient)
        if not self._accept(entry):
            with self._state_lock:
                self._dropped += 1
            return
        with self._state_lock:
            self._accepted[entry.level] += 1
        self.metrics.increment("logs_total", labels={"level": entry.level})
        self.events.emit(LOG, entry)
        with self._buffer_lock:
            self._buffer.append(entry)
            should_flush = (
                entry.level in IMMEDIATE_FLUSH_LEVELS or len(self._buffer) >= self.config.buffer_size
            )
        if should_flush:
            self.flush_buffer()

    def _accept(self, entry: LogEntry) -> bool:
        with self._state_lock:
            chain = [self._level_filter, *self._filters, self._sampling_filter]
        for log_filter in chain:
            try:
                if not log_filter.should_accept(entry):
                    return False
            except Exception:
                logger.exception("Log filter %r failed; entry kept", log_filter)
        return True

    def _create_entry(
        self,
        level: str,
        message: Any,
        context: Mapping[str, Any] | None,
        error: Any,
        ambient: Mapping[str, Any],
    ) -> LogEntry:
        if context is None:
            context_data: dict[str, Any] = {}
        elif isinstance(context, Mapping):
            context_data = dict(context)
        else:
            context_data = {"value": context}

        metadata_values = {k: v for k, v in ambient.items() if k in _METADATA_FIELDS}
        if "tags" in metadata_values:
            metadata_values["tags"] = tuple(metadata_values["tags"] or ())
        extra_context = {k: v for k, v in ambient.items() if k not in _METADATA_FIELDS}
        metadata = LogMetadata(
            environment=self.environment,
            service=self.service,
            version=self.version,
            **metadata_values,
        )
        return LogEntry(
            id=new_id("log"),
            timestamp=self._clock(),
            level=normalize_level(level),  # type: ignore[arg-type]
            message=message if isinstance(message, str) else str(message),
            context={**extra_context, **context_data},
            metadata=metadata,
            error=_coerce_log_error(error),
        )

    # --- Flushing ---

    def flush_buffer(self) -> int:
        """Deliver buffered entries to the transports.

        Returns:
            Number of entries delivered.
        """
        with self._flush_lock:
            with self._buffer_lock:
                if not self._buffer:
                    return 0
                batch, self._buffer = self._buffer, []
            self._deliver(batch)
            with self._state_lock:
                self._flushes += 1
            self.metrics.increment("log_flushes_total")
            self.events.emit(FLUSH, batch)
            return len(batch)

    def _deliver(self, batch: list[LogEntry]) -> None:
        with self._state_lock:
            transports = list(self._transports.values())
        for transport in transports:
            if not transport.enabled:
                continue
            minimum = LEVEL_ORDER.get(normalize_level(transport.level, default="debug"), 0)
            for entry in batch:
                if LEVEL_ORDER[entry.level] < minimum:
                    continue
                try:
                    transport.log(entry)
                except Exception as exc:
                    self.report_transport_error(transport.name, exc)

    def flush(self) -> None:
        """Flush the buffer, then ask every enabled transport to flush."""
        self.flush_buffer()
        with self._state_lock:
            transports = list(self._transports.values())
        for transport in transports:
            if not transport.enabled:
                continue
            try:
                transport.flush()
            except Exception as exc:
                self.report_transport_error(transport.name, exc)

    def report_transport_error(self, name: str, exc: BaseException) -> None:
        """Count, log and emit a delivery failure of transport ``name``.

        Transports that deliver in the background call this from their
        failure callbacks.
        """
        with self._state_lock:
            self._transport_errors += 1
        logger.error("Log transport %r failed: %s", name, exc)
        self.metrics.increment("log_transport_errors_total", labels={"transport": name})
        self.events.emit(TRANSPORT_ERROR, TransportFailure(transport=name, error=exc))

    def buffered(self) -> list[LogEntry]:
        with self._buffer_lock:
            return list(self._buffer)

    # --- Transports ---

    def add_transport(self, transport: LogTransport) -> None:
        """Register ``transport`` under its name.

        A transport exposing an unset ``on_error`` attribute gets this
        pipeline's ``report_transport_error`` so background failures are
        counted too.
        """
        if getattr(transport, "on_error", False) is None:
            transport.on_error = self.report_transport_error  # type: ignore[attr-defined]
        with self._state_lock:
            self._transports[transport.name] = transport

    def remove_transport(self, name: str) -> bool:
        with self._state_lock:
            return self._transports.pop(name, None) is not None

    def get_transport(self, name: str) -> LogTransport | None:
        with self._state_lock:
            return self._transports.get(name)

    @property
    def transports(self) -> list[LogTransport]:
        with self._state_lock:
            return list(self._transports.values())

    def enable_transport(self, name: str) -> bool:
        return self._set_transport_enabled(name, True)

    def disable_transport(self, name: str) -> bool:
        return self._set_transport_enabled(name, False)

    def _set_transport_enabled(self, name: str, enabled: bool) -> bool:
        transport = self.get_transport(name)
        if transport is None:
            return False
        transport.enabled = enabled
        return True

    # --- Filters and level ---

    def add_filter(self, log_filter: LogFilter) -> None:
        with self._state_lock:
            self._filters.append(log_filter)

    def remove_filter(self, log_filter: LogFilter) -> bool:
        with self._state_lock:
            if log_filter in self._filters:
                self._filters.remove(log_filter)
                return True
            return False

    def set_level(self, level: str) -> None:
        """Change the minimum accepted level; raises ``ConfigurationError`` if unknown."""
        level_filter = LevelFilter(level)
        with self._state_lock:
            self._level_filter = level_filter
            self.config.level = level_filter.min_level

    # --- Context ---

    def set_context(self, context: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        with self._state_lock:
            self._context.update(context or {}, **kwargs)

    def clear_context(self) -> None:
        with self._state_lock:
            self._context.clear()

    def get_context(self) -> dict[str, Any]:
        with self._state_lock:
            return dict(self._context)

    def with_context(self, **context: Any) -> "BoundLogger":
        """Return a logger that adds ``context`` to every entry it creates."""
        return BoundLogger(self, {**self.get_context(), **context})

    # --- Timers ---

    def start_timer(self, operation: str, metadata: Mapping[str, Any] | None = None) -> None:
        if not self.config.enable_performance_tracking:
            return
        with self._state_lock:
            self._timers[operation] = (time.perf_counter(), metadata)

    def end_timer(self, operation: str, metadata: Mapping[str, Any] | None = None) -> float | None:
        """Stop a timer, log its duration and return it in milliseconds.

        Returns None (after a warning) for a timer that was never started.
        """
        if not self.config.enable_performance_tracking:
            return None
        with self._state_lock:
            timer = self._timers.pop(operation, None)
        if timer is None:
            self.warn(f"Timer not found for operation: {operation}")
            return None
        started, start_metadata = timer
        duration = round((time.perf_counter() - started) * 1000, 3)
        self.log_performance(operation, duration, {**(start_metadata or {}), **(metadata or {})})
        return duration

    def measure_sync(self, operation: str, fn: Callable[[], T]) -> T:
        """Call ``fn`` and log its duration; failures are logged and re-raised."""
        self.start_timer(operation)
        try:
            result = fn()
        except Exception as exc:
            self.end_timer(operation, {"error": True})
            self.error(f"Operation failed: {operation}", error=exc)
            raise
        self.end_timer(operation, {"success": True})
        return result

    async def measure_async(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Await ``fn()`` and log its duration; failures are logged and re-raised."""
        self.start_timer(operation)
        try:
            result = await fn()
        except Exception as exc:
            self.end_timer(operation, {"error": True})
            self.error(f"Async operation failed: {operation}", error=exc)
            raise
        self.end_timer(operation, {"success": True})
        return result

    @contextmanager
    def timed(self, operation: str, **metadata: Any) -> Iterator[None]:
        """Context manager that logs how long its block took."""
        self.start_timer(operation, metadata)
        try:
            yield
        except Exception as exc:
            self.end_timer(operation, {"error": True})
            self.error(f"Operation failed: {operation}", error=exc)
            raise
        self.end_timer(operation, {"success": True})

    # --- Stats and lifecycle ---

    def get_stats(self) -> dict[str, Any]:
        with self._state_lock:
            stats = {
                "total_logs": sum(self._accepted.values()),
                "logs_by_level": dict(self._accepted),
                "dropped": self._dropped,
                "flushes": self._flushes,
                "transport_errors": self._transport_errors,
                "transports": list(self._transports),
                "filters": len(self._filters) + 2,
                "level": self._level_filter.min_level,
            }
        with self._buffer_lock:
            stats["buffered"] = len(self._buffer)
        return stats

    def start(self) -> None:
        """Start periodic flushing; requires a running event loop."""
        self.flush_task.start()

    async def close(self) -> None:
        """Stop periodic flushing and flush everything."""
        await self.flush_task.stop()
        self.flush()


class BoundLogger(_LevelMethods):
    """A lightweight logger with its own context map.

    Shares the transports, filters and buffer of its pipeline by reference.
    """

    def __init__(self, pipeline: LogPipeline, context: Mapping[str, Any]) -> None:
        self._pipeline = pipeline
        self._context = dict(context)

    @property
    def pipeline(self) -> LogPipeline:
        return self._pipeline

    def log(
        self,
        level: str,
        message: str,
        context: Mapping[str, Any] | None = None,
        error: BaseException | LogError | None = None,
    ) -> None:
        self._pipeline._dispatch(level, message, context, error, self._context)

    def with_context(self, **context: Any) -> "BoundLogger":
        return BoundLogger(self._pipeline, {**self._context, **context})

    def set_context(self, context: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        self._context.update(context or {}, **kwargs)

    def get_context(self) -> dict[str, Any]:
        return dict(self._context)


def _coerce_log_error(error: Any) -> LogError | None:
    if error is None or isinstance(error, LogError):
        return error
    if isinstance(error, BaseException):
        return LogError.from_exception(error)
    if isinstance(error, Mapping):
        return LogError(
            name=str(error.get("name") or "Error"),
            message=str(error.get("message") or ""),
            stack=error.get("stack"),
            code=str(error["code"]) if error.get("code") is not None else None,
        )
    return LogError(name="Error", message=str(error))

