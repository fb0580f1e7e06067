"""Port interfaces for pluggable capabilities.

These protocols define the contracts that adapters and user extensions must
implement. The core domain depends only on these interfaces, not concrete
implementations.
"""

from typing import Any, Protocol, runtime_checkable

from telemetripy.core.models import (
    AlertRule,
    ErrorType,
    LogEntry,
    MemoryInfo,
    RawError,
    Severity,
    TrackedError,
)


@runtime_checkable
class LogTransport(Protocol):
    """Port for log delivery.

    Adapters implementing this protocol receive accepted log entries.
    Examples: ConsoleTransport, BufferedTransport, HTTPTransport,
    SQLiteLogTransport, RingBufferLogStorage.

    Attributes:
        name: Registry key, unique within a pipeline.
        level: Minimum level this transport delivers.
        enabled: Disabled transports are skipped.
    """

    name: str
    level: str
    enabled: bool

    def log(self, entry: LogEntry) -> None:
        """Deliver or enqueue one entry."""
        ...

    def flush(self) -> None:
        """Push out anything the transport is holding."""
        ...


@runtime_checkable
class LogFilter(Protocol):
    """Port for log filtering.

    Filters are evaluated in order; the first rejection drops the entry.
    """

    def should_accept(self, entry: LogEntry) -> bool:
        """Return True to keep ``entry``."""
        ...


@runtime_checkable
class LogFormatter(Protocol):
    """Port for rendering a log entry as text or a JSON-ready mapping."""

    def format(self, entry: LogEntry) -> str | dict[str, Any]:
        """Render ``entry``."""
        ...


@runtime_checkable
class AlertAction(Protocol):
    """Port for alert delivery (email, Slack, webhook, SMS ...).

    Dispatch runs in the background; a raised exception is counted as a
    failed delivery and never reaches the code that tracked the error.
    """

    async def dispatch(self, rule: AlertRule, error: TrackedError) -> None:
        """Deliver one notification for ``rule`` triggered by ``error``."""
        ...


@runtime_checkable
class ErrorClassifier(Protocol):
    """Port for the type and severity heuristic applied to new errors."""

    def classify(self, raw: RawError) -> tuple[ErrorType, Severity]:
        """Return ``(type, severity)`` for ``raw``."""
        ...


@runtime_checkable
class MemorySource(Protocol):
    """Port for reading memory usage of the monitored process."""

    def read(self) -> MemoryInfo | None:
        """Return a sample, or None when memory cannot be measured."""
        ...
