"""Core domain models for errors, logs and performance data.

All timestamps are Unix epoch seconds. Every model exposes ``to_dict()``
returning plain, JSON-serializable data.
"""

import time
import traceback
import uuid
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Literal, get_args

ErrorType = Literal["javascript", "api", "network", "validation", "business", "security"]
Severity = Literal["low", "medium", "high", "critical"]
LogLevel = Literal["debug", "info", "warn", "error", "fatal"]
ComparisonOperator = Literal["gt", "gte", "lt", "lte", "eq"]
MetricUnit = Literal["ms", "bytes", "count", "percent", "score"]
MetricCategory = Literal[
    "navigation", "resource", "paint", "layout", "memory", "network", "custom"
]
Rating = Literal["good", "needs-improvement", "poor"]
BudgetSeverity = Literal["warning", "error"]
Trend = Literal["increasing", "decreasing", "stable"]
HealthStatus = Literal["healthy", "degraded", "critical"]

ERROR_TYPES: tuple[str, ...] = get_args(ErrorType)
SEVERITIES: tuple[str, ...] = get_args(Severity)
LOG_LEVELS: tuple[str, ...] = get_args(LogLevel)
OPERATORS: tuple[str, ...] = get_args(ComparisonOperator)
METRIC_UNITS: tuple[str, ...] = get_args(MetricUnit)
METRIC_CATEGORIES: tuple[str, ...] = get_args(MetricCategory)
BUDGET_SEVERITIES: tuple[str, ...] = get_args(BudgetSeverity)

LEVEL_ORDER: dict[str, int] = {level: index for index, level in enumerate(LOG_LEVELS)}

_LEVEL_ALIASES = {
    "warning": "warn",
    "critical": "fatal",
    "exception": "error",
    "trace": "debug",
}


def normalize_level(value: Any, default: str | None = "info") -> str | None:
    """Map a level name onto the five pipeline levels.

    Accepts any case plus the stdlib spellings ``warning`` and ``critical``.

    Args:
        value: Level name to normalize.
        default: Returned when ``value`` is not a known level.

    Returns:
        One of ``LOG_LEVELS``, or ``default``.
    """
    if not isinstance(value, str):
        return default
    level = value.strip().lower()
    level = _LEVEL_ALIASES.get(level, level)
    return level if level in LEVEL_ORDER else default


def new_id(prefix: str) -> str:
    """Return a unique id like ``err_1702300000000_3f9a1c2b7``."""
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class _Serializable:
    """Mixin giving dataclasses a ``to_dict`` method."""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)  # type: ignore[call-overload]


# --- Errors ---


@dataclass(frozen=True)
class ErrorContext(_Serializable):
    """Ambient context attached to a tracked error when it is first seen.

    Attributes:
        session_id: Session the error happened in.
        user_id: Authenticated user, if known.
        environment: Deployment environment name.
        service: Service name.
        version: Service version.
        component: UI or code component that raised.
        action: User or system action in progress.
        feature: Product feature in use.
        timestamp: When the context was captured.
        metadata: Any further caller-supplied fields.
    """

    session_id: str = ""
    user_id: str | None = None
    environment: str = "development"
    service: str = "frontend"
    version: str = "1.0.0"
    component: str | None = None
    action: str | None = None
    feature: str | None = None
    timestamp: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ErrorContext":
        """Build a context, folding unknown keys into ``metadata``."""
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            if key in known:
                kwargs[key] = value
            else:
                extra[key] = value
        metadata = dict(kwargs.get("metadata") or {})
        metadata.update(extra)
        kwargs["metadata"] = metadata
        return cls(**kwargs)


@dataclass(frozen=True)
class RawError:
    """An error as reported by a caller, before classification.

    Attributes:
        name: Exception class name or equivalent (``TypeError``).
        message: Human readable message.
        stack: Formatted stack trace, if any.
        status: HTTP status attached to the error.
        code: Application error code.
        severity: Explicit severity chosen by the caller.
    """

    name: str = "Error"
    message: str = ""
    stack: str | None = None
    status: int | None = None
    code: str | None = None
    severity: Severity | None = None


@dataclass
class TrackedError(_Serializable):
    """A deduplicated error record; one exists per fingerprint.

    Only the error tracker mutates ``count``, ``last_seen`` and ``resolved``.
    """

    id: str
    fingerprint: str
    type: ErrorType
    severity: Severity
    message: str
    context: ErrorContext
    stack: str | None = None
    status: int | None = None
    code: str | None = None
    count: int = 1
    first_seen: float = 0.0
    last_seen: float = 0.0
    resolved: bool = False
    tags: list[str] = field(default_factory=list)


# --- Alerts ---


@dataclass(frozen=True)
class AlertCondition(_Serializable):
    """When an alert rule fires.

    Attributes:
        threshold: Value compared against the matching occurrence count.
        time_window: Look-back window in minutes.
        operator: Comparison applied as ``count <operator> threshold``.
        error_type: Only count errors of this type.
        severity: Only count errors of this severity.
    """

    threshold: float
    time_window: float
    operator: ComparisonOperator = "gte"
    error_type: ErrorType | None = None
    severity: Severity | None = None


@dataclass(frozen=True)
class AlertActionConfig(_Serializable):
    """One action to run when a rule fires."""

    type: str
    config: dict[str, Any] = field(default_factory=dict)


@dataclass
class AlertRule(_Serializable):
    """A threshold rule over the error store.

    ``time_window`` and ``cooldown`` are in minutes; ``last_triggered`` is a
    Unix timestamp set by the alert engine.
    """

    id: str
    name: str
    condition: AlertCondition
    actions: list[AlertActionConfig] = field(default_factory=list)
    enabled: bool = True
    cooldown: float = 0.0
    last_triggered: float | None = None


@dataclass(frozen=True)
class AlertNotification(_Serializable):
    """Payload of the ``alert-triggered`` event."""

    rule: AlertRule
    error: TrackedError
    timestamp: float


@dataclass(frozen=True)
class AlertFailure:
    """Payload of the ``alert-failed`` event."""

    rule: AlertRule
    action_type: str
    error: BaseException


# --- Logs ---


@dataclass(frozen=True)
class LogMetadata(_Serializable):
    """Structured metadata attached to every log entry."""

    environment: str = "development"
    service: str = "frontend"
    version: str = "1.0.0"
    session_id: str | None = None
    user_id: str | None = None
    request_id: str | None = None
    trace_id: str | None = None
    component: str | None = None
    action: str | None = None
    duration: float | None = None
    tags: tuple[str, ...] = ()
    fingerprint: str | None = None


@dataclass(frozen=True)
class LogError(_Serializable):
    """Exception details carried by an error or fatal log entry."""

    name: str
    message: str
    stack: str | None = None
    code: str | None = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "LogError":
        """Capture an exception's name, message, traceback and ``code``."""
        stack = None
        if exc.__traceback__ is not None:
            stack = "".join(traceback.format_exception(exc))
        code = getattr(exc, "code", None)
        return cls(
            name=type(exc).__name__,
            message=str(exc),
            stack=stack,
            code=str(code) if code is not None else None,
        )


@dataclass(frozen=True)
class LogEntry(_Serializable):
    """A structured log entry.

    Attributes:
        id: Unique entry id.
        timestamp: Unix timestamp in seconds.
        level: One of ``debug``, ``info``, ``warn``, ``error``, ``fatal``.
        message: The log message.
        context: Free-form structured fields.
        metadata: Ambient metadata (service, session, request ...).
        error: Attached exception details, if any.
    """

    id: str
    timestamp: float
    level: LogLevel
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    metadata: LogMetadata = field(default_factory=LogMetadata)
    error: LogError | None = None


# --- Performance ---


@dataclass(frozen=True)
class PerformanceMetric(_Serializable):
    """A custom or derived performance measurement."""

    id: str
    name: str
    value: float
    unit: MetricUnit = "ms"
    category: MetricCategory = "custom"
    timestamp: float = 0.0
    tags: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WebVitalsMetric(_Serializable):
    """A Core Web Vitals reading with its rating."""

    name: str
    value: float
    rating: Rating
    timestamp: float
    navigation_type: str = "navigate"


@dataclass(frozen=True)
class MemoryInfo(_Serializable):
    """A memory usage sample."""

    used_bytes: float
    total_bytes: float
    limit_bytes: float
    timestamp: float

    @property
    def usage_ratio(self) -> float:
        """Used memory as a fraction of the limit (0 when no limit is known)."""
        if self.limit_bytes <= 0:
            return 0.0
        return self.used_bytes / self.limit_bytes


@dataclass(frozen=True)
class ResourceTiming(_Serializable):
    """Load timing of a single fetched resource (script, image, API call)."""

    name: str
    type: str = "other"
    start_time: float = 0.0
    duration: float = 0.0
    transfer_size: int = 0
    response_start: float = 0.0
    response_end: float = 0.0


@dataclass(frozen=True)
class PerformanceBudget(_Serializable):
    """An acceptable relation between a metric and a threshold.

    The operator states what is acceptable: a value violates the budget
    iff ``not (value <operator> threshold)``.
    """

    metric: str
    threshold: float
    operator: ComparisonOperator = "lte"
    severity: BudgetSeverity = "warning"


@dataclass(frozen=True)
class PerformanceAlert(_Serializable):
    """A recorded budget violation."""

    id: str
    metric: str
    value: float
    threshold: float
    operator: ComparisonOperator
    severity: BudgetSeverity
    timestamp: float
    message: str


@dataclass(frozen=True)
class PerformanceReport(_Serializable):
    """Snapshot produced by the performance collector."""

    timestamp: float
    web_vitals: list[WebVitalsMetric]
    memory: MemoryInfo | None
    custom_metrics: list[PerformanceMetric]
    resource_timings: list[ResourceTiming]
    alerts: list[PerformanceAlert]
    score: int
    recommendations: list[str]


# --- Self-metrics ---


@dataclass(frozen=True)
class MetricSample:
    """A single metric measurement.

    Attributes:
        name: Metric name (e.g., errors_total).
        timestamp: Unix timestamp in seconds.
        value: The metric value.
        labels: Key-value pairs for metric dimensions.
    """

    name: str
    timestamp: float
    value: float
    labels: dict[str, str] = field(default_factory=dict)


# --- Reports ---


@dataclass(frozen=True)
class TrendPoint(_Serializable):
    """Summed error occurrences for one hour bucket."""

    timestamp: float
    count: int


@dataclass(frozen=True)
class TopError(_Serializable):
    fingerprint: str
    message: str
    count: int


@dataclass(frozen=True)
class UserImpact(_Serializable):
    affected_users: int
    error_rate: float
    average_errors_per_user: float


@dataclass(frozen=True)
class ErrorMetrics(_Serializable):
    """Aggregate view over the error store."""

    total_errors: int
    unique_errors: int
    errors_by_type: dict[str, int]
    errors_by_severity: dict[str, int]
    error_trends: list[TrendPoint]
    top_errors: list[TopError]
    user_impact: UserImpact


@dataclass(frozen=True)
class MonitoringReport(_Serializable):
    """Periodic report combining errors, performance and log statistics."""

    timestamp: float
    environment: str
    service: str
    version: str
    session: dict[str, Any]
    errors: dict[str, Any]
    performance: dict[str, Any]
    logs: dict[str, Any]
    health: dict[str, Any]


@dataclass(frozen=True)
class HealthAnalysis(_Serializable):
    score: int
    status: HealthStatus
    recommendations: list[str]


@dataclass(frozen=True)
class Insights(_Serializable):
    top_errors: list[dict[str, Any]]
    performance_issues: list[dict[str, Any]]
    resource_bottlenecks: list[dict[str, Any]]
    recommendations: list[str]
