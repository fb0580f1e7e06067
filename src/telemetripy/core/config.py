"""Configuration dataclasses, loaders and environment presets.

Every section validates itself; ``MonitoringConfig.validate()`` checks the
whole tree and raises ``ConfigurationError`` naming the offending option.
"""

import math
import os
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from typing import Any

from telemetripy.core.alerts import rule_from_mapping
from telemetripy.core.budgets import budget_from_mapping, validate_budget
from telemetripy.core.exceptions import ConfigurationError
from telemetripy.core.models import AlertRule, PerformanceBudget, normalize_level

ENV_PREFIX = "TELEMETRIPY_"

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _check_rate(name: str, value: float) -> None:
    if not isinstance(value, (int, float)) or math.isnan(value) or not 0.0 <= value <= 1.0:
        raise ConfigurationError(f"{name} must be between 0 and 1, got {value!r}")


def _check_positive(name: str, value: float, allow_zero: bool = False) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    if value < 0 or (value == 0 and not allow_zero):
        bound = "non-negative" if allow_zero else "positive"
        raise ConfigurationError(f"{name} must be {bound}, got {value!r}")


@dataclass
class ErrorTrackingConfig:
    """Error tracker settings.

    Attributes:
        enabled: Turn error tracking on or off.
        sample_rate: Fraction of reported errors that are recorded.
        max_errors: Maximum number of distinct records kept.
        retention_days: Records unseen for longer are removed.
        enable_alerts: Evaluate alert rules on every occurrence.
        enable_metrics: Record ``errors_total`` self-metrics.
        install_default_rules: Install ``default_alert_rules()``.
        alert_rules: Additional rules installed at construction.
        capture_unhandled: Install process-wide exception hooks on start.
        cleanup_interval: Seconds between retention sweeps.
    """

    enabled: bool = True
    sample_rate: float = 1.0
    max_errors: int = 10000
    retention_days: float = 30
    enable_alerts: bool = True
    enable_metrics: bool = True
    install_default_rules: bool = True
    alert_rules: list[AlertRule] = field(default_factory=list)
    capture_unhandled: bool = False
    cleanup_interval: float = 3600.0

    def validate(self) -> None:
        _check_rate("error_tracking.sample_rate", self.sample_rate)
        _check_positive("error_tracking.max_errors", self.max_errors)
        _check_positive("error_tracking.retention_days", self.retention_days)
        _check_positive("error_tracking.cleanup_interval", self.cleanup_interval, allow_zero=True)
        self.alert_rules = [
            rule_from_mapping(rule) if isinstance(rule, Mapping) else rule
            for rule in self.alert_rules
        ]


@dataclass
class LoggingConfig:
    """Log pipeline settings.

    Attributes:
        enabled: Turn the pipeline on or off.
        level: Minimum accepted level.
        sample_rate: Fraction of entries kept after the other filters.
        buffer_size: Buffered entries that trigger a flush.
        flush_interval: Seconds between periodic flushes; 0 disables them.
        enable_performance_tracking: Allow timers and measure helpers.
        allow_components: When set, only these components are logged.
        block_components: Components that are never logged.
        console: Attach a console transport in the presets.
        http_endpoint: Attach an HTTP transport posting to this URL.
        http_headers: Extra headers for the HTTP transport.
        keep_recent: Size of the recent-entries ring served on ``/logs``.
    """

    enabled: bool = True
    level: str = "info"
    sample_rate: float = 1.0
    buffer_size: int = 100
    flush_interval: float = 5.0
    enable_performance_tracking: bool = True
    allow_components: list[str] = field(default_factory=list)
    block_components: list[str] = field(default_factory=list)
    console: bool = True
    http_endpoint: str | None = None
    http_headers: dict[str, str] = field(default_factory=dict)
    keep_recent: int = 1000

    def validate(self) -> None:
        level = normalize_level(self.level, default=None)
        if level is None:
            raise ConfigurationError(f"logging.level is not a log level: {self.level!r}")
        self.level = level
        _check_rate("logging.sample_rate", self.sample_rate)
        _check_positive("logging.buffer_size", self.buffer_size)
        _check_positive("logging.flush_interval", self.flush_interval, allow_zero=True)
        _check_positive("logging.keep_recent", self.keep_recent, allow_zero=True)


@dataclass
class PerformanceConfig:
    """Performance collector settings.

    Attributes:
        enabled: Turn performance monitoring on or off.
        enable_web_vitals: Accept web vital readings.
        enable_memory_monitoring: Sample memory periodically.
        enable_budgets: Check metrics against budgets.
        budgets: Budgets to enforce; ``None`` uses the default web vital budgets.
        memory_interval: Seconds between memory samples.
        max_custom_metrics: Size of the custom metric ring.
        max_memory_samples: Size of the memory sample ring.
        max_resource_timings: Size of the resource timing ring.
    """

    enabled: bool = True
    enable_web_vitals: bool = True
    enable_memory_monitoring: bool = True
    enable_budgets: bool = True
    budgets: list[PerformanceBudget] | None = None
    memory_interval: float = 5.0
    max_custom_metrics: int = 1000
    max_memory_samples: int = 100
    max_resource_timings: int = 500

    def validate(self) -> None:
        if self.budgets is not None:
            budgets = []
            for budget in self.budgets:
                if isinstance(budget, Mapping):
                    budget = budget_from_mapping(budget)
                else:
                    validate_budget(budget)
                budgets.append(budget)
            self.budgets = budgets
        _check_positive("performance.memory_interval", self.memory_interval, allow_zero=True)
        _check_positive("performance.max_custom_metrics", self.max_custom_metrics)
        _check_positive("performance.max_memory_samples", self.max_memory_samples)
        _check_positive("performance.max_resource_timings", self.max_resource_timings)


@dataclass
class MonitoringConfig:
    """Top-level configuration for a ``MonitoringHub``."""

    environment: str = "development"
    service: str = "frontend"
    version: str = "1.0.0"
    namespace: str = "telemetripy"
    session_id: str | None = None
    user_id: str | None = None
    report_interval: float = 60.0
    error_tracking: ErrorTrackingConfig = field(default_factory=ErrorTrackingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)

    def validate(self) -> "MonitoringConfig":
        """Validate every section in place and return ``self``."""
        if not self.service:
            raise ConfigurationError("service must not be empty")
        if not re.fullmatch(r"[a-zA-Z_][a-zA-Z0-9_]*", self.namespace):
            raise ConfigurationError(f"namespace is not a valid metric prefix: {self.namespace!r}")
        _check_positive("report_interval", self.report_interval, allow_zero=True)
        self.error_tracking.validate()
        self.logging.validate()
        self.performance.validate()
        return self

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "MonitoringConfig":
        """Build a validated config from nested plain data.

        Keys may be snake_case or camelCase (``sampleRate``, ``maxErrors``,
        ``errorTracking`` ...). Unknown keys raise ``ConfigurationError``.
        """
        sections = {
            "error_tracking": ErrorTrackingConfig,
            "logging": LoggingConfig,
            "performance": PerformanceConfig,
        }
        top: dict[str, Any] = {}
        for key, value in data.items():
            name = _snake(key)
            if name in sections:
                top[name] = _build_section(sections[name], name, value)
            else:
                top[name] = value
        return _construct(cls, "config", top).validate()

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, prefix: str = ENV_PREFIX
    ) -> "MonitoringConfig":
        """Build a validated config from ``TELEMETRIPY_*`` environment variables."""
        environ = os.environ if environ is None else environ
        config = cls()
        for suffix, (section, attr, parse) in _ENV_OPTIONS.items():
            raw = environ.get(prefix + suffix)
            if raw is None:
                continue
            try:
                value = parse(raw)
            except ValueError as exc:
                raise ConfigurationError(f"{prefix}{suffix}: {exc}") from exc
            target = config if section is None else getattr(config, section)
            setattr(target, attr, value)
        return config.validate()


def _snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _construct(cls: type, section: str, values: Mapping[str, Any]) -> Any:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigurationError(f"Unknown {section} option(s): {', '.join(unknown)}")
    return cls(**values)


def _build_section(cls: type, section: str, value: Any) -> Any:
    if isinstance(value, cls):
        return value
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"{section} must be a mapping")
    return _construct(cls, section, {_snake(k): v for k, v in value.items()})


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _parse_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


_ENV_OPTIONS: dict[str, tuple[str | None, str, Callable[[str], Any]]] = {
    "ENVIRONMENT": (None, "environment", str),
    "SERVICE": (None, "service", str),
    "VERSION": (None, "version", str),
    "NAMESPACE": (None, "namespace", str),
    "REPORT_INTERVAL": (None, "report_interval", float),
    "ERROR_TRACKING_ENABLED": ("error_tracking", "enabled", _parse_bool),
    "ERROR_SAMPLE_RATE": ("error_tracking", "sample_rate", float),
    "MAX_ERRORS": ("error_tracking", "max_errors", int),
    "RETENTION_DAYS": ("error_tracking", "retention_days", float),
    "ENABLE_ALERTS": ("error_tracking", "enable_alerts", _parse_bool),
    "CAPTURE_UNHANDLED": ("error_tracking", "capture_unhandled", _parse_bool),
    "LOGGING_ENABLED": ("logging", "enabled", _parse_bool),
    "LOG_LEVEL": ("logging", "level", str),
    "LOG_SAMPLE_RATE": ("logging", "sample_rate", float),
    "LOG_BUFFER_SIZE": ("logging", "buffer_size", int),
    "LOG_FLUSH_INTERVAL": ("logging", "flush_interval", float),
    "LOG_CONSOLE": ("logging", "console", _parse_bool),
    "LOG_HTTP_ENDPOINT": ("logging", "http_endpoint", str),
    "LOG_BLOCK_COMPONENTS": ("logging", "block_components", _parse_list),
    "PERFORMANCE_ENABLED": ("performance", "enabled", _parse_bool),
    "MEMORY_MONITORING": ("performance", "enable_memory_monitoring", _parse_bool),
}


def development_config(**overrides: Any) -> MonitoringConfig:
    """Verbose settings for local work: debug logs, short retention, no alerts."""
    config = MonitoringConfig(
        environment="development",
        error_tracking=ErrorTrackingConfig(max_errors=1000, retention_days=1, enable_alerts=False),
        logging=LoggingConfig(level="debug", sample_rate=1.0, console=True),
        performance=PerformanceConfig(enable_memory_monitoring=True),
    )
    return _apply_overrides(config, overrides)


def production_config(**overrides: Any) -> MonitoringConfig:
    """Sampled settings for production traffic."""
    config = MonitoringConfig(
        environment="production",
        error_tracking=ErrorTrackingConfig(sample_rate=0.1, max_errors=5000, retention_days=7),
        logging=LoggingConfig(level="warn", sample_rate=0.05, buffer_size=100, console=False),
        performance=PerformanceConfig(enable_memory_monitoring=False),
    )
    return _apply_overrides(config, overrides)


def _apply_overrides(config: MonitoringConfig, overrides: Mapping[str, Any]) -> MonitoringConfig:
    known = {f.name for f in fields(MonitoringConfig)}
    for key, value in overrides.items():
        if key not in known:
            raise ConfigurationError(f"Unknown config option: {key}")
        setattr(config, key, value)
    return config.validate()
