"""Error tracking, structured logging and performance monitoring for Python services.

Example:
    ```python
    from telemetripy import create_monitoring, production_config

    hub = create_monitoring(production_config(service="checkout"))
    async with hub:
        hub.track_error(exc, {"component": "cart"})
    ```
"""

from telemetripy.adapters.logging import TelemetripyHandler
from telemetripy.adapters.memory import PsutilMemorySource
from telemetripy.adapters.storage import RingBufferLogStorage, SQLiteLogTransport
from telemetripy.adapters.transports import BufferedTransport, ConsoleTransport, HTTPTransport
from telemetripy.core.alerts import AlertRuleEngine, CallbackAlertAction, LoggingAlertAction
from telemetripy.core.budgets import BudgetEvaluator
from telemetripy.core.classification import DefaultErrorClassifier
from telemetripy.core.config import (
    ErrorTrackingConfig,
    LoggingConfig,
    MonitoringConfig,
    PerformanceConfig,
    development_config,
    production_config,
)
from telemetripy.core.diagnostics import get_logger
from telemetripy.core.encoding.ndjson import JSONFormatter, encode_logs
from telemetripy.core.encoding.text import TextFormatter
from telemetripy.core.errors import ErrorTracker
from telemetripy.core.events import EventEmitter
from telemetripy.core.exceptions import (
    AlertDispatchError,
    ConfigurationError,
    TelemetripyError,
    TransportError,
)
from telemetripy.core.filters import ComponentFilter, LevelFilter, PredicateFilter, SamplingFilter
from telemetripy.core.fingerprint import fingerprint
from telemetripy.core.hub import HubWiring, MonitoringHub
from telemetripy.core.logs import BoundLogger, LogPipeline
from telemetripy.core.memory import MemoryMonitor
from telemetripy.core.metrics import MetricsCollector
from telemetripy.core.models import (
    AlertActionConfig,
    AlertCondition,
    AlertRule,
    ErrorContext,
    LogEntry,
    PerformanceBudget,
    RawError,
    TrackedError,
)
from telemetripy.core.performance import PerformanceCollector
from telemetripy.presets import (
    create_development_logger,
    create_logger,
    create_monitoring,
    create_production_logger,
)

__all__ = [
    "AlertActionConfig",
    "AlertCondition",
    "AlertDispatchError",
    "AlertRule",
    "AlertRuleEngine",
    "BoundLogger",
    "BudgetEvaluator",
    "BufferedTransport",
    "CallbackAlertAction",
    "ComponentFilter",
    "ConfigurationError",
    "ConsoleTransport",
    "DefaultErrorClassifier",
    "ErrorContext",
    "ErrorTracker",
    "ErrorTrackingConfig",
    "EventEmitter",
    "HTTPTransport",
    "HubWiring",
    "JSONFormatter",
    "LevelFilter",
    "LogEntry",
    "LogPipeline",
    "LoggingAlertAction",
    "LoggingConfig",
    "MemoryMonitor",
    "MetricsCollector",
    "MonitoringConfig",
    "MonitoringHub",
    "PerformanceBudget",
    "PerformanceCollector",
    "PerformanceConfig",
    "PredicateFilter",
    "PsutilMemorySource",
    "RawError",
    "RingBufferLogStorage",
    "SQLiteLogTransport",
    "SamplingFilter",
    "TelemetripyError",
    "TelemetripyHandler",
    "TextFormatter",
    "TrackedError",
    "TransportError",
    "create_development_logger",
    "create_logger",
    "create_monitoring",
    "create_production_logger",
    "development_config",
    "encode_logs",
    "fingerprint",
    "get_logger",
    "production_config",
]
