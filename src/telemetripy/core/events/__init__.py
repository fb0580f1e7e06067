"""Event emitter and the event names components publish."""

from telemetripy.core.events.emitter import EventEmitter, Listener
from telemetripy.core.events.names import (
    ALERT_FAILED,
    ALERT_RULE_ADDED,
    ALERT_RULE_REMOVED,
    ALERT_TRIGGERED,
    CUSTOM_METRIC,
    ERROR_NEW,
    ERROR_RESOLVED,
    ERROR_UPDATED,
    FLUSH,
    HUB_STARTED,
    HUB_STOPPED,
    LOG,
    MEMORY_SAMPLE,
    PERFORMANCE_ALERT,
    PERFORMANCE_REPORT,
    REPORT_GENERATED,
    TRANSPORT_ERROR,
    WEB_VITAL,
)

__all__ = [
    "ALERT_FAILED",
    "ALERT_RULE_ADDED",
    "ALERT_RULE_REMOVED",
    "ALERT_TRIGGERED",
    "CUSTOM_METRIC",
    "ERROR_NEW",
    "ERROR_RESOLVED",
    "ERROR_UPDATED",
    "EventEmitter",
    "FLUSH",
    "HUB_STARTED",
    "HUB_STOPPED",
    "LOG",
    "Listener",
    "MEMORY_SAMPLE",
    "PERFORMANCE_ALERT",
    "PERFORMANCE_REPORT",
    "REPORT_GENERATED",
    "TRANSPORT_ERROR",
    "WEB_VITAL",
]
