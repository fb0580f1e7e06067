"""Event names published by telemetripy components."""

# Error tracker
ERROR_NEW = "error-new"
ERROR_UPDATED = "error-updated"
ERROR_RESOLVED = "error-resolved"

# Alert rule engine
ALERT_RULE_ADDED = "alert-rule-added"
ALERT_RULE_REMOVED = "alert-rule-removed"
ALERT_TRIGGERED = "alert-triggered"
ALERT_FAILED = "alert-failed"

# Log pipeline
LOG = "log"
FLUSH = "flush"
TRANSPORT_ERROR = "transport-error"

# Performance collector
WEB_VITAL = "web-vital"
CUSTOM_METRIC = "custom-metric"
PERFORMANCE_ALERT = "performance-alert"
PERFORMANCE_REPORT = "performance-report"
MEMORY_SAMPLE = "memory-sample"

# Integration hub
REPORT_GENERATED = "report-generated"
HUB_STARTED = "hub-started"
HUB_STOPPED = "hub-stopped"
