"""Exception hierarchy for telemetripy.

Only registration and configuration APIs raise. Input errors are coerced and
delivery failures are caught per sink, so these types mostly surface at
start-up or inside transport and alert action code.
"""


class TelemetripyError(Exception):
    """Base class for all telemetripy errors."""


class ConfigurationError(TelemetripyError, ValueError):
    """Raised when a config value, alert rule, budget or action is invalid."""


class TransportError(TelemetripyError):
    """Raised by a log transport that failed to deliver entries.

    Attributes:
        transport: Name of the failing transport.
    """

    def __init__(self, transport: str, message: str) -> None:
        super().__init__(f"{transport}: {message}")
        self.transport = transport


class AlertDispatchError(TelemetripyError):
    """Wraps a failure raised by an alert action.

    Attributes:
        rule_id: Rule whose action failed.
        action_type: Type of the failing action (email, slack, ...).
    """

    def __init__(self, rule_id: str, action_type: str, cause: BaseException) -> None:
        super().__init__(f"Alert action {action_type!r} for rule {rule_id!r} failed: {cause}")
        self.rule_id = rule_id
        self.action_type = action_type
        self.__cause__ = cause
