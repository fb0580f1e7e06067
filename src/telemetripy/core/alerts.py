"""Alert rules over the error store.

Every tracked occurrence triggers an evaluation of all enabled rules. A rule
counts the occurrences of matching errors seen within its time window,
compares the count with its threshold and, when it matches and its cooldown
has elapsed, fires: ``last_triggered`` is stamped, ``alert-triggered`` is
emitted and each action is dispatched in the background.
"""

import inspect
import operator
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from telemetripy.core.diagnostics import get_logger
from telemetripy.core.events import (
    ALERT_FAILED,
    ALERT_RULE_ADDED,
    ALERT_RULE_REMOVED,
    ALERT_TRIGGERED,
    EventEmitter,
)
from telemetripy.core.exceptions import AlertDispatchError, ConfigurationError
from telemetripy.core.metrics import MetricsCollector
from telemetripy.core.models import (
    ERROR_TYPES,
    OPERATORS,
    SEVERITIES,
    AlertActionConfig,
    AlertCondition,
    AlertFailure,
    AlertNotification,
    AlertRule,
    ErrorContext,
    TrackedError,
)
from telemetripy.core.ports import AlertAction
from telemetripy.runtime.dispatch import BackgroundDispatcher

logger = get_logger(__name__)

BUILTIN_ACTION_TYPES = ("email", "slack", "webhook", "sms")

COMPARATORS: dict[str, Callable[[float, float], bool]] = {
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
    "eq": operator.eq,
}


def compare(value: float, op: str, threshold: float) -> bool:
    """Return ``value <op> threshold`` for one of ``gt gte lt lte eq``."""
    try:
        return COMPARATORS[op](value, threshold)
    except KeyError:
        raise ConfigurationError(f"Unknown comparison operator: {op!r}") from None


class LoggingAlertAction:
    """Alert action that writes the notification to the stdlib logger.

    Used for the built-in channel types; real email, Slack or SMS delivery is
    plugged in with ``AlertRuleEngine.register_action``.
    """

    def __init__(self, channel: str) -> None:
        self.channel = channel

    async def dispatch(self, rule: AlertRule, error: TrackedError) -> None:
        logger.warning(
            "[%s] Alert %r triggered by %s (count=%d, severity=%s)",
            self.channel,
            rule.name,
            error.message,
            error.count,
            error.severity,
        )


class CallbackAlertAction:
    """Alert action wrapping a plain or async callable ``(rule, error)``."""

    def __init__(self, callback: Callable[[AlertRule, TrackedError], Any]) -> None:
        self._callback = callback

    async def dispatch(self, rule: AlertRule, error: TrackedError) -> None:
        result = self._callback(rule, error)
        if inspect.isawaitable(result):
            await result


def default_alert_rules() -> list[AlertRule]:
    """Return fresh copies of the standard rules.

    Critical errors fire on the first occurrence, an error spike at 50
    occurrences of any type in five minutes, and repeated security failures
    at 10 security errors in five minutes.
    """
    return [
        AlertRule(
            id="critical-errors",
            name="Critical Errors",
            condition=AlertCondition(severity="critical", threshold=1, time_window=1),
            actions=[
                AlertActionConfig(type="email", config={"recipients": ["admin@example.com"]}),
                AlertActionConfig(type="slack", config={"channel": "#alerts"}),
            ],
            cooldown=5,
        ),
        AlertRule(
            id="high-error-rate",
            name="High Error Rate",
            condition=AlertCondition(threshold=50, time_window=5),
            actions=[AlertActionConfig(type="email", config={"recipients": ["dev@example.com"]})],
            cooldown=15,
        ),
        AlertRule(
            id="auth-failures",
            name="Authentication Failures",
            condition=AlertCondition(error_type="security", threshold=10, time_window=5),
            actions=[
                AlertActionConfig(type="email", config={"recipients": ["security@example.com"]}),
                AlertActionConfig(type="webhook", config={"url": "/api/security/alert"}),
            ],
            cooldown=10,
        ),
    ]


def rule_from_mapping(data: Mapping[str, Any]) -> AlertRule:
    """Build a rule from plain data (config files, JSON).

    Accepts both ``time_window`` and the camelCase ``timeWindow``.
    """
    try:
        condition_data = dict(data["condition"])
        condition = AlertCondition(
            threshold=condition_data["threshold"],
            time_window=condition_data.get("time_window", condition_data.get("timeWindow")),
            operator=condition_data.get("operator", "gte"),
            error_type=condition_data.get("error_type", condition_data.get("errorType")),
            severity=condition_data.get("severity"),
        )
        actions = [
            AlertActionConfig(type=action["type"], config=dict(action.get("config") or {}))
            for action in data.get("actions", ())
        ]
        return AlertRule(
            id=data["id"],
            name=data["name"],
            condition=condition,
            actions=actions,
            enabled=bool(data.get("enabled", True)),
            cooldown=data.get("cooldown", 0),
        )
    except (KeyError, TypeError) as exc:
        raise ConfigurationError(f"Invalid alert rule definition: {exc}") from exc


class AlertRuleEngine:
    """Evaluates alert rules against the error store.

    Args:
        errors_provider: Returns a snapshot of all tracked errors.
        metrics: Collector for ``alerts_total`` counters.
        dispatcher: Runs action deliveries in the background.
        emitter: Event emitter for ``alert-*`` events.
        actions: Extra or replacement actions keyed by action type.
        clock: Time source.
    """

    def __init__(
        self,
        errors_provider: Callable[[], Iterable[TrackedError]],
        *,
        metrics: MetricsCollector | None = None,
        dispatcher: BackgroundDispatcher | None = None,
        emitter: EventEmitter | None = None,
        actions: Mapping[str, AlertAction] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._errors_provider = errors_provider
        self.metrics = metrics or MetricsCollector(clock=clock)
        self.dispatcher = dispatcher or BackgroundDispatcher()
        self.events = emitter or EventEmitter()
        self._clock = clock
        self._rules: dict[str, AlertRule] = {}
        self._actions: dict[str, AlertAction] = {
            action_type: LoggingAlertAction(action_type) for action_type in BUILTIN_ACTION_TYPES
        }
        self._lock = threading.RLock()
        for action_type, action in (actions or {}).items():
            self.register_action(action_type, action)

    # --- Registry ---

    def register_action(self, action_type: str, action: AlertAction) -> None:
        """Register or replace the action used for ``action_type``."""
        if not action_type:
            raise ConfigurationError("Alert action type must be a non-empty string")
        if not isinstance(action, AlertAction):
            raise ConfigurationError(
                f"Alert action for {action_type!r} must define an async dispatch(rule, error)"
            )
        with self._lock:
            self._actions[action_type] = action

    @property
    def action_types(self) -> list[str]:
        with self._lock:
            return list(self._actions)

    def validate_rule(self, rule: AlertRule) -> None:
        """Raise ``ConfigurationError`` if ``rule`` cannot be evaluated."""
        condition = rule.condition
        problems = []
        if not rule.id:
            problems.append("id must not be empty")
        if not rule.name:
            problems.append("name must not be empty")
        if not isinstance(condition.threshold, (int, float)) or condition.threshold < 0:
            problems.append("threshold must be a non-negative number")
        if not isinstance(condition.time_window, (int, float)) or condition.time_window <= 0:
            problems.append("time_window must be a positive number of minutes")
        if not isinstance(rule.cooldown, (int, float)) or rule.cooldown < 0:
            problems.append("cooldown must be a non-negative number of minutes")
        if condition.operator not in OPERATORS:
            problems.append(f"unknown operator {condition.operator!r}")
        if condition.error_type is not None and condition.error_type not in ERROR_TYPES:
            problems.append(f"unknown error type {condition.error_type!r}")
        if condition.severity is not None and condition.severity not in SEVERITIES:
            problems.append(f"unknown severity {condition.severity!r}")
        known = self.action_types
        for action in rule.actions:
            if action.type not in known:
                problems.append(f"unknown action type {action.type!r}")
        if problems:
            raise ConfigurationError(f"Invalid alert rule {rule.id!r}: " + "; ".join(problems))

    def add_rule(self, rule: AlertRule) -> None:
        """Validate and register ``rule``, replacing any rule with the same id."""
        self.validate_rule(rule)
        with self._lock:
            self._rules[rule.id] = rule
        self.events.emit(ALERT_RULE_ADDED, rule)

    def remove_rule(self, rule_id: str) -> bool:
        with self._lock:
            rule = self._rules.pop(rule_id, None)
        if rule is None:
            return False
        self.events.emit(ALERT_RULE_REMOVED, rule)
        return True

    def get_rule(self, rule_id: str) -> AlertRule | None:
        with self._lock:
            return self._rules.get(rule_id)

    def get_rules(self) -> list[AlertRule]:
        with self._lock:
            return list(self._rules.values())

    def enable_rule(self, rule_id: str) -> bool:
        return self._set_enabled(rule_id, True)

    def disable_rule(self, rule_id: str) -> bool:
        return self._set_enabled(rule_id, False)

    def _set_enabled(self, rule_id: str, enabled: bool) -> bool:
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                return False
            rule.enabled = enabled
            return True

    # --- Evaluation ---

    def matching_count(self, rule: AlertRule, errors: Iterable[TrackedError], now: float) -> int:
        """Sum occurrence counts of errors matching ``rule`` seen inside its window."""
        condition = rule.condition
        cutoff = now - condition.time_window * 60
        total = 0
        for error in errors:
            if condition.error_type is not None and error.type != condition.error_type:
                continue
            if condition.severity is not None and error.severity != condition.severity:
                continue
            if error.last_seen >= cutoff:
                total += error.count
        return total

    def in_cooldown(self, rule: AlertRule, now: float) -> bool:
        return rule.last_triggered is not None and now - rule.last_triggered < rule.cooldown * 60

    def evaluate(self, error: TrackedError) -> list[AlertRule]:
        """Evaluate every enabled rule after ``error`` was tracked.

        Returns:
            The rules that fired.
        """
        now = self._clock()
        errors = list(self._errors_provider())
        fired: list[AlertRule] = []
        with self._lock:
            for rule in self._rules.values():
                if not rule.enabled or self.in_cooldown(rule, now):
                    continue
                count = self.matching_count(rule, errors, now)
                if compare(count, rule.condition.operator, rule.condition.threshold):
                    rule.last_triggered = now
                    fired.append(rule)
        for rule in fired:
            self._trigger(rule, error, now)
        return fired

    def _trigger(self, rule: AlertRule, error: TrackedError, now: float) -> None:
        logger.warning("Alert triggered: %s", rule.name)
        self.metrics.increment("alerts_total", labels={"outcome": "triggered"})
        self.events.emit(ALERT_TRIGGERED, AlertNotification(rule=rule, error=error, timestamp=now))
        for action_config in rule.actions:
            with self._lock:
                action = self._actions.get(action_config.type)
            if action is None:
                logger.error("No alert action registered for type %r", action_config.type)
                continue
            self.dispatcher.submit(
                self._delivery(action, rule, error),
                on_success=self._on_sent,
                on_error=self._failure_handler(rule, action_config.type),
            )

    @staticmethod
    def _delivery(
        action: AlertAction, rule: AlertRule, error: TrackedError
    ) -> Callable[[], Any]:
        return lambda: action.dispatch(rule, error)

    def _on_sent(self) -> None:
        self.metrics.increment("alerts_total", labels={"outcome": "sent"})

    def _failure_handler(self, rule: AlertRule, action_type: str) -> Callable[[BaseException], None]:
        def handle(exc: BaseException) -> None:
            failure = AlertDispatchError(rule.id, action_type, exc)
            logger.error("%s", failure, exc_info=exc)
            self.metrics.increment("alerts_total", labels={"outcome": "failed"})
            self.events.emit(
                ALERT_FAILED, AlertFailure(rule=rule, action_type=action_type, error=failure)
            )

        return handle

    async def test_rule(self, rule_id: str) -> bool:
        """Run a rule's actions against a synthetic error.

        Returns:
            True when every action delivered; False if one failed or the
            rule does not exist.
        """
        rule = self.get_rule(rule_id)
        if rule is None:
            return False
        now = self._clock()
        error = TrackedError(
            id="test",
            fingerprint="test",
            type="javascript",
            severity="medium",
            message="Test alert",
            context=ErrorContext(timestamp=now, metadata={"test": True}),
            first_seen=now,
            last_seen=now,
        )
        delivered = True
        for action_config in rule.actions:
            action = self._actions.get(action_config.type)
            if action is None:
                delivered = False
                continue
            try:
                await action.dispatch(rule, error)
            except Exception:
                logger.exception("Test delivery of %r for rule %r failed", action_config.type, rule_id)
                delivered = False
        return delivered

    async def drain(self) -> None:
        """Wait for in-flight action deliveries."""
        await self.dispatcher.drain()
