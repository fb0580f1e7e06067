"""Performance budgets and the evaluator that records their violations."""

import threading
import time
from collections import deque
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from telemetripy.core.alerts import compare
from telemetripy.core.diagnostics import get_logger
from telemetripy.core.events import PERFORMANCE_ALERT, EventEmitter
from telemetripy.core.exceptions import ConfigurationError
from telemetripy.core.metrics import MetricsCollector
from telemetripy.core.models import (
    BUDGET_SEVERITIES,
    OPERATORS,
    PerformanceAlert,
    PerformanceBudget,
    PerformanceMetric,
    new_id,
)

logger = get_logger(__name__)

MAX_ALERTS = 1000


def default_budgets() -> list[PerformanceBudget]:
    """Budgets applied when none are configured: the good web vital thresholds."""
    return [
        PerformanceBudget(metric="FCP", threshold=1800, operator="lte", severity="warning"),
        PerformanceBudget(metric="LCP", threshold=2500, operator="lte", severity="warning"),
        PerformanceBudget(metric="FID", threshold=100, operator="lte", severity="warning"),
        PerformanceBudget(metric="CLS", threshold=0.1, operator="lte", severity="warning"),
    ]


def validate_budget(budget: PerformanceBudget) -> None:
    """Raise ``ConfigurationError`` if ``budget`` cannot be evaluated."""
    if not budget.metric:
        raise ConfigurationError("Budget metric must not be empty")
    if isinstance(budget.threshold, bool) or not isinstance(budget.threshold, (int, float)):
        raise ConfigurationError(f"Budget threshold for {budget.metric!r} must be a number")
    if budget.operator not in OPERATORS:
        raise ConfigurationError(
            f"Unknown budget operator {budget.operator!r} for {budget.metric!r}"
        )
    if budget.severity not in BUDGET_SEVERITIES:
        raise ConfigurationError(
            f"Unknown budget severity {budget.severity!r} for {budget.metric!r}"
        )


def budget_from_mapping(data: Mapping[str, Any]) -> PerformanceBudget:
    """Build and validate a budget from plain data."""
    try:
        budget = PerformanceBudget(
            metric=data["metric"],
            threshold=data["threshold"],
            operator=data.get("operator", "lte"),
            severity=data.get("severity", "warning"),
        )
    except (KeyError, TypeError) as exc:
        raise ConfigurationError(f"Invalid budget definition: {exc}") from exc
    validate_budget(budget)
    return budget


def is_violated(value: float, budget: PerformanceBudget) -> bool:
    """Return True when ``value`` breaks ``budget``."""
    return not compare(value, budget.operator, budget.threshold)


class BudgetEvaluator:
    """Checks metrics against budgets and keeps the log of violations.

    Args:
        budgets: Budgets to enforce. ``None`` installs ``default_budgets()``;
            an empty list enforces nothing.
        emitter: Receives a ``performance-alert`` event per violation.
        metrics: Collector for ``performance_alerts_total``.
        clock: Time source.
        max_alerts: Size of the alert log; the oldest alerts are dropped.
    """

    def __init__(
        self,
        budgets: Iterable[PerformanceBudget | Mapping[str, Any]] | None = None,
        *,
        emitter: EventEmitter | None = None,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], float] = time.time,
        max_alerts: int = MAX_ALERTS,
    ) -> None:
        self.events = emitter or EventEmitter()
        self.metrics = metrics or MetricsCollector(clock=clock)
        self._clock = clock
        self._budgets: list[PerformanceBudget] = []
        self._alerts: deque[PerformanceAlert] = deque(maxlen=max_alerts)
        self._lock = threading.RLock()
        for budget in default_budgets() if budgets is None else budgets:
            self.add_budget(budget)

    def add_budget(self, budget: PerformanceBudget | Mapping[str, Any]) -> PerformanceBudget:
        """Validate and add a budget. Several budgets may target one metric."""
        if isinstance(budget, Mapping):
            budget = budget_from_mapping(budget)
        else:
            validate_budget(budget)
        with self._lock:
            self._budgets.append(budget)
        return budget

    def remove_budget(self, metric: str) -> int:
        """Remove every budget for ``metric``; return how many were removed."""
        with self._lock:
            kept = [b for b in self._budgets if b.metric != metric]
            removed = len(self._budgets) - len(kept)
            self._budgets = kept
        return removed

    def budgets(self) -> list[PerformanceBudget]:
        with self._lock:
            return list(self._budgets)

    def check(self, metrics: Iterable[PerformanceMetric]) -> list[PerformanceAlert]:
        """Record an alert for each metric that violates a budget on its name.

        Returns:
            The alerts raised by this call, in input order.
        """
        with self._lock:
            budgets = list(self._budgets)
        raised = []
        for metric in metrics:
            for budget in budgets:
                if budget.metric != metric.name or not is_violated(metric.value, budget):
                    continue
                alert = PerformanceAlert(
                    id=new_id("alert"),
                    metric=metric.name,
                    value=metric.value,
                    threshold=budget.threshold,
                    operator=budget.operator,
                    severity=budget.severity,
                    timestamp=self._clock(),
                    message=(
                        f"{metric.name} is {metric.value:g}{metric.unit}, "
                        f"budget requires {budget.operator} {budget.threshold:g}{metric.unit}"
                    ),
                )
                with self._lock:
                    self._alerts.append(alert)
                raised.append(alert)
        for alert in raised:
            logger.info("Performance budget violated: %s", alert.message)
            self.metrics.increment("performance_alerts_total", labels={"severity": alert.severity})
            self.events.emit(PERFORMANCE_ALERT, alert)
        return raised

    def alerts(self) -> list[PerformanceAlert]:
        with self._lock:
            return list(self._alerts)

    def clear_alerts(self) -> None:
        with self._lock:
            self._alerts.clear()
