"""BDD step definitions for performance budget features."""

import pytest
from pytest_bdd import given, parsers, then, when

from telemetripy.core.config import PerformanceConfig
from telemetripy.core.models import PerformanceBudget
from telemetripy.core.performance import PerformanceCollector
from tests.support import FakeClock


@pytest.fixture
def ctx() -> dict:
    """Fresh scenario context for each test."""
    return {"clock": FakeClock()}


@given(
    parsers.parse(
        'a performance collector with the budget {metric} {operator} {threshold:g} at severity "{severity}"'
    )
)
def given_collector(ctx: dict, metric: str, operator: str, threshold: float, severity: str) -> None:
    budget = PerformanceBudget(metric=metric, threshold=threshold, operator=operator, severity=severity)
    ctx["collector"] = PerformanceCollector(PerformanceConfig(budgets=[budget]), clock=ctx["clock"])


@when(parsers.parse('the web vital "{name}" is recorded as {value:g}'))
def when_vital_recorded(ctx: dict, name: str, value: float) -> None:
    ctx["collector"].record_web_vital(name, value)


@when(parsers.parse('the custom metric "{name}" is recorded as {value:g}'))
def when_metric_recorded(ctx: dict, name: str, value: float) -> None:
    ctx["collector"].record_metric(name, value, "count")


@then(parsers.re(r"(?P<n>\d+) performance alerts? (is|are) raised"))
def then_alert_count(ctx: dict, n: str) -> None:
    assert len(ctx["collector"].get_performance_alerts()) == int(n)


@then(parsers.parse('every alert has severity "{severity}"'))
def then_alert_severity(ctx: dict, severity: str) -> None:
    assert {a.severity for a in ctx["collector"].get_performance_alerts()} == {severity}
