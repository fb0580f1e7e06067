"""BDD step definitions for error grouping and alert cooldown features."""

from dataclasses import dataclass, field

import pytest
from pytest_bdd import given, parsers, then, when

from telemetripy.core.config import ErrorTrackingConfig
from telemetripy.core.errors import ErrorTracker
from telemetripy.core.events import ALERT_TRIGGERED
from telemetripy.core.models import AlertCondition, AlertNotification, AlertRule, TrackedError
from tests.support import FakeClock


@dataclass
class ErrorScenarioContext:
    """State shared by the steps of one scenario."""

    clock: FakeClock = field(default_factory=FakeClock)
    config: ErrorTrackingConfig = field(
        default_factory=lambda: ErrorTrackingConfig(install_default_rules=False, enable_metrics=False)
    )
    fired: list[AlertNotification] = field(default_factory=list)
    _tracker: ErrorTracker | None = None

    @property
    def tracker(self) -> ErrorTracker:
        """The tracker, built on first use so Given steps can adjust the config."""
        if self._tracker is None:
            self._tracker = ErrorTracker(self.config, clock=self.clock)
            self._tracker.events.on(ALERT_TRIGGERED, self.fired.append)
        return self._tracker

    def record(self, message: str) -> TrackedError | None:
        return next((e for e in self.tracker.get_all_errors() if e.message == message), None)


@pytest.fixture
def ctx() -> ErrorScenarioContext:
    """Fresh scenario context for each test."""
    return ErrorScenarioContext()


# === Given ===
@given("an error tracker that keeps every occurrence")
def given_tracker(ctx: ErrorScenarioContext) -> None:
    ctx.config.sample_rate = 1.0


@given(parsers.parse("the tracker keeps at most {n:d} records"))
def given_max_errors(ctx: ErrorScenarioContext, n: int) -> None:
    ctx.config.max_errors = n


@given(
    parsers.parse(
        "an alert rule for critical errors with threshold {threshold:d} "
        "in {window:d} minute and a cooldown of {cooldown:d} minutes"
    )
)
def given_critical_rule(ctx: ErrorScenarioContext, threshold: int, window: int, cooldown: int) -> None:
    ctx.config.alert_rules.append(
        AlertRule(
            id="critical-errors",
            name="Critical Errors",
            condition=AlertCondition(
                threshold=threshold, time_window=window, operator="gte", severity="critical"
            ),
            cooldown=cooldown,
        )
    )


# === When ===
@when(parsers.re(r'the error "(?P<message>[^"]+)" is tracked (?P<times>\d+) times?'))
def when_error_tracked(ctx: ErrorScenarioContext, message: str, times: str) -> None:
    for _ in range(int(times)):
        ctx.tracker.track_error({"name": "Error", "message": message})


@when(parsers.parse('the critical error "{message}" is tracked'))
def when_critical_error_tracked(ctx: ErrorScenarioContext, message: str) -> None:
    ctx.tracker.track_error({"name": "Error", "message": message, "severity": "critical"})


@when(parsers.re(r"(?P<minutes>\d+) minutes? pass(es)?"))
def when_time_passes(ctx: ErrorScenarioContext, minutes: str) -> None:
    ctx.clock.advance(int(minutes) * 60)


@when("the tracker is cleaned up")
def when_cleaned_up(ctx: ErrorScenarioContext) -> None:
    ctx.tracker.cleanup()


# === Then ===
@then(parsers.re(r"the tracker holds (?P<n>\d+) records?"))
def then_record_count(ctx: ErrorScenarioContext, n: str) -> None:
    assert len(ctx.tracker.get_all_errors()) == int(n)


@then(parsers.parse('the record "{message}" has a count of {count:d}'))
def then_record_has_count(ctx: ErrorScenarioContext, message: str, count: int) -> None:
    record = ctx.record(message)
    assert record is not None
    assert record.count == count


@then(parsers.parse('there is no record "{message}"'))
def then_no_record(ctx: ErrorScenarioContext, message: str) -> None:
    assert ctx.record(message) is None


@then(parsers.re(r"the rule has fired (?P<n>\d+) times?"))
def then_rule_fired(ctx: ErrorScenarioContext, n: str) -> None:
    assert len(ctx.fired) == int(n)
