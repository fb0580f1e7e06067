"""BDD step definitions for log buffering features."""

from dataclasses import dataclass, field

import pytest
from pytest_bdd import given, parsers, then, when

from telemetripy.core.config import LoggingConfig
from telemetripy.core.events import FLUSH
from telemetripy.core.logs import LogPipeline
from telemetripy.core.models import LogEntry
from tests.support import FakeClock, RecordingTransport


@dataclass
class LogScenarioContext:
    """State shared by the steps of one scenario."""

    clock: FakeClock = field(default_factory=FakeClock)
    pipeline: LogPipeline | None = None
    transport: RecordingTransport = field(default_factory=RecordingTransport)
    batches: list[list[LogEntry]] = field(default_factory=list)
    logged: list[str] = field(default_factory=list)


@pytest.fixture
def ctx() -> LogScenarioContext:
    """Fresh scenario context for each test."""
    return LogScenarioContext()


# === Given ===
@given(parsers.parse('a log pipeline at level "{level}" with a buffer of {size:d} entries'))
def given_pipeline(ctx: LogScenarioContext, level: str, size: int) -> None:
    ctx.pipeline = LogPipeline(
        LoggingConfig(level=level, buffer_size=size, flush_interval=0), clock=ctx.clock
    )
    ctx.pipeline.events.on(FLUSH, ctx.batches.append)


@given("a recording transport")
def given_transport(ctx: LogScenarioContext) -> None:
    assert ctx.pipeline is not None
    ctx.pipeline.add_transport(ctx.transport)


@given(parsers.parse('the pipeline level is "{level}"'))
def given_level(ctx: LogScenarioContext, level: str) -> None:
    assert ctx.pipeline is not None
    ctx.pipeline.set_level(level)


# === When ===
@when(parsers.re(r'(?P<n>\d+) entr(y|ies) (is|are) logged at level "(?P<level>\w+)"'))
def when_logged(ctx: LogScenarioContext, n: str, level: str) -> None:
    assert ctx.pipeline is not None
    for _ in range(int(n)):
        message = f"{level} entry {len(ctx.logged)}"
        ctx.logged.append(message)
        ctx.pipeline.log(level, message)


@when("the pipeline is flushed")
def when_flushed(ctx: LogScenarioContext) -> None:
    assert ctx.pipeline is not None
    ctx.pipeline.flush()


# === Then ===
@then(parsers.parse("the pipeline flushed 2 batches of {first:d} and {second:d} entries"))
def then_two_batches(ctx: LogScenarioContext, first: int, second: int) -> None:
    assert [len(batch) for batch in ctx.batches] == [first, second]


@then(parsers.parse("the pipeline flushed 1 batch of {size:d} entries"))
def then_one_batch(ctx: LogScenarioContext, size: int) -> None:
    assert [len(batch) for batch in ctx.batches] == [size]


@then(parsers.parse("the transport received all {n:d} entries in order"))
def then_all_in_order(ctx: LogScenarioContext, n: int) -> None:
    assert len(ctx.logged) == n
    assert ctx.transport.messages == ctx.logged
    assert [e.message for batch in ctx.batches for e in batch] == ctx.logged


@then(parsers.parse('the transport received only "{levels}" entries'))
def then_only_levels(ctx: LogScenarioContext, levels: str) -> None:
    assert [e.level for e in ctx.transport.entries] == [level.strip() for level in levels.split(",")]
