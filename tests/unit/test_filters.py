"""Tests for the built-in log filters."""

import pytest

from telemetripy.core.exceptions import ConfigurationError
from telemetripy.core.filters import ComponentFilter, LevelFilter, PredicateFilter, SamplingFilter
from telemetripy.core.models import LogEntry, LogMetadata
from telemetripy.core.ports import LogFilter
from tests.support import SequenceRandom

pytestmark = pytest.mark.tier(0)


def entry(level: str = "info", component: str | None = None, message: str = "hello") -> LogEntry:
    return LogEntry(
        id="log_1",
        timestamp=0.0,
        level=level,
        message=message,
        metadata=LogMetadata(component=component),
    )


class TestLevelFilter:
    """Tests for LevelFilter."""

    @pytest.mark.core
    def test_accepts_at_or_above_minimum(self) -> None:
        level_filter = LevelFilter("warn")
        assert not level_filter.should_accept(entry("info"))
        assert level_filter.should_accept(entry("warn"))
        assert level_filter.should_accept(entry("fatal"))

    @pytest.mark.core
    def test_stdlib_spelling_is_normalized(self) -> None:
        assert LevelFilter("WARNING").min_level == "warn"

    @pytest.mark.core
    def test_unknown_level_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown log level"):
            LevelFilter("loud")


class TestSamplingFilter:
    """Tests for SamplingFilter."""

    @pytest.mark.core
    def test_keeps_draws_below_rate(self) -> None:
        sampling = SamplingFilter(0.5, random=SequenceRandom([0.1, 0.7]))
        assert sampling.should_accept(entry()) is True
        assert sampling.should_accept(entry()) is False

    @pytest.mark.core
    def test_rate_is_clamped(self) -> None:
        assert SamplingFilter(7).rate == 1.0
        assert SamplingFilter(-1).rate == 0.0


class TestComponentFilter:
    """Tests for ComponentFilter."""

    @pytest.mark.core
    def test_block_list(self) -> None:
        component_filter = ComponentFilter(block=["noisy"])
        assert not component_filter.should_accept(entry(component="noisy"))
        assert component_filter.should_accept(entry(component="cart"))

    @pytest.mark.core
    def test_allow_list(self) -> None:
        component_filter = ComponentFilter(allow=["cart"])
        assert component_filter.should_accept(entry(component="cart"))
        assert not component_filter.should_accept(entry(component="search"))

    @pytest.mark.core
    def test_entries_without_component_pass(self) -> None:
        assert ComponentFilter(allow=["cart"], block=["noisy"]).should_accept(entry())


class TestPredicateFilter:
    """Tests for PredicateFilter."""

    @pytest.mark.core
    def test_wraps_function(self) -> None:
        predicate = PredicateFilter(lambda e: "secret" not in e.message)
        assert predicate.should_accept(entry(message="fine"))
        assert not predicate.should_accept(entry(message="secret token"))

    @pytest.mark.core
    def test_filters_implement_port(self) -> None:
        for log_filter in (LevelFilter("info"), SamplingFilter(1), ComponentFilter(), PredicateFilter(bool)):
            assert isinstance(log_filter, LogFilter)
