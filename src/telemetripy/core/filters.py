"""Built-in log filters."""

import random as _random
from collections.abc import Callable, Iterable

from telemetripy.core.exceptions import ConfigurationError
from telemetripy.core.models import LEVEL_ORDER, LogEntry, normalize_level


class LevelFilter:
    """Accepts entries at or above ``min_level``."""

    def __init__(self, min_level: str) -> None:
        level = normalize_level(min_level, default=None)
        if level is None:
            raise ConfigurationError(f"Unknown log level: {min_level!r}")
        self.min_level = level

    def should_accept(self, entry: LogEntry) -> bool:
        return LEVEL_ORDER[entry.level] >= LEVEL_ORDER[self.min_level]


class SamplingFilter:
    """Keeps a random fraction of entries.

    Args:
        rate: Fraction to keep, clamped to ``[0, 1]``.
        random: Source of uniform floats in ``[0, 1)``.
    """

    def __init__(self, rate: float, random: Callable[[], float] = _random.random) -> None:
        self.rate = max(0.0, min(1.0, rate))
        self._random = random

    def should_accept(self, entry: LogEntry) -> bool:
        return self._random() < self.rate


class ComponentFilter:
    """Filters on ``metadata.component``.

    An entry from a blocked component is rejected. When an allow list is
    given, only entries whose component is on it pass; entries with no
    component always pass the allow check.
    """

    def __init__(
        self,
        allow: Iterable[str] | None = None,
        block: Iterable[str] | None = None,
    ) -> None:
        self.allow = frozenset(allow or ())
        self.block = frozenset(block or ())

    def should_accept(self, entry: LogEntry) -> bool:
        component = entry.metadata.component
        if component is None:
            return True
        if component in self.block:
            return False
        return not self.allow or component in self.allow


class PredicateFilter:
    """Adapts a plain ``entry -> bool`` function to the filter protocol."""

    def __init__(self, predicate: Callable[[LogEntry], bool]) -> None:
        self._predicate = predicate

    def should_accept(self, entry: LogEntry) -> bool:
        return bool(self._predicate(entry))
