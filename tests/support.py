"""Test doubles shared by unit, integration and feature tests."""

from collections.abc import Iterable
from itertools import cycle

from telemetripy.core.models import LogEntry, MemoryInfo

START = 1_700_000_000.0


class FakeClock:
    """Manually advanced clock; call it to read the current time."""

    def __init__(self, now: float = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class SequenceRandom:
    """Returns the given values in a loop."""

    def __init__(self, values: Iterable[float]) -> None:
        self._values = cycle(list(values))

    def __call__(self) -> float:
        return next(self._values)


class RecordingTransport:
    """Transport that keeps every delivered entry and counts flushes."""

    def __init__(self, name: str = "recording", level: str = "debug") -> None:
        self.name = name
        self.level = level
        self.enabled = True
        self.entries: list[LogEntry] = []
        self.flushes = 0

    def log(self, entry: LogEntry) -> None:
        self.entries.append(entry)

    def flush(self) -> None:
        self.flushes += 1

    @property
    def messages(self) -> list[str]:
        return [e.message for e in self.entries]


class FailingTransport(RecordingTransport):
    """Transport whose every delivery raises."""

    def __init__(self, name: str = "failing", level: str = "debug") -> None:
        super().__init__(name, level)

    def log(self, entry: LogEntry) -> None:
        raise OSError("disk full")


class ScriptedMemorySource:
    """Memory source returning the given used-byte readings in order, then the last one."""

    def __init__(self, readings: Iterable[float], limit: float = 1000.0, clock: FakeClock | None = None) -> None:
        self._readings = list(readings)
        self._limit = limit
        self._clock = clock or FakeClock()
        self.reads = 0

    def read(self) -> MemoryInfo | None:
        used = self._readings[min(self.reads, len(self._readings) - 1)]
        self.reads += 1
        return MemoryInfo(
            used_bytes=used, total_bytes=used, limit_bytes=self._limit, timestamp=self._clock()
        )
