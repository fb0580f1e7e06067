"""Memory usage sampling with trend and leak detection."""

import threading
import time
from collections import deque
from collections.abc import Callable

from telemetripy.core.diagnostics import get_logger
from telemetripy.core.events import MEMORY_SAMPLE, EventEmitter
from telemetripy.core.models import MemoryInfo, Trend
from telemetripy.core.ports import MemorySource
from telemetripy.runtime.tasks import PeriodicTask

logger = get_logger(__name__)

TREND_WINDOW = 10
TREND_TOLERANCE = 0.1
LEAK_MIN_SAMPLES = 20
LEAK_USAGE_RATIO = 0.8


class MemoryMonitor:
    """Keeps a bounded history of memory samples.

    Samples come from an optional ``MemorySource`` (periodically once
    started, or on demand via ``sample()``) or are pushed with ``record()``.

    Args:
        source: Where samples are read from.
        max_samples: History size; the oldest samples are dropped.
        interval: Seconds between periodic samples.
        emitter: Receives a ``memory-sample`` event per recorded sample.
    """

    def __init__(
        self,
        source: MemorySource | None = None,
        *,
        max_samples: int = 100,
        interval: float = 5.0,
        emitter: EventEmitter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.source = source
        self.events = emitter or EventEmitter()
        self._clock = clock
        self._samples: deque[MemoryInfo] = deque(maxlen=max_samples)
        self._lock = threading.RLock()
        self.sample_task = PeriodicTask("memory-sample", interval, self.sample)

    def sample(self) -> MemoryInfo | None:
        """Read and record one sample from the source, if there is one."""
        if self.source is None:
            return None
        try:
            info = self.source.read()
        except Exception:
            logger.exception("Memory source %r failed", self.source)
            return None
        if info is not None:
            self.record(info)
        return info

    def record(self, info: MemoryInfo) -> None:
        with self._lock:
            self._samples.append(info)
        self.events.emit(MEMORY_SAMPLE, info)

    def current(self) -> MemoryInfo | None:
        """Return a fresh sample when a source is set, else the latest recorded one."""
        if self.source is not None:
            info = self.sample()
            if info is not None:
                return info
        with self._lock:
            return self._samples[-1] if self._samples else None

    def latest(self) -> MemoryInfo | None:
        with self._lock:
            return self._samples[-1] if self._samples else None

    def history(self) -> list[MemoryInfo]:
        with self._lock:
            return list(self._samples)

    def trend(self) -> Trend:
        """Compare the mean of the last 10 samples with the 10 before them.

        Returns ``stable`` until there are enough samples, and while the
        recent mean stays within 10% of the prior mean.
        """
        with self._lock:
            samples = list(self._samples)
        if len(samples) < TREND_WINDOW:
            return "stable"
        recent = samples[-TREND_WINDOW:]
        prior = samples[-2 * TREND_WINDOW : -TREND_WINDOW]
        if not prior:
            return "stable"
        recent_mean = sum(s.used_bytes for s in recent) / len(recent)
        prior_mean = sum(s.used_bytes for s in prior) / len(prior)
        if recent_mean > prior_mean * (1 + TREND_TOLERANCE):
            return "increasing"
        if recent_mean < prior_mean * (1 - TREND_TOLERANCE):
            return "decreasing"
        return "stable"

    def is_leak_suspected(self) -> bool:
        """True with 20+ samples, an increasing trend and usage above 80% of the limit."""
        with self._lock:
            if len(self._samples) < LEAK_MIN_SAMPLES:
                return False
            latest = self._samples[-1]
        return self.trend() == "increasing" and latest.usage_ratio > LEAK_USAGE_RATIO

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()

    def start(self) -> None:
        if self.source is not None:
            self.sample_task.start()

    async def stop(self) -> None:
        await self.sample_task.stop()
