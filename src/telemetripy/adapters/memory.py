"""Process memory readings via psutil."""

import time
from collections.abc import Callable

import psutil

from telemetripy.core.encoding.prometheus import MetricFamily
from telemetripy.core.models import MemoryInfo, MetricSample


class PsutilMemorySource:
    """Reads memory usage of a process.

    ``used_bytes`` is the resident set size, ``total_bytes`` the virtual
    size and ``limit_bytes`` the machine's physical memory.

    Args:
        pid: Process to observe; the current process when omitted.
        clock: Time source for sample timestamps.
    """

    def __init__(self, pid: int | None = None, clock: Callable[[], float] = time.time) -> None:
        self._process = psutil.Process(pid)
        self._clock = clock

    @property
    def process(self) -> psutil.Process:
        return self._process

    def read(self) -> MemoryInfo | None:
        try:
            info = self._process.memory_info()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return None
        return MemoryInfo(
            used_bytes=float(info.rss),
            total_bytes=float(info.vms),
            limit_bytes=float(psutil.virtual_memory().total),
            timestamp=self._clock(),
        )


def process_families(
    source: PsutilMemorySource | None = None, clock: Callable[[], float] = time.time
) -> list[MetricFamily]:
    """Build ``process_memory_usage_bytes`` and ``process_uptime_seconds`` families."""
    process = source.process if source is not None else psutil.Process()
    now = clock()
    info = process.memory_info()
    return [
        MetricFamily(
            name="process_memory_usage_bytes",
            help="Process memory usage in bytes",
            type="gauge",
            samples=[
                MetricSample("process_memory_usage_bytes", now, float(info.rss), {"type": "rss"}),
                MetricSample("process_memory_usage_bytes", now, float(info.vms), {"type": "vms"}),
            ],
        ),
        MetricFamily(
            name="process_uptime_seconds",
            help="Process uptime in seconds",
            type="gauge",
            samples=[
                MetricSample(
                    "process_uptime_seconds", now, round(now - process.create_time(), 3)
                )
            ],
        ),
    ]
