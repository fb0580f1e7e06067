"""Ring buffer storage of recent log entries.

Provides bounded in-memory storage that automatically evicts oldest
entries when the buffer is full. Registered as a transport, it keeps the
entries served by the ``/logs`` endpoint.
"""

import threading
from collections import deque
from collections.abc import AsyncIterable

from telemetripy.core.models import LogEntry, normalize_level


class RingBufferLogStorage:
    """Ring buffer log transport.

    Stores log entries in a fixed-size circular buffer. When the buffer
    is full, the oldest entry is automatically evicted to make room for
    new entries.

    Args:
        max_size: Maximum number of entries to store.
        name: Transport registry key.
        level: Minimum level stored.
    """

    def __init__(self, max_size: int = 1000, name: str = "recent", level: str = "debug") -> None:
        self.name = name
        self.level = level
        self.enabled = True
        self._buffer: deque[LogEntry] = deque(maxlen=max_size)
        self._lock = threading.Lock()

    def log(self, entry: LogEntry) -> None:
        with self._lock:
            self._buffer.append(entry)

    def flush(self) -> None:
        """Nothing to push out; entries are stored as they arrive."""

    async def write(self, entry: LogEntry) -> None:
        """Write a log entry to storage."""
        self.log(entry)

    def entries(self, since: float = 0, level: str | None = None) -> list[LogEntry]:
        """Return entries with timestamp > since, oldest first.

        Args:
            since: Unix timestamp lower bound (exclusive).
            level: Only entries at exactly this level, when given.
        """
        wanted = normalize_level(level, default=None) if level else None
        with self._lock:
            filtered = [
                e for e in self._buffer if e.timestamp > since and (wanted is None or e.level == wanted)
            ]
        return sorted(filtered, key=lambda e: e.timestamp)

    async def read(self, since: float = 0, level: str | None = None) -> AsyncIterable[LogEntry]:
        """Read log entries since the given timestamp, optionally filtered by level."""
        for entry in self.entries(since, level):
            yield entry

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)
