"""SQLite log transport."""

import asyncio
import json
import threading
from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from typing import Any

import aiosqlite

from telemetripy.core.diagnostics import get_logger
from telemetripy.core.exceptions import TransportError
from telemetripy.core.models import LogEntry, LogError, LogMetadata, normalize_level
from telemetripy.runtime.dispatch import BackgroundDispatcher

logger = get_logger(__name__)

_LOGS_SCHEMA = """
CREATE TABLE IF NOT EXISTS logs (
    id TEXT PRIMARY KEY,
    timestamp REAL NOT NULL,
    level TEXT NOT NULL,
    message TEXT NOT NULL,
    context TEXT NOT NULL DEFAULT '{}',
    metadata TEXT NOT NULL DEFAULT '{}',
    error TEXT
);
CREATE INDEX IF NOT EXISTS idx_logs_timestamp ON logs(timestamp);
CREATE INDEX IF NOT EXISTS idx_logs_level_timestamp ON logs(level, timestamp);
"""

_INSERT_LOG = """
INSERT OR REPLACE INTO logs (id, timestamp, level, message, context, metadata, error)
VALUES (?, ?, ?, ?, ?, ?, ?)
"""

_SELECT_LOGS = """
SELECT id, timestamp, level, message, context, metadata, error
FROM logs
WHERE timestamp > ?
ORDER BY timestamp ASC, rowid ASC
"""

_SELECT_LOGS_BY_LEVEL = """
SELECT id, timestamp, level, message, context, metadata, error
FROM logs
WHERE timestamp > ? AND level = ?
ORDER BY timestamp ASC, rowid ASC
"""

_COUNT_LOGS = """
SELECT COUNT(*) FROM logs
"""

_DELETE_LOGS_BEFORE = """
DELETE FROM logs WHERE timestamp < ?
"""


def _safe_json_loads(data: str | None, default: Any = None) -> Any:
    """Parse JSON data, returning ``default`` on a missing or malformed value."""
    if data is None:
        return default
    try:
        return json.loads(data)
    except json.JSONDecodeError:
        return default


def _to_row(entry: LogEntry) -> tuple[Any, ...]:
    metadata = entry.metadata.to_dict()
    metadata["tags"] = list(entry.metadata.tags)
    return (
        entry.id,
        entry.timestamp,
        entry.level,
        entry.message,
        json.dumps(entry.context, default=str),
        json.dumps(metadata, default=str),
        json.dumps(entry.error.to_dict()) if entry.error is not None else None,
    )


def _from_row(row: Iterable[Any]) -> LogEntry:
    entry_id, timestamp, level, message, context, metadata, error = row
    metadata_values = _safe_json_loads(metadata, {})
    metadata_values["tags"] = tuple(metadata_values.get("tags") or ())
    error_values = _safe_json_loads(error)
    return LogEntry(
        id=entry_id,
        timestamp=timestamp,
        level=level,
        message=message,
        context=_safe_json_loads(context, {}),
        metadata=LogMetadata(**metadata_values),
        error=LogError(**error_values) if error_values else None,
    )


class SQLiteLogTransport:
    """Persists log entries to SQLite with aiosqlite.

    ``log()`` queues entries; ``flush()`` writes the queue in the background.
    Uses WAL mode for concurrent access. For ``:memory:`` databases a
    persistent connection is kept, since in-memory databases are
    connection-scoped in SQLite; such a database must be used from a single
    event loop.

    Args:
        db_path: Database file, or ``:memory:``.
        batch_size: Queued entries that trigger a background write.
        dispatcher: Runs the writes in the background.
    """

    def __init__(
        self,
        db_path: str,
        *,
        name: str = "sqlite",
        level: str = "debug",
        batch_size: int = 50,
        dispatcher: BackgroundDispatcher | None = None,
    ) -> None:
        self.name = name
        self.level = level
        self.enabled = True
        self.batch_size = batch_size
        self.on_error: Callable[[str, BaseException], None] | None = None
        self._db_path = db_path
        self._dispatcher = dispatcher or BackgroundDispatcher(thread_name_prefix="telemetripy-sqlite")
        self._queue: list[LogEntry] = []
        self._queue_lock = threading.Lock()
        self._initialized = False
        self._init_lock: asyncio.Lock | None = None
        self._persistent_conn: aiosqlite.Connection | None = None

    # --- LogTransport ---

    def log(self, entry: LogEntry) -> None:
        with self._queue_lock:
            self._queue.append(entry)
            full = len(self._queue) >= self.batch_size
        if full:
            self.flush()

    def flush(self) -> None:
        with self._queue_lock:
            batch, self._queue = self._queue, []
        if batch:
            self._dispatcher.submit(
                lambda: self.write_many(batch),
                on_error=lambda exc: self._report(batch, exc),
            )

    def _report(self, batch: list[LogEntry], exc: BaseException) -> None:
        error = TransportError(self.name, f"failed to persist {len(batch)} entries: {exc}")
        error.__cause__ = exc
        if self.on_error is not None:
            self.on_error(self.name, error)
        else:
            logger.error("%s", error)

    async def drain(self) -> None:
        """Wait for background writes."""
        await self._dispatcher.drain()

    # --- Connection management ---

    def _get_lock(self) -> asyncio.Lock:
        """Get or create the initialization lock (lazy to avoid event loop issues)."""
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        return self._init_lock

    async def _ensure_initialized(self) -> None:
        """Initialize database schema once."""
        if self._initialized:
            return
        async with self._get_lock():
            if self._initialized:
                return
            if self._db_path == ":memory:":
                self._persistent_conn = await aiosqlite.connect(":memory:")
                await self._persistent_conn.executescript(_LOGS_SCHEMA)
            else:
                async with aiosqlite.connect(self._db_path) as db:
                    await db.execute("PRAGMA journal_mode=WAL")
                    await db.executescript(_LOGS_SCHEMA)
            self._initialized = True

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield a connection; file-database connections are closed afterwards."""
        await self._ensure_initialized()
        if self._db_path == ":memory:":
            if self._persistent_conn is None:
                raise RuntimeError("Memory database connection not initialized")
            yield self._persistent_conn
            return
        db = await aiosqlite.connect(self._db_path)
        try:
            yield db
        finally:
            await db.close()

    # --- Storage ---

    async def write(self, entry: LogEntry) -> None:
        """Write a log entry to storage."""
        await self.write_many([entry])

    async def write_many(self, entries: list[LogEntry]) -> None:
        async with self._connection() as db:
            await db.executemany(_INSERT_LOG, [_to_row(e) for e in entries])
            await db.commit()

    async def read(self, since: float = 0, level: str | None = None) -> AsyncIterable[LogEntry]:
        """Read log entries since the given timestamp, optionally filtered by level."""
        wanted = normalize_level(level, default=None) if level else None
        if wanted is not None:
            query, params = _SELECT_LOGS_BY_LEVEL, (since, wanted)
        else:
            query, params = _SELECT_LOGS, (since,)
        async with self._connection() as db:
            async with db.execute(query, params) as cursor:
                async for row in cursor:
                    yield _from_row(row)

    async def count(self) -> int:
        """Return total number of log entries in storage."""
        async with self._connection() as db:
            async with db.execute(_COUNT_LOGS) as cursor:
                row = await cursor.fetchone()
                return row[0] if row else 0

    async def delete_before(self, timestamp: float) -> int:
        """Delete log entries with timestamp < given value."""
        async with self._connection() as db:
            cursor = await db.execute(_DELETE_LOGS_BEFORE, (timestamp,))
            deleted = cursor.rowcount
            await db.commit()
            return deleted

    async def clear(self) -> None:
        async with self._connection() as db:
            await db.execute("DELETE FROM logs")
            await db.commit()

    async def close(self) -> None:
        """Wait for background writes and close the persistent connection."""
        await self.drain()
        self._dispatcher.close()
        if self._persistent_conn is not None:
            await self._persistent_conn.close()
            self._persistent_conn = None
            self._initialized = False
