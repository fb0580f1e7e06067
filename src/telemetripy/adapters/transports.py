"""Log transports: console, in-process batching and HTTP delivery.

Each transport implements the ``LogTransport`` port. Delivery failures are
raised as ``TransportError`` (synchronous transports) or reported through
the ``on_error`` callback the pipeline installs (background transports).
"""

import json
import sys
import threading
from collections.abc import Callable
from typing import Any, TextIO

import httpx

from telemetripy.core.diagnostics import get_logger
from telemetripy.core.encoding.ndjson import JSONFormatter
from telemetripy.core.encoding.text import TextFormatter
from telemetripy.core.exceptions import TransportError
from telemetripy.core.models import LogEntry
from telemetripy.core.ports import LogFormatter
from telemetripy.runtime.dispatch import BackgroundDispatcher

logger = get_logger(__name__)

TransportErrorCallback = Callable[[str, BaseException], None]


class ConsoleTransport:
    """Writes one formatted line per entry to a text stream.

    Args:
        name: Registry key.
        level: Minimum level delivered.
        stream: Destination; ``sys.stderr`` when omitted.
        formatter: Renders entries; mapping results are written as JSON.
    """

    def __init__(
        self,
        name: str = "console",
        level: str = "debug",
        stream: TextIO | None = None,
        formatter: LogFormatter | None = None,
        enabled: bool = True,
    ) -> None:
        self.name = name
        self.level = level
        self.enabled = enabled
        self._stream = stream
        self.formatter: LogFormatter = formatter or TextFormatter()
        self._lock = threading.Lock()

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stderr

    def log(self, entry: LogEntry) -> None:
        rendered = self.formatter.format(entry)
        if not isinstance(rendered, str):
            rendered = _dumps(rendered)
        try:
            with self._lock:
                self.stream.write(rendered + "\n")
        except (OSError, ValueError) as exc:
            raise TransportError(self.name, f"write failed: {exc}") from exc

    def flush(self) -> None:
        with self._lock:
            self.stream.flush()


class BufferedTransport:
    """Collects entries and hands them to a callback in batches of ``max_size``.

    Args:
        flush_callback: Receives each batch, in arrival order.
        max_size: Batch size that triggers a flush.
    """

    def __init__(
        self,
        flush_callback: Callable[[list[LogEntry]], None],
        max_size: int = 50,
        name: str = "buffered",
        level: str = "debug",
        enabled: bool = True,
    ) -> None:
        self.name = name
        self.level = level
        self.enabled = enabled
        self.max_size = max_size
        self._flush_callback = flush_callback
        self._buffer: list[LogEntry] = []
        self._lock = threading.Lock()

    def log(self, entry: LogEntry) -> None:
        with self._lock:
            self._buffer.append(entry)
            full = len(self._buffer) >= self.max_size
        if full:
            self.flush()

    def flush(self) -> None:
        with self._lock:
            batch, self._buffer = self._buffer, []
        if not batch:
            return
        try:
            self._flush_callback(batch)
        except Exception as exc:
            raise TransportError(self.name, f"flush callback failed: {exc}") from exc

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)


def _dumps(payload: Any) -> str:
    return json.dumps(payload, default=str, separators=(",", ":"))


class HTTPTransport:
    """POSTs batches of entries as ``{"logs": [...]}`` JSON to an endpoint.

    Posting happens in the background; a failed batch is put back at the
    front of the queue and the failure is reported through ``on_error``.

    Args:
        endpoint: URL receiving the POSTs.
        headers: Extra request headers.
        batch_size: Entries that trigger a background flush.
        timeout: Per-request timeout in seconds.
        dispatcher: Runs the POSTs in the background.
        transport: httpx transport, for tests and custom networking.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        headers: dict[str, str] | None = None,
        batch_size: int = 10,
        timeout: float = 10.0,
        name: str = "http",
        level: str = "info",
        enabled: bool = True,
        dispatcher: BackgroundDispatcher | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        formatter: JSONFormatter | None = None,
    ) -> None:
        self.name = name
        self.level = level
        self.enabled = enabled
        self.endpoint = endpoint
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self.batch_size = batch_size
        self.timeout = timeout
        self.on_error: TransportErrorCallback | None = None
        self._formatter = formatter or JSONFormatter()
        self._dispatcher = dispatcher or BackgroundDispatcher(thread_name_prefix="telemetripy-http")
        self._transport = transport
        self._queue: list[LogEntry] = []
        self._lock = threading.Lock()
        self.sent = 0

    def log(self, entry: LogEntry) -> None:
        with self._lock:
            self._queue.append(entry)
            full = len(self._queue) >= self.batch_size
        if full:
            self.flush()

    def flush(self) -> None:
        """Take the queued entries and POST them in the background."""
        with self._lock:
            batch, self._queue = self._queue, []
        if not batch:
            return
        self._dispatcher.submit(
            lambda: self.send(batch),
            on_error=lambda exc: self._requeue(batch, exc),
        )

    async def send(self, batch: list[LogEntry]) -> None:
        """POST ``batch`` now.

        Raises:
            TransportError: The request failed or returned an error status.
        """
        body = _dumps({"logs": [self._formatter.format(e) for e in batch]})
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(self.endpoint, content=body, headers=self.headers)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransportError(self.name, f"POST {self.endpoint} failed: {exc}") from exc
        with self._lock:
            self.sent += len(batch)

    def _requeue(self, batch: list[LogEntry], exc: BaseException) -> None:
        with self._lock:
            self._queue[:0] = batch
        if self.on_error is not None:
            self.on_error(self.name, exc)
        else:
            logger.warning("HTTP log delivery to %s failed: %s", self.endpoint, exc)

    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    async def drain(self) -> None:
        """Wait for in-flight POSTs."""
        await self._dispatcher.drain()

    def close(self) -> None:
        self._dispatcher.close()
