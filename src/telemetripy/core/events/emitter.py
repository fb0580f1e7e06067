"""Synchronous in-process event emitter."""

import threading
from collections.abc import Callable
from typing import Any

from telemetripy.core.diagnostics import get_logger

logger = get_logger(__name__)

Listener = Callable[[Any], None]


class EventEmitter:
    """Named-event publish/subscribe.

    Listeners run synchronously in registration order on the emitting thread.
    A listener that raises is logged and skipped; the remaining listeners
    still run and the emitter never raises into the publisher.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}
        self._lock = threading.RLock()

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """Subscribe ``listener`` to ``event``.

        Returns:
            A callable that removes the subscription.
        """
        with self._lock:
            self._listeners.setdefault(event, []).append(listener)
        return lambda: self.off(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        """Remove one subscription of ``listener``; unknown listeners are ignored."""
        with self._lock:
            listeners = self._listeners.get(event)
            if listeners and listener in listeners:
                listeners.remove(listener)

    def emit(self, event: str, payload: Any = None) -> None:
        """Call every listener of ``event`` with ``payload``."""
        with self._lock:
            listeners = list(self._listeners.get(event, ()))
        for listener in listeners:
            try:
                listener(payload)
            except Exception:
                logger.exception("Listener for event %r failed", event)

    def listener_count(self, event: str) -> int:
        with self._lock:
            return len(self._listeners.get(event, ()))

    def remove_all_listeners(self, event: str | None = None) -> None:
        with self._lock:
            if event is None:
                self._listeners.clear()
            else:
                self._listeners.pop(event, None)
