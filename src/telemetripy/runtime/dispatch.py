"""Fire-and-forget execution of coroutines.

Alert actions and HTTP log posts must never block or fail the code that
produced them. ``BackgroundDispatcher.submit`` schedules the work as a task
on the running event loop, or on a worker thread running its own loop when
called from synchronous code.
"""

import asyncio
import threading
from collections.abc import Awaitable, Callable
from concurrent.futures import Future, ThreadPoolExecutor

from telemetripy.core.diagnostics import get_logger

logger = get_logger(__name__)

CoroutineFactory = Callable[[], Awaitable[None]]
ErrorCallback = Callable[[BaseException], None]
SuccessCallback = Callable[[], None]


class BackgroundDispatcher:
    """Runs coroutines in the background and reports their outcome via callbacks.

    Args:
        max_workers: Worker threads used when no event loop is running.
        thread_name_prefix: Name prefix for worker threads.
    """

    def __init__(self, max_workers: int = 2, thread_name_prefix: str = "telemetripy") -> None:
        self._max_workers = max_workers
        self._thread_name_prefix = thread_name_prefix
        self._executor: ThreadPoolExecutor | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._futures: set[Future[None]] = set()
        self._lock = threading.Lock()

    @property
    def pending(self) -> int:
        """Number of submitted jobs that have not finished."""
        with self._lock:
            return len(self._tasks) + len(self._futures)

    def submit(
        self,
        factory: CoroutineFactory,
        *,
        on_success: SuccessCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        """Schedule ``factory()`` without waiting for it.

        Args:
            factory: Zero-argument callable returning the awaitable to run.
            on_success: Called after the awaitable completes.
            on_error: Called with the exception if it fails. Without it the
                failure is logged.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            task = loop.create_task(self._run(factory, on_success, on_error))
            with self._lock:
                self._tasks.add(task)
            task.add_done_callback(self._forget_task)
            return
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix=self._thread_name_prefix,
                )
            future = self._executor.submit(
                asyncio.run, self._run(factory, on_success, on_error)
            )
            self._futures.add(future)
        future.add_done_callback(self._forget_future)

    def _forget_task(self, task: "asyncio.Task[None]") -> None:
        with self._lock:
            self._tasks.discard(task)

    def _forget_future(self, future: "Future[None]") -> None:
        with self._lock:
            self._futures.discard(future)

    async def _run(
        self,
        factory: CoroutineFactory,
        on_success: SuccessCallback | None,
        on_error: ErrorCallback | None,
    ) -> None:
        try:
            await factory()
        except Exception as exc:
            if on_error is None:
                logger.error("Background job failed", exc_info=exc)
            else:
                on_error(exc)
            return
        if on_success is not None:
            on_success()

    async def drain(self) -> None:
        """Wait until every submitted job, including ones they submit, has finished."""
        while True:
            with self._lock:
                tasks = list(self._tasks)
                futures = list(self._futures)
            if not tasks and not futures:
                return
            waiters = [*tasks, *(asyncio.wrap_future(f) for f in futures)]
            await asyncio.gather(*waiters, return_exceptions=True)

    def close(self, wait: bool = True) -> None:
        """Shut down worker threads. A later submit starts a fresh pool."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
