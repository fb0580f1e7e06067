"""Periodic background jobs on the asyncio event loop."""

import asyncio
import contextlib
import inspect
from collections.abc import Callable
from typing import Any

from telemetripy.core.diagnostics import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    """Calls ``callback`` every ``interval`` seconds once started.

    A non-positive interval disables the task. The callback may be sync or
    async; an exception is logged and the schedule continues.

    Args:
        name: Task name used in logs and as the asyncio task name.
        interval: Seconds between runs.
        callback: Job to run.
    """

    def __init__(self, name: str, interval: float, callback: Callable[[], Any]) -> None:
        self.name = name
        self.interval = interval
        self.callback = callback
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop on the running event loop; a no-op if already running."""
        if self.running or self.interval <= 0:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop(), name=self.name)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.run_once()

    async def run_once(self) -> None:
        """Run the callback now, logging instead of raising on failure."""
        try:
            result = self.callback()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Periodic task %r failed", self.name)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


class BackgroundTasks:
    """A group of periodic tasks started and cancelled as a unit."""

    def __init__(self) -> None:
        self._tasks: dict[str, PeriodicTask] = {}

    def add(self, name: str, interval: float, callback: Callable[[], Any]) -> PeriodicTask:
        return self.add_task(PeriodicTask(name, interval, callback))

    def add_task(self, task: PeriodicTask) -> PeriodicTask:
        self._tasks[task.name] = task
        return task

    def get(self, name: str) -> PeriodicTask | None:
        return self._tasks.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._tasks)

    @property
    def running(self) -> list[str]:
        return [name for name, task in self._tasks.items() if task.running]

    def __len__(self) -> int:
        return len(self._tasks)

    def start(self) -> None:
        for task in self._tasks.values():
            task.start()

    async def stop(self) -> None:
        await asyncio.gather(*(task.stop() for task in self._tasks.values()))
