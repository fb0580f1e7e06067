"""Background execution helpers: periodic tasks and fire-and-forget dispatch."""

from telemetripy.runtime.dispatch import BackgroundDispatcher
from telemetripy.runtime.tasks import BackgroundTasks, PeriodicTask

__all__ = ["BackgroundDispatcher", "BackgroundTasks", "PeriodicTask"]
