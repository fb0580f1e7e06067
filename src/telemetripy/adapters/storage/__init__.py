"""Storage adapters usable as log transports."""

from telemetripy.adapters.storage.ring_buffer import RingBufferLogStorage
from telemetripy.adapters.storage.sqlite_logs import SQLiteLogTransport

__all__ = [
    "RingBufferLogStorage",
    "SQLiteLogTransport",
]
