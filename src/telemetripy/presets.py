"""Ready-made pipelines and hubs wired with the bundled adapters."""

import random as _random
import time
from collections.abc import Callable
from typing import TextIO

from telemetripy.adapters.memory import PsutilMemorySource
from telemetripy.adapters.storage.ring_buffer import RingBufferLogStorage
from telemetripy.adapters.transports import BufferedTransport, ConsoleTransport, HTTPTransport
from telemetripy.core.config import LoggingConfig, MonitoringConfig
from telemetripy.core.diagnostics import get_logger
from telemetripy.core.encoding.ndjson import JSONFormatter
from telemetripy.core.encoding.text import TextFormatter
from telemetripy.core.hub import HubWiring, MonitoringHub
from telemetripy.core.logs import LogPipeline
from telemetripy.core.metrics import MetricsCollector
from telemetripy.core.models import LogEntry
from telemetripy.core.ports import MemorySource
from telemetripy.runtime.dispatch import BackgroundDispatcher

logger = get_logger(__name__)


def _report_batch(entries: list[LogEntry]) -> None:
    logger.info("Flushing %d log entries", len(entries))


def create_logger(
    config: LoggingConfig | None = None,
    *,
    environment: str = "development",
    service: str = "frontend",
    version: str = "1.0.0",
    stream: TextIO | None = None,
    metrics: MetricsCollector | None = None,
    dispatcher: BackgroundDispatcher | None = None,
    clock: Callable[[], float] = time.time,
) -> LogPipeline:
    """Build a pipeline with the transports ``config`` asks for.

    ``console`` adds a console transport (JSON lines outside development),
    ``http_endpoint`` an HTTP transport and ``keep_recent`` a ring buffer of
    that size named ``recent``.
    """
    config = config or LoggingConfig()
    pipeline = LogPipeline(
        config,
        environment=environment,
        service=service,
        version=version,
        metrics=metrics,
        clock=clock,
    )
    if config.console:
        formatter = TextFormatter() if environment == "development" else JSONFormatter()
        pipeline.add_transport(ConsoleTransport(stream=stream, formatter=formatter))
    if config.http_endpoint:
        pipeline.add_transport(
            HTTPTransport(config.http_endpoint, headers=config.http_headers, dispatcher=dispatcher)
        )
    if config.keep_recent > 0:
        pipeline.add_transport(RingBufferLogStorage(config.keep_recent))
    return pipeline


def create_production_logger(
    flush_callback: Callable[[list[LogEntry]], None] | None = None,
    *,
    stream: TextIO | None = None,
    service: str = "frontend",
    version: str = "1.0.0",
    random: Callable[[], float] = _random.random,
) -> LogPipeline:
    """Info-level pipeline sampling 10% of entries.

    Errors go to the console as JSON; info and above are batched by a
    ``buffer`` transport of 1000 entries handed to ``flush_callback``.
    """
    return LogPipeline(
        LoggingConfig(level="info", sample_rate=0.1),
        environment="production",
        service=service,
        version=version,
        transports=[
            ConsoleTransport(level="error", stream=stream, formatter=JSONFormatter()),
            BufferedTransport(
                flush_callback or _report_batch, max_size=1000, name="buffer", level="info"
            ),
        ],
        random=random,
    )


def create_development_logger(
    *, stream: TextIO | None = None, colors: bool = True, service: str = "frontend"
) -> LogPipeline:
    """Debug-level pipeline writing colored text lines to the console."""
    return LogPipeline(
        LoggingConfig(level="debug", enable_performance_tracking=True),
        environment="development",
        service=service,
        transports=[
            ConsoleTransport(level="debug", stream=stream, formatter=TextFormatter(colors=colors)),
        ],
    )


def create_monitoring(
    config: MonitoringConfig | None = None,
    *,
    wiring: HubWiring | None = None,
    stream: TextIO | None = None,
    memory_source: MemorySource | None = None,
    clock: Callable[[], float] = time.time,
) -> MonitoringHub:
    """Build a hub whose log pipeline and memory monitor use the bundled adapters.

    Args:
        config: Hub configuration.
        wiring: Cross-subsystem reactions.
        stream: Console transport destination.
        memory_source: Memory source; psutil's view of this process when omitted.
        clock: Time source.
    """
    config = (config or MonitoringConfig()).validate()
    metrics = MetricsCollector(clock=clock)
    dispatcher = BackgroundDispatcher()
    pipeline = None
    if config.logging.enabled:
        pipeline = create_logger(
            config.logging,
            environment=config.environment,
            service=config.service,
            version=config.version,
            stream=stream,
            metrics=metrics,
            dispatcher=dispatcher,
            clock=clock,
        )
    if memory_source is None and config.performance.enable_memory_monitoring:
        memory_source = PsutilMemorySource(clock=clock)
    return MonitoringHub(
        config,
        logger=pipeline,
        wiring=wiring,
        metrics=metrics,
        dispatcher=dispatcher,
        memory_source=memory_source,
        clock=clock,
    )
