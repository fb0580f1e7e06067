"""Tests for the HTTP log transport against a mocked httpx transport."""

import json

import httpx
import pytest

from telemetripy.adapters.transports import HTTPTransport
from telemetripy.core.config import LoggingConfig
from telemetripy.core.exceptions import TransportError
from telemetripy.core.logs import LogPipeline
from telemetripy.core.models import LogEntry, LogMetadata
from tests.support import FakeClock

pytestmark = pytest.mark.tier(2)

ENDPOINT = "https://logs.example.com/ingest"


def entry(message: str, level: str = "info") -> LogEntry:
    return LogEntry(
        id=f"log_{message}",
        timestamp=1702300000.0,
        level=level,
        message=message,
        metadata=LogMetadata(service="checkout"),
    )


class Collector:
    """Mock endpoint recording every request; answers with ``status``."""

    def __init__(self, status: int = 200) -> None:
        self.status = status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status)

    @property
    def payloads(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]


@pytest.mark.tra("Adapter.HTTPTransport")
class TestHTTPTransport:
    """Tests for HTTPTransport."""

    async def test_send_posts_logs_document(self) -> None:
        collector = Collector()
        transport = HTTPTransport(
            ENDPOINT,
            headers={"Authorization": "Bearer token"},
            transport=httpx.MockTransport(collector),
        )

        await transport.send([entry("one"), entry("two")])

        [request] = collector.requests
        assert request.method == "POST"
        assert str(request.url) == ENDPOINT
        assert request.headers["content-type"] == "application/json"
        assert request.headers["authorization"] == "Bearer token"
        [payload] = collector.payloads
        assert [log["message"] for log in payload["logs"]] == ["one", "two"]
        assert payload["logs"][0]["@timestamp"] == "2023-12-11T13:06:40.000Z"
        assert payload["logs"][0]["service"] == "checkout"
        assert transport.sent == 2

    async def test_error_status_raises_transport_error(self) -> None:
        transport = HTTPTransport(ENDPOINT, transport=httpx.MockTransport(Collector(status=503)))

        with pytest.raises(TransportError) as excinfo:
            await transport.send([entry("one")])

        assert excinfo.value.transport == "http"
        assert transport.sent == 0

    async def test_batch_size_triggers_background_post(self) -> None:
        collector = Collector()
        transport = HTTPTransport(ENDPOINT, batch_size=2, transport=httpx.MockTransport(collector))

        transport.log(entry("one"))
        assert transport.pending() == 1
        transport.log(entry("two"))
        await transport.drain()

        assert transport.pending() == 0
        assert [len(p["logs"]) for p in collector.payloads] == [2]

    async def test_failed_batch_is_requeued_in_order(self) -> None:
        failures: list[tuple[str, BaseException]] = []
        collector = Collector(status=500)
        transport = HTTPTransport(ENDPOINT, transport=httpx.MockTransport(collector))
        transport.on_error = lambda name, exc: failures.append((name, exc))

        transport.log(entry("first"))
        transport.flush()
        await transport.drain()
        transport.log(entry("second"))

        assert transport.pending() == 2
        [(name, exc)] = failures
        assert name == "http"
        assert isinstance(exc, TransportError)

        collector.status = 200
        transport.flush()
        await transport.drain()
        assert [log["message"] for log in collector.payloads[-1]["logs"]] == ["first", "second"]

    async def test_flush_without_entries_posts_nothing(self) -> None:
        collector = Collector()
        transport = HTTPTransport(ENDPOINT, transport=httpx.MockTransport(collector))

        transport.flush()
        await transport.drain()

        assert collector.requests == []

    async def test_pipeline_counts_delivery_failures(self, clock: FakeClock) -> None:
        """Background failures reach the pipeline through on_error."""
        transport = HTTPTransport(ENDPOINT, transport=httpx.MockTransport(Collector(status=502)))
        pipeline = LogPipeline(LoggingConfig(flush_interval=0), transports=[transport], clock=clock)

        pipeline.error("payment failed")
        pipeline.flush()
        await transport.drain()

        assert pipeline.get_stats()["transport_errors"] == 1
        assert pipeline.metrics.total("log_transport_errors_total") == 1
        assert transport.pending() == 1

    async def test_transport_level_applies_in_pipeline(self, clock: FakeClock) -> None:
        collector = Collector()
        transport = HTTPTransport(ENDPOINT, level="warn", transport=httpx.MockTransport(collector))
        pipeline = LogPipeline(LoggingConfig(level="debug", flush_interval=0), transports=[transport], clock=clock)

        pipeline.info("routine")
        pipeline.warn("disk almost full")
        pipeline.flush()
        await transport.drain()

        assert [log["message"] for log in collector.payloads[0]["logs"]] == ["disk almost full"]
