"""Integration tests for the ASGI monitoring endpoints."""

import json

import pytest

from telemetripy.adapters.frameworks.asgi import create_asgi_app
from telemetripy.adapters.storage.ring_buffer import RingBufferLogStorage
from telemetripy.core.hub import MonitoringHub
from tests.support import FakeClock

pytestmark = [pytest.mark.asgi, pytest.mark.tier(2)]


@pytest.fixture
def storage(hub: MonitoringHub) -> RingBufferLogStorage:
    ring = RingBufferLogStorage(max_size=50)
    assert hub.logger is not None
    hub.logger.add_transport(ring)
    return ring


def parse_ndjson(body: str) -> list[dict]:
    return [json.loads(line) for line in body.splitlines() if line]


class TestASGIMetricsEndpoint:
    """Tests for GET /metrics."""

    @pytest.mark.tra("Adapter.ASGI.MetricsEndpoint")
    async def test_returns_prometheus_document(self, hub: MonitoringHub, asgi_test_client) -> None:
        hub.record_web_vital("LCP", 1800)
        app = create_asgi_app(hub, include_process=False)

        async with asgi_test_client(app) as client:
            response = await client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/plain; version=0.0.4; charset=utf-8"
        assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"
        assert 'telemetripy_web_vitals{metric="lcp",rating="good"} 1800' in response.text
        assert "process_uptime_seconds" not in response.text

    @pytest.mark.tra("Adapter.ASGI.MetricsEndpoint.Process")
    async def test_includes_process_families(self, hub: MonitoringHub, asgi_test_client) -> None:
        app = create_asgi_app(hub)

        async with asgi_test_client(app) as client:
            response = await client.get("/metrics")

        assert 'process_memory_usage_bytes{type="rss"}' in response.text
        assert "process_uptime_seconds" in response.text

    @pytest.mark.tra("Adapter.ASGI.MetricsEndpoint.Error")
    async def test_render_failure_serves_error_gauge(
        self, hub: MonitoringHub, asgi_test_client, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A failing render should answer 500 with the metrics_error gauge."""

        def broken(*args, **kwargs):
            raise RuntimeError("encoder exploded")

        monkeypatch.setattr(hub, "render_prometheus", broken)
        app = create_asgi_app(hub, include_process=False)

        async with asgi_test_client(app) as client:
            response = await client.get("/metrics")

        assert response.status_code == 500
        assert "telemetripy_metrics_error 1" in response.text


class TestASGIJsonEndpoints:
    """Tests for /health, /report and /insights."""

    @pytest.mark.tra("Adapter.ASGI.HealthEndpoint")
    async def test_health(self, hub: MonitoringHub, asgi_test_client) -> None:
        hub.record_web_vital("CLS", 0.5)
        app = create_asgi_app(hub, include_process=False)

        async with asgi_test_client(app) as client:
            response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "score": 80,
            "status": "healthy",
            "recommendations": ["Improve CLS: currently 0.5"],
        }

    @pytest.mark.tra("Adapter.ASGI.ReportEndpoint")
    async def test_report(self, hub: MonitoringHub, asgi_test_client, clock: FakeClock) -> None:
        hub.track_error("cart total mismatch")
        app = create_asgi_app(hub, include_process=False)

        async with asgi_test_client(app) as client:
            response = await client.get("/report")

        report = response.json()
        assert report["service"] == "checkout"
        assert report["timestamp"] == clock.now
        assert report["errors"]["total"] == 1
        assert report["health"]["status"] == "healthy"
        assert hub.last_report is not None

    @pytest.mark.tra("Adapter.ASGI.InsightsEndpoint")
    async def test_insights(self, hub: MonitoringHub, asgi_test_client) -> None:
        hub.track_error("cart total mismatch")
        app = create_asgi_app(hub, include_process=False)

        async with asgi_test_client(app) as client:
            response = await client.get("/insights")

        [top] = response.json()["top_errors"]
        assert top["message"] == "cart total mismatch"

    @pytest.mark.tra("Adapter.ASGI.Endpoint.ErrorHandling")
    async def test_failure_answers_500(
        self, hub: MonitoringHub, asgi_test_client, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def broken():
            raise RuntimeError("tracker unavailable")

        monkeypatch.setattr(hub, "get_insights", broken)
        app = create_asgi_app(hub, include_process=False)

        async with asgi_test_client(app) as client:
            response = await client.get("/insights")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal Server Error"}


class TestASGILogsEndpoint:
    """Tests for GET /logs."""

    @pytest.mark.tra("Adapter.ASGI.LogsEndpoint")
    async def test_returns_ndjson(
        self, hub: MonitoringHub, storage: RingBufferLogStorage, asgi_test_client
    ) -> None:
        hub.info("first")
        hub.warn("second")
        hub.logger.flush_buffer()
        app = create_asgi_app(hub)

        async with asgi_test_client(app) as client:
            response = await client.get("/logs")

        assert response.headers["content-type"] == "application/x-ndjson"
        assert [line["message"] for line in parse_ndjson(response.text)] == ["first", "second"]

    @pytest.mark.tra("Adapter.ASGI.LogsEndpoint.Filters")
    async def test_since_level_and_limit(
        self,
        hub: MonitoringHub,
        storage: RingBufferLogStorage,
        asgi_test_client,
        clock: FakeClock,
    ) -> None:
        hub.warn("old warning")
        cutoff = clock.now
        clock.advance(10)
        for index in range(3):
            hub.warn(f"warning {index}")
        hub.info("not a warning")
        hub.logger.flush_buffer()
        app = create_asgi_app(hub)

        async with asgi_test_client(app) as client:
            response = await client.get("/logs", params={"since": cutoff, "level": "WARNING", "limit": 2})

        assert [line["message"] for line in parse_ndjson(response.text)] == ["warning 1", "warning 2"]

    @pytest.mark.tra("Adapter.ASGI.LogsEndpoint.NoStorage")
    async def test_without_storage_is_empty(self, hub: MonitoringHub, asgi_test_client) -> None:
        app = create_asgi_app(hub)

        async with asgi_test_client(app) as client:
            response = await client.get("/logs")

        assert response.status_code == 200
        assert response.text == ""

    @pytest.mark.tra("Adapter.ASGI.LogsEndpoint.ExplicitStorage")
    async def test_explicit_storage_wins(self, hub: MonitoringHub, asgi_test_client) -> None:
        other = RingBufferLogStorage()
        assert hub.logger is not None
        hub.logger.add_transport(other)
        hub.error("kept elsewhere")
        app = create_asgi_app(hub, log_storage=RingBufferLogStorage(name="empty"))

        async with asgi_test_client(app) as client:
            response = await client.get("/logs")

        assert response.text == ""
        assert len(other) == 1


class TestASGIVitalsEndpoint:
    """Tests for POST /vitals."""

    @pytest.mark.tra("Adapter.ASGI.VitalsEndpoint")
    async def test_records_beacons(self, hub: MonitoringHub, asgi_test_client) -> None:
        app = create_asgi_app(hub)
        beacons = [
            {"name": "LCP", "value": 2100, "navigationType": "reload"},
            {"name": "cls", "value": 0.3},
            {"value": 12},
        ]

        async with asgi_test_client(app) as client:
            response = await client.post("/vitals", json=beacons)

        assert response.status_code == 202
        assert response.json() == {"recorded": 2, "ratings": {"LCP": "good", "CLS": "poor"}}
        assert hub.performance is not None
        assert hub.performance.get_web_vital("LCP").navigation_type == "reload"

    @pytest.mark.tra("Adapter.ASGI.VitalsEndpoint.InvalidJson")
    async def test_rejects_invalid_json(self, hub: MonitoringHub, asgi_test_client) -> None:
        app = create_asgi_app(hub)

        async with asgi_test_client(app) as client:
            response = await client.post("/vitals", content=b"{not json")

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid JSON"}

    @pytest.mark.tra("Adapter.ASGI.VitalsEndpoint.InvalidShape")
    async def test_rejects_non_objects(self, hub: MonitoringHub, asgi_test_client) -> None:
        app = create_asgi_app(hub)

        async with asgi_test_client(app) as client:
            response = await client.post("/vitals", json=[1, 2])

        assert response.status_code == 400


class TestASGIRouting:
    """Tests for unknown paths and methods."""

    @pytest.mark.tra("Adapter.ASGI.Routing.NotFound")
    async def test_unknown_path_is_404(self, hub: MonitoringHub, asgi_test_client) -> None:
        async with asgi_test_client(create_asgi_app(hub)) as client:
            response = await client.get("/nope")

        assert response.status_code == 404
        assert response.text == "Not Found"

    @pytest.mark.tra("Adapter.ASGI.Routing.MethodNotAllowed")
    @pytest.mark.parametrize(("method", "path"), [("POST", "/metrics"), ("GET", "/vitals")])
    async def test_wrong_method_is_405(
        self, hub: MonitoringHub, asgi_test_client, method: str, path: str
    ) -> None:
        async with asgi_test_client(create_asgi_app(hub)) as client:
            response = await client.request(method, path)

        assert response.status_code == 405

    @pytest.mark.tra("Adapter.ASGI.Routing.NonHttp")
    async def test_lifespan_scope_is_ignored(self, hub: MonitoringHub, asgi_send_capture) -> None:
        send, responses = asgi_send_capture
        app = create_asgi_app(hub)

        await app({"type": "lifespan"}, None, send)

        assert responses == []
