"""Shared test fixtures for all test modules."""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import httpx
import pytest

from telemetripy.core.config import MonitoringConfig
from telemetripy.core.hub import MonitoringHub
from tests.support import FakeClock, RecordingTransport


@pytest.fixture
def clock() -> FakeClock:
    """Clock starting at a fixed instant, advanced explicitly by tests."""
    return FakeClock()


@pytest.fixture
def always_sample() -> Callable[[], float]:
    """Random source that keeps every sampled item."""
    return lambda: 0.0


@pytest.fixture
def log_db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for log storage tests."""
    return str(tmp_path / "logs.db")


@pytest.fixture
def recording_transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
async def hub(clock: FakeClock) -> AsyncGenerator[MonitoringHub]:
    """Hub with every subsystem enabled, a fake clock and no background tasks running."""
    monitoring = MonitoringHub(MonitoringConfig(service="checkout", version="2.1.0"), clock=clock)
    yield monitoring
    await monitoring.dispatcher.drain()
    monitoring.dispatcher.close()


# === ASGI Test Fixtures ===


@pytest.fixture
def basic_asgi_app():
    """Basic ASGI app fixture that returns 200 OK."""
    from telemetripy.adapters.frameworks.asgi import Receive, Scope, Send

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        """Simple ASGI app that returns 200 OK."""
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b"OK"})

    return app


@pytest.fixture
def asgi_scope():
    """Factory fixture for creating ASGI scope dicts."""
    from telemetripy.adapters.frameworks.asgi import Scope

    def _scope(method: str = "GET", path: str = "/test", query_string: bytes = b"") -> Scope:
        return {
            "type": "http",
            "method": method,
            "path": path,
            "query_string": query_string,
            "headers": [],
        }

    return _scope


@pytest.fixture
def asgi_send_capture():
    """Fixture that returns a send callable and a responses list for capture.

    Returns a tuple of (send_func, responses_list) for recording ASGI messages.
    """

    responses: list[dict[str, object]] = []

    async def send(message: dict[str, object]) -> None:
        """Capture ASGI messages."""
        responses.append(message)

    return send, responses


@pytest.fixture
def asgi_test_client():
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Usage:
        async def test_something(asgi_test_client):
            app = create_asgi_app(hub)
            async with asgi_test_client(app) as client:
                response = await client.get("/endpoint")
    """

    def _get_client(app):
        """Return an AsyncClient context manager for the given app."""
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client
