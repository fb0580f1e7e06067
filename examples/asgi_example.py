"""Example plain ASGI application with monitoring endpoints.

Run with:
    uvicorn examples.asgi_example:app

The monitoring endpoints are served under ``/monitoring`` and the rest of
the traffic goes to a small application wrapped in ``MonitoringMiddleware``.
Logs are also persisted to ``monitoring.db`` through the SQLite transport.
"""

import json

from telemetripy.adapters.frameworks.asgi import (
    MonitoringMiddleware,
    Receive,
    Scope,
    Send,
    create_asgi_app,
)
from telemetripy.adapters.storage.sqlite_logs import SQLiteLogTransport
from telemetripy.core.config import LoggingConfig, MonitoringConfig, PerformanceConfig
from telemetripy.core.models import PerformanceBudget
from telemetripy.presets import create_monitoring

hub = create_monitoring(
    MonitoringConfig(
        service="catalog",
        environment="staging",
        logging=LoggingConfig(level="debug"),
        performance=PerformanceConfig(
            budgets=[
                PerformanceBudget(metric="LCP", threshold=2500, severity="error"),
                PerformanceBudget(metric="http_request_duration", threshold=500),
            ]
        ),
    )
)
assert hub.logger is not None
hub.logger.add_transport(SQLiteLogTransport("monitoring.db", level="info"))

monitoring = create_asgi_app(hub)


async def catalog(scope: Scope, receive: Receive, send: Send) -> None:
    body = json.dumps({"items": ["lamp", "desk", "chair"]}).encode()
    await send(
        {"type": "http.response.start", "status": 200, "headers": [(b"content-type", b"application/json")]}
    )
    await send({"type": "http.response.body", "body": body})


catalog_app = MonitoringMiddleware(catalog, hub)


async def app(scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] == "lifespan":
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                await hub.start()
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await hub.shutdown()
                await send({"type": "lifespan.shutdown.complete"})
                return
    if scope["path"].startswith("/monitoring/"):
        scope = {**scope, "path": scope["path"].removeprefix("/monitoring")}
        await monitoring(scope, receive, send)
        return
    await catalog_app(scope, receive, send)
