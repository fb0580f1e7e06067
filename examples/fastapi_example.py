"""Example FastAPI application with monitoring endpoints.

Run with:
    uvicorn examples.fastapi_example:app --reload

Endpoints:
    /metrics              - Prometheus text format (hub and process families)
    /health               - Health score, status and recommendations
    /report               - Full monitoring report
    /insights             - Top errors, budget violations, slow resources
    /logs                 - NDJSON of recent log entries
    /logs?since=<ts>      - NDJSON logs since timestamp
    /logs?level=<level>   - NDJSON logs filtered by level (info, warn, ...)
    /vitals               - POST web-vital beacons from the browser

Instrumentation:
    Every request passes through ``MonitoringMiddleware``, which logs it,
    records its duration and tracks unhandled exceptions.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException

from telemetripy.adapters.frameworks.asgi import MonitoringMiddleware
from telemetripy.adapters.frameworks.fastapi import create_monitoring_router
from telemetripy.core.config import MonitoringConfig
from telemetripy.presets import create_monitoring

# Configured from TELEMETRIPY_* variables, e.g. TELEMETRIPY_SERVICE=shop-api
hub = create_monitoring(MonitoringConfig.from_env())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    async with hub:
        yield


app = FastAPI(title="Monitoring Example", lifespan=lifespan)
app.include_router(create_monitoring_router(hub))
app.add_middleware(MonitoringMiddleware, hub=hub, exclude_paths=["/metrics", "/logs"])


@app.get("/")
async def root() -> dict[str, str]:
    hub.info("Root visited")
    return {"message": "Hello! Check /metrics, /health and /logs."}


@app.get("/users")
async def get_users() -> dict[str, list[dict[str, str]]]:
    """Users endpoint whose simulated database call is measured."""

    async def fetch() -> list[dict[str, str]]:
        await asyncio.sleep(0.05)
        return [{"id": "1", "name": "Alice"}, {"id": "2", "name": "Bob"}]

    return {"users": await hub.measure_async("db.fetch_users", fetch)}


@app.get("/orders/{order_id}")
async def get_order(order_id: int) -> dict[str, int]:
    if order_id > 1000:
        hub.track_error(
            {"name": "NotFoundError", "message": f"Order {order_id} not found", "status": 404},
            {"component": "orders", "action": "get"},
        )
        raise HTTPException(status_code=404, detail="Order not found")
    return {"order_id": order_id}


@app.get("/boom")
async def boom() -> None:
    """Raises; the middleware tracks the exception as an error."""
    raise RuntimeError("Simulated failure")
