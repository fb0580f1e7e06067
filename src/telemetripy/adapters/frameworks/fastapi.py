"""FastAPI adapter for monitoring endpoints."""

from typing import Any

from fastapi import APIRouter, Body, Query, Response

from telemetripy.adapters.exposition import NO_CACHE, metrics_error_body, render_metrics
from telemetripy.adapters.frameworks.asgi import find_log_storage
from telemetripy.adapters.storage.ring_buffer import RingBufferLogStorage
from telemetripy.core.diagnostics import log_exception
from telemetripy.core.encoding.ndjson import encode_logs
from telemetripy.core.encoding.prometheus import CONTENT_TYPE
from telemetripy.core.hub import MonitoringHub
from telemetripy.core.models import normalize_level


def create_monitoring_router(
    hub: MonitoringHub,
    log_storage: RingBufferLogStorage | None = None,
    include_process: bool = True,
) -> APIRouter:
    """Create a FastAPI router with the hub's monitoring endpoints.

    Args:
        hub: Hub whose state is served.
        log_storage: Ring buffer serving ``/logs``; the one registered on the
            hub's pipeline when omitted.
        include_process: Expose psutil process families on ``/metrics``.

    Returns:
        APIRouter with /metrics, /health, /report, /insights, /logs and
        /vitals configured.
    """
    router = APIRouter()
    storage = log_storage or find_log_storage(hub)

    @router.get("/metrics")
    async def get_metrics() -> Response:
        """Return metrics in Prometheus text format."""
        try:
            body = render_metrics(hub, include_process=include_process)
            status = 200
        except Exception:
            log_exception("Error encoding metrics endpoint")
            body = metrics_error_body(hub.config.namespace)
            status = 500
        return Response(
            content=body,
            status_code=status,
            media_type=CONTENT_TYPE,
            headers={"Cache-Control": NO_CACHE},
        )

    @router.get("/health")
    async def get_health() -> dict[str, Any]:
        return hub.analyze_health().to_dict()

    @router.get("/report")
    async def get_report() -> dict[str, Any]:
        return hub.generate_report().to_dict()

    @router.get("/insights")
    async def get_insights() -> dict[str, Any]:
        return hub.get_insights().to_dict()

    @router.get("/logs")
    async def get_logs(
        since: float = Query(default=0),
        level: str | None = Query(default=None),
        limit: int = Query(default=100, ge=1, le=1000),
    ) -> Response:
        """Return recent logs in NDJSON format.

        Args:
            since: Unix timestamp. Returns entries with timestamp > since.
            level: Only entries at this level.
            limit: Most recent entries returned.
        """
        wanted = normalize_level(level, default=None) if level else None
        entries = storage.entries(since=max(since, 0), level=wanted) if storage is not None else []
        return Response(content=encode_logs(entries[-limit:]), media_type="application/x-ndjson")

    @router.post("/vitals", status_code=202)
    async def post_vitals(payload: dict[str, Any] | list[dict[str, Any]] = Body(...)) -> dict[str, Any]:
        """Record web-vital beacons."""
        beacons = payload if isinstance(payload, list) else [payload]
        if hub.performance is None:
            return {"recorded": 0}
        recorded = [v for v in (hub.performance.ingest_web_vital_beacon(b) for b in beacons) if v]
        return {"recorded": len(recorded), "ratings": {v.name: v.rating for v in recorded}}

    return router
