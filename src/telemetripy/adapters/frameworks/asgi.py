"""ASGI generic adapter for monitoring endpoints.

This adapter provides a framework-agnostic ASGI application that can be used
with any ASGI server (uvicorn, hypercorn, daphne) without requiring FastAPI
as a dependency, plus a middleware that monitors the requests of another
ASGI application.
"""

import fnmatch
import json
import time
import uuid
from collections.abc import Callable, Coroutine
from typing import Any
from urllib.parse import parse_qs

from telemetripy.adapters.exposition import NO_CACHE, metrics_error_body, render_metrics
from telemetripy.adapters.frameworks.query_params import (
    _parse_level_param,
    _parse_limit_param,
    _parse_since_param,
)
from telemetripy.adapters.storage.ring_buffer import RingBufferLogStorage
from telemetripy.core.diagnostics import log_exception
from telemetripy.core.encoding.ndjson import encode_logs
from telemetripy.core.encoding.prometheus import CONTENT_TYPE
from telemetripy.core.hub import MonitoringHub

# ASGI type aliases
Scope = dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, dict[str, Any]]]
Send = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]

JSON_CONTENT_TYPE = "application/json"
NDJSON_CONTENT_TYPE = "application/x-ndjson"


def _parse_query_params(scope: Scope) -> dict[str, list[str]]:
    """Parse query string from ASGI scope into parameter dictionary.

    Args:
        scope: ASGI scope dictionary containing request metadata.

    Returns:
        Dictionary mapping parameter names to lists of values.
        Returns empty dict if query_string is missing or empty.
    """
    query_string = scope.get("query_string", b"").decode(errors="replace")
    return parse_qs(query_string)


def _extract_request_id(scope: Scope, header_name: str = "X-Request-ID") -> str:
    """Extract or generate a request ID from ASGI scope headers.

    Searches for the specified header (case-insensitive). If not found,
    generates a new UUID.

    Args:
        scope: ASGI scope dictionary containing request metadata.
        header_name: Name of the header to search for (default: "X-Request-ID").

    Returns:
        Request ID string (either from header or newly generated UUID).
    """
    header_bytes = header_name.lower().encode()
    headers: list[tuple[bytes, bytes]] = scope.get("headers", [])
    for name, value in headers:
        if name.lower() == header_bytes:
            return str(value.decode("utf-8", errors="replace"))
    return str(uuid.uuid4())


async def _read_body(receive: Receive) -> bytes:
    chunks = []
    while True:
        message = await receive()
        if message["type"] != "http.request":
            break
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            break
    return b"".join(chunks)


async def _send_response(
    send: Send,
    status: int,
    content_type: str,
    body: str,
    extra_headers: list[tuple[bytes, bytes]] | None = None,
) -> None:
    """Send an HTTP response with headers and body.

    Args:
        send: ASGI send callable for writing response.
        status: HTTP status code.
        content_type: Content-Type header value.
        body: Response body as string (will be encoded to bytes).
        extra_headers: Additional raw headers.
    """
    headers = [(b"content-type", content_type.encode()), *(extra_headers or [])]
    await send({"type": "http.response.start", "status": status, "headers": headers})
    await send({"type": "http.response.body", "body": body.encode()})


async def _send_json(send: Send, status: int, payload: Any) -> None:
    await _send_response(send, status, JSON_CONTENT_TYPE, json.dumps(payload, default=str))


async def _handle_endpoint(
    send: Send,
    endpoint_func: Callable[[], Any],
    log_message: str,
) -> None:
    """Execute a JSON endpoint function with error handling and send response.

    Args:
        send: ASGI send callable for writing response.
        endpoint_func: Function returning the JSON-ready payload.
        log_message: Message to log on error.
    """
    try:
        payload = endpoint_func()
    except Exception:
        log_exception(log_message)
        await _send_json(send, 500, {"error": "Internal Server Error"})
        return
    await _send_json(send, 200, payload)


def find_log_storage(hub: MonitoringHub) -> RingBufferLogStorage | None:
    """Return the ring buffer registered on the hub's log pipeline, if any."""
    if hub.logger is None:
        return None
    for transport in hub.logger.transports:
        if isinstance(transport, RingBufferLogStorage):
            return transport
    return None


def create_asgi_app(
    hub: MonitoringHub,
    log_storage: RingBufferLogStorage | None = None,
    include_process: bool = True,
) -> ASGIApp:
    """Create an ASGI app serving the hub's monitoring endpoints.

    Endpoints: ``GET /metrics`` (Prometheus text), ``GET /health``,
    ``GET /report``, ``GET /insights`` (JSON), ``GET /logs`` (NDJSON of
    recent entries) and ``POST /vitals`` (web-vital beacons).

    Args:
        hub: Hub whose state is served.
        log_storage: Ring buffer serving ``/logs``; the one registered on the
            hub's pipeline when omitted.
        include_process: Expose psutil process families on ``/metrics``.

    Returns:
        ASGI application callable.
    """
    storage = log_storage or find_log_storage(hub)
    routes = {
        "/metrics": "GET",
        "/health": "GET",
        "/report": "GET",
        "/insights": "GET",
        "/logs": "GET",
        "/vitals": "POST",
    }

    async def metrics(send: Send) -> None:
        try:
            body = render_metrics(hub, include_process=include_process)
            status = 200
        except Exception:
            log_exception("Error encoding metrics endpoint")
            body = metrics_error_body(hub.config.namespace)
            status = 500
        await _send_response(send, status, CONTENT_TYPE, body, [(b"cache-control", NO_CACHE.encode())])

    async def logs(scope: Scope, send: Send) -> None:
        params = _parse_query_params(scope)
        since = _parse_since_param(params)
        level = _parse_level_param(params)
        limit = _parse_limit_param(params)
        entries = storage.entries(since=since, level=level) if storage is not None else []
        await _send_response(send, 200, NDJSON_CONTENT_TYPE, encode_logs(entries[-limit:]))

    async def vitals(receive: Receive, send: Send) -> None:
        try:
            payload = json.loads(await _read_body(receive) or b"null")
        except (json.JSONDecodeError, UnicodeDecodeError):
            await _send_json(send, 400, {"error": "Invalid JSON"})
            return
        beacons = payload if isinstance(payload, list) else [payload]
        if not all(isinstance(b, dict) for b in beacons):
            await _send_json(send, 400, {"error": "Expected an object or a list of objects"})
            return
        if hub.performance is None:
            await _send_json(send, 202, {"recorded": 0})
            return
        recorded = [hub.performance.ingest_web_vital_beacon(b) for b in beacons]
        await _send_json(
            send,
            202,
            {
                "recorded": sum(1 for v in recorded if v is not None),
                "ratings": {v.name: v.rating for v in recorded if v is not None},
            },
        )

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            return

        path = scope["path"]
        if path not in routes:
            await _send_response(send, 404, "text/plain", "Not Found")
            return
        if scope.get("method", "GET") != routes[path]:
            await _send_response(send, 405, "text/plain", "Method Not Allowed")
            return

        if path == "/metrics":
            await metrics(send)
        elif path == "/health":
            await _handle_endpoint(send, lambda: hub.analyze_health().to_dict(), "Error building health endpoint")
        elif path == "/report":
            await _handle_endpoint(send, lambda: hub.generate_report().to_dict(), "Error building report endpoint")
        elif path == "/insights":
            await _handle_endpoint(send, lambda: hub.get_insights().to_dict(), "Error building insights endpoint")
        elif path == "/logs":
            await logs(scope, send)
        else:
            await vitals(receive, send)

    return app


class MonitoringMiddleware:
    """ASGI middleware that monitors the requests of a wrapped application.

    Each request is logged through ``log_api_call``, its duration recorded
    as an ``http_request_duration`` metric, and an unhandled exception
    tracked as an error before being re-raised.
    """

    def __init__(
        self,
        app: ASGIApp,
        hub: MonitoringHub,
        exclude_paths: list[str] | None = None,
        request_id_header: str = "X-Request-ID",
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        """Initialize the middleware with a wrapped app and the hub.

        Args:
            app: The ASGI application to wrap.
            hub: Hub receiving logs, metrics and errors.
            exclude_paths: List of paths to exclude from monitoring.
                          Supports exact matches and wildcard patterns
                          (e.g., "/internal/*").
            request_id_header: Name of the header to extract request ID from
                             (default: "X-Request-ID").
            clock: Monotonic clock used for durations.
        """
        self.app = app
        self.hub = hub
        self.exclude_paths = exclude_paths or []
        self.request_id_header = request_id_header
        self._clock = clock

    def _path_excluded(self, path: str) -> bool:
        """Check if path matches any pattern in exclude_paths."""
        return any(fnmatch.fnmatch(path, pattern) for pattern in self.exclude_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI callable interface that processes requests through the wrapped app."""
        if scope["type"] != "http" or self._path_excluded(scope["path"]):
            await self.app(scope, receive, send)
            return

        start_time = self._clock()
        request_id = _extract_request_id(scope, self.request_id_header)
        captured: dict[str, Any] = {"status": None}

        async def wrapped_send(message: dict[str, Any]) -> None:
            if message["type"] == "http.response.start":
                captured["status"] = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, wrapped_send)
        except Exception as exc:
            self._record(scope, request_id, 500, start_time)
            self.hub.track_error(
                exc,
                {
                    "component": "http",
                    "action": f"{scope['method']} {scope['path']}",
                    "request_id": request_id,
                },
            )
            raise
        self._record(scope, request_id, captured["status"] or 0, start_time)

    def _record(self, scope: Scope, request_id: str, status: int, start_time: float) -> None:
        duration_ms = round((self._clock() - start_time) * 1000, 3)
        method, path = scope["method"], scope["path"]
        if self.hub.logger is not None:
            self.hub.logger.with_context(request_id=request_id).log_api_call(
                method, path, status, duration_ms
            )
        self.hub.record_metric(
            "http_request_duration",
            duration_ms,
            "ms",
            category="network",
            tags={"method": method, "path": path, "status": str(status)},
        )
