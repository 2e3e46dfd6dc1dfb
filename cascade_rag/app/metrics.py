from __future__ import annotations

import time

from fastapi import Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

from cascade_rag.app.dependencies import get_settings
from cascade_rag.rag.types import CascadeResponse

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
CASCADE_RESPONSES = Counter(
    "cascade_responses_total",
    "Chat replies by the cascade tier that produced them",
    ["tier"],
)
CASCADE_DURATION = Histogram(
    "cascade_duration_seconds",
    "Time spent answering one chat message",
)


async def metrics_middleware(request: Request, call_next):
    if not get_settings().metrics_enabled:
        return await call_next(request)
    path = request.url.path
    if path == "/metrics":
        return await call_next(request)
    start = time.monotonic()
    status = 500
    try:
        response = await call_next(request)
        status = response.status_code
        return response
    finally:
        duration = time.monotonic() - start
        REQUEST_COUNT.labels(request.method, path, str(status)).inc()
        REQUEST_LATENCY.labels(request.method, path).observe(duration)


def record_cascade(response: CascadeResponse, duration: float) -> None:
    if not get_settings().metrics_enabled:
        return
    CASCADE_RESPONSES.labels(response.source.value).inc()
    CASCADE_DURATION.observe(duration)


def metrics_response() -> Response:
    if not get_settings().metrics_enabled:
        return Response(status_code=404)
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
