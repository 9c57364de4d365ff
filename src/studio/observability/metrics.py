from __future__ import annotations

"""Prometheus instruments for the HTTP surface and the AI provider."""

import time
from contextlib import contextmanager
from typing import Awaitable, Callable, Iterator

from prometheus_client import Counter, Histogram
from starlette.requests import Request
from starlette.responses import Response

REQUEST_LATENCY = Histogram(
    "studio_request_latency_seconds",
    "HTTP request latency by route template",
    labelnames=("method", "route", "status"),
    buckets=(0.005, 0.025, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 15.0, 30.0),
)

GENERATION_REQUESTS = Counter(
    "studio_generation_requests_total",
    "AI provider calls by operation and outcome",
    labelnames=("operation", "outcome"),
)

# Provider calls are slow; buckets reach into tens of seconds
GENERATION_LATENCY = Histogram(
    "studio_generation_latency_seconds",
    "AI provider call latency in seconds",
    labelnames=("operation",),
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0),
)


def sanitize_path(path: str) -> str:
    """Collapse an unmatched path to at most its ``/api/<resource>`` prefix."""
    segs = [s for s in (path or "").split("?")[0].split("/") if s]
    if not segs:
        return "/"
    if segs[0] == "api" and len(segs) > 1:
        return f"/api/{segs[1]}"
    return f"/{segs[0]}"


def route_label(request: Request) -> str:
    # Matched routes carry their template, e.g. /api/sessions/{session_id}
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    return template or sanitize_path(request.url.path)


@contextmanager
def track_generation(operation: str) -> Iterator[None]:
    """Count one provider call and time it when it succeeds."""
    started = time.perf_counter()
    try:
        yield
    except Exception:
        GENERATION_REQUESTS.labels(operation=operation, outcome="error").inc()
        raise
    GENERATION_REQUESTS.labels(operation=operation, outcome="success").inc()
    GENERATION_LATENCY.labels(operation=operation).observe(time.perf_counter() - started)


def metrics_middleware_factory() -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    async def record_latency(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)
        started = time.perf_counter()
        response = await call_next(request)
        REQUEST_LATENCY.labels(
            method=request.method,
            route=route_label(request),
            status=str(response.status_code),
        ).observe(time.perf_counter() - started)
        return response

    return record_latency
