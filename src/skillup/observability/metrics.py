"""Prometheus metrics for the SkillUp FastAPI backend.

Adds an HTTP middleware that records request latency per method/path/status,
plus counters and gauges for sessions, channels and generation jobs.
"""

from __future__ import annotations

import time
from typing import Callable, Awaitable

from prometheus_client import Counter, Gauge, Histogram
from starlette.requests import Request
from starlette.responses import Response

# Histogram buckets chosen for web latencies (seconds)
REQUEST_LATENCY = Histogram(
    "skillup_request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "path", "status"),
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0),
)

SESSIONS_CREATED = Counter(
    "skillup_sessions_created_total",
    "Conversation sessions created",
)

SESSIONS_EVICTED = Counter(
    "skillup_sessions_evicted_total",
    "Conversation sessions evicted after their TTL elapsed",
)

FRAMES_PUBLISHED = Counter(
    "skillup_frames_published_total",
    "Realtime frames published to generation channels",
    labelnames=("type",),
)

CHANNEL_SUBSCRIBERS = Gauge(
    "skillup_channel_subscribers",
    "Connections currently subscribed to generation channels",
)

JOBS_ACTIVE = Gauge(
    "skillup_generation_jobs_active",
    "Generation jobs that have not reached a terminal state",
)

JOBS_FINISHED = Counter(
    "skillup_generation_jobs_finished_total",
    "Generation jobs that reached a terminal state",
    labelnames=("status",),
)


def sanitize_path(path: str) -> str:
    """Reduce high-cardinality paths (e.g., /chat/sessions/{id}) to a coarse label.

    Keeps the first segment, plus the second for /api-prefixed routes.
    """
    if not path:
        return "/"
    segs = [s for s in path.split("?")[0].split("/") if s]
    if not segs:
        return "/"
    if segs[0] == "api" and len(segs) > 1:
        return "/api/" + segs[1]
    return "/" + segs[0]


def metrics_middleware_factory() -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    async def middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        # Avoid observing the metrics endpoint itself
        if request.url.path.startswith("/metrics"):
            return await call_next(request)
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        try:
            REQUEST_LATENCY.labels(
                method=request.method,
                path=sanitize_path(request.url.path),
                status=str(response.status_code),
            ).observe(elapsed)
        except Exception:
            # Never block the request due to metrics
            pass
        return response

    return middleware
