"""
Prometheus metrics middleware for the retrieval API.

Exposes /metrics endpoint with request counters, latency histograms,
and retrieval stage metrics derived from traces.
"""

import logging
import time

from fastapi import Request, Response
from prometheus_client import (
    Counter, Histogram, Gauge,
    generate_latest, CONTENT_TYPE_LATEST,
)
from starlette.middleware.base import BaseHTTPMiddleware

from retrieval.trace import TracePayload

logger = logging.getLogger(__name__)

# Request metrics
REQUEST_COUNT = Counter(
    "kb_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "kb_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
ACTIVE_REQUESTS = Gauge(
    "kb_http_active_requests",
    "Currently active HTTP requests",
)

# Retrieval metrics
STAGE_LATENCY = Histogram(
    "kb_retrieval_stage_duration_seconds",
    "Retrieval stage latency",
    ["stage"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 15.0, 45.0],
)
RETRIEVAL_OUTCOME = Counter(
    "kb_retrieval_outcome_total",
    "Retrieval calls by terminal step",
    ["outcome"],
)

# Steps that end a pipeline run; the last one seen names the outcome
_TERMINAL_STEPS = {"config", "embed_error", "chunks", "vector_search_error", "timeout"}


def record_trace(trace: TracePayload):
    """Record stage durations and the outcome of one retrieval trace."""
    outcome = "unknown"
    for step in trace:
        duration_ms = getattr(step, "duration_ms", None)
        if isinstance(duration_ms, int):
            STAGE_LATENCY.labels(stage=step.step).observe(duration_ms / 1000.0)
        if step.step in _TERMINAL_STEPS:
            outcome = step.step
    RETRIEVAL_OUTCOME.labels(outcome=outcome).inc()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware that records HTTP request metrics."""

    async def dispatch(self, request: Request, call_next):
        ACTIVE_REQUESTS.inc()
        start = time.time()

        try:
            response = await call_next(request)
        except Exception:
            ACTIVE_REQUESTS.dec()
            raise

        duration = time.time() - start
        endpoint = request.url.path

        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()
        REQUEST_LATENCY.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)
        ACTIVE_REQUESTS.dec()

        return response


async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
