"""
Métriques Prometheus pour l'application.

Ce module définit les métriques HTTP et celles du pipeline d'analyse (cache, file de dispatch,
quota, appels externes, retries), ainsi que l'endpoint `/metrics`.
"""

import time

from fastapi import APIRouter, Request
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

metrics_router = APIRouter()

REQUEST_COUNT = Counter(
    "http_requests_total", "Total HTTP requests", ["method", "route", "status"]
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds", "Latency of HTTP requests", ["route"]
)

# Submission entry point
SUBMISSIONS_TOTAL = Counter(
    "analysis_submissions_total",
    "Submissions received, by outcome",
    ["outcome"],  # cache_hit | queued | rejected
)
SUBMISSIONS_TERMINAL = Counter(
    "analysis_submissions_terminal_total",
    "Submissions reaching a terminal state",
    ["status", "reason"],
)

# Result cache
CACHE_OPS = Counter(
    "analysis_cache_ops_total",
    "Result cache operations",
    ["op", "result"],
)

# Dispatcher / rate limit
DISPATCH_QUEUE_DEPTH = Gauge(
    "analysis_dispatch_queue_depth",
    "Outstanding dispatch queue items (ready + delayed + leased)",
)
DISPATCH_REJECTED = Counter(
    "analysis_dispatch_rejected_total",
    "Enqueue attempts rejected by backpressure",
)
RATE_LIMIT_WAIT = Histogram(
    "analysis_rate_limit_wait_seconds",
    "Time spent waiting for external API admission",
    buckets=[0.01, 0.1, 0.5, 1, 2, 5, 10, 30, 60, 120],
)
RATE_LIMIT_STORE_ERRORS = Counter(
    "analysis_rate_limit_store_errors_total",
    "Rate limit store failures (local fallback used)",
    ["error_type"],
)
LEASES_RECLAIMED = Counter(
    "analysis_leases_reclaimed_total",
    "Dispatch items reclaimed after lease expiry",
)

# External API
EXTERNAL_CALLS = Counter(
    "analysis_external_calls_total",
    "External analysis API calls",
    ["provider", "outcome"],  # success | transient | rate_limited | permanent
)
EXTERNAL_LATENCY = Histogram(
    "analysis_external_call_seconds",
    "Latency of external analysis API calls",
    ["provider"],
)
WORKER_RETRIES = Counter(
    "analysis_worker_retries_total",
    "Dispatch items re-enqueued with backoff",
    ["reason"],
)


@metrics_router.get("/metrics")
def metrics():
    """
    Expose les métriques Prometheus au format texte.

    Returns:
        Response: Réponse HTTP contenant les métriques au format Prometheus.
    """
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Middleware Prometheus pour mesurer les métriques HTTP.

    Collecte les métriques de comptage des requêtes et de latence par route (gabarit de route,
    pas le chemin brut, pour borner la cardinalité).
    """

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response: Response = await call_next(request)
        route_obj = request.scope.get("route")
        route = getattr(route_obj, "path", None) or "unmatched"
        REQUEST_COUNT.labels(request.method, route, str(response.status_code)).inc()
        REQUEST_LATENCY.labels(route).observe(time.perf_counter() - start)
        return response
