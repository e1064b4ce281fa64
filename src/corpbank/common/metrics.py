"""Prometheus metrics for API calls and webhook verification."""

import time

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Match
from starlette.types import ASGIApp

# === Counters ===

TOKEN_VERIFICATIONS_TOTAL = Counter(
    "corpbank_token_verifications_total",
    "Bearer token verifications",
    ["result"],  # result: ok, signature_mismatch, stale_timestamp
)

WEBHOOK_REQUESTS_TOTAL = Counter(
    "corpbank_webhook_requests_total",
    "Webhook notifications by outcome",
    ["outcome", "status"],
)

API_REQUESTS_TOTAL = Counter(
    "corpbank_api_requests_total",
    "Outbound CorpBank API requests",
    ["method", "endpoint", "status"],
)

HTTP_REQUESTS_TOTAL = Counter(
    "corpbank_http_requests_total",
    "Inbound HTTP requests",
    ["method", "endpoint", "status"],
)

# === Histograms ===

API_REQUEST_LATENCY = Histogram(
    "corpbank_api_request_latency_seconds",
    "Outbound CorpBank API request latency",
    ["method", "endpoint"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

HTTP_REQUEST_LATENCY = Histogram(
    "corpbank_http_request_latency_seconds",
    "Inbound HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)


# === Helper Functions ===


def record_token_verification(result: str) -> None:
    """Record a bearer token verification result."""
    TOKEN_VERIFICATIONS_TOTAL.labels(result=result).inc()


def record_webhook(outcome: str, status: int) -> None:
    """Record a webhook outcome."""
    WEBHOOK_REQUESTS_TOTAL.labels(outcome=outcome, status=str(status)).inc()


def record_api_request(method: str, endpoint: str, status: int, latency: float) -> None:
    """Record an outbound API request."""
    API_REQUESTS_TOTAL.labels(method=method, endpoint=endpoint, status=str(status)).inc()
    API_REQUEST_LATENCY.labels(method=method, endpoint=endpoint).observe(latency)


def record_http_request(method: str, endpoint: str, status: int, latency: float) -> None:
    """Record an inbound HTTP request."""
    HTTP_REQUESTS_TOTAL.labels(method=method, endpoint=endpoint, status=str(status)).inc()
    HTTP_REQUEST_LATENCY.labels(method=method, endpoint=endpoint).observe(latency)


# === HTTP Endpoint ===


def route_label(request: Request) -> str:
    """Route template serving a request, so ids and scans never become labels."""
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match != Match.NONE:
            return getattr(route, "path", "unmatched")
    return "unmatched"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Counts inbound requests per route template."""

    def __init__(self, app: ASGIApp, exclude_paths: list[str] | None = None) -> None:
        super().__init__(app)
        self._exclude_paths = set(exclude_paths or [])

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self._exclude_paths:
            return await call_next(request)

        endpoint = route_label(request)
        start = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            record_http_request(request.method, endpoint, status, time.perf_counter() - start)


async def metrics_endpoint(_request: Request) -> Response:
    """Prometheus text exposition of the default registry."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
