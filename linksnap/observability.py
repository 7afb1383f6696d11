from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import time

# Metrics definitions
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"]
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

CACHE_HITS = Counter("cache_hits_total", "Total cache hits")
CACHE_MISSES = Counter("cache_misses_total", "Total cache misses")
CACHE_ERRORS = Counter("cache_errors_total", "Cache operations that failed", ["operation"])
REDIRECT_TOTAL = Counter("redirect_total", "Total redirects")
REDIRECT_404_TOTAL = Counter("redirect_404_total", "Total failed redirects (404)")
REDIRECT_410_TOTAL = Counter("redirect_410_total", "Total redirects to expired links (410)")
RATE_LIMITED_TOTAL = Counter("rate_limited_total", "Total rate limited requests", ["scope"])
ALLOCATION_COLLISIONS_TOTAL = Counter("allocation_collisions_total", "Generated short codes that were already taken")
CLICK_EVENTS_RECORDED = Counter("click_events_recorded_total", "Click events appended")
CLICK_EVENTS_DROPPED = Counter("click_events_dropped_total", "Click jobs dropped because the queue was full")
CLICK_EVENTS_FAILED = Counter("click_events_failed_total", "Click recording operations that failed", ["operation"])

API_PATHS = {"/api/shorten", "/api/urls", "/metrics", "/health"}


def metric_path(path: str) -> str:
    # Short codes are unbounded; collapse them so label cardinality stays fixed.
    if path in API_PATHS:
        return path
    if path.startswith("/api/analytics/"):
        return "/api/analytics/{code}"
    if len(path) > 1 and "/" not in path[1:]:
        return "/{code}"
    return "other"


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()

        response = await call_next(request)

        process_time = time.perf_counter() - start_time
        path = metric_path(request.url.path)

        HTTP_REQUESTS_TOTAL.labels(method=request.method, path=path, status=str(response.status_code)).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(method=request.method, path=path).observe(process_time)

        return response

def metrics_endpoint(request: Request):
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
