"""
Process-wide request metrics (default prometheus_client registry).

Every HTTP request is counted and timed by the middleware installed in
job_runner.main, whatever the handler returned. Exposed on GET /metrics.

The handler label is the matched route path; requests that match no route
share the label "unmatched" so unknown paths do not add series.
"""

import time
from collections.abc import Awaitable, Callable

from prometheus_client import Counter, Histogram
from starlette.requests import Request
from starlette.responses import Response

UNMATCHED_HANDLER = "unmatched"

HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total number of HTTP requests.",
    ["code", "handler", "method"],
)

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds.",
    ["code", "handler", "method"],
)


def handler_label(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_HANDLER


def observe_request(code: int, handler: str, method: str, duration: float) -> None:
    labels = (str(code), handler, method)
    HTTP_REQUESTS_TOTAL.labels(*labels).inc()
    HTTP_REQUEST_DURATION.labels(*labels).observe(duration)


async def metrics_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        observe_request(status_code, handler_label(request), request.method, time.perf_counter() - start)
