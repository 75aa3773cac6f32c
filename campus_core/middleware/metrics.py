"""Prometheus metrics middleware: instruments every HTTP request.

For each request it tracks ACTIVE_REQUESTS, counts the request in
REQUEST_COUNT (method, endpoint, status) and observes REQUEST_DURATION.

The endpoint label is the route template (``/v1/licenses/{license_id}/assign``),
never the concrete URL: almost every path here carries a UUID and one
series per license would swamp Prometheus.  Requests that match no route
share the ``unmatched`` label.  /metrics itself is not counted so scrapes
do not inflate the numbers.
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from campus_core.core.metrics import ACTIVE_REQUESTS, REQUEST_COUNT, REQUEST_DURATION

UNMATCHED = "unmatched"


def endpoint_label(request: Request) -> str:
    # The router stores the matched route in the shared scope.
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path if path else UNMATCHED


class MetricsMiddleware(BaseHTTPMiddleware):
    """Collect Prometheus metrics for every HTTP request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        ACTIVE_REQUESTS.inc()
        start = time.monotonic()
        status_code = "500"

        try:
            response = await call_next(request)
            status_code = str(response.status_code)
        finally:
            duration = time.monotonic() - start
            ACTIVE_REQUESTS.dec()
            endpoint = endpoint_label(request)
            REQUEST_COUNT.labels(
                method=request.method, endpoint=endpoint, status_code=status_code
            ).inc()
            REQUEST_DURATION.labels(method=request.method, endpoint=endpoint).observe(
                duration
            )

        return response
