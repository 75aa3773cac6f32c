"""Request context middleware: request ID, timing, and acting identity.

Concurrent requests interleave their log lines, so every record emitted
while a request is in flight is tagged with that request's ID.  Once
require_principal has resolved who is acting, the effective actor and the
real (authenticated) actor are tagged as well; under impersonation the
two differ, and an operator can pull every decision made on behalf of one
actor from the JSON logs.

ContextVars rather than thread-locals: async requests share a thread,
but each task gets its own copy of a context variable.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
actor_id_var: ContextVar[str] = ContextVar("actor_id", default="-")
real_actor_id_var: ContextVar[str] = ContextVar("real_actor_id", default="-")


class RequestContextFilter(logging.Filter):
    """Copy the context variables onto every LogRecord.

    Attached to the output handler by setup_logging(); logger-level
    filters do not run for records propagated from child loggers.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        record.actor_id = actor_id_var.get("-")  # type: ignore[attr-defined]
        record.real_actor_id = real_actor_id_var.get("-")  # type: ignore[attr-defined]
        return True


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, time the request, and log a completion line.

    1. Reads X-Request-ID (if the client sent one) or generates a UUID
    2. Resets the actor context left over from a previous request
    3. Times the request and logs method, path, status and duration
    4. Echoes X-Request-ID on the response
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request_id_var.set(req_id)
        actor_id_var.set("-")
        real_actor_id_var.set("-")

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        logger.info(
            "%s %s -> %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra={
                "request_id": req_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers["X-Request-ID"] = req_id
        return response
