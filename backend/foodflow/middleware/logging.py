"""
FoodFlow Backend: Access Log Middleware
========================================

What:  One access line per request on the `foodflow.access` logger.
How:   Logs the route template (`/recipes/{recipe_id}/like`) next to the
       concrete path so like traffic aggregates per endpoint, with the
       same fields passed as `extra` for structured handlers.

Privacy:
    Logged: method, path, route, status, duration, client IP, request id.
    Never logged: bodies, uploaded images, the X-User-Id value.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from foodflow.middleware.request_id import request_id_var

logger = logging.getLogger("foodflow.access")

# Load balancer probes
QUIET_PATHS = {"/health"}


def level_for_status(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Rough expectations when reading the log:
        POST /recipes/{recipe_id}/like            5-30ms
        GET  /notifications                       2-15ms
        POST /ingredients/recognition/image       seconds, Gemini bound
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        # Set by the router once it matched; absent for 404s on unknown paths
        route = getattr(request.scope.get("route"), "path", path)
        fields = {
            "request_id": request_id_var.get(""),
            "method": request.method,
            "path": path,
            "route": route,
            "status": response.status_code,
            "duration_ms": elapsed_ms,
            "client_ip": request.client.host if request.client else "unknown",
        }
        logger.log(
            level_for_status(response.status_code),
            "%(method)s %(path)s -> %(status)d in %(duration_ms).1fms [%(request_id)s]",
            fields,
            extra=fields,
        )
        return response
