"""Request tracing middleware: X-Request-ID propagation and access logging."""
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.services.logging_config import request_id_var

logger = logging.getLogger("s2p-api.middleware")

QUIET_PATHS = frozenset({"/health"})


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Reuses the caller's X-Request-ID (or mints one), exposes it to every log
    record for the duration of the request, and echoes it back together with
    X-Process-Time. Health probes are not access-logged.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{elapsed_ms}"

        if request.url.path not in QUIET_PATHS:
            level = logging.WARNING if response.status_code >= 500 else logging.INFO
            logger.log(
                level,
                f"{request.method} {request.url.path} -> {response.status_code}",
                extra={
                    "request_id": request_id,
                    "http_method": request.method,
                    "http_path": request.url.path,
                    "http_status": response.status_code,
                    "duration_ms": elapsed_ms,
                },
            )
        return response
