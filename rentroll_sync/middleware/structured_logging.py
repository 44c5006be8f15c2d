# rentroll_sync/middleware/structured_logging.py
from __future__ import annotations

import logging
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

log = logging.getLogger("rentroll_sync.request")


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    One log line per request (method, path, status_code, latency_ms).

    Must sit inside RequestIDMiddleware so the line carries the request id.
    Health checks are logged at DEBUG so they stay out of INFO.
    """

    quiet_paths = ("/api/health",)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            latency_ms = int((time.perf_counter() - started) * 1000)
            path = request.url.path
            level = _level_for(status_code)
            if level == logging.INFO and path in self.quiet_paths:
                level = logging.DEBUG
            log.log(
                level,
                "%s %s -> %s (%sms)",
                request.method,
                path,
                status_code,
                latency_ms,
                extra={
                    "method": request.method,
                    "path": path,
                    "status_code": status_code,
                    "latency_ms": latency_ms,
                },
            )
