"""
Middleware for collecting HTTP request metrics
"""
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.metrics import (http_errors_total, http_request_duration_seconds,
                              http_requests_total)
from app.core.utils import is_uuid

SKIPPED_PATHS = ("/metrics",)


def normalize_endpoint(path: str) -> str:
    """Collapse ids in API paths so each route is one label value"""
    if not path.startswith("/api/"):
        return path
    return "/".join("{id}" if is_uuid(part) else part for part in path.split("/"))


class MetricsMiddleware(BaseHTTPMiddleware):
    """Records request counts, durations and errors for Prometheus"""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in SKIPPED_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        status_code = 500
        error_type = None
        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            error_type = type(e).__name__
            raise
        finally:
            duration = time.perf_counter() - start_time
            labels = {
                "method": request.method,
                "endpoint": normalize_endpoint(request.url.path),
                "status_code": str(status_code),
            }
            http_requests_total.labels(**labels).inc()
            http_request_duration_seconds.labels(**labels).observe(duration)
            if status_code >= 400:
                http_errors_total.labels(**labels, error_type=error_type or f"http_{status_code}").inc()

        return response
