"""
FastAPI middleware for request context and logging
"""
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logging_config import LoggingConfig
from app.core.rate_limit import get_client_ip

logger = LoggingConfig.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class LoggingContextMiddleware(BaseHTTPMiddleware):
    """Stamps each request with an id and logs its start and end"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Honour an upstream request id so logs can be joined across proxies
        request_id = request.headers.get(REQUEST_ID_HEADER.lower()) or str(uuid.uuid4())

        LoggingConfig.set_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_host=get_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )

        start_time = time.perf_counter()
        logger.info(
            "Request started",
            extra={"query_params": str(request.query_params)},
        )

        try:
            response = await call_next(request)
            duration_ms = int((time.perf_counter() - start_time) * 1000)
            logger.info(
                "Request completed",
                extra={"status_code": response.status_code, "duration_ms": duration_ms},
            )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        except Exception as e:
            logger.error(
                "Request failed",
                exc_info=True,
                extra={
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "duration_ms": int((time.perf_counter() - start_time) * 1000),
                },
            )
            raise
        finally:
            LoggingConfig.clear_context()
