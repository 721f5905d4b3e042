"""
Response envelope and CORS headers for the public API
"""
import math
from typing import Any, Optional

from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationMeta":
        return cls(page=page, limit=limit, total=total, totalPages=math.ceil(total / limit))


def api_success(data: Any, meta: Optional[PaginationMeta] = None) -> JSONResponse:
    """``{"success": true, "data": ..., "meta"?: ...}``"""
    body = {"success": True, "data": data}
    if meta is not None:
        body["meta"] = meta.model_dump()
    return JSONResponse(body, status_code=200, headers=CORS_HEADERS)


def api_error(code: str, message: str, status_code: int = 400) -> JSONResponse:
    """``{"success": false, "error": {"code", "message"}}``"""
    return JSONResponse(
        {"success": False, "error": {"code": code, "message": message}},
        status_code=status_code,
        headers=CORS_HEADERS,
    )


def api_not_found(message: str = "Resource not found") -> JSONResponse:
    return api_error("NOT_FOUND", message, 404)


def api_rate_limited(retry_after: int) -> JSONResponse:
    """429 with a Retry-After header"""
    minutes = max(1, math.ceil(retry_after / 60))
    return JSONResponse(
        {
            "success": False,
            "error": {
                "code": "RATE_LIMIT_EXCEEDED",
                "message": f"Too many requests. Please try again in {minutes} minutes.",
            },
        },
        status_code=429,
        headers={**CORS_HEADERS, "Retry-After": str(retry_after)},
    )


def options_response() -> Response:
    """Empty 204 for CORS preflight"""
    return Response(status_code=204, headers=CORS_HEADERS)
