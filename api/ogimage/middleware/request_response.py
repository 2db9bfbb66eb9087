"""Request correlation, timing and access logging for every endpoint."""

from __future__ import annotations

import time
from typing import Callable
from uuid import uuid4

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..core.structured_logging import LoggerFactory, request_id_var

logger = LoggerFactory.get_logger(__name__)


def get_client_ip(request: Request) -> str:
    for header in ("cf-connecting-ip", "x-forwarded-for", "x-real-ip"):
        value = request.headers.get(header)
        if value:
            return value.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RequestResponseMiddleware(BaseHTTPMiddleware):
    """Assigns ``request.state.request_id`` and logs each request once."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid4())
        request.state.request_id = request_id
        start_time = time.perf_counter()
        request.state.start_time = start_time
        token = request_id_var.set(request_id)

        try:
            response = await call_next(request)
        except Exception as e:
            processing_time_ms = int((time.perf_counter() - start_time) * 1000)
            logger.exception(
                "Unhandled exception in request processing",
                method=request.method,
                path=request.url.path,
                error_type=type(e).__name__,
                processing_time_ms=processing_time_ms,
            )
            response = JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "request_id": request_id},
            )
        finally:
            request_id_var.reset(token)

        processing_time_ms = int((time.perf_counter() - start_time) * 1000)
        response.headers["X-Request-ID"] = request_id
        self._log_response(request, response, request_id, processing_time_ms)
        return response

    def _log_response(self, request: Request, response: Response, request_id: str, processing_time_ms: int):
        fields = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "processing_time_ms": processing_time_ms,
            "client_ip": get_client_ip(request),
            "user_agent": request.headers.get("user-agent", ""),
            "auth_present": "authorization" in request.headers,
        }
        message = f"{request.method} {request.url.path} -> {response.status_code} ({processing_time_ms}ms)"
        if response.status_code >= 500:
            logger.error(message, **fields)
        elif response.status_code >= 400:
            logger.warning(message, **fields)
        else:
            logger.info(message, **fields)
