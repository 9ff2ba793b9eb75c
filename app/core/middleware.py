"""FastAPI middleware for correlation IDs and request logging."""

import logging
import re
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logging import clear_correlation_id, set_correlation_id

request_logger = logging.getLogger("app.requests")

# The provider callback carries its shared secret in the path
_WEBHOOK_SECRET_PATH = re.compile(r"(/webhooks/encoding/)[^/]+")


def redact_path(path: str) -> str:
    """Mask path segments that must not reach the logs."""
    return _WEBHOOK_SECRET_PATH.sub(r"\1***", path)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds a correlation ID to each request and echoes it in the response."""

    CORRELATION_ID_HEADER = "X-Correlation-ID"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(
            self.CORRELATION_ID_HEADER,
            str(uuid.uuid4()),
        )
        set_correlation_id(correlation_id)

        try:
            response = await call_next(request)
            response.headers[self.CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            clear_correlation_id()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request's outcome and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        path = redact_path(request.url.path)

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            request_logger.error(
                "Request failed",
                extra={
                    "method": request.method,
                    "path": path,
                    "duration_ms": round(duration * 1000, 2),
                    "error": str(e),
                },
                exc_info=True,
            )
            raise

        duration = time.perf_counter() - start_time
        request_logger.info(
            "Request completed",
            extra={
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": round(duration * 1000, 2),
            },
        )
        return response
