"""Request/response logging middleware."""

import time
import uuid
from typing import Callable

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from vendor_portal.logging import get_logger, redact_query_params
from vendor_portal.security import get_source_ip

logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one ``request.start``/``request.end`` pair per request.

    Query parameters are logged with the portal token masked; the portal
    URL is a bearer credential.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            http_request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_ip=get_source_ip(request) or "unknown",
        )

        start_time = time.time()
        logger.info(
            "request.start",
            query_params=redact_query_params(dict(request.query_params)),
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request.error",
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            raise

        logger.info(
            "request.end",
            status_code=response.status_code,
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )
        response.headers["X-Request-Id"] = request_id
        return response
