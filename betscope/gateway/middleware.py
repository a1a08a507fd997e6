"""
BetScope - Security Middleware

Request/response middleware for:
- Request ID injection for tracing (honours an incoming X-Request-ID)
- One structured log line per request
- Security headers
"""

import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from betscope.logging import get_logger, request_id_var, set_request_id


logger = get_logger("betscope.http")


class SecurityMiddleware(BaseHTTPMiddleware):
    """
    Security-focused middleware for all incoming requests.

    Responsibilities:
    1. Bind X-Request-ID to the request and the logging context
    2. Log method, path, status and duration
    3. Add security headers to response
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process each request through security pipeline."""
        incoming = request.headers.get("X-Request-ID")
        request_id = set_request_id(incoming[:64] if incoming else None)
        request.state.request_id = request_id

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("http.request.failed", method=request.method, path=request.url.path)
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            "http.request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        # Add security headers
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"

        request_id_var.set(None)
        return response
