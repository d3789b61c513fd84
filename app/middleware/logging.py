"""Logging middleware for request context and correlation."""

import time

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add request context to logs and log HTTP requests.

    This middleware:
    - Binds request_id to structlog context (from RequestIDMiddleware)
    - Logs HTTP requests with timing information

    The authenticated user_id is bound later by the auth dependency.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request and add logging context."""
        logger = structlog.get_logger(__name__)

        request_id = getattr(
            request.state, "request_id", request.headers.get("X-Request-ID", "unknown")
        )

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_host=request.client.host if request.client else None,
        )

        start_time = time.perf_counter()

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "http_request",
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

            return response

        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "http_request_failed",
                status_code=500,
                duration_ms=round(duration_ms, 2),
                exception=str(exc),
                exc_info=True,
            )
            raise

        finally:
            structlog.contextvars.clear_contextvars()
