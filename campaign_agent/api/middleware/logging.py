"""
Request Logging Middleware

Logs every HTTP request through the structlog logger with its method, path,
status and duration, and makes sure each request carries a correlation id:
the X-Request-ID header when the caller supplied one, otherwise the id
already set by the tracing middleware, otherwise a fresh UUID. The id is
echoed back in the X-Request-ID response header.
"""

import time
import uuid
from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from campaign_agent.observability.logging import (
    get_correlation_id,
    get_logger,
    set_correlation_id,
)


LOGGER_NAME = "campaign_agent.api"
REQUEST_ID_HEADER = "X-Request-ID"

# Headers that should be redacted (case-insensitive matching)
SENSITIVE_HEADER_PATTERNS = [
    "authorization",
    "api-key",
    "apikey",
    "x-api-key",
    "api_key",
    "cookie",
]


def redact_sensitive_headers(headers: dict[str, str]) -> dict[str, str]:
    """Replace the values of credential-bearing headers with [REDACTED]."""
    return {
        key: "[REDACTED]"
        if any(pattern in key.lower() for pattern in SENSITIVE_HEADER_PATTERNS)
        else value
        for key, value in headers.items()
    }


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Structured request/response logging with correlation ids."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        # Resolved per request so the level set during startup applies.
        logger = get_logger(LOGGER_NAME)
        correlation_id = (
            request.headers.get(REQUEST_ID_HEADER)
            or get_correlation_id()
            or uuid.uuid4().hex
        )
        set_correlation_id(correlation_id)

        start_time = time.perf_counter()
        method = request.method
        path = request.url.path
        client_host = request.client.host if request.client else "unknown"

        logger.debug(
            "request started",
            method=method,
            path=path,
            client=client_host,
            headers=redact_sensitive_headers(dict(request.headers)),
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request failed",
                method=method,
                path=path,
                error=f"{type(e).__name__}: {e}",
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        log = logger.warning if response.status_code >= 400 else logger.info
        log(
            "request completed",
            method=method,
            path=path,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )

        response.headers[REQUEST_ID_HEADER] = correlation_id
        return response
