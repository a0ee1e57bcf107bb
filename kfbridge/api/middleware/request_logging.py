"""
Request/response logging middleware.

Query strings are never logged: on the webhook path they carry signatures
and the encrypted echostr.
"""

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from kfbridge.core.config.settings import settings
from kfbridge.core.logging.logger import get_logger

SKIP_PATHS = ("/health", "/docs", "/redoc", "/openapi.json", "/favicon.ico")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and timing for each request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start_time = time.time()
        response = await call_next(request)
        process_time_ms = round((time.time() - start_time) * 1000, 2)

        if settings.is_development:
            response.headers["X-Process-Time"] = str(process_time_ms)

        if not request.url.path.startswith(SKIP_PATHS):
            logger = get_logger(__name__)
            status_code = response.status_code
            message = (
                f"{request.method} {request.url.path} -> {status_code} "
                f"({process_time_ms}ms)"
            )
            if status_code >= 500:
                logger.error(message)
            elif status_code >= 400:
                logger.warning(message)
            else:
                logger.info(message)
        return response
