"""
Global error handling middleware.

Anything that escapes a route becomes a 500. The webhook path answers in
plain text like every other callback response; other endpoints get JSON.
"""

import time
import traceback
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from kfbridge.core.config.settings import settings
from kfbridge.core.logging.logger import get_logger


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch unhandled exceptions and turn them into safe responses."""

    def __init__(self, app, webhook_path: str = "/wechat-kf"):
        super().__init__(app)
        self.webhook_path = webhook_path

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            logger = get_logger(__name__)
            logger.error(
                f"Unhandled exception in {request.method} {request.url.path}: {exc}",
                exc_info=True,
            )
            if request.url.path == self.webhook_path:
                return PlainTextResponse("internal error", status_code=500)
            return self._create_api_error_response(exc)

    def _create_api_error_response(self, exc: Exception) -> JSONResponse:
        error_response: dict[str, Any] = {
            "detail": "Internal server error",
            "type": "internal_error",
            "timestamp": time.time(),
        }
        if settings.is_development:
            error_response["debug"] = {
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
                "traceback": traceback.format_exc().split("\n"),
            }
        return JSONResponse(status_code=500, content=error_response)
