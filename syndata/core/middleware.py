"""Shared FastAPI middleware and exception handlers."""

from __future__ import annotations

import logging
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from syndata.core.config import get_settings

logger = logging.getLogger(__name__)


class MaxBodySizeMiddleware(BaseHTTPMiddleware):
    """Reject requests with bodies larger than MAX_REQUEST_BODY_BYTES."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        limit = int(get_settings().MAX_REQUEST_BODY_BYTES)

        content_length = request.headers.get("content-length")
        if content_length:
            try:
                if int(content_length) > limit:
                    return JSONResponse({"detail": "Payload too large."}, status_code=413)
            except ValueError:
                return JSONResponse({"detail": "Invalid Content-Length header."}, status_code=400)

        # For chunked / missing content-length, read body and enforce size.
        # Starlette caches request.body() so downstream handlers still can read it.
        try:
            body = await request.body()
        except Exception:
            return JSONResponse({"detail": "Invalid request body."}, status_code=400)

        if body and len(body) > limit:
            return JSONResponse({"detail": "Payload too large."}, status_code=413)

        return await call_next(request)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: log the traceback, return a generic 500."""
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse({"detail": "Internal server error"}, status_code=500)
