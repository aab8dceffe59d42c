"""
Request logging for the report API.

Every response carries an ``X-Request-Id`` (the caller's, when supplied)
so a failed generation can be matched with the orchestrator's job logs.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each call with its caller, visibility scope, status and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        # 5xx means the Event Store or the archive let us down
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "[%s] %s %s → %d in %.3fs (user=%s, scope=%s)",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            elapsed,
            request.headers.get("X-User-Id", "anonymous"),
            request.headers.get("X-Report-Scope", "own"),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
