"""
Request logging middleware.

Logs one line per request: method, path, status and duration. For streamed
responses the duration covers the time until headers were sent.
"""
from __future__ import annotations

import logging
import time

from fastapi import Request

logger = logging.getLogger(__name__)

# Paths polled by load balancers; logged at DEBUG only
_QUIET_PATHS = {"/api/health"}


async def request_log_middleware(request: Request, call_next):
    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        duration_ms = (time.perf_counter() - start) * 1000
        logger.exception("%s %s failed after %.1fms", request.method, request.url.path, duration_ms)
        raise

    duration_ms = (time.perf_counter() - start) * 1000
    level = logging.DEBUG if request.url.path in _QUIET_PATHS else logging.INFO
    logger.log(
        level,
        "%s %s -> %d (%.1fms)",
        request.method, request.url.path, response.status_code, duration_ms,
    )
    return response
