"""
Performance Monitoring Middleware for FenceSense
Times each HTTP request and ties its log lines together with a correlation ID.
"""

import time
import logging
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from logging_config import set_correlation_id

logger = logging.getLogger(__name__)

# Frame posts should stay well inside one camera frame interval
SLOW_REQUEST_MS = 250.0


class PerformanceMiddleware(BaseHTTPMiddleware):
    """
    Adds X-Correlation-ID and X-Process-Time-Ms headers and logs request
    timing. Requests slower than SLOW_REQUEST_MS are logged as warnings.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())[:8]
        request.state.correlation_id = correlation_id
        set_correlation_id(correlation_id)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Process-Time-Ms"] = f"{duration_ms:.2f}"

        # Skip health probes for cleaner logs
        if not request.url.path.startswith("/health"):
            slow = duration_ms > SLOW_REQUEST_MS
            logger.log(
                logging.WARNING if slow else logging.INFO,
                f"{request.method} {request.url.path} - {response.status_code} ({duration_ms:.2f}ms)",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 2),
                    "slow": slow
                }
            )

        return response
