"""
Request logging and metrics middleware.

Provides:
- Correlation IDs (X-Correlation-ID, generated when absent)
- Structured request/response logging
- HTTP request metrics (count, duration, in-progress)
"""

import time
import uuid
import structlog
from typing import Optional
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from shared.logging import bind_context, unbind_context
from shared.metrics import ApiMetrics

logger = structlog.get_logger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"


def _endpoint_label(request: Request) -> str:
    """Use the matched route template so ids do not explode label cardinality."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request logging, correlation IDs and metrics."""

    def __init__(self, app, metrics: Optional[ApiMetrics] = None):
        super().__init__(app)
        self.metrics = metrics

    async def dispatch(self, request: Request, call_next):
        """Process request and log details."""
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        method = request.method
        path = request.url.path
        client_ip = request.client.host if request.client else "unknown"

        bind_context(correlation_id=correlation_id)

        if self.metrics is not None:
            self.metrics.http_requests_in_progress.labels(method=method).inc()

        start_time = time.perf_counter()

        logger.info(
            "request_started",
            method=method,
            path=path,
            client_ip=client_ip
        )

        try:
            response = await call_next(request)

            duration = time.perf_counter() - start_time

            if self.metrics is not None:
                endpoint = _endpoint_label(request)
                self.metrics.http_requests_total.labels(
                    method=method,
                    endpoint=endpoint,
                    status=response.status_code
                ).inc()
                self.metrics.http_request_duration_seconds.labels(
                    method=method,
                    endpoint=endpoint
                ).observe(duration)

            logger.info(
                "request_completed",
                method=method,
                path=path,
                status_code=response.status_code,
                duration=f"{duration:.3f}s"
            )

            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response

        except Exception as e:
            duration = time.perf_counter() - start_time
            logger.error(
                "request_failed",
                method=method,
                path=path,
                error=str(e),
                duration=f"{duration:.3f}s",
                exc_info=True
            )
            raise

        finally:
            if self.metrics is not None:
                self.metrics.http_requests_in_progress.labels(method=method).dec()
            unbind_context("correlation_id")
