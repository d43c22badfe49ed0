"""FastAPI middleware components.

This package contains custom middleware for request/response processing:
correlation IDs, structured request logging, metrics and security headers.
"""

from api.src.middleware.request_logging import (
    RequestLoggingMiddleware,
    CORRELATION_ID_HEADER,
)
from api.src.middleware.security_headers import SecurityHeadersMiddleware

__all__ = [
    "RequestLoggingMiddleware",
    "CORRELATION_ID_HEADER",
    "SecurityHeadersMiddleware",
]
