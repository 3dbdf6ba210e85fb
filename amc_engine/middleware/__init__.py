"""
Middleware modules for the AMC engine API.

- Correlation ID tracking for request tracing
- Server-Timing headers for performance debugging
"""

from .correlation import CorrelationIdMiddleware, CorrelationLogFilter, correlation_id_ctx, request_id_ctx
from .timing import ServerTimingMiddleware

__all__ = [
    "CorrelationIdMiddleware",
    "CorrelationLogFilter",
    "correlation_id_ctx",
    "request_id_ctx",
    "ServerTimingMiddleware",
]
