"""
Server-Timing header middleware.

Adds Server-Timing and X-Response-Time headers so slow contract
operations (large bulk renewals, schedule regeneration) show up in
browser DevTools.
"""

import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from typing import Callable


class ServerTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()

        response = await call_next(request)

        process_time_ms = (time.perf_counter() - start_time) * 1000
        # Format: metric;dur=duration;desc="description"
        response.headers["Server-Timing"] = f"app;dur={process_time_ms:.1f};desc=\"AMC Engine\""
        response.headers["X-Response-Time"] = f"{process_time_ms:.1f}ms"
        return response
