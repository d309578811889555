"""
Expense Tracker Backend — Authentication Rate Limiting Middleware
==================================================================

What:  Per-IP sliding window limit on the credential endpoints.
How:   Keeps each client IP's recent request timestamps in memory. Only
       POST /api/auth/login and POST /api/auth/register are counted; every
       other request passes straight through.
When:  Outermost application middleware, so rejected attempts never reach
       bcrypt or the database.

Algorithm: Sliding Window
    1. Drop the IP's timestamps older than `window_seconds`
    2. If `max_requests` remain, reject with 429 and Retry-After
    3. Otherwise record the request and continue

State is per process. Behind several workers each worker counts on its own.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, FrozenSet, List, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from expense_tracker.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)

DEFAULT_LIMITED_ROUTES: FrozenSet[Tuple[str, str]] = frozenset({
    ("POST", "/api/auth/login"),
    ("POST", "/api/auth/register"),
})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Args:
        max_requests:   Requests allowed per IP within the window (default 100)
        window_seconds: Window length (default 900 = 15 minutes)
        limited_routes: (method, path) pairs that are counted
    """

    def __init__(
        self,
        app,
        max_requests: int = 100,
        window_seconds: int = 900,
        limited_routes: FrozenSet[Tuple[str, str]] = DEFAULT_LIMITED_ROUTES,
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.limited_routes = limited_routes
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._seen = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path.rstrip("/") or "/"
        if (request.method, path) not in self.limited_routes:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        window_start = now - self.window_seconds

        timestamps = [ts for ts in self._requests[client_ip] if ts > window_start]
        self._requests[client_ip] = timestamps

        if len(timestamps) >= self.max_requests:
            retry_after = int(timestamps[0] + self.window_seconds - now) + 1
            logger.warning(
                "Rate limit exceeded for IP %s on %s: %d requests in %ds window",
                client_ip,
                path,
                len(timestamps),
                self.window_seconds,
            )
            exc = RateLimitExceededError(retry_after=retry_after)
            return JSONResponse(
                status_code=429,
                content={"success": False, "message": exc.message},
                headers={"Retry-After": str(retry_after)},
            )

        timestamps.append(now)

        # Forget idle IPs every 1000 counted requests
        self._seen += 1
        if self._seen % 1000 == 0:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        inactive_ips = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] < window_start
        ]
        for ip in inactive_ips:
            del self._requests[ip]

        if inactive_ips:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive_ips))
