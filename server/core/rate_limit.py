"""
Login rate limiting
- Sliding window per client IP
- Only POST /auth is counted
"""
import time
from collections import defaultdict
from typing import Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware


class RateLimiter:
    """In-memory limiter; state is per process."""

    def __init__(self, max_requests: int = 20, window_seconds: int = 300):
        self.requests: dict[str, list[float]] = defaultdict(list)
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    def _evict(self, window_start: float) -> None:
        """Forget clients with no request left in the window."""
        stale = [key for key, times in self.requests.items() if not times or times[-1] <= window_start]
        for key in stale:
            del self.requests[key]

    def is_allowed(self, key: str) -> tuple[bool, Optional[int]]:
        now = time.time()
        window_start = now - self.window_seconds

        self._evict(window_start)
        self.requests[key] = [t for t in self.requests[key] if t > window_start]

        if len(self.requests[key]) >= self.max_requests:
            oldest_request = min(self.requests[key])
            return False, max(1, int(oldest_request + self.window_seconds - now))

        self.requests[key].append(now)
        return True, None

    def remaining(self, key: str) -> int:
        return max(0, self.max_requests - len(self.requests.get(key, ())))


class LoginRateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_requests: int = 20, window_seconds: int = 300, paths: tuple[str, ...] = ("/auth",)):
        super().__init__(app)
        self.rate_limiter = RateLimiter(max_requests, window_seconds)
        self.paths = paths

    async def dispatch(self, request: Request, call_next):
        if request.method != "POST" or request.url.path.rstrip("/") not in self.paths:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        key = f"login:{client_ip}"

        allowed, reset_time = self.rate_limiter.is_allowed(key)
        if not allowed:
            response = JSONResponse(
                {"detail": f"Too many login attempts. Try again in {reset_time} seconds."},
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            )
            response.headers["X-RateLimit-Limit"] = str(self.rate_limiter.max_requests)
            response.headers["X-RateLimit-Remaining"] = "0"
            response.headers["X-RateLimit-Reset"] = str(int(time.time()) + reset_time)
            response.headers["Retry-After"] = str(reset_time)
            return response

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.rate_limiter.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(self.rate_limiter.remaining(key))
        return response
