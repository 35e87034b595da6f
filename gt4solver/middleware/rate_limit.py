"""Sliding-window rate limiter for the solve endpoint."""
import time
from collections import defaultdict, deque

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from gt4solver.config import settings

_LIMITED_PATHS = ("/solve",)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-IP sliding-window limiter on POST /solve, which spends unbounded CPU
    on the PoW search. Allows RATE_LIMIT_REQUESTS per RATE_LIMIT_WINDOW_S.
    """

    def __init__(self, app):
        super().__init__(app)
        # ip -> deque of request timestamps
        self._windows: dict[str, deque] = defaultdict(deque)
        self._last_prune = 0.0

    def _get_ip(self, request: Request) -> str:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _prune(self, now: float, window: float) -> None:
        """Forget clients whose newest request has left the window."""
        if now - self._last_prune <= window:
            return
        self._last_prune = now
        idle = [ip for ip, dq in self._windows.items() if not dq or now - dq[-1] > window]
        for ip in idle:
            del self._windows[ip]

    def allow(self, ip: str, now: float) -> bool:
        window = settings.rate_limit_window_s
        self._prune(now, window)
        dq = self._windows[ip]

        while dq and now - dq[0] > window:
            dq.popleft()

        if len(dq) >= settings.rate_limit_requests:
            return False
        dq.append(now)
        return True

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method == "POST" and request.url.path in _LIMITED_PATHS:
            if not self.allow(self._get_ip(request), time.monotonic()):
                return Response(
                    content='{"detail":"rate limit exceeded"}',
                    status_code=429,
                    media_type="application/json",
                    headers={"Retry-After": str(settings.rate_limit_window_s)},
                )
        return await call_next(request)
