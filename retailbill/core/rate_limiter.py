"""
Rate limiting middleware to prevent brute force and DoS attacks.

Two sliding windows: a general one for every billing call and a stricter
one for recording sales. Uses in-memory storage; with multiple workers each
process keeps its own window.
"""
import logging
import threading
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Tuple

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from retailbill.core.config import settings

logger = logging.getLogger(__name__)

EXEMPT_PATHS = ("/health", "/docs", "/redoc", "/openapi.json")
STRICT_PATHS = ("/billing/record-sale",)


class RateLimiter:
    """In-memory rate limiter with sliding window."""

    def __init__(self, requests: int = 100, window: int = 60):
        """
        Args:
            requests: Maximum requests allowed in window
            window: Time window in seconds
        """
        self.requests = requests
        self.window = window
        self.clients: Dict[str, Deque[float]] = defaultdict(deque)
        self.last_cleanup = time.monotonic()
        self._lock = threading.Lock()

    def is_allowed(self, client_id: str) -> Tuple[bool, int]:
        """
        Check if client is allowed to make request.

        Returns:
            (allowed: bool, remaining: int)
        """
        now = time.monotonic()
        with self._lock:
            # Cleanup old entries every 5 minutes
            if now - self.last_cleanup > 300:
                self._cleanup(now)
                self.last_cleanup = now

            timestamps = self.clients[client_id]
            cutoff = now - self.window
            while timestamps and timestamps[0] <= cutoff:
                timestamps.popleft()

            if len(timestamps) < self.requests:
                timestamps.append(now)
                return True, self.requests - len(timestamps)
            return False, 0

    def reset(self) -> None:
        with self._lock:
            self.clients.clear()

    def _cleanup(self, now: float):
        """Remove expired entries to prevent memory bloat."""
        cutoff = now - self.window
        for client_id in list(self.clients.keys()):
            timestamps = self.clients[client_id]
            while timestamps and timestamps[0] <= cutoff:
                timestamps.popleft()
            if not timestamps:
                del self.clients[client_id]

        logger.info(f"Rate limiter cleanup: {len(self.clients)} active clients")


general_limiter = RateLimiter(
    requests=settings.RATE_LIMIT_REQUESTS,
    window=settings.RATE_LIMIT_WINDOW_SECONDS
)
sale_limiter = RateLimiter(
    requests=settings.SALE_RATE_LIMIT_REQUESTS,
    window=settings.RATE_LIMIT_WINDOW_SECONDS
)


def _client_id(request: Request) -> str:
    # Authenticated callers are keyed by token signature so users behind one IP
    # don't share a budget (every JWT starts with the same header segment)
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return f"user:{auth_header[-32:]}"
    client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to apply rate limiting to all requests."""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path in EXEMPT_PATHS:
            return await call_next(request)

        client_id = _client_id(request)
        limiter = sale_limiter if path in STRICT_PATHS and request.method == "POST" else general_limiter

        allowed, remaining = limiter.is_allowed(client_id)
        if not allowed:
            logger.warning(f"Rate limit exceeded for {client_id} on {request.method} {path}")
            # Returned rather than raised: exceptions escaping BaseHTTPMiddleware
            # bypass the app's exception handlers
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "success": False,
                    "code": "RATE_LIMITED",
                    "message": f"Rate limit exceeded. Try again in {limiter.window} seconds.",
                },
                headers={
                    "Retry-After": str(limiter.window),
                    "X-RateLimit-Limit": str(limiter.requests),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limiter.requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Window"] = str(limiter.window)
        return response
