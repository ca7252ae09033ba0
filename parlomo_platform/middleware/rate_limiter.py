"""
Sliding-window rate limiting backed by Redis sorted sets.
"""

import logging
import time
from typing import Tuple

from fastapi import Request
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from ..cache import NAMESPACE, get_cache
from ..utils.exceptions import RateLimitError
from .logging import client_ip

logger = logging.getLogger(__name__)

EXEMPT_PATHS = {"/health", "/health/detailed", "/", "/docs", "/redoc", "/openapi.json"}

# (path prefix, requests, window seconds); longest prefixes first
ENDPOINT_LIMITS = (
    ("/api/v1/ticketing/checkout", 10, 60),
    ("/api/v1/ticketing/promo", 20, 60),
    # Door staff scan in bursts
    ("/api/v1/ticketing/scanner", 120, 60),
    ("/api/v1/auth/login", 5, 300),
    ("/api/v1/auth/register", 3, 300),
    ("/api/v1/public-events", 50, 60),
)


class RateLimiterMiddleware(BaseHTTPMiddleware):
    """Per-IP burst limit plus a per-endpoint-group limit; open when Redis is down."""

    def __init__(self, app, default_limit: int = 100, default_window: int = 60,
                 burst_limit: int = 20, burst_window: int = 1):
        super().__init__(app)
        self.default_limit = default_limit
        self.default_window = default_window
        self.burst_limit = burst_limit
        self.burst_window = burst_window
        self.cache = get_cache()

    def limit_for(self, path: str) -> Tuple[str, int, int]:
        """Endpoint group, limit and window that apply to ``path``."""
        for prefix, limit, window in ENDPOINT_LIMITS:
            if path.startswith(prefix):
                return prefix, limit, window
        return "default", self.default_limit, self.default_window

    async def dispatch(self, request: Request, call_next):
        if request.url.path in EXEMPT_PATHS or not self.cache.is_available:
            return await call_next(request)

        ip = client_ip(request)
        exceeded, retry_after = await self._hit(f"{NAMESPACE}:rl:burst:{ip}", self.burst_limit, self.burst_window)
        if exceeded:
            return self._limited(self.burst_limit, self.burst_window, retry_after)

        group, limit, window = self.limit_for(request.url.path)
        key = f"{NAMESPACE}:rl:{group}:{ip}"
        exceeded, retry_after = await self._hit(key, limit, window)
        if exceeded:
            logger.info(f"Rate limit hit for {ip} on {group}")
            return self._limited(limit, window, retry_after)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, limit - await self.cache.zcard(key)))
        response.headers["X-RateLimit-Window"] = str(window)
        return response

    async def _hit(self, key: str, limit: int, window: int) -> Tuple[bool, int]:
        """
        Record a request in the window stored at ``key``.

        Returns:
            (exceeded, retry_after_seconds)
        """
        now = time.time()
        pipe = self.cache.pipeline()
        if pipe is None:
            return False, 0

        try:
            pipe.zremrangebyscore(key, 0, now - window)
            pipe.zcard(key)
            pipe.zadd(key, {f"{now:.6f}": now})
            pipe.expire(key, window * 2)
            results = await pipe.execute()
        except RedisError as e:
            logger.error(f"Rate limit check failed, letting request through: {e}")
            return False, 0

        if results[1] < limit:
            return False, 0

        oldest = await self.cache.zrange(key, 0, 0, withscores=True)
        if oldest:
            return True, max(1, int(oldest[0][1] + window - now))
        return True, window

    @staticmethod
    def _limited(limit: int, window: int, retry_after: int) -> JSONResponse:
        error = RateLimitError(limit, window, retry_after)
        return JSONResponse(
            status_code=429,
            content={"error": error.to_dict()},
            headers={
                "Retry-After": str(retry_after),
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Window": str(window),
            },
        )
