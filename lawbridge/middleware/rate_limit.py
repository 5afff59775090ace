"""
Rate Limiting Middleware
========================

Redis sliding-window rate limit per authenticated user (falls back to the
client address). When Redis is unreachable every request is allowed.
"""

import time
import logging
from typing import Callable, Optional, Tuple

import jwt
import redis
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..config import get_settings

logger = logging.getLogger(__name__)

EXEMPT_PATHS = ("/health", "/docs", "/redoc", "/openapi.json")


class RateLimiter:
    """
    Redis-based rate limiter using sliding window algorithm.
    """

    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = redis_url or get_settings().redis_url
        self._client = None

    @property
    def client(self):
        """Lazy-load Redis client"""
        if self._client is None:
            try:
                self._client = redis.from_url(
                    self.redis_url,
                    decode_responses=True,
                    socket_connect_timeout=0.5,
                    socket_timeout=0.5,
                )
                self._client.ping()
            except Exception as e:
                logger.warning(f"Redis connection failed: {e}")
                self._client = None

        return self._client

    def is_allowed(self, key: str, limit: int, window_seconds: int = 60) -> Tuple[bool, int, int]:
        """
        Check if request is allowed under rate limit.

        Returns:
            (is_allowed, remaining, reset_time)
        """
        if not self.client:
            return (True, limit, 0)

        now = time.time()
        window_start = now - window_seconds

        try:
            pipe = self.client.pipeline()
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zcard(key)
            pipe.zadd(key, {str(now): now})
            pipe.expire(key, window_seconds)
            results = pipe.execute()
            current_count = results[1]
        except Exception as e:
            logger.warning(f"Rate limit check failed: {e}")
            return (True, limit, 0)

        reset_time = int(now + window_seconds)
        if current_count >= limit:
            return (False, 0, reset_time)
        return (True, max(0, limit - current_count - 1), reset_time)


_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get singleton rate limiter instance"""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter


def rate_limit_key(request: Request) -> str:
    """User id from the bearer token when present, else the client address."""
    authorization = request.headers.get("authorization", "")
    if authorization.lower().startswith("bearer "):
        try:
            # signature is checked later by the auth dependency; this is only a bucket key
            claims = jwt.decode(authorization[7:], options={"verify_signature": False})
            if claims.get("sub"):
                return f"ratelimit:user:{claims['sub']}"
        except jwt.InvalidTokenError:
            pass
    host = request.client.host if request.client else "unknown"
    return f"ratelimit:ip:{host}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for rate limiting.
    """

    def __init__(self, app, limiter: Optional[RateLimiter] = None, limit: Optional[int] = None):
        super().__init__(app)
        self.limiter = limiter or get_rate_limiter()
        self.limit = limit or get_settings().rate_limit_per_user

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path.startswith(EXEMPT_PATHS):
            return await call_next(request)

        allowed, remaining, reset = self.limiter.is_allowed(rate_limit_key(request), self.limit, window_seconds=60)
        if not allowed:
            retry_after = max(reset - int(time.time()), 1)
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "message": f"Rate limit exceeded: {self.limit} requests per minute",
                    "error": {"code": "rate_limited", "message": "Rate limit exceeded", "details": None},
                },
                headers={
                    "X-RateLimit-Limit": str(self.limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(reset),
                    "Retry-After": str(retry_after),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response
