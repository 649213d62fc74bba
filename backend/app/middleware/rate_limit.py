"""
Rate Limiting Middleware for EVA ERP Assistant
Sliding window limits per client, with tighter buckets for chat and uploads
"""

import time
import logging
from typing import Dict, Optional, Tuple
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import redis.asyncio as redis

from app.core.exceptions import RateLimitedException, error_headers


logger = logging.getLogger(__name__)

RateInfo = Dict[str, int]


def _rate_info(current_count: int, limit: int, window_seconds: int, now: float) -> RateInfo:
    return {
        "current_count": current_count,
        "limit": limit,
        "window_seconds": window_seconds,
        "reset_time": int(now + window_seconds)
    }


class RedisRateLimiter:
    """
    Redis-based sliding window rate limiter

    Uses sorted sets keyed by client and bucket so limits hold across
    multiple application instances
    """

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client
        self.logger = logging.getLogger(self.__class__.__name__)

    async def is_allowed(
        self,
        key: str,
        limit: int,
        window_seconds: int,
        identifier: str = "request"
    ) -> Tuple[bool, RateInfo]:
        """
        Check if request is allowed under rate limit

        Args:
            key: Bucket identifier (client and endpoint group)
            limit: Maximum number of requests allowed in the window
            window_seconds: Time window in seconds
            identifier: Request path, stored with each entry

        Returns:
            Tuple of (is_allowed, rate_info)
        """
        now = time.time()
        window_start = now - window_seconds
        redis_key = f"eva_rate_limit:{key}"

        try:
            async with self.redis.pipeline() as pipe:
                pipe.zremrangebyscore(redis_key, 0, window_start)
                pipe.zcount(redis_key, window_start, now)
                results = await pipe.execute()
            current_count = results[1]

            if current_count >= limit:
                return False, _rate_info(current_count, limit, window_seconds, now)

            await self.redis.zadd(redis_key, {f"{identifier}:{now}:{id(self)}": now})
            await self.redis.expire(redis_key, window_seconds + 1)

            return True, _rate_info(current_count + 1, limit, window_seconds, now)

        except Exception as e:
            # Redis outage must not take the API down
            self.logger.error(f"Rate limiter Redis error: {e}")
            return True, _rate_info(0, limit, window_seconds, now)


class InMemoryRateLimiter:
    """
    Fallback in-memory rate limiter

    Used when Redis is not configured. Limits are per process only.
    """

    def __init__(self):
        self._buckets: Dict[str, Dict[str, float]] = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    async def is_allowed(
        self,
        key: str,
        limit: int,
        window_seconds: int,
        identifier: str = "request"
    ) -> Tuple[bool, RateInfo]:
        """Check if request is allowed (in-memory implementation)"""
        now = time.time()
        window_start = now - window_seconds

        bucket = self._buckets.setdefault(key, {})

        expired_keys = [k for k, timestamp in bucket.items() if timestamp <= window_start]
        for k in expired_keys:
            del bucket[k]

        current_count = len(bucket)
        if current_count >= limit:
            return False, _rate_info(current_count, limit, window_seconds, now)

        bucket[f"{identifier}:{now}:{current_count}"] = now
        return True, _rate_info(current_count + 1, limit, window_seconds, now)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rate limiting middleware for FastAPI applications

    Requests whose path starts with a key of ``endpoint_limits`` count against
    that group's (limit, window); all others share the default bucket
    """

    def __init__(
        self,
        app,
        redis_client: Optional[redis.Redis] = None,
        default_limit: int = 60,
        default_window: int = 60,
        endpoint_limits: Optional[Dict[str, Tuple[int, int]]] = None
    ):
        super().__init__(app)

        if redis_client:
            self.limiter = RedisRateLimiter(redis_client)
        else:
            self.limiter = InMemoryRateLimiter()
            logger.warning("Using in-memory rate limiter - limits are not shared between instances")

        self.default_limit = default_limit
        self.default_window = default_window
        self.endpoint_limits = endpoint_limits or {}
        self.logger = logging.getLogger(self.__class__.__name__)

    async def dispatch(self, request: Request, call_next) -> Response:
        """Process request with rate limiting"""
        if self._should_skip_rate_limiting(request):
            return await call_next(request)

        client_id = self._get_client_identifier(request)
        group, limit, window = self._get_rate_limit_for_endpoint(request.url.path)

        is_allowed, rate_info = await self.limiter.is_allowed(
            key=f"{client_id}:{group}",
            limit=limit,
            window_seconds=window,
            identifier=request.url.path
        )

        if not is_allowed:
            self.logger.warning(
                f"Rate limit exceeded for client {client_id} on {request.url.path} "
                f"({rate_info['current_count']}/{rate_info['limit']} per {rate_info['window_seconds']}s)"
            )
            exc = RateLimitedException(
                f"Too many requests. Limit: {rate_info['limit']} per {rate_info['window_seconds']} seconds",
                limit=rate_info["limit"],
                window_seconds=rate_info["window_seconds"],
                retry_after_seconds=rate_info["window_seconds"],
            )
            headers = error_headers(exc.details)
            headers.update(self._rate_headers(rate_info))
            return JSONResponse(status_code=429, content=exc.to_dict(), headers=headers)

        response = await call_next(request)
        response.headers.update(self._rate_headers(rate_info))
        return response

    @staticmethod
    def _rate_headers(rate_info: RateInfo) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(rate_info["limit"]),
            "X-RateLimit-Remaining": str(max(0, rate_info["limit"] - rate_info["current_count"])),
            "X-RateLimit-Reset": str(rate_info["reset_time"]),
        }

    def _should_skip_rate_limiting(self, request: Request) -> bool:
        if request.url.path == "/" or request.method == "OPTIONS":
            return True
        skip_paths = ("/docs", "/redoc", "/openapi.json", "/health")
        return request.url.path.startswith(skip_paths)

    def _get_client_identifier(self, request: Request) -> str:
        """Client IP, honouring the first X-Forwarded-For hop behind a proxy"""
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _get_rate_limit_for_endpoint(self, path: str) -> Tuple[str, int, int]:
        """(bucket group, limit, window) for a request path"""
        for pattern, (limit, window) in self.endpoint_limits.items():
            if path == pattern or path.startswith(pattern.rstrip("/") + "/"):
                return pattern, limit, window
        return "default", self.default_limit, self.default_window


def create_redis_client(redis_url: Optional[str]) -> Optional[redis.Redis]:
    """Redis client for shared limits, or None to use the in-memory limiter"""
    if not redis_url:
        return None
    try:
        client = redis.from_url(redis_url)
        logger.info("Redis client initialized for rate limiting")
        return client
    except Exception as e:
        logger.warning(f"Redis not available, using in-memory rate limiter: {e}")
        return None
