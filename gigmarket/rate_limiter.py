"""
Redis rate limiting utilities
Fixed-window counters (INCR + EXPIRE) keyed per client IP or globally
"""

import logging
import os
import time
from typing import Optional

import redis
from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None


def _mask_url(redis_url: str) -> str:
    if "@" not in redis_url:
        return "****"
    credentials, host = redis_url.split("@", 1)
    return f"{credentials.split(':')[0]}:****@{host}"


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client
    Uses REDIS_URL when set, otherwise REDIS_HOST/REDIS_PORT/...
    """
    global redis_client

    if redis_client is not None:
        return redis_client

    common = {
        "decode_responses": True,
        "socket_connect_timeout": 15,
        "socket_timeout": 30,
        "retry_on_timeout": True,
        "health_check_interval": 30,
        "max_connections": 20,
    }

    redis_url = os.getenv("REDIS_URL")
    if redis_url:
        logger.info(f"📡 Using Redis URL connection: {_mask_url(redis_url)}")
        client = redis.from_url(redis_url, **common)
    else:
        redis_host = os.getenv("REDIS_HOST", "localhost")
        redis_port = int(os.getenv("REDIS_PORT", "6379"))
        redis_ssl = os.getenv("REDIS_SSL", "false").lower() == "true"
        logger.info(f"📡 Using Redis at {redis_host}:{redis_port} (SSL: {redis_ssl})")
        client = redis.Redis(
            host=redis_host,
            port=redis_port,
            password=os.getenv("REDIS_PASSWORD"),
            db=int(os.getenv("REDIS_DB", "0")),
            ssl=redis_ssl,
            **common,
        )

    try:
        client.ping()
    except redis.RedisError as e:
        logger.error(f"❌ Failed to connect to Redis: {str(e)}")
        raise

    logger.info("Redis connected successfully")
    redis_client = client
    return redis_client


def check_rate_limit(
    key: str, limit: int, window_seconds: int, client: redis.Redis
) -> tuple[bool, int, int]:
    """
    Count one request against the window for key

    Returns:
        Tuple of (is_allowed, current_count, ttl_seconds)
    """
    pipe = client.pipeline()
    pipe.incr(key)
    pipe.ttl(key)
    count, ttl = pipe.execute()

    if ttl is None or ttl < 0:
        client.expire(key, window_seconds)
        ttl = window_seconds

    return count <= limit, count, ttl


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def rate_limit_dependency(
    request: Request,
    limit: int,
    window_seconds: int,
    key_prefix: str = "rate_limit",
    use_ip: bool = True,
):
    """
    FastAPI dependency for rate limiting

    Args:
        request: FastAPI request object
        limit: Maximum requests allowed
        window_seconds: Time window in seconds
        key_prefix: Prefix for Redis key
        use_ip: If True, use client IP in key (per-IP limit), otherwise global
    """
    key = f"{key_prefix}:{client_ip(request) if use_ip else 'global'}"

    try:
        is_allowed, current_count, ttl = check_rate_limit(
            key, limit, window_seconds, get_redis_client()
        )
    except redis.RedisError as e:
        logger.error(f"❌ Rate limiting error: {str(e)}")
        logger.warning("🔒 Denying request due to rate limiting error (fail-closed mode)")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Rate limiting service temporarily unavailable",
        ) from e

    if not is_allowed:
        logger.warning(f"🚫 Rate limit EXCEEDED for {key} - {current_count}/{limit} requests used")
        raise HTTPException(
            status_code=429,
            detail={
                "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                "retry_after": ttl,
                "limit": limit,
                "window_seconds": window_seconds,
            },
            headers={"Retry-After": str(ttl)},
        )

    request.state.rate_limit_remaining = limit - current_count
    request.state.rate_limit_limit = limit
    request.state.rate_limit_reset = int(time.time()) + ttl


def create_rate_limiter(
    limit: int, window_seconds: int, key_prefix: str = "rate_limit", use_ip: bool = True
):
    """
    Create a rate limiter dependency with specific parameters

    Example usage:
        rate_limit_webhook = create_rate_limiter(limit=100, window_seconds=60, key_prefix="webhook")

        @router.post("/webhook")
        async def webhook(request: Request, _: None = Depends(rate_limit_webhook)):
            ...
    """

    async def rate_limiter(request: Request):
        return await rate_limit_dependency(request, limit, window_seconds, key_prefix, use_ip)

    return rate_limiter
