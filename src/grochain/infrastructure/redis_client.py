"""Redis client for webhook idempotency keys.

Usage:
    from grochain.infrastructure.redis_client import init_redis, get_redis, close_redis

    redis = get_redis()
    first = await claim_idempotency(redis, "paystack:charge.success:GROCHAIN_...")
"""

from __future__ import annotations

import redis.asyncio as aioredis

from grochain.config import get_settings
from grochain.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None


async def init_redis() -> aioredis.Redis:
    """Initialize and return the Redis client. Called during app startup."""
    global _redis_client
    settings = get_settings()
    _redis_client = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
    )
    await _redis_client.ping()
    logger.info("redis.connected", url=settings.redis_url)
    return _redis_client


def get_redis() -> aioredis.Redis:
    """Return the Redis client singleton. Must call init_redis() first."""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None


# --- Idempotency Helpers ---


def idempotency_key(key: str) -> str:
    return f"idempotency:{key}"


async def claim_idempotency(redis: aioredis.Redis, key: str, ttl_seconds: int | None = None) -> bool:
    """Atomically claim an idempotency key.

    Returns True if this caller claimed it first, False if it was already used.
    """
    ttl = ttl_seconds or get_settings().redis_idempotency_ttl_seconds
    claimed = await redis.set(idempotency_key(key), "1", ex=ttl, nx=True)
    return bool(claimed)


async def release_idempotency(redis: aioredis.Redis, key: str) -> None:
    """Forget a claimed key so a failed delivery can be retried by the provider."""
    await redis.delete(idempotency_key(key))
