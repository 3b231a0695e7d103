"""Redis client for idempotency keys.

Usage:
    from middleman_escrow.infrastructure.redis_client import init_redis, claim_idempotency

    await init_redis(settings)
    if not await claim_idempotency("create:abc"):
        raise DuplicateOperationError("create:abc")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import redis.asyncio as aioredis

from middleman_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from middleman_escrow.config import Settings

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None
_idempotency_ttl_seconds: int = 86400


async def init_redis(settings: Settings) -> aioredis.Redis:
    """Initialize and return the Redis client. Called during app startup."""
    global _redis_client, _idempotency_ttl_seconds
    client = aioredis.from_url(settings.redis_url, decode_responses=True)
    await client.ping()
    _redis_client = client
    _idempotency_ttl_seconds = settings.redis_idempotency_ttl_seconds
    logger.info("redis.connected", url=settings.redis_url)
    return client


def get_redis() -> aioredis.Redis:
    """Return the Redis client singleton. Must call init_redis() first."""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


def is_redis_available() -> bool:
    return _redis_client is not None


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None


# --- Idempotency Helpers ---


async def claim_idempotency(key: str, value: str = "1") -> bool:
    """Atomically reserve an idempotency key.

    Returns True if the key was free (this caller owns the operation),
    False if another call already claimed it.
    """
    redis = get_redis()
    claimed = await redis.set(
        f"idempotency:{key}",
        value,
        ex=_idempotency_ttl_seconds,
        nx=True,
    )
    return bool(claimed)


async def release_idempotency(key: str) -> None:
    """Drop a claimed key so a failed operation can be retried with it."""
    redis = get_redis()
    await redis.delete(f"idempotency:{key}")
