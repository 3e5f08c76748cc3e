"""Redis connection management and the maintenance run lock."""

import redis.asyncio as aioredis

_redis: aioredis.Redis | None = None


def get_redis() -> aioredis.Redis:
    """Get the shared Redis connection. Must be initialized first via init_redis()."""
    if _redis is None:
        raise RuntimeError("Redis not initialized: app not started")
    return _redis


async def init_redis(url: str = "redis://localhost:6379/0") -> aioredis.Redis:
    """Initialize the global Redis connection. The global stays unset if ping fails."""
    global _redis
    client = aioredis.from_url(url, decode_responses=True)
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        raise
    _redis = client
    return _redis


async def close_redis() -> None:
    """Close the Redis connection."""
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


async def acquire_lock(redis: aioredis.Redis, name: str, owner: str, ttl_seconds: int) -> bool:
    """Take a named lock if nobody holds it. The lock expires after ``ttl_seconds``."""
    return bool(await redis.set(f"lock:{name}", owner, nx=True, ex=ttl_seconds))


async def release_lock(redis: aioredis.Redis, name: str, owner: str) -> None:
    """Release a named lock, but only if ``owner`` still holds it."""
    key = f"lock:{name}"
    if await redis.get(key) == owner:
        await redis.delete(key)
