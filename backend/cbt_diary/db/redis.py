"""Shared Redis connection pool and per-user key namespaces.

Each user gets one storage context (``user:{user_id}:``) that plays the role
a browser's local storage plays for the web client: the fixed draft key and
the saved-drafts hash both live under it.
"""

import redis.asyncio as redis

from cbt_diary.core.config import get_settings

_redis: redis.Redis | None = None


def user_namespace(user_id: str) -> str:
    """Return the key prefix for a user's storage context."""
    if not user_id:
        raise ValueError("user_id is required for a storage namespace")
    return f"user:{user_id}:"


async def init_redis(url: str | None = None) -> None:
    """Initialize the shared Redis connection pool."""
    global _redis

    if _redis is not None:
        return

    settings = get_settings()

    _redis = redis.from_url(
        url or settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )

    # Verify connectivity
    await _redis.ping()


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis

    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_redis() -> redis.Redis:
    """Return the shared Redis client.

    Raises RuntimeError if init_redis() has not been called.
    """
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis
