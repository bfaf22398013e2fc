from typing import Any

import redis.asyncio as redis


def get_redis_client(redis_url: str | None, **kwargs: Any) -> redis.Redis | None:
    """Return an async Redis client, or None when no URL is configured."""
    if not redis_url:
        return None
    return redis.from_url(redis_url, encoding="utf-8", decode_responses=True, **kwargs)
