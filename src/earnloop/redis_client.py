"""Redis client for per-IP request throttling.

Redis is optional: without it rate limiting is skipped and ``/ready`` reports
``degraded``. Ledger state never lives in Redis.
"""

import redis.asyncio as redis
from redis.exceptions import RedisError

_client: redis.Redis | None = None


async def init_redis(url: str) -> None:
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        decode_responses=True,
        max_connections=20,
        socket_connect_timeout=1.0,
    )


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    """Return the shared client. Raises RuntimeError before ``init_redis``."""
    if _client is None:
        msg = "Redis not initialized"
        raise RuntimeError(msg)
    return _client


async def redis_status() -> str:
    """``"ok"`` or an error description, for the readiness probe."""
    try:
        await get_redis().ping()
    except (RuntimeError, RedisError) as exc:
        return f"error: {exc}"
    return "ok"
