"""Redis connection pool backing the cache store."""

import redis.asyncio as redis

_pool: redis.Redis | None = None


async def init_redis(url: str, socket_timeout: float = 2.0) -> redis.Redis:
    """Initialize the Redis connection pool.

    Creating the client does not open a connection, so this never fails on an
    unreachable server; the cache store probes readiness separately.
    """
    global _pool  # noqa: PLW0603
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
    )
    return _pool


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None
