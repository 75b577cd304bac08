"""Best-effort Redis cache.

The cache is an optimization, never a correctness dependency: every method
swallows backend failures, logs them, and answers as a miss. A failed call
marks the store not-ready; while not ready the store skips the network
entirely and re-probes the backend at most once per retry interval.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Iterable
from typing import Any

import redis.asyncio as aioredis
import structlog
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from foodie.config import Settings

logger = structlog.get_logger()

_CONNECTIVITY_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError, asyncio.TimeoutError)


class CacheStore:
    """JSON key/value cache with TTL and pattern deletion over ``redis.asyncio``."""

    def __init__(
        self,
        client: aioredis.Redis | None,
        *,
        default_ttl: int = 300,
        scan_count: int = 100,
        delete_batch_size: int = 100,
        retry_interval: float = 5.0,
    ) -> None:
        self._client = client
        self.default_ttl = default_ttl
        self.scan_count = scan_count
        self.delete_batch_size = delete_batch_size
        self.retry_interval = retry_interval
        self._ready = False
        self._last_probe = 0.0

    @property
    def is_ready(self) -> bool:
        return self._client is not None and self._ready

    async def connect(self) -> bool:
        """Probe the backend once. Never raises."""
        first_probe = self._last_probe == 0.0
        self._last_probe = time.monotonic()
        if self._client is None:
            self._ready = False
            return False
        try:
            await self._client.ping()
        except (*_CONNECTIVITY_ERRORS, RedisError) as e:
            if self._ready or first_probe:
                logger.warning("cache_unavailable", error=str(e))
            self._ready = False
            return False
        if not self._ready:
            logger.info("cache_ready")
        self._ready = True
        return True

    async def close(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            except (*_CONNECTIVITY_ERRORS, RedisError):
                logger.debug("cache_close_failed", exc_info=True)
        self._ready = False

    async def ping(self) -> bool:
        """Readiness check used by the health endpoint."""
        return await self.connect()

    async def _available(self) -> bool:
        if self._client is None:
            return False
        if self._ready:
            return True
        if time.monotonic() - self._last_probe < self.retry_interval:
            return False
        return await self.connect()

    def _mark_down(self, op: str, key: str, error: Exception) -> None:
        if isinstance(error, _CONNECTIVITY_ERRORS):
            self._ready = False
            self._last_probe = time.monotonic()
        logger.warning("cache_error", op=op, key=key, error=str(error))

    async def get(self, key: str) -> Any | None:
        """Return the decoded value, or None on miss or any failure."""
        if not await self._available():
            return None
        try:
            raw = await self._client.get(key)  # type: ignore[union-attr]
        except (*_CONNECTIVITY_ERRORS, RedisError) as e:
            self._mark_down("get", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("cache_corrupt_entry", key=key)
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        if not await self._available():
            return
        try:
            data = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.warning("cache_unserializable", key=key, error=str(e))
            return
        try:
            await self._client.set(key, data, ex=ttl or self.default_ttl)  # type: ignore[union-attr]
        except (*_CONNECTIVITY_ERRORS, RedisError) as e:
            self._mark_down("set", key, e)

    async def delete(self, key: str) -> None:
        if not await self._available():
            return
        try:
            await self._client.delete(key)  # type: ignore[union-attr]
        except (*_CONNECTIVITY_ERRORS, RedisError) as e:
            self._mark_down("delete", key, e)

    async def delete_exact(self, keys: Iterable[str]) -> int:
        """Delete a known list of keys in bounded batches. Returns the number removed."""
        key_list = list(dict.fromkeys(keys))
        if not key_list or not await self._available():
            return 0
        removed = 0
        try:
            for start in range(0, len(key_list), self.delete_batch_size):
                batch = key_list[start : start + self.delete_batch_size]
                removed += int(await self._client.delete(*batch))  # type: ignore[union-attr]
        except (*_CONNECTIVITY_ERRORS, RedisError) as e:
            self._mark_down("delete_exact", key_list[0], e)
        return removed

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern.

        Keys are discovered with incremental ``SCAN`` (never ``KEYS``) and
        removed in batches of ``delete_batch_size``.
        """
        if not await self._available():
            return 0
        removed = 0
        pending: list[str] = []
        try:
            cursor = 0
            while True:
                cursor, keys = await self._client.scan(  # type: ignore[union-attr]
                    cursor=cursor, match=pattern, count=self.scan_count
                )
                pending.extend(keys)
                while len(pending) >= self.delete_batch_size:
                    batch, pending = pending[: self.delete_batch_size], pending[self.delete_batch_size :]
                    removed += int(await self._client.delete(*batch))  # type: ignore[union-attr]
                if cursor == 0:
                    break
            if pending:
                removed += int(await self._client.delete(*pending))  # type: ignore[union-attr]
        except (*_CONNECTIVITY_ERRORS, RedisError) as e:
            self._mark_down("delete_pattern", pattern, e)
            return removed
        if removed:
            logger.debug("cache_pattern_deleted", pattern=pattern, removed=removed)
        return removed

    async def invalidate(self, exact_keys: Iterable[str], patterns: Iterable[str]) -> None:
        """Drop hot keys first, then sweep prefixes."""
        await self.delete_exact(exact_keys)
        for pattern in patterns:
            await self.delete_pattern(pattern)


_store: CacheStore | None = None


async def init_cache(client: aioredis.Redis | None, settings: Settings) -> CacheStore:
    """Create the process-wide cache store and probe the backend once."""
    global _store  # noqa: PLW0603
    _store = CacheStore(
        client,
        default_ttl=settings.cache_default_ttl_seconds,
        scan_count=settings.cache_scan_count,
        delete_batch_size=settings.cache_delete_batch_size,
        retry_interval=settings.cache_retry_interval_seconds,
    )
    await _store.connect()
    return _store


def get_cache() -> CacheStore:
    """Get the cache store (FastAPI dependency)."""
    if _store is None:
        msg = "Cache not initialized. Call init_cache() first."
        raise RuntimeError(msg)
    return _store


def reset_cache() -> None:
    global _store  # noqa: PLW0603
    _store = None
