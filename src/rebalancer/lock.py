"""Run lock so analysis runs never overlap, backed by Redis when available.

Falls back to an in-process TTL lock when Redis is not configured or not
reachable, which only protects a single process.
"""

from __future__ import annotations

import logging
import time
import uuid

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class _MemoryLocks:
    """Minimal in-memory lock table with TTL expiry."""

    def __init__(self) -> None:
        self._data: dict[str, tuple[str, float]] = {}  # key -> (token, expire_ts)

    def acquire(self, key: str, token: str, ttl: int) -> bool:
        entry = self._data.get(key)
        now = time.monotonic()
        if entry and entry[1] > now:
            return False
        self._data[key] = (token, now + ttl)
        return True

    def release(self, key: str, token: str) -> None:
        entry = self._data.get(key)
        if entry and entry[0] == token:
            del self._data[key]


class RunLock:
    def __init__(self, redis_url: str | None, key: str = "rebalancer:analysis_lock", ttl: int = 240) -> None:
        self._key = key
        self._ttl = ttl
        self._redis: redis.Redis | None = None
        self._mem = _MemoryLocks()
        if redis_url:
            try:
                self._redis = redis.from_url(redis_url)
            except (RedisError, ValueError):
                logger.warning("Invalid REDIS_URL, run lock is process-local")
                self._redis = None

    @property
    def available(self) -> bool:
        return self._redis is not None

    async def acquire(self) -> str | None:
        """Return a token when the lock was taken, None when another run holds it."""
        token = uuid.uuid4().hex
        if self._redis is not None:
            try:
                ok = await self._redis.set(self._key, token, nx=True, ex=self._ttl)
                return token if ok else None
            except RedisError:
                logger.debug("Redis lock acquire failed, using memory fallback")
        return token if self._mem.acquire(self._key, token, self._ttl) else None

    async def release(self, token: str) -> None:
        if self._redis is not None:
            try:
                await self._redis.eval(_RELEASE_SCRIPT, 1, self._key, token)
                return
            except RedisError:
                logger.debug("Redis lock release failed, using memory fallback")
        self._mem.release(self._key, token)

    async def ping(self) -> str:
        """'ok' when Redis answers, 'memory' without Redis, 'unavailable' when it is down."""
        if self._redis is None:
            return "memory"
        try:
            await self._redis.ping()
            return "ok"
        except RedisError as e:
            logger.warning("Redis ping failed: %s", e)
            return "unavailable"
