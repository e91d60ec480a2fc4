"""Run lock tests (in-memory fallback)."""

import pytest

from rebalancer.lock import RunLock, _MemoryLocks


def test_memory_lock_expires(monkeypatch):
    import rebalancer.lock as lock_mod

    clock = [100.0]
    monkeypatch.setattr(lock_mod.time, "monotonic", lambda: clock[0])
    locks = _MemoryLocks()
    assert locks.acquire("k", "t1", ttl=10)
    assert not locks.acquire("k", "t2", ttl=10)
    clock[0] = 111.0
    assert locks.acquire("k", "t2", ttl=10)


def test_release_requires_owner():
    locks = _MemoryLocks()
    locks.acquire("k", "t1", ttl=10)
    locks.release("k", "other")
    assert not locks.acquire("k", "t2", ttl=10)
    locks.release("k", "t1")
    assert locks.acquire("k", "t2", ttl=10)


@pytest.mark.asyncio
async def test_run_lock_without_redis():
    lock = RunLock(None, ttl=5)
    assert not lock.available
    token = await lock.acquire()
    assert token
    assert await lock.acquire() is None
    await lock.release(token)
    assert await lock.acquire() is not None


@pytest.mark.asyncio
async def test_ping_reports_backend():
    from redis.exceptions import ConnectionError as RedisConnectionError

    assert await RunLock(None).ping() == "memory"

    class DownRedis:
        async def ping(self):
            raise RedisConnectionError("refused")

    lock = RunLock(None)
    lock._redis = DownRedis()
    assert await lock.ping() == "unavailable"
