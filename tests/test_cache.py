"""Tick lease caches."""

import pytest

from deadswitch.services.cache import MemoryTTLCache, RedisTTLCache


@pytest.mark.asyncio
async def test_memory_lease_is_exclusive_until_released():
    cache = MemoryTTLCache()

    assert await cache.acquire("lease", "a", 30)
    assert not await cache.acquire("lease", "b", 30)
    assert not await cache.release("lease", "b")
    assert await cache.release("lease", "a")
    assert await cache.acquire("lease", "b", 30)


@pytest.mark.asyncio
async def test_memory_lease_expires():
    cache = MemoryTTLCache()

    assert await cache.acquire("lease", "a", 0)
    assert await cache.acquire("lease", "b", 30)


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the lease calls."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.calls: list[tuple] = []
        self.closed = False

    async def set(self, key, value, nx=False, ex=None):
        self.calls.append(("set", key, value, nx, ex))
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True

    async def eval(self, script, numkeys, key, value):
        self.calls.append(("eval", key, value))
        if self.data.get(key) == value:
            del self.data[key]
            return 1
        return 0

    async def aclose(self):
        self.closed = True


@pytest.mark.asyncio
async def test_redis_lease_uses_set_nx_ex():
    client = FakeRedis()
    cache = RedisTTLCache(client)

    assert await cache.acquire("deadswitch:tick-lease", "t1", 55)
    assert not await cache.acquire("deadswitch:tick-lease", "t2", 55)
    assert client.calls[0] == ("set", "deadswitch:tick-lease", "t1", True, 55)

    assert not await cache.release("deadswitch:tick-lease", "t2")
    assert await cache.release("deadswitch:tick-lease", "t1")

    await cache.close()
    assert client.closed
