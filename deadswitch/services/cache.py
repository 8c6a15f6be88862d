# deadswitch/services/cache.py
from __future__ import annotations

import time
from typing import Optional, Protocol

from redis.asyncio import Redis


class TTLCache(Protocol):
    async def acquire(self, key: str, value: str, ttl: int) -> bool: ...

    async def release(self, key: str, value: str) -> bool: ...

    async def close(self) -> None: ...


class RedisTTLCache:
    """
    Лиза тика поверх SET NX EX: несколько воркеров на одну БД не гоняют
    один и тот же тик параллельно. Корректность от неё не зависит,
    at-most-once держит claim в БД.
    """

    # снимаем только свою лизу
    _RELEASE = """
    if redis.call('get', KEYS[1]) == ARGV[1] then
        return redis.call('del', KEYS[1])
    end
    return 0
    """

    def __init__(self, client: Redis) -> None:
        self.client = client

    @classmethod
    def from_url(cls, dsn: str) -> "RedisTTLCache":
        return cls(Redis.from_url(dsn, decode_responses=True))

    async def acquire(self, key: str, value: str, ttl: int) -> bool:
        return bool(await self.client.set(key, value, nx=True, ex=ttl))

    async def release(self, key: str, value: str) -> bool:
        return bool(await self.client.eval(self._RELEASE, 1, key, value))

    async def close(self) -> None:
        await self.client.aclose()


class MemoryTTLCache:
    """Для одного процесса и тестов."""

    def __init__(self) -> None:
        self._items: dict[str, tuple[str, float]] = {}

    def _alive(self, key: str) -> Optional[str]:
        item = self._items.get(key)
        if item is None:
            return None
        value, expires = item
        if expires <= time.monotonic():
            del self._items[key]
            return None
        return value

    async def acquire(self, key: str, value: str, ttl: int) -> bool:
        if self._alive(key) is not None:
            return False
        self._items[key] = (value, time.monotonic() + ttl)
        return True

    async def release(self, key: str, value: str) -> bool:
        if self._alive(key) != value:
            return False
        del self._items[key]
        return True

    async def close(self) -> None:
        self._items.clear()
