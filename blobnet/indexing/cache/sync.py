"""Reader/writer locking around any cache."""

from __future__ import annotations

from typing import List, Optional

from ...utils.locks import ReadWriteLock
from .base import KeyValueCache


class MutexCache(KeyValueCache):
    """Serialises writes and lets reads proceed concurrently."""

    def __init__(self, child: KeyValueCache) -> None:
        self._child = child
        self._lock = ReadWriteLock()

    async def get(self, key: str) -> Optional[str]:
        async with self._lock.read():
            return await self._child.get(key)

    async def set(self, key: str, value: str, ttl: Optional[float] = None) -> None:
        async with self._lock.write():
            await self._child.set(key, value, ttl)

    async def expire(self, key: str, ttl: float) -> bool:
        async with self._lock.write():
            return await self._child.expire(key, ttl)

    async def persist(self, key: str) -> bool:
        async with self._lock.write():
            return await self._child.persist(key)

    async def sadd(self, key: str, *values: str) -> int:
        async with self._lock.write():
            return await self._child.sadd(key, *values)

    async def smembers(self, key: str) -> List[str]:
        async with self._lock.read():
            return await self._child.smembers(key)

    async def close(self) -> None:
        await self._child.close()

