"""Cache that retains nothing."""

from __future__ import annotations

from typing import List, Optional

from .base import KeyValueCache


class BlackholeCache(KeyValueCache):
    """Accepts every write and misses on every read.

    Configuring the indexing service with this cache makes every query fall
    through to the discovery layer.
    """

    async def get(self, key: str) -> Optional[str]:
        return None

    async def set(self, key: str, value: str, ttl: Optional[float] = None) -> None:
        return None

    async def expire(self, key: str, ttl: float) -> bool:
        return False

    async def persist(self, key: str) -> bool:
        return False

    async def sadd(self, key: str, *values: str) -> int:
        return len(values)

    async def smembers(self, key: str) -> List[str]:
        return []

    async def close(self) -> None:
        return None
