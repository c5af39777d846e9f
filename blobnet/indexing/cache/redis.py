"""Redis-backed cache for deployments sharing state across processes."""

from __future__ import annotations

from typing import Any, List, Optional

import redis.asyncio as redis

from ...config import RedisConfig
from .base import KeyValueCache


class RedisCache(KeyValueCache):
    """Thin adapter over ``redis.asyncio`` with a key prefix."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        prefix: str = "blobnet:",
        client: Optional[Any] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.prefix = prefix
        self._redis: Optional[Any] = client

    @classmethod
    def from_config(cls, config: RedisConfig, namespace: str = "") -> "RedisCache":
        prefix = f"blobnet:{namespace}:" if namespace else "blobnet:"
        return cls(
            host=config.host,
            port=config.port,
            db=config.db,
            password=config.password,
            prefix=prefix,
        )

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def _client(self) -> Any:
        if not self._redis:
            await self.connect()
        return self._redis

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Optional[str]:
        client = await self._client()
        return await client.get(self._key(key))

    async def set(self, key: str, value: str, ttl: Optional[float] = None) -> None:
        client = await self._client()
        ex = int(ttl) if ttl and ttl >= 1 else None
        await client.set(self._key(key), value, ex=ex)

    async def expire(self, key: str, ttl: float) -> bool:
        client = await self._client()
        return bool(await client.expire(self._key(key), max(1, int(ttl))))

    async def persist(self, key: str) -> bool:
        client = await self._client()
        return bool(await client.persist(self._key(key)))

    async def sadd(self, key: str, *values: str) -> int:
        if not values:
            return 0
        client = await self._client()
        return int(await client.sadd(self._key(key), *values))

    async def smembers(self, key: str) -> List[str]:
        client = await self._client()
        return sorted(await client.smembers(self._key(key)))
