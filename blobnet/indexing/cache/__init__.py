"""Cache backends for the indexing service."""

from __future__ import annotations

import os
from typing import Optional

from ...config import CacheConfig
from .base import KeyValueCache
from .blackhole import BlackholeCache
from .memory import MapCache
from .sync import MutexCache


def get_cache(
    backend: Optional[str] = None,
    config: Optional[CacheConfig] = None,
    namespace: str = "",
) -> KeyValueCache:
    """Factory for cache instances.

    ``backend`` wins over ``BLOBNET_CACHE`` which wins over ``config``.
    Every backend except ``redis`` is wrapped for concurrent use; ``namespace``
    keeps several Redis-backed caches apart on one server.
    """
    config = config or CacheConfig()
    backend = (backend or os.getenv("BLOBNET_CACHE") or config.backend).lower()

    if backend == "memory":
        return MutexCache(MapCache())
    if backend == "none":
        return MutexCache(BlackholeCache())
    if backend == "redis":
        from .redis import RedisCache

        return RedisCache.from_config(config.redis, namespace)
    raise ValueError(f"Unsupported cache backend: {backend}")


__all__ = ["KeyValueCache", "MapCache", "BlackholeCache", "MutexCache", "get_cache"]
