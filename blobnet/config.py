from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel


class RedisConfig(BaseModel):
    """Connection settings for the Redis cache backend."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TransportConfig(BaseModel):
    """How invocations reach a service."""

    backend: Literal["inmemory", "http"] = "http"


class StorageConfig(BaseModel):
    """Storage node settings."""

    public_url: str = "http://storage.blobnet.local"
    allocation_ttl: int = 86400


class CacheConfig(BaseModel):
    """Claim, provider and index caches of the indexing service."""

    backend: Literal["memory", "none", "redis"] = "memory"
    ttl: int = 3600
    redis: RedisConfig = RedisConfig()


class IndexingConfig(BaseModel):
    """Indexing service settings."""

    public_url: str = "http://indexer.blobnet.local"
    cache: CacheConfig = CacheConfig()


class DiscoveryConfig(BaseModel):
    """Announce/crawl layer settings."""

    crawl_delay: float = 0.2


class QueryConfig(BaseModel):
    """Retry budget for queries under eventual consistency."""

    attempts: int = 10
    interval: float = 0.25
    timeout: float = 30.0


class BlobnetConfig(BaseModel):
    """Top-level configuration model."""

    transport: TransportConfig = TransportConfig()
    storage: StorageConfig = StorageConfig()
    indexing: IndexingConfig = IndexingConfig()
    discovery: DiscoveryConfig = DiscoveryConfig()
    query: QueryConfig = QueryConfig()
    debug: bool = False


def load_config(path: Optional[str] = None) -> BlobnetConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to BLOBNET_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("BLOBNET_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = BlobnetConfig(**data)
    else:
        config = BlobnetConfig()

    env_transport = os.getenv("BLOBNET_TRANSPORT")
    if env_transport:
        config.transport.backend = env_transport.lower()
    env_cache = os.getenv("BLOBNET_CACHE")
    if env_cache:
        config.indexing.cache.backend = env_cache.lower()
    env_redis = os.getenv("BLOBNET_REDIS_URL")
    if env_redis:
        config.indexing.cache.backend = "redis"
        config.indexing.cache.redis = _redis_from_url(env_redis)
    return config


def _redis_from_url(url: str) -> RedisConfig:
    """Parse ``redis://[:password@]host[:port][/db]`` into a RedisConfig."""
    rest = url.split("://", 1)[-1]
    password = None
    if "@" in rest:
        auth, rest = rest.rsplit("@", 1)
        password = auth.split(":", 1)[-1] or None
    host_port, _, db = rest.partition("/")
    host, _, port = host_port.partition(":")
    return RedisConfig(
        host=host or "localhost",
        port=int(port) if port else 6379,
        db=int(db) if db else 0,
        password=password,
    )
