"""Tests for configuration loading."""

from blobnet.config import load_config
from blobnet.indexing.cache import get_cache
from blobnet.indexing.cache.redis import RedisCache
from blobnet.transports import HttpConnection, InMemoryConnection, get_connection
from blobnet.server import Server
from blobnet.ucan import Signer


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
transport:
  backend: inmemory
indexing:
  cache:
    backend: none
    ttl: 60
query:
  attempts: 3
  interval: 0.1
"""
    )
    monkeypatch.setenv("BLOBNET_CONFIG", str(config_path))
    monkeypatch.delenv("BLOBNET_CACHE", raising=False)
    monkeypatch.delenv("BLOBNET_TRANSPORT", raising=False)
    monkeypatch.delenv("BLOBNET_REDIS_URL", raising=False)

    config = load_config()
    assert config.transport.backend == "inmemory"
    assert config.indexing.cache.backend == "none"
    assert config.indexing.cache.ttl == 60
    assert config.query.attempts == 3
    assert config.query.interval == 0.1


def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("BLOBNET_CONFIG", "BLOBNET_CACHE", "BLOBNET_TRANSPORT", "BLOBNET_REDIS_URL"):
        monkeypatch.delenv(name, raising=False)

    config = load_config()
    assert config.transport.backend == "http"
    assert config.indexing.cache.backend == "memory"
    assert config.discovery.crawl_delay == 0.2


def test_env_overrides_file(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("transport:\n  backend: http\n")
    monkeypatch.setenv("BLOBNET_TRANSPORT", "INMEMORY")
    monkeypatch.setenv("BLOBNET_REDIS_URL", "redis://:secret@cachehost:6390/2")

    config = load_config(str(config_path))
    assert config.transport.backend == "inmemory"
    assert config.indexing.cache.backend == "redis"
    redis = config.indexing.cache.redis
    assert (redis.host, redis.port, redis.db, redis.password) == ("cachehost", 6390, 2, "secret")

    cache = get_cache(config=config.indexing.cache, namespace="providers")
    assert isinstance(cache, RedisCache)
    assert cache.port == 6390


def test_get_connection_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("transport:\n  backend: inmemory\n")
    monkeypatch.setenv("BLOBNET_CONFIG", str(config_path))
    monkeypatch.delenv("BLOBNET_TRANSPORT", raising=False)
    server = Server(Signer.generate())

    assert isinstance(get_connection(server, "http://svc.test/"), InMemoryConnection)
    assert isinstance(get_connection(server, "http://svc.test/", backend="http"), HttpConnection)
