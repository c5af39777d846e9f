"""Connection factory and initialization."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Optional

import httpx

from ..config import BlobnetConfig, load_config
from .base import BaseConnection
from .http import HttpConnection
from .inmemory import InMemoryConnection

if TYPE_CHECKING:
    from ..server import Server


def get_connection(
    server: "Server",
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    backend: Optional[str] = None,
    config: Optional[BlobnetConfig] = None,
) -> BaseConnection:
    """Factory returning a connection to ``server`` using the configured backend."""

    config = config or load_config()
    backend = (
        backend
        or os.getenv("BLOBNET_TRANSPORT")
        or config.transport.backend
    ).lower()

    if backend == "inmemory":
        return InMemoryConnection(server)
    elif backend == "http":
        return HttpConnection(server.did, url, client=client)
    else:
        raise ValueError(f"Unsupported transport backend: {backend}")


__all__ = ["BaseConnection", "HttpConnection", "InMemoryConnection", "get_connection"]
