"""Key/value cache interface used by the indexing service."""

from __future__ import annotations

from typing import List, Optional, Protocol


class KeyValueCache(Protocol):
    """Subset of Redis semantics the indexing service relies on.

    A key that was never written and a key whose expiry has passed are the
    same miss: ``get`` returns ``None`` and ``smembers`` returns ``[]``.
    """

    async def get(self, key: str) -> Optional[str]:
        """Return the string stored at ``key``."""

    async def set(self, key: str, value: str, ttl: Optional[float] = None) -> None:
        """Store ``value`` at ``key``, expiring after ``ttl`` seconds if given."""

    async def expire(self, key: str, ttl: float) -> bool:
        """Set an expiry on an existing key; ``False`` if the key is missing."""

    async def persist(self, key: str) -> bool:
        """Remove the expiry of ``key``; ``False`` if it had none."""

    async def sadd(self, key: str, *values: str) -> int:
        """Add members to the set at ``key``; returns how many were new."""

    async def smembers(self, key: str) -> List[str]:
        """Members of the set at ``key`` in sorted order."""

    async def close(self) -> None:
        """Release any connection held by the cache."""
