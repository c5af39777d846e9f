"""In-process cache with per-key expiry."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from .base import KeyValueCache


@dataclass
class _Entry:
    value: Optional[str] = None
    members: Set[str] = field(default_factory=set)
    expires: Optional[float] = None


class MapCache(KeyValueCache):
    """Dictionary-backed cache.

    Not safe for concurrent use on its own; wrap in
    :class:`~blobnet.indexing.cache.sync.MutexCache` when shared.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._data: Dict[str, _Entry] = {}
        self._clock = clock

    def _live(self, key: str) -> Optional[_Entry]:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires is not None and entry.expires <= self._clock():
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[str]:
        entry = self._live(key)
        return entry.value if entry else None

    async def set(self, key: str, value: str, ttl: Optional[float] = None) -> None:
        expires = self._clock() + ttl if ttl and ttl > 0 else None
        self._data[key] = _Entry(value=value, expires=expires)

    async def expire(self, key: str, ttl: float) -> bool:
        entry = self._live(key)
        if entry is None:
            return False
        entry.expires = self._clock() + ttl
        return True

    async def persist(self, key: str) -> bool:
        entry = self._live(key)
        if entry is None or entry.expires is None:
            return False
        entry.expires = None
        return True

    async def sadd(self, key: str, *values: str) -> int:
        entry = self._live(key)
        if entry is None:
            entry = self._data[key] = _Entry()
        written = 0
        for value in values:
            if value not in entry.members:
                entry.members.add(value)
                written += 1
        return written

    async def smembers(self, key: str) -> List[str]:
        entry = self._live(key)
        return sorted(entry.members) if entry else []

    async def close(self) -> None:
        return None

    def __len__(self) -> int:
        return len(self._data)
