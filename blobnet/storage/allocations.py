"""Allocation records kept by the storage node, keyed by ``(space, digest)``."""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Iterator, Optional, Tuple

from ..digest import Link

AllocationKey = Tuple[str, bytes]


@dataclass(frozen=True)
class AllocationRecord:
    space: str
    digest: bytes
    size: int
    expires: int
    cause: Link

    def is_expired(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return self.expires <= now


class _KeyLock:
    """Lock shared by every caller currently interested in one key."""

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class AllocationStore:
    """Allocation records plus the per-key locks that serialise allocation.

    A key's lock lives only while some caller holds or waits for it.
    """

    def __init__(self) -> None:
        self._records: Dict[AllocationKey, AllocationRecord] = {}
        self._locks: Dict[AllocationKey, _KeyLock] = {}

    @asynccontextmanager
    async def lock(self, space: str, digest: bytes) -> AsyncIterator[None]:
        """Hold the lock guarding allocation of ``digest`` in ``space``."""
        key = (space, digest)
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if not entry.users:
                del self._locks[key]

    @property
    def locked_keys(self) -> int:
        return len(self._locks)

    def put(self, record: AllocationRecord) -> None:
        self._records[(record.space, record.digest)] = record

    def get(self, space: str, digest: bytes) -> Optional[AllocationRecord]:
        """The record for ``(space, digest)``, expired or not."""
        return self._records.get((space, digest))

    def active(self, space: str, digest: bytes, now: Optional[float] = None) -> Optional[AllocationRecord]:
        record = self._records.get((space, digest))
        if record is None or record.is_expired(now):
            return None
        return record

    def for_digest(self, digest: bytes, now: Optional[float] = None) -> Iterator[AllocationRecord]:
        """Unexpired allocations of ``digest`` across every space."""
        for (_, key_digest), record in self._records.items():
            if key_digest == digest and not record.is_expired(now):
                yield record

    def __len__(self) -> int:
        return len(self._records)
