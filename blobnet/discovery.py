"""Announce/crawl layer standing in for a peer-to-peer content routing network.

Providers announce :class:`ProviderRecord` batches. Announcements are not
visible to :meth:`DiscoveryService.find` until a crawl cycle ingests them,
which happens ``crawl_delay`` seconds after the first pending announcement.
This is what makes an indexing service without caches eventually consistent.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from .config import DiscoveryConfig
from .indexing.records import ProviderRecord, same_claim

logger = logging.getLogger(__name__)


class DiscoveryService:
    """In-process announce queue plus crawled provider index."""

    def __init__(self, crawl_delay: float = 0.2) -> None:
        self.crawl_delay = crawl_delay
        self._pending: List[ProviderRecord] = []
        self._index: Dict[bytes, List[ProviderRecord]] = {}
        self._lock = asyncio.Lock()
        self._crawler: Optional[asyncio.Task] = None
        self._closed = False

    @classmethod
    def from_config(cls, config: DiscoveryConfig) -> "DiscoveryService":
        return cls(crawl_delay=config.crawl_delay)

    async def announce(self, records: Sequence[ProviderRecord]) -> None:
        """Queue ``records`` for the next crawl."""
        if self._closed:
            raise RuntimeError("discovery service is closed")
        async with self._lock:
            self._pending.extend(records)
            logger.debug(f"Queued {len(records)} announcement(s), {len(self._pending)} pending")
            if self._crawler is None or self._crawler.done():
                self._crawler = asyncio.create_task(self._crawl_later())

    async def find(self, digest: bytes) -> List[ProviderRecord]:
        """Crawled records announced under ``digest``."""
        async with self._lock:
            return list(self._index.get(digest, ()))

    async def flush(self) -> int:
        """Ingest every pending announcement now; returns how many were new."""
        async with self._lock:
            pending, self._pending = self._pending, []
            ingested = 0
            for record in pending:
                entries = self._index.setdefault(record.content, [])
                if any(same_claim(record, existing) for existing in entries):
                    continue
                entries.append(record)
                ingested += 1
        if ingested:
            logger.info(f"Crawl ingested {ingested} provider record(s)")
        return ingested

    async def _crawl_later(self) -> None:
        await asyncio.sleep(self.crawl_delay)
        await self.flush()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def close(self) -> None:
        self._closed = True
        if self._crawler is not None and not self._crawler.done():
            self._crawler.cancel()
            try:
                await self._crawler
            except asyncio.CancelledError:
                pass
        self._crawler = None
