"""Physical byte store behind the storage node."""

from __future__ import annotations

import abc
import logging
from typing import Dict, Optional

from ..digest import format_digest, verify_digest
from ..errors import BlobNotFoundError

logger = logging.getLogger(__name__)


class BlobStore(metaclass=abc.ABCMeta):
    """Content-addressed blob storage."""

    @abc.abstractmethod
    async def put(self, digest: bytes, data: bytes) -> None:
        """Store ``data`` under ``digest``; raises IntegrityError on mismatch."""
        raise NotImplementedError

    @abc.abstractmethod
    async def get(self, digest: bytes, offset: int = 0, length: Optional[int] = None) -> bytes:
        """Return stored bytes, optionally a byte range; raises BlobNotFoundError."""
        raise NotImplementedError

    @abc.abstractmethod
    async def size(self, digest: bytes) -> Optional[int]:
        """Size of the stored blob, or ``None`` if absent."""
        raise NotImplementedError

    async def has(self, digest: bytes) -> bool:
        return await self.size(digest) is not None


class MapBlobStore(BlobStore):
    """Dictionary-backed blob store."""

    def __init__(self) -> None:
        self._data: Dict[bytes, bytes] = {}

    async def put(self, digest: bytes, data: bytes) -> None:
        verify_digest(data, digest)
        self._data[digest] = bytes(data)
        logger.debug(f"Stored {len(data)} bytes as {format_digest(digest)}")

    async def get(self, digest: bytes, offset: int = 0, length: Optional[int] = None) -> bytes:
        try:
            data = self._data[digest]
        except KeyError:
            raise BlobNotFoundError(f"blob {format_digest(digest)} not found") from None
        end = len(data) if length is None else offset + length
        return data[offset:end]

    async def size(self, digest: bytes) -> Optional[int]:
        data = self._data.get(digest)
        return None if data is None else len(data)
