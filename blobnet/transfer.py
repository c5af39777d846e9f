"""Byte transfer to allocated addresses and from committed locations."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from .capabilities import Address, Range
from .digest import format_digest, verify_digest
from .errors import TransportError

logger = logging.getLogger(__name__)


class TransferClient:
    """PUT/GET of blob bytes over HTTP.

    Any non-success status raises :class:`TransportError`; bytes whose digest
    does not match the expected digest raise
    :class:`~blobnet.errors.IntegrityError`.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0) -> None:
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def put(self, address: Address, data: bytes, digest: Optional[bytes] = None) -> int:
        """Upload ``data`` to ``address`` and return the response status."""
        if digest is not None:
            verify_digest(data, digest)
        client = await self._http()
        try:
            response = await client.put(address.url, content=data, headers=address.headers)
        except httpx.HTTPError as exc:
            raise TransportError(f"PUT {address.url} failed: {exc}") from exc
        if response.status_code != 200:
            raise TransportError(
                f"PUT {address.url} returned {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        logger.info(f"Transferred {len(data)} bytes to {address.url}")
        return response.status_code

    async def fetch(
        self,
        url: str,
        digest: Optional[bytes] = None,
        byte_range: Optional[Range] = None,
    ) -> bytes:
        """Download ``url``, checking the bytes against ``digest`` when given."""
        headers = {}
        if byte_range is not None:
            end = "" if byte_range.length is None else str(byte_range.offset + byte_range.length - 1)
            headers["Range"] = f"bytes={byte_range.offset}-{end}"
        client = await self._http()
        try:
            response = await client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            raise TransportError(f"GET {url} failed: {exc}") from exc
        if response.status_code not in (200, 206):
            raise TransportError(
                f"GET {url} returned {response.status_code}", status_code=response.status_code
            )
        data = response.content
        if digest is not None:
            verify_digest(data, digest)
            logger.debug(f"Fetched {format_digest(digest)} from {url}")
        return data

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
