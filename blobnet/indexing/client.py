"""Client for publishing claims to, and querying, an indexing service."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from ..capabilities import EqualsCaveats, IndexCaveats, to_nb
from ..digest import Link, format_digest
from ..errors import AuthorizationError, StructuredFailureError, TransportError
from ..receipts import Failure
from ..transports.base import BaseConnection
from ..ucan import Ability, Delegation, Signer, capability, invoke
from .query import Query, QueryResult

logger = logging.getLogger(__name__)


class IndexingClient:
    """Publishes claims over ``connection`` and queries over HTTP at ``url``."""

    def __init__(
        self,
        connection: BaseConnection,
        url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        self.connection = connection
        self.url = url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def service(self) -> str:
        """DID of the indexing service."""
        return self.connection.audience

    async def publish_index_claim(
        self,
        issuer: Signer,
        content: Link,
        index: Link,
        proofs: Sequence[Delegation] = (),
    ) -> Delegation:
        """Assert that ``index`` describes ``content``; returns the claim.

        Location commitments for the content shards and the index archive
        must already be published.
        """
        caveats = IndexCaveats(content=content, index=index)
        return await self._publish(issuer, Ability.ASSERT_INDEX, to_nb(caveats), proofs)

    async def publish_equals_claim(
        self,
        issuer: Signer,
        content: bytes,
        equals: Link,
        proofs: Sequence[Delegation] = (),
    ) -> Delegation:
        """Assert that the blob ``content`` is the same data as ``equals``."""
        caveats = EqualsCaveats(content=content, equals=equals)
        return await self._publish(issuer, Ability.ASSERT_EQUALS, to_nb(caveats), proofs)

    async def _publish(
        self,
        issuer: Signer,
        ability: Ability,
        nb: Dict[str, Any],
        proofs: Sequence[Delegation],
    ) -> Delegation:
        invocation = invoke(issuer, self.service, capability(ability, self.service, nb), proofs)
        receipt = await self.connection.execute(invocation)
        if isinstance(receipt.out, Failure):
            failure = receipt.out
            logger.warning(f"{ability.value} rejected: {failure.name}: {failure.message}")
            if failure.name == AuthorizationError.failure_name:
                raise AuthorizationError(failure.message)
            raise StructuredFailureError(failure)
        logger.info(f"{ability.value} accepted as {invocation.link}")
        return invocation

    async def query_claims(self, query: Query) -> QueryResult:
        """Fetch the claims and indexes the service holds for ``query``."""
        params = {
            "multihash": [format_digest(digest) for digest in query.hashes],
            "spaces": list(query.match.subject),
        }
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        url = f"{self.url}/claims"
        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise TransportError(f"GET {url} failed: {exc}") from exc
        if response.status_code != 200:
            raise TransportError(
                f"GET {url} returned {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        try:
            return QueryResult.extract(response.content)
        except ValueError as exc:
            raise TransportError(f"malformed query result from {url}: {exc}") from exc

    async def close(self) -> None:
        await self.connection.disconnect()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
