"""Indexing service: caches and resolves claims about content.

Claims reach the service three ways:

* ``claim/cache``: a provider (the storage node) hands over a claim it
  issued, which is cached together with a provider record.
* ``assert/index``: a client publishes an index claim. The index archive is
  located through its location commitments, fetched, verified and decoded;
  every slice digest is then advertised as pointing at the claim.
* ``assert/equals``: a client publishes an equivalence claim.

Queries resolve provider records (providers cache, then the discovery
layer) and claims (claims cache, then the local datastore, then the
provider's claims endpoint). With the caches disabled, newly published
claims only become visible once the discovery layer has crawled them.
"""

from __future__ import annotations

import base64
import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence, Tuple

import httpx
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from .. import archive, blobindex
from ..blobindex import ShardedDagIndex
from ..capabilities import CacheCaveats, Empty, EqualsCaveats, IndexCaveats, LocationCaveats
from ..config import IndexingConfig, QueryConfig
from ..digest import Link, format_digest, parse_digest
from ..errors import BlobnetError, IntegrityError, NotYetConvergedError, TransportError
from ..polling import poll_until_converged
from ..server import Invocation, Server, Success
from ..transfer import TransferClient
from ..ucan import Ability, Delegation, Signer, view
from .cache import KeyValueCache, MapCache, MutexCache
from .query import Query, QueryResult
from .records import ProviderRecord, claims_address

if TYPE_CHECKING:
    from ..discovery import DiscoveryService

logger = logging.getLogger(__name__)

CAR_MEDIA_TYPE = "application/vnd.ipld.car"


def _encode_claim(claim: Delegation) -> str:
    return base64.b64encode(archive.encode([claim.link], claim.export())).decode("ascii")


def _decode_claim(link: Link, data: bytes) -> Delegation:
    blocks = {block.link: block.data for block in archive.blocks(data)}
    return view(link, blocks)


class IndexingService:
    """Claim cache, index publisher and query engine."""

    def __init__(
        self,
        identity: Signer,
        public_url: str = "http://indexer.blobnet.local",
        providers: Optional[KeyValueCache] = None,
        claims: Optional[KeyValueCache] = None,
        indexes: Optional[KeyValueCache] = None,
        discovery: Optional["DiscoveryService"] = None,
        client: Optional[httpx.AsyncClient] = None,
        cache_ttl: float = 3600,
        lookup: Optional[QueryConfig] = None,
        debug: bool = False,
    ) -> None:
        self.identity = identity
        self.public_url = public_url.rstrip("/")
        self.providers = providers if providers is not None else MutexCache(MapCache())
        self.claims = claims if claims is not None else MutexCache(MapCache())
        self.indexes = indexes if indexes is not None else MutexCache(MapCache())
        self.discovery = discovery
        self.cache_ttl = cache_ttl
        self.lookup = lookup or QueryConfig()
        self.datastore: Dict[Link, Delegation] = {}
        self.fetcher = TransferClient(client)

        self.server = Server(identity, debug=debug)
        self.server.register(Ability.CLAIM_CACHE, CacheCaveats, self._cache_claim)
        self.server.register(Ability.ASSERT_INDEX, IndexCaveats, self._publish_index)
        self.server.register(Ability.ASSERT_EQUALS, EqualsCaveats, self._publish_equals)
        self.app = Starlette(
            debug=debug,
            routes=[
                *self.server.routes(),
                Route("/claims", self._query_endpoint, methods=["GET"]),
                Route("/claims/{link}", self._claim_endpoint, methods=["GET"]),
            ],
        )

    @classmethod
    def from_config(
        cls,
        identity: Signer,
        config: IndexingConfig,
        providers: KeyValueCache,
        claims: KeyValueCache,
        indexes: KeyValueCache,
        **kwargs,
    ) -> "IndexingService":
        return cls(
            identity,
            public_url=config.public_url,
            providers=providers,
            claims=claims,
            indexes=indexes,
            cache_ttl=config.cache.ttl,
            **kwargs,
        )

    @property
    def did(self) -> str:
        return self.identity.did

    # ------------------------------------------------------------------
    # Invocation handlers
    # ------------------------------------------------------------------

    async def _cache_claim(self, inv: Invocation[CacheCaveats]) -> Success:
        nb = inv.caveats
        try:
            claim = view(nb.claim, inv.blocks)
        except ValueError as exc:
            raise IntegrityError(f"claim {nb.claim} not attached: {exc}") from exc
        record = self._record_for(claim, nb.provider.addresses, claim.issuer)
        if record is None:
            raise IntegrityError(f"cannot cache {claim.capabilities[0].can.value} claims")
        await self._cache(claim, [record])
        logger.info(f"Cached {record.ability.value} claim {claim.link} from {claim.issuer}")
        return Success(Empty())

    async def _publish_index(self, inv: Invocation[IndexCaveats]) -> Success:
        nb = inv.caveats
        claim = inv.delegation
        index = await self._resolve_index(nb.index)
        if index.content != nb.content:
            raise IntegrityError(
                f"index {nb.index} describes {index.content}, claim names {nb.content}"
            )
        self.datastore[claim.link] = claim
        records = [
            ProviderRecord(
                provider=self.did,
                addresses=[claims_address(self.public_url)],
                claim=claim.link,
                ability=Ability.ASSERT_INDEX,
                content=digest,
            )
            for digest in self._advertised_digests(nb.content, index)
        ]
        await self._cache(claim, records)
        await self._announce(records)
        logger.info(f"Published index claim {claim.link} for {nb.content} ({len(records)} digests)")
        return Success(Empty())

    async def _publish_equals(self, inv: Invocation[EqualsCaveats]) -> Success:
        nb = inv.caveats
        claim = inv.delegation
        self.datastore[claim.link] = claim
        records = [
            ProviderRecord(
                provider=self.did,
                addresses=[claims_address(self.public_url)],
                claim=claim.link,
                ability=Ability.ASSERT_EQUALS,
                content=nb.content,
            )
        ]
        await self._cache(claim, records)
        await self._announce(records)
        logger.info(f"Published equals claim {claim.link}: {format_digest(nb.content)} = {nb.equals}")
        return Success(Empty())

    @staticmethod
    def _advertised_digests(content: Link, index: ShardedDagIndex) -> List[bytes]:
        digests = index.digests()
        if content.digest not in digests:
            digests.insert(0, content.digest)
        return digests

    def _record_for(
        self, claim: Delegation, addresses: Sequence[str], provider: str
    ) -> Optional[ProviderRecord]:
        cap = claim.capabilities[0]
        if cap.can is Ability.ASSERT_LOCATION:
            nb = LocationCaveats.model_validate(cap.nb)
            return ProviderRecord(
                provider=provider,
                addresses=list(addresses),
                claim=claim.link,
                ability=cap.can,
                content=nb.content,
                space=nb.space,
            )
        if cap.can is Ability.ASSERT_EQUALS:
            nb = EqualsCaveats.model_validate(cap.nb)
            return ProviderRecord(
                provider=provider,
                addresses=list(addresses),
                claim=claim.link,
                ability=cap.can,
                content=nb.content,
            )
        return None

    async def _cache(self, claim: Delegation, records: Iterable[ProviderRecord]) -> None:
        await self.claims.set(str(claim.link), _encode_claim(claim), self.cache_ttl)
        for record in records:
            key = format_digest(record.content)
            await self.providers.sadd(key, record.to_json())
            await self.providers.expire(key, self.cache_ttl)

    async def _announce(self, records: Sequence[ProviderRecord]) -> None:
        if self.discovery is not None and records:
            await self.discovery.announce(records)

    async def _resolve_index(self, link: Link) -> ShardedDagIndex:
        """Locate, fetch and decode the index archive ``link``.

        Location commitments may not be discoverable yet when the caches are
        disabled, so the lookup is polled within the configured budget.
        """

        async def attempt() -> Optional[Tuple[ShardedDagIndex, bytes]]:
            return await self._load_index(link, None)

        try:
            index, _ = await poll_until_converged(
                attempt,
                attempts=self.lookup.attempts,
                interval=self.lookup.interval,
                timeout=self.lookup.timeout,
                is_converged=lambda found: found is not None,
            )
        except NotYetConvergedError as exc:
            raise NotYetConvergedError(
                f"no location commitment found for index {link}", attempts=exc.attempts
            ) from exc
        return index

    # ------------------------------------------------------------------
    # Query engine
    # ------------------------------------------------------------------

    async def query(self, query: Query) -> QueryResult:
        """Resolve every claim and index reachable from ``query.hashes``."""
        spaces = query.spaces()
        result = QueryResult()
        for digest in query.hashes:
            for record in await self.find_providers(digest):
                claim = await self.fetch_claim(record)
                if claim is None:
                    continue
                await self._include(claim, spaces, result)
        logger.info(
            f"Query for {len(query.hashes)} digest(s) returned "
            f"{len(result.claims)} claim(s), {len(result.indexes)} index(es)"
        )
        return result

    async def _include(
        self, claim: Delegation, spaces: Optional[frozenset], result: QueryResult
    ) -> None:
        cap = claim.capabilities[0]
        if cap.can is Ability.ASSERT_LOCATION:
            nb = LocationCaveats.model_validate(cap.nb)
            if spaces is None or nb.space in spaces:
                result.add_claim(claim.link, claim.export())
        elif cap.can is Ability.ASSERT_INDEX:
            nb = IndexCaveats.model_validate(cap.nb)
            locations = await self.find_locations(nb.index.digest, spaces)
            if not locations:
                logger.debug(f"Index {nb.index} has no location in scope, skipping {claim.link}")
                return
            loaded = await self._load_index(nb.index, spaces)
            if loaded is None:
                return
            index, data = loaded
            result.add_claim(claim.link, claim.export())
            result.add_index(nb.index, data)
            for location in locations:
                result.add_claim(location.link, location.export())
            for shard, _ in index.iter_shards():
                for location in await self.find_locations(shard, spaces):
                    result.add_claim(location.link, location.export())
        elif cap.can is Ability.ASSERT_EQUALS:
            nb = EqualsCaveats.model_validate(cap.nb)
            locations = await self.find_locations(nb.equals.digest, spaces)
            if spaces is not None and not locations:
                return
            result.add_claim(claim.link, claim.export())
            for location in locations:
                result.add_claim(location.link, location.export())

    async def find_providers(self, digest: bytes) -> List[ProviderRecord]:
        key = format_digest(digest)
        cached = await self.providers.smembers(key)
        if cached:
            logger.debug(f"Providers cache hit for {key}")
            return [ProviderRecord.from_json(text) for text in cached]
        logger.debug(f"Providers cache miss for {key}")
        if self.discovery is None:
            return []
        records = await self.discovery.find(digest)
        if records:
            await self.providers.sadd(key, *(record.to_json() for record in records))
            await self.providers.expire(key, self.cache_ttl)
        return records

    async def fetch_claim(self, record: ProviderRecord) -> Optional[Delegation]:
        """Claim named by ``record``: claims cache, datastore, then the provider."""
        key = str(record.claim)
        cached = await self.claims.get(key)
        if cached is not None:
            logger.debug(f"Claims cache hit for {key}")
            return _decode_claim(record.claim, base64.b64decode(cached))
        claim = self.datastore.get(record.claim)
        if claim is not None:
            return claim

        for url in record.claim_urls():
            try:
                data = await self.fetcher.fetch(url)
                claim = _decode_claim(record.claim, data)
            except (BlobnetError, ValueError) as exc:
                logger.warning(f"Failed to fetch claim {key} from {url}: {exc}")
                continue
            await self.claims.set(key, _encode_claim(claim), self.cache_ttl)
            return claim
        logger.warning(f"Claim {key} unavailable from {record.provider}")
        return None

    async def find_locations(
        self, digest: bytes, spaces: Optional[frozenset]
    ) -> List[Delegation]:
        """Location commitments for ``digest``, restricted to ``spaces`` when given."""
        found: List[Delegation] = []
        for record in await self.find_providers(digest):
            if record.ability is not Ability.ASSERT_LOCATION:
                continue
            if spaces is not None and record.space not in spaces:
                continue
            claim = await self.fetch_claim(record)
            if claim is None:
                continue
            nb = LocationCaveats.model_validate(claim.capabilities[0].nb)
            if nb.content != digest or (spaces is not None and nb.space not in spaces):
                continue
            if claim not in found:
                found.append(claim)
        return found

    async def _load_index(
        self, link: Link, spaces: Optional[frozenset]
    ) -> Optional[Tuple[ShardedDagIndex, bytes]]:
        """Decoded index and its archive bytes, or ``None`` if it cannot be fetched."""
        data = await self._index_bytes(link, spaces)
        if data is None:
            return None
        return blobindex.extract(data), data

    async def _index_bytes(self, link: Link, spaces: Optional[frozenset]) -> Optional[bytes]:
        key = str(link)
        cached = await self.indexes.get(key)
        if cached is not None:
            logger.debug(f"Indexes cache hit for {key}")
            return base64.b64decode(cached)

        for location in await self.find_locations(link.digest, spaces):
            nb = LocationCaveats.model_validate(location.capabilities[0].nb)
            for url in nb.location:
                try:
                    data = await self.fetcher.fetch(url, link.digest, nb.range)
                except (TransportError, IntegrityError) as exc:
                    logger.warning(f"Failed to fetch index {key} from {url}: {exc}")
                    continue
                await self.indexes.set(key, base64.b64encode(data).decode("ascii"), self.cache_ttl)
                return data
        logger.debug(f"Index {key} could not be fetched")
        return None

    # ------------------------------------------------------------------
    # HTTP endpoints
    # ------------------------------------------------------------------

    async def _query_endpoint(self, request: Request) -> Response:
        try:
            query = Query(
                hashes=[parse_digest(text) for text in request.query_params.getlist("multihash")],
                match={"subject": request.query_params.getlist("spaces")},
            )
        except (ValueError, ValidationError) as exc:
            return JSONResponse({"error": str(exc)}, status_code=400)
        if not query.hashes:
            return JSONResponse({"error": "missing multihash"}, status_code=400)
        result = await self.query(query)
        return Response(result.archive(), media_type=CAR_MEDIA_TYPE)

    async def _claim_endpoint(self, request: Request) -> Response:
        try:
            link = Link.parse(request.path_params["link"])
        except ValueError as exc:
            return JSONResponse({"error": str(exc)}, status_code=400)
        claim = self.datastore.get(link)
        if claim is None:
            return JSONResponse({"error": "not found"}, status_code=404)
        return Response(archive.encode([claim.link], claim.export()), media_type=CAR_MEDIA_TYPE)

    def use_http(self, client: httpx.AsyncClient) -> None:
        """Fetch claims and index archives through ``client``."""
        self.fetcher = TransferClient(client)

    async def close(self) -> None:
        await self.fetcher.close()
        for cache in (self.providers, self.claims, self.indexes):
            await cache.close()
