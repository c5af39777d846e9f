"""Storage node: allocates space for blobs, accepts them and commits to their location.

The node answers two invocations on ``POST /``:

``blob/allocate``
    Reserve space for ``blob`` in ``space``. Allocation is serialised per
    ``(space, digest)`` so at most one concurrent caller is handed a write
    address. No address is returned when the blob was already accepted for
    the space or its bytes are already stored. While another caller's
    address is outstanding and the bytes are absent, allocation fails with
    ``AllocationPending``.

``blob/accept``
    Confirm that the bytes arrived, issue an ``assert/location`` commitment
    to the space, cache it on the indexing service and announce it to the
    discovery layer.

Blob bytes are written with ``PUT /blob/{digest}`` and read with
``GET /blob/{digest}`` (``Range`` supported). Commitments issued by the node
are served from ``GET /claims/{link}``.
"""

from __future__ import annotations

import logging
import re
import time
from typing import TYPE_CHECKING, Dict, Optional, Tuple

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from .. import archive
from ..capabilities import (
    AcceptCaveats,
    AcceptOk,
    Address,
    AllocateCaveats,
    AllocateOk,
    CacheCaveats,
    LocationCaveats,
    Provider,
    to_nb,
)
from ..config import StorageConfig
from ..digest import Link, format_digest, parse_digest
from ..errors import (
    AllocationExpiredError,
    AllocationNotFoundError,
    AllocationPendingError,
    BlobNotFoundError,
    BlobSizeMismatchError,
    IntegrityError,
)
from ..indexing.records import ProviderRecord, claims_address
from ..receipts import Failure
from ..server import Invocation, Server, Success
from ..transports.base import BaseConnection
from ..ucan import Ability, Delegation, Signer, capability, delegate, invoke
from .allocations import AllocationRecord, AllocationStore
from .blobstore import BlobStore, MapBlobStore

if TYPE_CHECKING:
    from ..discovery import DiscoveryService

logger = logging.getLogger(__name__)

CAR_MEDIA_TYPE = "application/vnd.ipld.car"
_RANGE = re.compile(r"^bytes=(\d+)-(\d*)$")


class StorageNode:
    """Storage node service and its HTTP surface."""

    def __init__(
        self,
        identity: Signer,
        public_url: str = "http://storage.blobnet.local",
        blobstore: Optional[BlobStore] = None,
        allocation_ttl: int = 86400,
        debug: bool = False,
    ) -> None:
        self.identity = identity
        self.public_url = public_url.rstrip("/")
        self.blobstore = blobstore or MapBlobStore()
        self.allocation_ttl = allocation_ttl
        self.allocations = AllocationStore()
        self.claims: Dict[Link, Delegation] = {}
        self._accepted: Dict[Tuple[str, bytes], Link] = {}

        self.indexing: Optional[BaseConnection] = None
        self.indexing_proof: Optional[Delegation] = None
        self.discovery: Optional["DiscoveryService"] = None

        self.server = Server(identity, debug=debug)
        self.server.register(Ability.BLOB_ALLOCATE, AllocateCaveats, self._allocate)
        self.server.register(Ability.BLOB_ACCEPT, AcceptCaveats, self._accept)
        self.app = Starlette(
            debug=debug,
            routes=[
                *self.server.routes(),
                Route("/blob/{digest}", self._blob_endpoint, methods=["GET", "PUT"]),
                Route("/claims/{link}", self._claim_endpoint, methods=["GET"]),
            ],
        )

    @classmethod
    def from_config(cls, identity: Signer, config: StorageConfig, debug: bool = False) -> "StorageNode":
        return cls(
            identity,
            public_url=config.public_url,
            allocation_ttl=config.allocation_ttl,
            debug=debug,
        )

    @property
    def did(self) -> str:
        return self.identity.did

    def connect_indexing(self, connection: BaseConnection, proof: Delegation) -> None:
        """Publish accepted commitments to the indexing service behind ``connection``."""
        self.indexing = connection
        self.indexing_proof = proof

    def connect_discovery(self, discovery: "DiscoveryService") -> None:
        self.discovery = discovery

    def blob_url(self, digest: bytes) -> str:
        return f"{self.public_url}/blob/{format_digest(digest)}"

    # ------------------------------------------------------------------
    # Invocation handlers
    # ------------------------------------------------------------------

    async def _allocate(self, inv: Invocation[AllocateCaveats]) -> Success:
        nb = inv.caveats
        space, digest, size = nb.space, nb.blob.digest, nb.blob.size
        async with self.allocations.lock(space, digest):
            if (space, digest) in self._accepted:
                logger.info(f"{format_digest(digest)} already accepted for {space}")
                return Success(AllocateOk(size=0))

            now = int(time.time())
            pending = self.allocations.active(space, digest, now)
            if await self.blobstore.has(digest):
                if pending is None:
                    self.allocations.put(
                        AllocationRecord(space, digest, size, now + self.allocation_ttl, nb.cause)
                    )
                logger.info(f"{format_digest(digest)} already stored, allocated for {space}")
                return Success(AllocateOk(size=0 if pending else size))
            if pending is not None:
                raise AllocationPendingError(
                    f"{format_digest(digest)} is allocated in {space} until "
                    f"{pending.expires} and awaiting its bytes"
                )

            expires = now + self.allocation_ttl
            self.allocations.put(AllocationRecord(space, digest, size, expires, nb.cause))
            address = Address(
                url=self.blob_url(digest),
                headers={"Content-Length": str(size)},
                expires=expires,
            )
            logger.info(f"Allocated {size} bytes for {format_digest(digest)} in {space}")
            return Success(AllocateOk(size=size, address=address))

    async def _accept(self, inv: Invocation[AcceptCaveats]) -> Success:
        """Commit to the location of an allocated and written blob.

        ``expires`` must not have passed unless the blob was already accepted.
        ``_put`` only references the transfer task and is not resolved.
        """
        nb = inv.caveats
        space, digest = nb.space, nb.blob.digest
        if self.allocations.get(space, digest) is None:
            raise AllocationNotFoundError(
                f"no allocation for {format_digest(digest)} in {space}"
            )
        existing = self._accepted.get((space, digest))
        if existing is None and nb.expires <= time.time():
            raise AllocationExpiredError(
                f"allocation of {format_digest(digest)} in {space} expired at {nb.expires}"
            )
        stored = await self.blobstore.size(digest)
        if stored is None:
            raise BlobNotFoundError(f"blob {format_digest(digest)} was never written")
        if stored != nb.blob.size:
            raise BlobSizeMismatchError(
                f"blob {format_digest(digest)} is {stored} bytes, expected {nb.blob.size}"
            )

        if existing is not None:
            claim = self.claims[existing]
        else:
            claim = await self._commit(space, digest)
        return Success(AcceptOk(site=claim.link), blocks=list(claim.export()))

    async def _commit(self, space: str, digest: bytes) -> Delegation:
        caveats = LocationCaveats(space=space, content=digest, location=[self.blob_url(digest)])
        claim = delegate(
            self.identity,
            space,
            [capability(Ability.ASSERT_LOCATION, self.did, to_nb(caveats))],
        )
        self.claims[claim.link] = claim
        self._accepted[(space, digest)] = claim.link
        logger.info(f"Issued location commitment {claim.link} for {format_digest(digest)}")

        await self._publish(claim)
        if self.discovery is not None:
            await self.discovery.announce(
                [
                    ProviderRecord(
                        provider=self.did,
                        addresses=[claims_address(self.public_url)],
                        claim=claim.link,
                        ability=Ability.ASSERT_LOCATION,
                        content=digest,
                        space=space,
                    )
                ]
            )
        return claim

    async def _publish(self, claim: Delegation) -> None:
        """Cache ``claim`` on the indexing service with ``claim/cache``."""
        if self.indexing is None:
            return
        audience = self.indexing.audience
        caveats = CacheCaveats(
            claim=claim.link,
            provider=Provider(addresses=[claims_address(self.public_url)]),
        )
        proofs = [self.indexing_proof] if self.indexing_proof is not None else []
        invocation = invoke(
            self.identity, audience, capability(Ability.CLAIM_CACHE, audience, to_nb(caveats)), proofs
        )
        receipt = await self.indexing.execute(invocation, attachments=claim.export())
        if isinstance(receipt.out, Failure):
            receipt.out.unwrap()
        logger.info(f"Cached {claim.link} on {audience}")

    # ------------------------------------------------------------------
    # HTTP endpoints
    # ------------------------------------------------------------------

    async def _blob_endpoint(self, request: Request) -> Response:
        try:
            digest = parse_digest(request.path_params["digest"])
        except ValueError as exc:
            return JSONResponse({"error": str(exc)}, status_code=400)
        if request.method == "PUT":
            return await self._put_blob(request, digest)
        return await self._get_blob(request, digest)

    async def _put_blob(self, request: Request, digest: bytes) -> Response:
        allocations = list(self.allocations.for_digest(digest))
        if not allocations:
            return JSONResponse(
                {"error": f"no allocation for {format_digest(digest)}"}, status_code=403
            )
        data = await request.body()
        if all(record.size != len(data) for record in allocations):
            return JSONResponse(
                {"error": f"expected {allocations[0].size} bytes, received {len(data)}"},
                status_code=400,
            )
        try:
            await self.blobstore.put(digest, data)
        except IntegrityError as exc:
            logger.warning(f"Rejected upload to {format_digest(digest)}: {exc}")
            return JSONResponse({"error": str(exc)}, status_code=400)
        logger.info(f"Received {len(data)} bytes for {format_digest(digest)}")
        return Response(status_code=200)

    async def _get_blob(self, request: Request, digest: bytes) -> Response:
        size = await self.blobstore.size(digest)
        if size is None:
            return JSONResponse({"error": "not found"}, status_code=404)

        header = request.headers.get("range")
        if header is None:
            return Response(await self.blobstore.get(digest), media_type="application/octet-stream")

        match = _RANGE.match(header.strip())
        if match is None:
            return Response(status_code=416, headers={"Content-Range": f"bytes */{size}"})
        start = int(match.group(1))
        end = int(match.group(2)) if match.group(2) else size - 1
        end = min(end, size - 1)
        if start > end:
            return Response(status_code=416, headers={"Content-Range": f"bytes */{size}"})
        data = await self.blobstore.get(digest, start, end - start + 1)
        return Response(
            data,
            status_code=206,
            media_type="application/octet-stream",
            headers={"Content-Range": f"bytes {start}-{end}/{size}"},
        )

    async def _claim_endpoint(self, request: Request) -> Response:
        try:
            link = Link.parse(request.path_params["link"])
        except ValueError as exc:
            return JSONResponse({"error": str(exc)}, status_code=400)
        claim = self.claims.get(link)
        if claim is None:
            return JSONResponse({"error": "not found"}, status_code=404)
        return Response(archive.encode([claim.link], claim.export()), media_type=CAR_MEDIA_TYPE)
