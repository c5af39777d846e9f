"""Assemble a complete network of services in one process.

Every service is a Starlette app mounted on a shared ``httpx.AsyncClient``
under its public URL, so invocations, blob transfers, claim fetches and
queries all travel over HTTP without opening sockets.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .config import BlobnetConfig, load_config
from .discovery import DiscoveryService
from .indexing import IndexingClient, IndexingService
from .indexing.cache import get_cache
from .storage import StorageNode
from .transfer import TransferClient
from .transports import get_connection
from .ucan import Ability, Delegation, Signer, capability, delegate
from .upload import UploadService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identities:
    storage: Signer
    indexing: Signer
    upload: Signer
    alice: Signer
    bob: Signer

    @classmethod
    def generate(cls) -> "Identities":
        return cls(*(Signer.generate() for _ in range(5)))


@dataclass(frozen=True)
class Proofs:
    """Delegations wiring the services together.

    * ``storage_indexing``: indexing service lets the storage node ``claim/cache``.
    * ``upload_storage``: storage node lets the upload service allocate and accept.
    * ``alice_indexing`` / ``bob_indexing``: indexing service lets each client
      publish ``assert/index`` and ``assert/equals`` claims.
    """

    storage_indexing: Delegation
    upload_storage: Delegation
    alice_indexing: Delegation
    bob_indexing: Delegation

    @classmethod
    def generate(cls, ids: Identities) -> "Proofs":
        indexing = ids.indexing.did
        storage = ids.storage.did
        publish = [
            capability(Ability.ASSERT_EQUALS, indexing),
            capability(Ability.ASSERT_INDEX, indexing),
        ]
        return cls(
            storage_indexing=delegate(
                ids.indexing, ids.storage, [capability(Ability.CLAIM_CACHE, indexing)]
            ),
            upload_storage=delegate(
                ids.storage,
                ids.upload,
                [
                    capability(Ability.BLOB_ALLOCATE, storage),
                    capability(Ability.BLOB_ACCEPT, storage),
                ],
            ),
            alice_indexing=delegate(ids.indexing, ids.alice, publish),
            bob_indexing=delegate(ids.indexing, ids.bob, publish),
        )


class Network:
    """Running services plus the clients a scenario drives them with."""

    def __init__(
        self,
        config: BlobnetConfig,
        identities: Identities,
        proofs: Proofs,
        http: httpx.AsyncClient,
        discovery: DiscoveryService,
        storage: StorageNode,
        indexing: IndexingService,
        upload: UploadService,
        indexing_client: IndexingClient,
        transfer: TransferClient,
    ) -> None:
        self.config = config
        self.identities = identities
        self.proofs = proofs
        self.http = http
        self.discovery = discovery
        self.storage = storage
        self.indexing = indexing
        self.upload = upload
        self.indexing_client = indexing_client
        self.transfer = transfer

    async def close(self) -> None:
        await self.discovery.close()
        await self.indexing.close()
        await self.http.aclose()
        logger.info("Network stopped")

    async def __aenter__(self) -> "Network":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


async def start_network(
    config: Optional[BlobnetConfig] = None,
    no_cache: Optional[bool] = None,
    identities: Optional[Identities] = None,
) -> Network:
    """Build and wire every service.

    ``no_cache`` overrides ``indexing.cache.backend`` with ``none`` so queries
    depend on the discovery layer alone.
    """
    config = config or load_config()
    cache_backend = "none" if no_cache else config.indexing.cache.backend
    ids = identities or Identities.generate()
    proofs = Proofs.generate(ids)

    discovery = DiscoveryService.from_config(config.discovery)
    storage = StorageNode.from_config(ids.storage, config.storage, debug=config.debug)
    indexing = IndexingService.from_config(
        ids.indexing,
        config.indexing,
        providers=get_cache(cache_backend, config.indexing.cache, "providers"),
        claims=get_cache(cache_backend, config.indexing.cache, "claims"),
        indexes=get_cache(cache_backend, config.indexing.cache, "indexes"),
        discovery=discovery,
        lookup=config.query,
        debug=config.debug,
    )

    http = httpx.AsyncClient(
        mounts={
            storage.public_url: httpx.ASGITransport(app=storage.app),
            indexing.public_url: httpx.ASGITransport(app=indexing.app),
        },
        timeout=config.query.timeout,
    )
    indexing.use_http(http)

    def connect(server, url: str):
        return get_connection(server, f"{url}/", client=http, config=config)

    storage.connect_indexing(connect(indexing.server, indexing.public_url), proofs.storage_indexing)
    storage.connect_discovery(discovery)

    upload = UploadService(ids.upload, connect(storage.server, storage.public_url), proofs.upload_storage)
    indexing_client = IndexingClient(
        connect(indexing.server, indexing.public_url), indexing.public_url, client=http
    )
    logger.info(
        f"Network up: storage {storage.did} at {storage.public_url}, "
        f"indexing {indexing.did} at {indexing.public_url} (cache: {cache_backend})"
    )
    return Network(
        config=config,
        identities=ids,
        proofs=proofs,
        http=http,
        discovery=discovery,
        storage=storage,
        indexing=indexing,
        upload=upload,
        indexing_client=indexing_client,
        transfer=TransferClient(http),
    )
