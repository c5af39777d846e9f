"""End-to-end upload scenario and the helpers used to check its outcome."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from . import blobindex, gen
from .blobindex import ShardedDagIndex
from .bootstrap import Network
from .capabilities import Address, IndexCaveats, LocationCaveats
from .digest import Link, format_digest, sum_sha256
from .errors import IntegrityError, ScenarioError, Stage, StructuredFailureError
from .indexing import Match, Query, QueryResult
from .polling import poll_until_converged
from .receipts import Failure
from .ucan import Ability, Delegation, Signer, parse_delegation

logger = logging.getLogger(__name__)


@dataclass
class ScenarioReport:
    """Everything the upload scenario produced."""

    space: str
    root: Link
    shard: bytes
    location: Delegation
    index: ShardedDagIndex
    index_link: Link
    index_location: Delegation
    index_claim: Delegation
    result: QueryResult
    attempts: int


class _Stage:
    """Context manager re-raising any error as a :class:`ScenarioError` for ``stage``."""

    def __init__(self, stage: Stage) -> None:
        self.stage = stage

    def __enter__(self) -> "_Stage":
        logger.info(f"→ {self.stage.value}")
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is None:
            logger.info(f"✔ {self.stage.value}")
            return False
        if isinstance(exc, ScenarioError):
            return False
        logger.error(f"✘ {self.stage.value}: {exc}")
        raise ScenarioError(self.stage, exc) from exc


def _unwrap(result):
    if isinstance(result, Failure):
        raise StructuredFailureError(result)
    return result.value


async def store_blob(network: Network, space: str, data: bytes) -> Delegation:
    """Allocate, transfer and conclude ``data``; returns its location commitment."""
    digest = sum_sha256(data)
    with _Stage(Stage.ALLOCATE):
        allocation = _unwrap(await network.upload.blob_add(space, digest, len(data)))

    with _Stage(Stage.TRANSFER):
        if isinstance(allocation, Address):
            await network.transfer.put(allocation, data, digest)
            expires = allocation.expires
        else:
            logger.info(f"{format_digest(digest)} already present, skipping transfer")
            expires = int(time.time()) + network.config.storage.allocation_ttl

    with _Stage(Stage.CONCLUDE):
        claim = _unwrap(await network.upload.conclude_transfer(space, digest, len(data), expires))

    with _Stage(Stage.TRANSFER):
        nb = LocationCaveats.model_validate(claim.capabilities[0].nb)
        await network.transfer.fetch(nb.location[0], digest)
    return claim


async def run_upload_scenario(
    network: Network,
    data: Optional[bytes] = None,
    space: Optional[str] = None,
    issuer: Optional[Signer] = None,
    proof: Optional[Delegation] = None,
    size: int = 256,
    filter_by_space: bool = False,
) -> ScenarioReport:
    """Upload content as one shard, index it, publish the index claim and query it back.

    The query is polled within ``network.config.query`` until it converges.
    The result must hold the index, the index claim and a location
    commitment for the shard in ``space``.
    """
    space = space or gen.random_space()
    issuer = issuer or network.identities.alice
    proof = proof or network.proofs.alice_indexing
    if data is None:
        root, _, _, car = gen.random_car(size)
    else:
        root, car = gen.car_of(data)
    shard = sum_sha256(car)
    logger.info(f"Scenario for {root} (shard {format_digest(shard)}) in {space}")

    location = await store_blob(network, space, car)

    with _Stage(Stage.INDEX):
        nb = LocationCaveats.model_validate(location.capabilities[0].nb)
        fetched = await network.transfer.fetch(nb.location[0], shard)
        index = blobindex.from_shard_archives(root, [fetched])
        index_bytes = index.archive()
        index_link = index.link()
    index_location = await store_blob(network, space, index_bytes)

    with _Stage(Stage.PUBLISH):
        claim = await network.indexing_client.publish_index_claim(
            issuer, root, index_link, [proof]
        )

    query = Query(hashes=[root.digest], match=Match(subject=[space] if filter_by_space else []))
    attempts = 0

    async def attempt() -> QueryResult:
        nonlocal attempts
        attempts += 1
        return await network.indexing_client.query_claims(query)

    with _Stage(Stage.QUERY):
        cfg = network.config.query
        result = await poll_until_converged(
            attempt,
            attempts=cfg.attempts,
            interval=cfg.interval,
            timeout=cfg.timeout,
            is_converged=lambda r: contains_index_claim(collect_claims(r), root, index_link),
        )
        if index_link not in result.indexes:
            raise IntegrityError(f"index {index_link} missing from query result")
        if not contains_location_commitment(collect_claims(result), shard, space):
            raise IntegrityError(f"no location commitment for shard {format_digest(shard)}")

    return ScenarioReport(
        space=space,
        root=root,
        shard=shard,
        location=location,
        index=index,
        index_link=index_link,
        index_location=index_location,
        index_claim=claim,
        result=result,
        attempts=attempts,
    )


def collect_claims(result: QueryResult) -> List[Delegation]:
    """Decode every claim in ``result`` from its blocks."""
    return [parse_delegation(link, result.blocks) for link in result.claims]


def collect_indexes(result: QueryResult) -> List[ShardedDagIndex]:
    reader = result.reader()
    return [blobindex.extract(reader.get(link)) for link in result.indexes]


def contains_index_claim(claims: Sequence[Delegation], content: Link, index: Link) -> bool:
    for claim in claims:
        cap = claim.capabilities[0]
        if cap.can is not Ability.ASSERT_INDEX:
            continue
        nb = IndexCaveats.model_validate(cap.nb)
        if nb.content == content and nb.index == index:
            return True
    return False


def contains_location_commitment(
    claims: Sequence[Delegation], content: bytes, space: str
) -> bool:
    for claim in claims:
        cap = claim.capabilities[0]
        if cap.can is not Ability.ASSERT_LOCATION:
            continue
        nb = LocationCaveats.model_validate(cap.nb)
        if nb.content == content and nb.space == space:
            return True
    return False
