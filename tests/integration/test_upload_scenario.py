"""End-to-end runs of the upload scenario against an in-process network."""

import pytest

from blobnet import gen
from blobnet.bootstrap import start_network
from blobnet.capabilities import LocationCaveats
from blobnet.config import BlobnetConfig
from blobnet.digest import Link, sum_sha256
from blobnet.errors import AuthorizationError, ScenarioError, Stage, StructuredFailureError
from blobnet.harness import (
    collect_claims,
    collect_indexes,
    contains_location_commitment,
    run_upload_scenario,
    store_blob,
)
from blobnet.indexing import Match, Query
from blobnet.receipts import Failure
from blobnet.ucan import Ability
from blobnet.upload import ALREADY_PRESENT


def make_config(backend="memory", transport="http"):
    config = BlobnetConfig()
    config.transport.backend = transport
    config.indexing.cache.backend = backend
    config.discovery.crawl_delay = 0.2
    config.query.attempts = 40
    config.query.interval = 0.05
    config.query.timeout = 10
    return config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("BLOBNET_CONFIG", "BLOBNET_CACHE", "BLOBNET_TRANSPORT", "BLOBNET_REDIS_URL"):
        monkeypatch.delenv(name, raising=False)


@pytest.mark.asyncio
async def test_cached_scenario_converges_immediately():
    async with await start_network(make_config()) as network:
        report = await run_upload_scenario(network, size=256)

    assert report.attempts == 1
    assert report.index_link in report.result.indexes
    assert report.index_claim.link in report.result.claims
    assert report.index.content == report.root
    assert collect_indexes(report.result) == [report.index]

    claims = collect_claims(report.result)
    assert contains_location_commitment(claims, report.shard, report.space)
    assert contains_location_commitment(claims, sum_sha256(report.index.archive()), report.space)


@pytest.mark.asyncio
async def test_scenario_without_caches_converges_through_discovery():
    async with await start_network(make_config(), no_cache=True) as network:
        report = await run_upload_scenario(network, size=256)

    assert report.attempts > 1
    assert report.index_claim.link in report.result.claims


@pytest.mark.asyncio
async def test_scenario_over_inmemory_connections():
    async with await start_network(make_config(transport="inmemory")) as network:
        report = await run_upload_scenario(network, size=64)

    assert report.attempts == 1


@pytest.mark.asyncio
async def test_filtered_query_is_scoped_to_space():
    _, data = gen.random_bytes(256)
    space_a, space_b = gen.random_space(), gen.random_space()

    async with await start_network(make_config()) as network:
        ids, proofs = network.identities, network.proofs
        await run_upload_scenario(
            network, data=data, space=space_a, issuer=ids.alice, proof=proofs.alice_indexing
        )
        report = await run_upload_scenario(
            network,
            data=data,
            space=space_b,
            issuer=ids.bob,
            proof=proofs.bob_indexing,
            filter_by_space=True,
        )
        unfiltered = await network.indexing_client.query_claims(Query(hashes=[report.root.digest]))

    scoped = collect_claims(report.result)
    locations = [c for c in scoped if c.capabilities[0].can is Ability.ASSERT_LOCATION]
    assert locations
    for claim in locations:
        assert LocationCaveats.model_validate(claim.capabilities[0].nb).space == space_b
    assert not contains_location_commitment(scoped, report.shard, space_a)

    everything = collect_claims(unfiltered)
    assert contains_location_commitment(everything, report.shard, space_a)
    assert contains_location_commitment(everything, report.shard, space_b)


@pytest.mark.asyncio
async def test_reallocation_reports_already_present():
    _, data = gen.random_bytes(32)
    digest = sum_sha256(data)
    space = gen.random_space()

    async with await start_network(make_config()) as network:
        first = await store_blob(network, space, data)
        again = await network.upload.blob_add(space, digest, len(data))
        second = await store_blob(network, space, data)

    assert again.value is ALREADY_PRESENT
    assert second.link == first.link


@pytest.mark.asyncio
async def test_conclude_without_transfer_fails_at_conclude(monkeypatch):
    async with await start_network(make_config()) as network:

        async def skip_put(address, data, digest=None):
            return 200

        monkeypatch.setattr(network.transfer, "put", skip_put)
        with pytest.raises(ScenarioError) as info:
            await run_upload_scenario(network, size=16)

    assert info.value.stage is Stage.CONCLUDE
    assert isinstance(info.value.cause, StructuredFailureError)
    assert info.value.cause.failure.name == "BlobNotFound"


@pytest.mark.asyncio
async def test_accept_without_allocation_is_a_failure_value():
    _, data = gen.random_bytes(16)
    async with await start_network(make_config()) as network:
        result = await network.upload.conclude_transfer(
            gen.random_space(), sum_sha256(data), len(data), 0
        )

    assert isinstance(result, Failure)
    assert result.name == "AllocationNotFound"


@pytest.mark.asyncio
async def test_publish_with_foreign_proof_is_unauthorized():
    async with await start_network(make_config()) as network:
        with pytest.raises(ScenarioError) as info:
            await run_upload_scenario(
                network,
                size=16,
                issuer=network.identities.bob,
                proof=network.proofs.alice_indexing,
            )

    assert info.value.stage is Stage.PUBLISH
    assert isinstance(info.value.cause, AuthorizationError)


@pytest.mark.asyncio
async def test_equals_claim_is_returned_with_target_locations():
    _, data = gen.random_bytes(64)
    space = gen.random_space()

    async with await start_network(make_config()) as network:
        await store_blob(network, space, data)
        digest = sum_sha256(data)
        claim = await network.indexing_client.publish_equals_claim(
            network.identities.alice, digest, Link.of(data), [network.proofs.alice_indexing]
        )
        result = await network.indexing_client.query_claims(
            Query(hashes=[digest], match=Match(subject=[space]))
        )

    assert claim.link in result.claims
    assert contains_location_commitment(collect_claims(result), digest, space)


@pytest.mark.asyncio
@pytest.mark.parametrize("no_cache", [False, True])
async def test_query_from_foreign_space_sees_nothing(no_cache):
    async with await start_network(make_config(), no_cache=no_cache) as network:
        report = await run_upload_scenario(network, size=128)
        result = await network.indexing_client.query_claims(
            Query(hashes=[report.root.digest], match=Match(subject=[gen.random_space()]))
        )

    assert result.claims == []
    assert result.indexes == []
    assert report.index_claim.link not in result.claims
    assert not result
