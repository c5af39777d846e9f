"""Tests for the announce/crawl layer."""

import asyncio

import pytest

from blobnet.digest import random_link, sum_sha256
from blobnet.discovery import DiscoveryService
from blobnet.indexing.records import ProviderRecord, claims_address
from blobnet.ucan import Ability


def record(digest, claim=None):
    return ProviderRecord(
        provider="did:key:zProvider",
        addresses=[claims_address("http://storage.test")],
        claim=claim or random_link(),
        ability=Ability.ASSERT_LOCATION,
        content=digest,
        space="did:key:zSpace",
    )


@pytest.mark.asyncio
async def test_announcements_visible_after_crawl():
    discovery = DiscoveryService(crawl_delay=0.05)
    digest = sum_sha256(b"blob")
    await discovery.announce([record(digest)])

    assert await discovery.find(digest) == []
    await asyncio.sleep(0.15)
    assert len(await discovery.find(digest)) == 1
    await discovery.close()


@pytest.mark.asyncio
async def test_flush_dedupes_records():
    discovery = DiscoveryService(crawl_delay=60)
    digest = sum_sha256(b"blob")
    rec = record(digest)
    await discovery.announce([rec, rec])

    assert await discovery.flush() == 1
    assert await discovery.find(digest) == [rec]
    assert discovery.pending == 0
    await discovery.close()


@pytest.mark.asyncio
async def test_closed_discovery_rejects_announcements():
    discovery = DiscoveryService(crawl_delay=60)
    await discovery.announce([record(sum_sha256(b"a"))])
    await discovery.close()

    with pytest.raises(RuntimeError):
        await discovery.announce([record(sum_sha256(b"b"))])


def test_record_claim_urls():
    link = random_link()
    rec = record(sum_sha256(b"blob"), claim=link)
    assert rec.claim_urls() == [f"http://storage.test/claims/{link}"]
    assert ProviderRecord.from_json(rec.to_json()) == rec
