"""Tests for query results and their printed report."""

import pytest

from blobnet import blobindex
from blobnet.capabilities import LocationCaveats, to_nb
from blobnet.digest import Link, format_digest, random_link
from blobnet.errors import IntegrityError
from blobnet.gen import random_car, random_space
from blobnet.indexing import Match, Query, QueryResult
from blobnet.printer import format_query_result
from blobnet.ucan import Ability, Signer, capability, delegate


def location_claim(space, digest):
    storage = Signer.generate()
    nb = LocationCaveats(space=space, content=digest, location=["http://storage.test/blob/x"])
    return delegate(storage, space, [capability(Ability.ASSERT_LOCATION, storage.did, to_nb(nb))])


def test_query_spaces():
    assert Query(hashes=[]).spaces() is None
    query = Query(hashes=[], match=Match(subject=["did:key:zA", "did:key:zB"]))
    assert query.spaces() == frozenset({"did:key:zA", "did:key:zB"})


def test_result_archive_keeps_claims_and_indexes():
    root, _, shard, car = random_car(32)
    index = blobindex.from_shard_archives(root, [car])
    space = random_space()
    claim = location_claim(space, shard)

    result = QueryResult()
    assert not result
    result.add_claim(claim.link, claim.export())
    result.add_claim(claim.link, claim.export())
    result.add_index(index.link(), index.archive())

    restored = QueryResult.extract(result.archive())

    assert restored
    assert restored.claims == [claim.link]
    assert restored.indexes == [index.link()]
    assert blobindex.extract(restored.reader().get(index.link())) == index


def test_block_reader_checks_digests():
    link = Link.of(b"block")
    reader = QueryResult(blocks={link: b"tampered"}).reader()

    assert link in reader
    with pytest.raises(IntegrityError):
        reader.get(link)
    with pytest.raises(KeyError):
        reader.get(random_link())


def test_format_query_result():
    root, _, shard, car = random_car(32)
    index = blobindex.from_shard_archives(root, [car])
    space = random_space()
    claim = location_claim(space, shard)
    result = QueryResult()
    result.add_claim(claim.link, claim.export())
    result.add_index(index.link(), index.archive())

    report = format_query_result(result)

    assert "## Claims (1)" in report
    assert "## Indexes (1)" in report
    assert f"Space:    {space}" in report
    assert format_digest(shard) in report
    assert f"Content: {root}" in report
