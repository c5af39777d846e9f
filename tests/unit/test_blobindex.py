"""Tests for sharded DAG indexes."""

import pytest

from blobnet import archive, blobindex, gen
from blobnet.archive import Block
from blobnet.blobindex import Position, ShardedDagIndex
from blobnet.digest import CAR, RAW, sum_sha256
from blobnet.errors import IntegrityError


def test_single_block_shard():
    root, root_digest, car_digest, car = gen.random_car(256)

    index = blobindex.from_shard_archives(root, [car])

    assert list(index.shards) == [car_digest]
    ((slice_digest, position),) = index.shards[car_digest].items()
    assert slice_digest == root_digest
    assert position.length == 256
    assert position.end == len(car)
    assert car[position.offset : position.end] == car[-256:]


def test_index_is_deterministic():
    blocks = [Block.of(bytes([i]) * 40, RAW) for i in range(5)]
    first = archive.encode([blocks[0].link], blocks)
    second = archive.encode([blocks[0].link], list(reversed(blocks)))

    a = blobindex.from_shard_archives(blocks[0].link, [first, second])
    b = blobindex.from_shard_archives(blocks[0].link, [second, first])

    assert a.archive() == b.archive()
    assert a.link() == b.link()
    assert a.link().codec == CAR
    assert a.link().digest == sum_sha256(a.archive())


def test_duplicate_blocks_collapse():
    block = Block.of(b"same" * 10, RAW)
    data = archive.encode([block.link], [block, block])

    index = blobindex.from_shard_archives(block.link, [data])

    assert len(index.shards[sum_sha256(data)]) == 1


def test_extract_restores_index():
    root, _, _, car = gen.random_car(128)
    index = blobindex.from_shard_archives(root, [car])

    extracted = blobindex.extract(index.archive())

    assert extracted == index
    assert extracted.content == root


def test_extract_rejects_foreign_archive():
    block = Block.of(b'{"other":1}', RAW)
    with pytest.raises(ValueError):
        blobindex.extract(archive.encode([block.link], [block]))


def test_corrupt_shard_is_rejected():
    root, _, _, car = gen.random_car(64)
    corrupted = car[:-1] + bytes([car[-1] ^ 0x01])
    with pytest.raises(IntegrityError):
        blobindex.from_shard_archives(root, [corrupted])


def test_set_slice_keeps_first_position():
    index = ShardedDagIndex(gen.random_car(8)[0])
    shard, digest = sum_sha256(b"shard"), sum_sha256(b"slice")
    index.set_slice(shard, digest, Position(10, 5))
    index.set_slice(shard, digest, Position(20, 5))
    assert index.shards[shard][digest] == Position(10, 5)
