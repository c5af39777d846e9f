"""Tests for shard archives."""

import pytest

from blobnet import archive
from blobnet.archive import Block
from blobnet.digest import JSON, RAW, sum_sha256
from blobnet.errors import IntegrityError


def test_positions_point_at_block_data():
    first = Block.of(b"first block", RAW)
    second = Block.of(b'{"a":1}', JSON)
    data = archive.encode([first.link], [first, second])

    roots, positions = archive.decode(data)

    assert roots == [first.link]
    assert [p.link for p in positions] == [first.link, second.link]
    for block, position in zip([first, second], positions):
        assert data[position.offset : position.offset + position.length] == block.data


def test_decode_detects_corrupt_block():
    block = Block.of(b"x" * 64, RAW)
    data = bytearray(archive.encode([block.link], [block]))
    data[-1] ^= 0xFF

    with pytest.raises(IntegrityError):
        archive.decode(bytes(data))
    roots, positions = archive.decode(bytes(data), verify=False)
    assert len(positions) == 1


def test_decode_truncated():
    block = Block.of(b"x" * 64, RAW)
    data = archive.encode([block.link], [block])

    with pytest.raises(ValueError):
        archive.decode(data[:-10])


def test_blocks_roundtrip_digest():
    block = Block.of(b"payload", RAW)
    data = archive.encode([block.link], [block])
    (decoded,) = archive.blocks(data)
    assert sum_sha256(decoded.data) == block.link.digest
