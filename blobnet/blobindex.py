"""Sharded DAG indexes.

An index maps a content link onto the shard archives holding its blocks::

    content -> { shard digest -> { slice digest -> Position(offset, length) } }

The serialised form is itself an archive whose root block names the content
and the per-shard blocks. Shards and slices are written in digest order so
the same inputs always produce the same bytes, and therefore the same index
link.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from . import archive
from .archive import Block
from .digest import CAR, JSON, Link, canonical_json, format_digest, parse_digest, sum_sha256
from .errors import IntegrityError

logger = logging.getLogger(__name__)

INDEX_VERSION = "index/sharded/dag@0.1"


@dataclass(frozen=True)
class Position:
    """Byte range of a block's data inside a shard."""

    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length


class ShardedDagIndex:
    """Index of the blocks of ``content`` across one or more shards."""

    def __init__(
        self,
        content: Link,
        shards: Optional[Dict[bytes, Dict[bytes, Position]]] = None,
    ) -> None:
        self.content = content
        self.shards: Dict[bytes, Dict[bytes, Position]] = shards or {}

    def set_slice(self, shard: bytes, slice_digest: bytes, position: Position) -> None:
        """Record where ``slice_digest`` lives in ``shard``.

        Duplicate blocks collapse onto the first recorded position.
        """
        self.shards.setdefault(shard, {}).setdefault(slice_digest, position)

    def iter_shards(self) -> Iterator[Tuple[bytes, List[Tuple[bytes, Position]]]]:
        """Yield shards and their slices in deterministic (digest) order."""
        for shard in sorted(self.shards):
            slices = self.shards[shard]
            yield shard, [(digest, slices[digest]) for digest in sorted(slices)]

    def digests(self) -> List[bytes]:
        """Every slice digest in the index, in deterministic order."""
        seen: Dict[bytes, None] = {}
        for _, slices in self.iter_shards():
            for digest, _ in slices:
                seen.setdefault(digest, None)
        return list(seen)

    def archive(self) -> bytes:
        """Serialise the index to its archive form."""
        shard_blocks: List[Block] = []
        for shard, slices in self.iter_shards():
            body = [
                format_digest(shard),
                [[format_digest(d), p.offset, p.length] for d, p in slices],
            ]
            shard_blocks.append(Block.of(canonical_json(body), JSON))

        root = Block.of(
            canonical_json(
                {
                    INDEX_VERSION: {
                        "content": str(self.content),
                        "shards": [str(b.link) for b in shard_blocks],
                    }
                }
            ),
            JSON,
        )
        return archive.encode([root.link], [root, *shard_blocks])

    def link(self) -> Link:
        """The index identifier: the ``car`` link of the serialised archive."""
        return Link(sum_sha256(self.archive()), CAR)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ShardedDagIndex):
            return NotImplemented
        return self.content == other.content and self.shards == other.shards

    def __repr__(self) -> str:
        return f"ShardedDagIndex(content={self.content}, shards={len(self.shards)})"


def from_shard_archives(content: Link, archives: Sequence[bytes]) -> ShardedDagIndex:
    """Build an index for ``content`` from the raw bytes of its shard archives."""
    index = ShardedDagIndex(content)
    for data in archives:
        shard = sum_sha256(data)
        _, positions = archive.decode(data)
        total = 0
        for position in positions:
            if position.offset + position.length > len(data):
                raise IntegrityError(
                    f"slice {format_digest(position.link.digest)} exceeds shard "
                    f"{format_digest(shard)}"
                )
            if position.link.digest in index.shards.get(shard, {}):
                continue
            total += position.length
            index.set_slice(shard, position.link.digest, Position(position.offset, position.length))
        if total > len(data):
            raise IntegrityError(f"slices of shard {format_digest(shard)} exceed its length")
        logger.debug(
            f"Indexed shard {format_digest(shard)} with {len(index.shards.get(shard, {}))} slices"
        )
    return index


def extract(data: bytes) -> ShardedDagIndex:
    """Decode an index from its archive bytes."""
    roots, _ = archive.decode(data)
    if len(roots) != 1:
        raise ValueError("index archive must have exactly one root")
    blocks = {block.link: block.data for block in archive.blocks(data)}
    try:
        root = json.loads(blocks[roots[0]])
    except KeyError:
        raise ValueError("index root block missing from archive") from None
    body = root.get(INDEX_VERSION)
    if body is None:
        raise ValueError(f"unsupported index version: {sorted(root)}")

    index = ShardedDagIndex(Link.parse(body["content"]))
    for shard_link in body["shards"]:
        shard_body = json.loads(blocks[Link.parse(shard_link)])
        shard = parse_digest(shard_body[0])
        for digest, offset, length in shard_body[1]:
            index.set_slice(shard, parse_digest(digest), Position(offset, length))
    return index
