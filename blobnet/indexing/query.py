"""Queries against the indexing service and the bundles they return."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from .. import archive
from ..archive import Block
from ..capabilities import DigestField
from ..digest import JSON, Link, canonical_json, verify_digest


class Match(BaseModel):
    """Restricts results to claims made in one of ``subject`` (space DIDs)."""

    subject: List[str] = Field(default_factory=list)


class Query(BaseModel):
    hashes: List[DigestField]
    match: Match = Field(default_factory=Match)

    def spaces(self) -> Optional[frozenset]:
        return frozenset(self.match.subject) if self.match.subject else None


class BlockReader:
    """Content-addressed lookup over a block bundle."""

    def __init__(self, blocks: Dict[Link, bytes]) -> None:
        self._blocks = blocks

    def get(self, link: Link) -> bytes:
        try:
            data = self._blocks[link]
        except KeyError:
            raise KeyError(f"block {link} not in bundle") from None
        verify_digest(data, link.digest)
        return data

    def __contains__(self, link: object) -> bool:
        return link in self._blocks

    def __len__(self) -> int:
        return len(self._blocks)


@dataclass
class QueryResult:
    """Claims and indexes found for a query, with the blocks to decode them.

    Claim blocks include each claim's proofs. Index links are ``car`` links
    whose block is the whole index archive.
    """

    claims: List[Link] = field(default_factory=list)
    indexes: List[Link] = field(default_factory=list)
    blocks: Dict[Link, bytes] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.claims or self.indexes)

    def reader(self) -> BlockReader:
        return BlockReader(self.blocks)

    def add_claim(self, link: Link, blocks: Iterable[Block]) -> None:
        if link not in self.claims:
            self.claims.append(link)
        for block in blocks:
            self.blocks.setdefault(block.link, block.data)

    def add_index(self, link: Link, data: bytes) -> None:
        if link not in self.indexes:
            self.indexes.append(link)
        self.blocks.setdefault(link, data)

    def archive(self) -> bytes:
        """Serialise as an archive whose root block lists claims and indexes."""
        root = Block.of(
            canonical_json(
                {
                    "claims": [str(link) for link in self.claims],
                    "indexes": [str(link) for link in self.indexes],
                }
            ),
            JSON,
        )
        blocks = [Block(link, data) for link, data in self.blocks.items()]
        return archive.encode([root.link], [root, *blocks])

    @classmethod
    def extract(cls, data: bytes) -> "QueryResult":
        roots, _ = archive.decode(data)
        if len(roots) != 1:
            raise ValueError("query result must have exactly one root")
        blocks = {block.link: block.data for block in archive.blocks(data)}
        try:
            body = json.loads(blocks.pop(roots[0]))
        except KeyError:
            raise ValueError("query result root block missing") from None
        return cls(
            claims=[Link.parse(text) for text in body.get("claims", [])],
            indexes=[Link.parse(text) for text in body.get("indexes", [])],
            blocks=blocks,
        )
