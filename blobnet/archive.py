"""Shard archives: a header naming root links followed by length-prefixed blocks.

Layout::

    varint(len(header)) header
    ( varint(len(link) + len(data)) link data )*

``header`` is canonical JSON ``{"roots": [...], "version": 1}``. Block
positions reported by :func:`decode` point at the first byte of a block's
data, so a byte range fetch of ``(offset, length)`` returns exactly the bytes
whose digest is the block's link.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from .digest import Link, canonical_json, decode_varint, encode_varint, verify_digest

ARCHIVE_VERSION = 1


@dataclass(frozen=True)
class Block:
    """A link and the bytes it identifies."""

    link: Link
    data: bytes

    @classmethod
    def of(cls, data: bytes, codec: int) -> "Block":
        return cls(Link.of(data, codec), data)


@dataclass(frozen=True)
class BlockPosition:
    """A block found inside an archive, with the location of its data."""

    link: Link
    offset: int
    length: int


def encode(roots: Sequence[Link], blocks: Iterable[Block]) -> bytes:
    """Serialise ``blocks`` after a header naming ``roots``."""
    header = canonical_json(
        {"roots": [str(root) for root in roots], "version": ARCHIVE_VERSION}
    )
    out = bytearray(encode_varint(len(header)))
    out += header
    for block in blocks:
        link_bytes = block.link.to_bytes()
        out += encode_varint(len(link_bytes) + len(block.data))
        out += link_bytes
        out += block.data
    return bytes(out)


def decode(data: bytes, verify: bool = True) -> Tuple[List[Link], List[BlockPosition]]:
    """Parse an archive into its roots and block positions.

    When ``verify`` is true every block's bytes are checked against its link.
    """
    header_len, n = decode_varint(data)
    header_end = n + header_len
    if header_end > len(data):
        raise ValueError("archive header truncated")
    header = json.loads(data[n:header_end])
    if header.get("version") != ARCHIVE_VERSION:
        raise ValueError(f"unsupported archive version: {header.get('version')}")
    roots = [Link.parse(text) for text in header.get("roots", [])]

    positions: List[BlockPosition] = []
    pos = header_end
    while pos < len(data):
        section_len, n = decode_varint(data, pos)
        section_start = pos + n
        section_end = section_start + section_len
        if section_end > len(data):
            raise ValueError("archive block truncated")
        link, link_len = _read_link(data, section_start)
        offset = section_start + link_len
        length = section_end - offset
        if verify:
            verify_digest(data[offset:section_end], link.digest)
        positions.append(BlockPosition(link, offset, length))
        pos = section_end
    return roots, positions


def blocks(data: bytes) -> List[Block]:
    """Return every block held in an archive."""
    _, positions = decode(data)
    return [Block(p.link, data[p.offset : p.offset + p.length]) for p in positions]


def _read_link(data: bytes, start: int) -> Tuple[Link, int]:
    _, n = decode_varint(data, start)
    _, m = decode_varint(data, start + n)
    mh_start = start + n + m
    if mh_start + 2 > len(data):
        raise ValueError("archive link truncated")
    # multihash: code, length, digest bytes
    end = mh_start + 2 + data[mh_start + 1]
    return Link.from_bytes(data[start:end]), end - start
