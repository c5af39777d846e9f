"""Random content and identities for scenarios and tests."""

from __future__ import annotations

import secrets
from typing import Tuple

from . import archive
from .archive import Block
from .digest import RAW, Link, sum_sha256
from .ucan import Signer


def random_bytes(size: int) -> Tuple[bytes, bytes]:
    """``size`` random bytes and their digest."""
    data = secrets.token_bytes(size)
    return sum_sha256(data), data


def car_of(data: bytes) -> Tuple[Link, bytes]:
    """A single-block shard archive holding ``data`` as its root block."""
    root = Block.of(data, RAW)
    return root.link, archive.encode([root.link], [root])


def random_car(size: int) -> Tuple[Link, bytes, bytes, bytes]:
    """Root link, root digest, archive digest and archive bytes for ``size`` random bytes."""
    _, data = random_bytes(size)
    root, car = car_of(data)
    return root, root.digest, sum_sha256(car), car


def random_signer() -> Signer:
    return Signer.generate()


def random_space() -> str:
    """DID of a fresh principal, used as a space."""
    return Signer.generate().did
