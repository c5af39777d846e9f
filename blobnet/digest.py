"""Content addressing: multihashes, links and their text encodings.

Digests are sha2-256 multihashes (``0x12 0x20`` followed by 32 bytes). A
:class:`Link` pairs a digest with the codec describing how its bytes are
interpreted. Two links are equal iff their digests are equal; the codec is
informational only.
"""

from __future__ import annotations

import base64
import hashlib
import json
import secrets
from dataclasses import dataclass, field
from typing import Any, Tuple

from .errors import IntegrityError

SHA2_256 = 0x12
SHA2_256_LENGTH = 32

RAW = 0x55
CAR = 0x0202
UCAN = 0x78C0
JSON = 0x0200

CID_VERSION = 1

B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
B58_MAP = {c: i for i, c in enumerate(B58_ALPHABET)}


# ---------------------------------------------------------------------------
# varint / multibase
# ---------------------------------------------------------------------------


def encode_varint(value: int) -> bytes:
    if value < 0:
        raise ValueError("varint must be non-negative")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_varint(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """Return ``(value, bytes consumed)`` for the varint at ``offset``."""
    value = 0
    shift = 0
    pos = offset
    while True:
        if pos >= len(data):
            raise ValueError("truncated varint")
        byte = data[pos]
        value |= (byte & 0x7F) << shift
        pos += 1
        if not byte & 0x80:
            return value, pos - offset
        shift += 7
        if shift > 63:
            raise ValueError("varint too long")


def b58encode(b: bytes) -> str:
    n_pad = 0
    for c in b:
        if c == 0:
            n_pad += 1
        else:
            break
    num = int.from_bytes(b, "big")
    out = bytearray()
    while num > 0:
        num, rem = divmod(num, 58)
        out.append(B58_ALPHABET[rem])
    out.extend(B58_ALPHABET[0] for _ in range(n_pad))
    out.reverse()
    return out.decode("ascii")


def b58decode(s: str) -> bytes:
    s_bytes = s.encode("ascii")
    num = 0
    for c in s_bytes:
        if c not in B58_MAP:
            raise ValueError("Invalid base58 character")
        num = num * 58 + B58_MAP[c]
    n_pad = 0
    for c in s_bytes:
        if c == B58_ALPHABET[0]:
            n_pad += 1
        else:
            break
    full = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    return b"\x00" * n_pad + full


def b32encode(b: bytes) -> str:
    return base64.b32encode(b).decode("ascii").rstrip("=").lower()


def b32decode(s: str) -> bytes:
    pad = "=" * ((8 - len(s) % 8) % 8)
    return base64.b32decode(s.upper() + pad)


# ---------------------------------------------------------------------------
# Multihash
# ---------------------------------------------------------------------------


def sum_sha256(data: bytes) -> bytes:
    """Return the sha2-256 multihash of ``data``."""
    return bytes([SHA2_256, SHA2_256_LENGTH]) + hashlib.sha256(data).digest()


def validate_digest(digest: bytes) -> bytes:
    if len(digest) != SHA2_256_LENGTH + 2 or digest[0] != SHA2_256:
        raise ValueError("digest must be a sha2-256 multihash")
    if digest[1] != SHA2_256_LENGTH:
        raise ValueError("digest length prefix must be 32")
    return digest


def format_digest(digest: bytes) -> str:
    """Multibase base58btc form of a multihash (``z...``)."""
    return "z" + b58encode(digest)


def parse_digest(text: str) -> bytes:
    if not text.startswith("z"):
        raise ValueError(f"digest must be multibase base58btc: {text!r}")
    return validate_digest(b58decode(text[1:]))


def verify_digest(data: bytes, expected: bytes) -> None:
    """Raise :class:`IntegrityError` unless ``data`` hashes to ``expected``."""
    actual = sum_sha256(data)
    if actual != expected:
        raise IntegrityError(
            f"digest mismatch: expected {format_digest(expected)}, got {format_digest(actual)}"
        )


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Link:
    """Self-describing reference to a byte sequence."""

    digest: bytes
    codec: int = field(default=RAW, compare=False)

    @classmethod
    def of(cls, data: bytes, codec: int = RAW) -> "Link":
        return cls(sum_sha256(data), codec)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Link":
        version, n = decode_varint(data)
        if version != CID_VERSION:
            raise ValueError(f"unsupported link version {version}")
        codec, m = decode_varint(data, n)
        return cls(validate_digest(bytes(data[n + m :])), codec)

    @classmethod
    def parse(cls, text: str) -> "Link":
        if not text.startswith("b"):
            raise ValueError(f"link must be multibase base32: {text!r}")
        return cls.from_bytes(b32decode(text[1:]))

    def to_bytes(self) -> bytes:
        return encode_varint(CID_VERSION) + encode_varint(self.codec) + self.digest

    def __str__(self) -> str:
        return "b" + b32encode(self.to_bytes())

    def __repr__(self) -> str:
        return f"Link({self})"


def random_link() -> Link:
    """A link to 10 random bytes; used as an opaque ``cause`` reference."""
    return Link.of(secrets.token_bytes(10))


# ---------------------------------------------------------------------------
# Canonical JSON
# ---------------------------------------------------------------------------


def canonical_json(obj: Any) -> bytes:
    """Sorted keys, no insignificant whitespace, UTF-8."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


__all__ = [
    "SHA2_256",
    "RAW",
    "CAR",
    "UCAN",
    "JSON",
    "Link",
    "sum_sha256",
    "format_digest",
    "parse_digest",
    "verify_digest",
    "validate_digest",
    "encode_varint",
    "decode_varint",
    "b58encode",
    "b58decode",
    "random_link",
    "canonical_json",
]
