"""Ed25519 principals identified by ``did:key`` strings."""

from __future__ import annotations

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from ..digest import b58decode, b58encode

DID_KEY_PREFIX = "did:key:z"
# multicodec ed25519-pub, varint encoded
ED25519_PUB_PREFIX = bytes([0xED, 0x01])


def did_from_public_key(public_key: Ed25519PublicKey) -> str:
    raw = public_key.public_bytes(
        serialization.Encoding.Raw, serialization.PublicFormat.Raw
    )
    return DID_KEY_PREFIX + b58encode(ED25519_PUB_PREFIX + raw)


def public_key_from_did(did: str) -> Ed25519PublicKey:
    """Parse a ``did:key`` (Ed25519) and return its public key."""
    if not did.startswith(DID_KEY_PREFIX):
        raise ValueError(f"Only did:key:z... identifiers are supported: {did!r}")
    decoded = b58decode(did[len(DID_KEY_PREFIX) :])
    if not decoded.startswith(ED25519_PUB_PREFIX):
        raise ValueError("did:key multicodec prefix not recognized for Ed25519")
    raw = decoded[len(ED25519_PUB_PREFIX) :]
    if len(raw) != 32:
        raise ValueError(f"Ed25519 public key must be 32 bytes, got {len(raw)}")
    return Ed25519PublicKey.from_public_bytes(raw)


class Verifier:
    """A principal that can check signatures made by its private key."""

    def __init__(self, public_key: Ed25519PublicKey) -> None:
        self.public_key = public_key
        self._did = did_from_public_key(public_key)

    @classmethod
    def parse(cls, did: str) -> "Verifier":
        return cls(public_key_from_did(did))

    @property
    def did(self) -> str:
        return self._did

    def verify(self, signature: bytes, data: bytes) -> bool:
        try:
            self.public_key.verify(signature, data)
        except InvalidSignature:
            return False
        return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Verifier):
            return NotImplemented
        return self.did == other.did

    def __hash__(self) -> int:
        return hash(self.did)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.did})"


class Signer(Verifier):
    """A principal holding its private key."""

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        super().__init__(private_key.public_key())
        self.private_key = private_key

    @classmethod
    def generate(cls) -> "Signer":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Signer":
        return cls(Ed25519PrivateKey.from_private_bytes(raw))

    def to_bytes(self) -> bytes:
        return self.private_key.private_bytes(
            serialization.Encoding.Raw,
            serialization.PrivateFormat.Raw,
            serialization.NoEncryption(),
        )

    def sign(self, data: bytes) -> bytes:
        return self.private_key.sign(data)

    def verifier(self) -> Verifier:
        return Verifier(self.public_key)
