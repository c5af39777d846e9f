"""Signed delegations (UCAN-style JWTs) and invocations.

A delegation is an immutable, signed edge ``issuer -> audience`` granting a
list of capabilities. Its proofs are referenced by link in the ``prf`` claim
and travel alongside it as blocks, so a delegation plus its proofs can be
exported, shipped, and rebuilt on the other side with every signature
re-checked.
"""

from __future__ import annotations

import secrets
import time
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

import jwt

from ..archive import Block
from ..digest import UCAN, Link, verify_digest
from ..errors import AuthorizationError
from .capability import Ability, Capability
from .principal import Signer, Verifier
from .validator import prove

UCAN_VERSION = "0.9.1"
ALGORITHM = "EdDSA"

Audience = Union[str, Verifier]


class Delegation:
    """A verified, immutable delegation token together with its proofs."""

    def __init__(
        self,
        token: str,
        payload: Mapping[str, Any],
        proofs: Sequence["Delegation"] = (),
    ) -> None:
        self.token = token
        self.payload: Dict[str, Any] = dict(payload)
        self.proofs = tuple(proofs)
        self.link = Link.of(token.encode("utf-8"), UCAN)
        self._capabilities = [Capability.model_validate(c) for c in self.payload["att"]]

    @property
    def issuer(self) -> str:
        return self.payload["iss"]

    @property
    def audience(self) -> str:
        return self.payload["aud"]

    @property
    def capabilities(self) -> List[Capability]:
        return list(self._capabilities)

    @property
    def expiration(self) -> Optional[int]:
        return self.payload.get("exp")

    @property
    def not_before(self) -> Optional[int]:
        return self.payload.get("nbf")

    @property
    def nonce(self) -> Optional[str]:
        return self.payload.get("nnc")

    @property
    def facts(self) -> List[Dict[str, Any]]:
        return list(self.payload.get("fct", []))

    def is_expired(self, now: Optional[int] = None) -> bool:
        now = int(time.time()) if now is None else now
        return self.expiration is not None and now >= self.expiration

    def is_too_early(self, now: Optional[int] = None) -> bool:
        now = int(time.time()) if now is None else now
        return self.not_before is not None and now < self.not_before

    def block(self) -> Block:
        return Block(self.link, self.token.encode("utf-8"))

    def export(self) -> Iterator[Block]:
        """Yield the blocks of every proof (depth first) and then this delegation."""
        seen: set = set()
        yield from self._export(seen)

    def _export(self, seen: set) -> Iterator[Block]:
        for proof in self.proofs:
            yield from proof._export(seen)
        if self.link not in seen:
            seen.add(self.link)
            yield self.block()

    def blocks(self) -> Dict[Link, bytes]:
        return {block.link: block.data for block in self.export()}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Delegation):
            return NotImplemented
        return self.link == other.link

    def __hash__(self) -> int:
        return hash(self.link)

    def __repr__(self) -> str:
        caps = ", ".join(str(c) for c in self._capabilities)
        return f"Delegation({self.issuer} -> {self.audience}: {caps})"


def capability(can: Union[Ability, str], with_: str, nb: Optional[Mapping[str, Any]] = None) -> Capability:
    """Shorthand constructor for a :class:`Capability`."""
    return Capability(can=Ability(can), with_=with_, nb=dict(nb or {}))


def _did_of(principal: Audience) -> str:
    return principal.did if isinstance(principal, Verifier) else principal


def _issue(
    issuer: Signer,
    audience: Audience,
    capabilities: Iterable[Capability],
    expiration: Optional[int],
    not_before: Optional[int],
    proofs: Sequence[Delegation],
    nonce: Optional[str],
    facts: Optional[List[Dict[str, Any]]],
) -> Delegation:
    payload: Dict[str, Any] = {
        "ucv": UCAN_VERSION,
        "iss": issuer.did,
        "aud": _did_of(audience),
        "att": [c.to_dict() for c in capabilities],
        "prf": [str(p.link) for p in proofs],
    }
    if expiration is not None:
        payload["exp"] = int(expiration)
    if not_before is not None:
        payload["nbf"] = int(not_before)
    if nonce is not None:
        payload["nnc"] = nonce
    if facts:
        payload["fct"] = facts
    token = jwt.encode(payload, issuer.private_key, algorithm=ALGORITHM)
    return Delegation(token, payload, proofs)


def delegate(
    issuer: Signer,
    audience: Audience,
    capabilities: Sequence[Capability],
    expiration: Optional[int] = None,
    not_before: Optional[int] = None,
    proofs: Sequence[Delegation] = (),
    nonce: Optional[str] = None,
    facts: Optional[List[Dict[str, Any]]] = None,
) -> Delegation:
    """Grant ``capabilities`` from ``issuer`` to ``audience``.

    The issuer must either own each capability's resource (``with`` is the
    issuer's own DID) or hold it through ``proofs``; otherwise
    :class:`AuthorizationError` is raised.
    """
    if not capabilities:
        raise ValueError("a delegation must grant at least one capability")
    for cap in capabilities:
        prove(issuer.did, cap, proofs)
    return _issue(issuer, audience, capabilities, expiration, not_before, proofs, nonce, facts)


def invoke(
    actor: Signer,
    audience: Audience,
    cap: Capability,
    proofs: Sequence[Delegation] = (),
    expiration: Optional[int] = None,
) -> Delegation:
    """Build an invocation: a single-capability delegation addressed to a service.

    The proof chain is not checked here; the receiving service does that.
    """
    return _issue(
        actor, audience, [cap], expiration, None, proofs, secrets.token_hex(8), None
    )


def decode(token: str, proofs: Sequence[Delegation] = ()) -> Delegation:
    """Verify ``token`` against its issuer's key and wrap it."""
    try:
        unverified = jwt.decode(token, options={"verify_signature": False})
        issuer = Verifier.parse(unverified["iss"])
        payload = jwt.decode(
            token,
            issuer.public_key,
            algorithms=[ALGORITHM],
            options={
                "verify_exp": False,
                "verify_nbf": False,
                "verify_iat": False,
                "verify_aud": False,
            },
        )
    except (jwt.InvalidTokenError, KeyError, ValueError) as exc:
        raise AuthorizationError(f"invalid delegation: {exc}") from exc
    expected = payload.get("prf", [])
    if [str(p.link) for p in proofs] != list(expected):
        raise AuthorizationError("delegation proofs do not match its prf links")
    return Delegation(token, payload, proofs)


def view(link: Link, blocks: Mapping[Link, bytes]) -> Delegation:
    """Rebuild the delegation ``link`` (and its proofs) from a block bundle."""
    try:
        data = blocks[link]
    except KeyError:
        raise ValueError(f"block {link} not found") from None
    verify_digest(data, link.digest)
    token = data.decode("utf-8")
    unverified = jwt.decode(token, options={"verify_signature": False})
    proofs = [view(Link.parse(text), blocks) for text in unverified.get("prf", [])]
    return decode(token, proofs)
