"""Proof-chain validation.

Authority flows along explicit delegation edges. A principal holds a
capability if it owns the resource (the capability's ``with`` is its own DID)
or if one of the supplied proofs is addressed to it, grants a covering
capability, is within its time bounds, and was itself issued by a principal
that holds the capability.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Sequence

from ..errors import AuthorizationError
from .capability import Capability

if TYPE_CHECKING:
    from .delegation import Delegation

logger = logging.getLogger(__name__)

MAX_CHAIN_DEPTH = 16


@dataclass(frozen=True)
class Authorization:
    """Outcome of a successful validation."""

    capability: Capability
    issuer: str
    chain: List["Delegation"] = field(default_factory=list)

    @property
    def root(self) -> str:
        """The principal holding root authority over the resource."""
        return self.chain[-1].issuer if self.chain else self.issuer


def check_time_bounds(delegation: "Delegation", now: Optional[int] = None) -> None:
    if delegation.is_expired(now):
        raise AuthorizationError(f"{delegation.link} expired at {delegation.expiration}")
    if delegation.is_too_early(now):
        raise AuthorizationError(f"{delegation.link} not valid before {delegation.not_before}")


def prove(
    principal: str,
    capability: Capability,
    proofs: Sequence["Delegation"],
    now: Optional[int] = None,
    depth: int = 0,
) -> List["Delegation"]:
    """Return the chain of proofs (nearest first) by which ``principal`` holds ``capability``.

    An empty chain means ``principal`` owns the resource. Raises
    :class:`AuthorizationError` when no chain exists.
    """
    if capability.with_ == principal:
        return []
    if depth >= MAX_CHAIN_DEPTH:
        raise AuthorizationError("proof chain too deep")

    reasons: List[str] = []
    for proof in proofs:
        if proof.audience != principal:
            reasons.append(f"{proof.link} is addressed to {proof.audience}")
            continue
        if not any(granted.covers(capability) for granted in proof.capabilities):
            reasons.append(f"{proof.link} does not grant {capability}")
            continue
        try:
            check_time_bounds(proof, now)
            return [proof, *prove(proof.issuer, capability, proof.proofs, now, depth + 1)]
        except AuthorizationError as exc:
            reasons.append(str(exc))

    detail = "; ".join(reasons) if reasons else "no proofs supplied"
    raise AuthorizationError(f"{principal} cannot prove {capability}: {detail}")


def authorize(
    invocation: "Delegation", audience: str, now: Optional[int] = None
) -> Authorization:
    """Validate ``invocation`` as received by the service ``audience``."""
    now = int(time.time()) if now is None else now
    if invocation.audience != audience:
        raise AuthorizationError(
            f"invocation is addressed to {invocation.audience}, not {audience}"
        )
    capabilities = invocation.capabilities
    if len(capabilities) != 1:
        raise AuthorizationError("an invocation must carry exactly one capability")
    check_time_bounds(invocation, now)

    capability = capabilities[0]
    chain = prove(invocation.issuer, capability, invocation.proofs, now)
    logger.debug(
        f"Authorized {capability} for {invocation.issuer} via {len(chain)} proof(s)"
    )
    return Authorization(capability=capability, issuer=invocation.issuer, chain=chain)
