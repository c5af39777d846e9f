"""Identities, delegations and proof-chain authorization."""

from __future__ import annotations

from .capability import Ability, Capability
from .delegation import Delegation, capability, decode, delegate, invoke, view
from .principal import Signer, Verifier
from .validator import Authorization, authorize, prove

#: Decode a delegation view (e.g. a claim) from a block bundle.
parse_delegation = view

__all__ = [
    "Ability",
    "Capability",
    "Delegation",
    "Authorization",
    "Signer",
    "Verifier",
    "authorize",
    "capability",
    "decode",
    "delegate",
    "invoke",
    "parse_delegation",
    "prove",
    "view",
]
