"""Provider records: who holds a claim about a digest and where to fetch it."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from ..capabilities import DigestField, LinkField
from ..ucan.capability import Ability

CLAIM_PLACEHOLDER = "{claim}"


class ProviderRecord(BaseModel):
    """One advertisement of a claim, keyed by the digest it was announced under.

    ``addresses`` are URL templates; ``{claim}`` is replaced by the claim link
    to obtain the URL the claim can be fetched from.
    """

    provider: str
    addresses: List[str] = Field(default_factory=list)
    claim: LinkField
    ability: Ability
    content: DigestField
    space: Optional[str] = None

    def claim_urls(self) -> List[str]:
        return [address.replace(CLAIM_PLACEHOLDER, str(self.claim)) for address in self.addresses]

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)

    @classmethod
    def from_json(cls, data: str) -> "ProviderRecord":
        return cls.model_validate_json(data)


def claims_address(public_url: str) -> str:
    """URL template under which a service serves the claims it holds."""
    return f"{public_url.rstrip('/')}/claims/{CLAIM_PLACEHOLDER}"


def same_claim(a: ProviderRecord, b: ProviderRecord) -> bool:
    return a.claim == b.claim and a.provider == b.provider

