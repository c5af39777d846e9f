"""Caveat and result models for every ability on the network.

Digests travel as base58btc multihash strings and links as base32 strings;
the annotated field types below convert them to ``bytes`` and :class:`Link`
on validation and back on serialisation.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, PlainValidator

from .digest import Link, format_digest, parse_digest, validate_digest


def _to_digest(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return validate_digest(bytes(value))
    if isinstance(value, str):
        return parse_digest(value)
    raise ValueError(f"cannot read a digest from {type(value).__name__}")


def _to_link(value: Any) -> Link:
    if isinstance(value, Link):
        return value
    if isinstance(value, str):
        return Link.parse(value)
    raise ValueError(f"cannot read a link from {type(value).__name__}")


DigestField = Annotated[
    bytes, PlainValidator(_to_digest), PlainSerializer(format_digest, return_type=str)
]
LinkField = Annotated[Link, PlainValidator(_to_link), PlainSerializer(str, return_type=str)]


class Blob(BaseModel):
    """Unit of allocation and transfer."""

    digest: DigestField
    size: int = Field(ge=0)


class Address(BaseModel):
    """Time-bounded write target for a blob."""

    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    expires: int


class AllocateCaveats(BaseModel):
    space: str
    blob: Blob
    cause: LinkField


class AllocateOk(BaseModel):
    """``size`` is the number of bytes newly allocated; zero when nothing is needed."""

    size: int
    address: Optional[Address] = None


class Await(BaseModel):
    """Reference to the ``.out.ok`` of a task whose receipt proves completion."""

    model_config = ConfigDict(populate_by_name=True)

    ucan_await: List[str] = Field(alias="ucan/await")

    @classmethod
    def ok_of(cls, task: Link) -> "Await":
        return cls(ucan_await=[".out.ok", str(task)])


class AcceptCaveats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    space: str
    blob: Blob
    expires: int
    put: Await = Field(alias="_put")


class AcceptOk(BaseModel):
    """``site`` links the location commitment carried in the receipt blocks."""

    site: LinkField


class Range(BaseModel):
    offset: int = Field(ge=0)
    length: Optional[int] = Field(default=None, ge=0)


class LocationCaveats(BaseModel):
    space: str
    content: DigestField
    location: List[str]
    range: Optional[Range] = None


class IndexCaveats(BaseModel):
    content: LinkField
    index: LinkField


class EqualsCaveats(BaseModel):
    content: DigestField
    equals: LinkField


class Provider(BaseModel):
    """Where claims published by a provider can be fetched."""

    addresses: List[str] = Field(default_factory=list)


class CacheCaveats(BaseModel):
    claim: LinkField
    provider: Provider


class Empty(BaseModel):
    """Result for abilities that return nothing of interest."""


def to_nb(value: BaseModel) -> Dict[str, Any]:
    """Dump a caveats or result model in wire form."""
    return value.model_dump(by_alias=True, mode="json", exclude_none=True)
