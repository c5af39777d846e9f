"""Abilities, capabilities and the rule deciding when one grant covers a request."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class Ability(str, Enum):
    """Every ability the network understands."""

    BLOB_ALLOCATE = "blob/allocate"
    BLOB_ACCEPT = "blob/accept"
    ASSERT_LOCATION = "assert/location"
    ASSERT_INDEX = "assert/index"
    ASSERT_EQUALS = "assert/equals"
    CLAIM_CACHE = "claim/cache"
    BLOB_ALL = "blob/*"
    ASSERT_ALL = "assert/*"
    CLAIM_ALL = "claim/*"
    ALL = "*"

    @property
    def namespace(self) -> str:
        return self.value.split("/", 1)[0]

    def covers(self, requested: "Ability") -> bool:
        """Whether holding ``self`` implies holding ``requested``."""
        if self is Ability.ALL or self is requested:
            return True
        if self.value.endswith("/*"):
            return requested.namespace == self.namespace
        return False


class Capability(BaseModel):
    """An ability over a resource, optionally constrained by caveats."""

    model_config = ConfigDict(populate_by_name=True)

    can: Ability
    with_: str = Field(alias="with")
    nb: Dict[str, Any] = Field(default_factory=dict)

    def covers(self, requested: "Capability") -> bool:
        """Grant ``self`` covers ``requested`` when ability, resource and caveats match.

        Every caveat on the grant must be present with the same value on the
        request; a grant without caveats covers any caveats.
        """
        if self.with_ != requested.with_:
            return False
        if not self.can.covers(requested.can):
            return False
        return all(requested.nb.get(key) == value for key, value in self.nb.items())

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    def __str__(self) -> str:
        return f"{self.can.value} on {self.with_}"
