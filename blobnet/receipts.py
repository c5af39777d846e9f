"""Success-or-failure results and the signed receipts that carry them."""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel

from .digest import Link, canonical_json
from .errors import BlobnetError, StructuredFailureError
from .ucan.principal import Signer, Verifier

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


class Failure(BaseModel):
    """Explicit failure payload returned by a service that declined a request."""

    name: str = "Error"
    message: str
    stack: Optional[str] = None

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> Any:
        raise StructuredFailureError(self)

    @classmethod
    def from_exception(cls, exc: BaseException, include_stack: bool = False) -> "Failure":
        name = exc.failure_name if isinstance(exc, BlobnetError) else "HandlerExecutionError"
        stack = None
        if include_stack:
            stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return cls(name=name, message=str(exc), stack=stack)


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result."""

    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


Result = Union[Ok[T], Failure]


@dataclass
class Receipt:
    """Outcome of executing one invocation, issued by the executing service."""

    ran: Link
    out: Result[Dict[str, Any]]
    issuer: str
    blocks: Dict[Link, bytes] = field(default_factory=dict)
    signature: Optional[bytes] = None

    def signing_input(self) -> bytes:
        if isinstance(self.out, Failure):
            out: Dict[str, Any] = {"error": self.out.model_dump(exclude_none=True)}
        else:
            out = {"ok": self.out.value}
        return canonical_json({"ran": str(self.ran), "out": out, "iss": self.issuer})

    def sign(self, signer: Signer) -> "Receipt":
        if signer.did != self.issuer:
            raise ValueError("receipts must be signed by their issuer")
        self.signature = signer.sign(self.signing_input())
        return self

    def verify(self) -> bool:
        if self.signature is None:
            return False
        return Verifier.parse(self.issuer).verify(self.signature, self.signing_input())

    def read(self, model: Type[M]) -> Result[M]:
        """Return the ``ok`` value parsed as ``model``, or the failure unchanged."""
        if isinstance(self.out, Failure):
            return self.out
        return Ok(model.model_validate(self.out.value))

    def merge_blocks(self, blocks: Mapping[Link, bytes]) -> None:
        self.blocks.update(blocks)
