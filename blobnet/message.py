"""Wire envelopes exchanged between services."""

from __future__ import annotations

import base64
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

from .archive import Block
from .digest import Link, verify_digest
from .receipts import Failure, Ok, Receipt
from .ucan.delegation import Delegation, view


def encode_blocks(blocks: Mapping[Link, bytes]) -> Dict[str, str]:
    return {str(link): base64.b64encode(data).decode("ascii") for link, data in blocks.items()}


def decode_blocks(blocks: Mapping[str, str]) -> Dict[Link, bytes]:
    """Decode a block map, checking every block against its link."""
    out: Dict[Link, bytes] = {}
    for text, encoded in blocks.items():
        link = Link.parse(text)
        data = base64.b64decode(encoded)
        verify_digest(data, link.digest)
        out[link] = data
    return out


class InvocationMessage(BaseModel):
    """An invocation plus every block needed to rebuild its proof chain."""

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    invocation: str
    blocks: Dict[str, str] = Field(default_factory=dict)
    spec_version: str = "1.0"

    @classmethod
    def from_invocation(
        cls, invocation: Delegation, attachments: Iterable[Block] = ()
    ) -> "InvocationMessage":
        """Wrap ``invocation``; ``attachments`` travel alongside its proofs."""
        blocks = invocation.blocks()
        blocks.update((block.link, block.data) for block in attachments)
        return cls(invocation=str(invocation.link), blocks=encode_blocks(blocks))

    def to_invocation(self) -> Tuple[Delegation, Dict[Link, bytes]]:
        """Rebuild the invocation and return it with every block of the message."""
        blocks = decode_blocks(self.blocks)
        return view(Link.parse(self.invocation), blocks), blocks

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes) -> "InvocationMessage":
        return cls.model_validate_json(data)


class ReceiptOut(BaseModel):
    ok: Optional[Dict[str, Any]] = None
    error: Optional[Failure] = None


class ReceiptMessage(BaseModel):
    """Signed receipt and the blocks it references."""

    ran: str
    issuer: str
    out: ReceiptOut
    signature: Optional[str] = None
    blocks: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_receipt(cls, receipt: Receipt) -> "ReceiptMessage":
        if isinstance(receipt.out, Failure):
            out = ReceiptOut(error=receipt.out)
        else:
            out = ReceiptOut(ok=receipt.out.value)
        return cls(
            ran=str(receipt.ran),
            issuer=receipt.issuer,
            out=out,
            signature=(
                base64.b64encode(receipt.signature).decode("ascii")
                if receipt.signature is not None
                else None
            ),
            blocks=encode_blocks(receipt.blocks),
        )

    def to_receipt(self) -> Receipt:
        if self.out.error is not None:
            result: Any = self.out.error
        elif self.out.ok is not None:
            result = Ok(self.out.ok)
        else:
            raise ValueError("receipt has neither ok nor error")
        return Receipt(
            ran=Link.parse(self.ran),
            out=result,
            issuer=self.issuer,
            blocks=decode_blocks(self.blocks),
            signature=base64.b64decode(self.signature) if self.signature else None,
        )

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes) -> "ReceiptMessage":
        return cls.model_validate_json(data)
