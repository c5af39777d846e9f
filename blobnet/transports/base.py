"""Base connection interface for sending invocations to a service."""

from __future__ import annotations

import abc
from typing import Iterable

from ..archive import Block
from ..errors import TransportError
from ..message import InvocationMessage, ReceiptMessage
from ..receipts import Receipt
from ..ucan.delegation import Delegation


class BaseConnection(metaclass=abc.ABCMeta):
    """Abstract channel to a single service identified by ``audience``."""

    def __init__(self, audience: str) -> None:
        self.audience = audience

    async def connect(self) -> None:
        """Open the underlying channel (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close the underlying channel (no-op by default)."""
        pass

    @abc.abstractmethod
    async def send(self, message: InvocationMessage) -> ReceiptMessage:
        """Deliver ``message`` and return the service's answer."""
        raise NotImplementedError

    async def execute(
        self, invocation: Delegation, attachments: Iterable[Block] = ()
    ) -> Receipt:
        """Send ``invocation`` and return its verified receipt."""
        if invocation.audience != self.audience:
            raise ValueError(
                f"invocation is addressed to {invocation.audience}, "
                f"connection is to {self.audience}"
            )
        response = await self.send(InvocationMessage.from_invocation(invocation, attachments))
        receipt = response.to_receipt()
        if receipt.ran != invocation.link:
            raise TransportError(f"receipt is for {receipt.ran}, not {invocation.link}")
        if receipt.issuer != self.audience or not receipt.verify():
            raise TransportError(f"receipt for {invocation.link} has an invalid signature")
        return receipt
