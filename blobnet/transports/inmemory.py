"""In-process connection for tests and single-process networks."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..message import InvocationMessage, ReceiptMessage
from .base import BaseConnection

if TYPE_CHECKING:
    from ..server import Server


class InMemoryConnection(BaseConnection):
    """Hands messages straight to a :class:`~blobnet.server.Server`.

    Messages still round-trip through their JSON form so both sides see
    exactly what an HTTP peer would.
    """

    def __init__(self, server: "Server") -> None:
        super().__init__(server.did)
        self._server = server

    async def send(self, message: InvocationMessage) -> ReceiptMessage:
        decoded = InvocationMessage.from_json(message.to_json())
        response = await self._server.dispatch(decoded)
        return ReceiptMessage.from_json(response.to_json())
