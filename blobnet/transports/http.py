"""HTTP connection posting invocations to a service endpoint."""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from ..errors import TransportError
from ..message import InvocationMessage, ReceiptMessage
from .base import BaseConnection

logger = logging.getLogger(__name__)


class HttpConnection(BaseConnection):
    """POSTs invocation messages to ``url`` with httpx."""

    def __init__(
        self,
        audience: str,
        url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(audience)
        self.url = url
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True

    async def disconnect(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def send(self, message: InvocationMessage) -> ReceiptMessage:
        if self._client is None:
            await self.connect()

        try:
            response = await self._client.post(
                self.url,
                content=message.to_json(),
                headers={"content-type": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"POST {self.url} failed: {exc}") from exc

        if response.status_code != 200:
            raise TransportError(
                f"POST {self.url} returned {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        try:
            return ReceiptMessage.from_json(response.content)
        except ValidationError as exc:
            raise TransportError(f"malformed receipt from {self.url}: {exc}") from exc
