"""Upload broker: negotiates allocation and transfer confirmation with a storage node."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Union

from .capabilities import (
    AcceptCaveats,
    AcceptOk,
    Address,
    AllocateCaveats,
    AllocateOk,
    Await,
    Blob,
    to_nb,
)
from .digest import format_digest, random_link
from .errors import IntegrityError
from .receipts import Failure, Ok, Receipt, Result
from .transports.base import BaseConnection
from .ucan import Ability, Delegation, Signer, capability, invoke, view

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlreadyPresent:
    """The storage node already holds the blob for the space; nothing to transfer."""


ALREADY_PRESENT = AlreadyPresent()

Allocation = Union[Address, AlreadyPresent]


class UploadService:
    """Acts on behalf of clients towards a single storage node.

    ``proof`` must delegate ``blob/allocate`` and ``blob/accept`` over the
    storage node's DID to ``identity``.
    """

    def __init__(self, identity: Signer, storage: BaseConnection, proof: Delegation) -> None:
        self.identity = identity
        self.storage = storage
        self.proof = proof

    @property
    def did(self) -> str:
        return self.identity.did

    async def blob_add(self, space: str, digest: bytes, size: int) -> Result[Allocation]:
        """Ask the storage node where ``digest`` should be written."""
        logger.info(f"blob/add {format_digest(digest)} ({size} bytes) for {space}")
        caveats = AllocateCaveats(
            space=space, blob=Blob(digest=digest, size=size), cause=random_link()
        )
        receipt = await self._invoke(Ability.BLOB_ALLOCATE, to_nb(caveats))
        result = receipt.read(AllocateOk)
        if isinstance(result, Failure):
            logger.warning(f"blob/allocate declined: {result.name}: {result.message}")
            return result
        if result.value.address is None:
            return Ok(ALREADY_PRESENT)
        return Ok(result.value.address)

    async def conclude_transfer(
        self, space: str, digest: bytes, size: int, expires: int
    ) -> Result[Delegation]:
        """Confirm the transfer of ``digest`` and return the location commitment.

        A declined accept comes back as a :class:`Failure`; it is not retried.
        """
        logger.info(f"Concluding transfer of {format_digest(digest)} for {space}")
        caveats = AcceptCaveats(
            space=space,
            blob=Blob(digest=digest, size=size),
            expires=expires,
            put=Await.ok_of(random_link()),
        )
        receipt = await self._invoke(Ability.BLOB_ACCEPT, to_nb(caveats))
        result = receipt.read(AcceptOk)
        if isinstance(result, Failure):
            logger.warning(f"blob/accept declined: {result.name}: {result.message}")
            return result
        try:
            claim = view(result.value.site, receipt.blocks)
        except ValueError as exc:
            raise IntegrityError(f"receipt does not carry commitment {result.value.site}: {exc}") from exc
        return Ok(claim)

    async def _invoke(self, ability: Ability, nb: Dict[str, Any]) -> Receipt:
        audience = self.storage.audience
        invocation = invoke(
            self.identity, audience, capability(ability, audience, nb), [self.proof]
        )
        return await self.storage.execute(invocation)
