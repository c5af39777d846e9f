"""Invocation server shared by every service.

A :class:`Server` validates each incoming invocation against its own DID,
walks the proof chain, parses the caveats and dispatches to the handler
registered for the ability. Handlers either return a :class:`Success` or a
:class:`~blobnet.receipts.Failure`; raised errors are converted into failures
so the caller always receives a signed receipt.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Generic, Mapping, Optional, Sequence, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from .archive import Block
from .capabilities import to_nb
from .digest import Link
from .errors import AuthorizationError, BlobnetError
from .message import InvocationMessage, ReceiptMessage
from .receipts import Failure, Ok, Receipt
from .ucan.capability import Ability
from .ucan.delegation import Delegation
from .ucan.principal import Signer
from .ucan.validator import Authorization, authorize

logger = logging.getLogger(__name__)

C = TypeVar("C", bound=BaseModel)


@dataclass
class Success:
    """Handler result: an ``ok`` model plus blocks to ship with the receipt."""

    ok: BaseModel
    blocks: Sequence[Block] = field(default_factory=tuple)


@dataclass
class Invocation(Generic[C]):
    """What a handler receives: the raw invocation, its authorization and caveats."""

    delegation: Delegation
    authorization: Authorization
    caveats: C
    blocks: Mapping[Link, bytes] = field(default_factory=dict)

    @property
    def issuer(self) -> str:
        return self.delegation.issuer


Handler = Callable[[Invocation], Awaitable[Union[Success, Failure]]]


class Server:
    """Executes invocations addressed to ``identity``."""

    def __init__(self, identity: Signer, debug: bool = False) -> None:
        self.identity = identity
        self.debug = debug
        self._handlers: Dict[Ability, Tuple[Type[BaseModel], Handler]] = {}

    @property
    def did(self) -> str:
        return self.identity.did

    def register(self, ability: Ability, caveats: Type[BaseModel], handler: Handler) -> None:
        self._handlers[ability] = (caveats, handler)

    def abilities(self) -> Sequence[Ability]:
        return list(self._handlers)

    async def execute(
        self, invocation: Delegation, blocks: Optional[Mapping[Link, bytes]] = None
    ) -> Receipt:
        """Run ``invocation`` and return a signed receipt.

        ``blocks`` holds whatever arrived with the invocation, so handlers can
        read attached data such as a claim being cached.
        """
        out = await self._run(invocation, blocks or {})
        if isinstance(out, Failure):
            logger.warning(
                f"{self.did} declined {invocation.link}: {out.name}: {out.message}"
            )
            receipt = Receipt(ran=invocation.link, out=out, issuer=self.did)
        else:
            receipt = Receipt(
                ran=invocation.link,
                out=Ok(to_nb(out.ok)),
                issuer=self.did,
                blocks={b.link: b.data for b in out.blocks},
            )
        return receipt.sign(self.identity)

    async def _run(
        self, invocation: Delegation, blocks: Mapping[Link, bytes]
    ) -> Union[Success, Failure]:
        try:
            authorization = authorize(invocation, self.did)
        except AuthorizationError as exc:
            return Failure.from_exception(exc, self.debug)

        ability = authorization.capability.can
        entry = self._handlers.get(ability)
        if entry is None:
            return Failure(
                name="HandlerNotFound", message=f"no handler for {ability.value}"
            )
        caveats_model, handler = entry
        try:
            caveats = caveats_model.model_validate(authorization.capability.nb)
        except ValidationError as exc:
            return Failure(name="MalformedCaveats", message=str(exc))

        try:
            return await handler(Invocation(invocation, authorization, caveats, blocks))
        except BlobnetError as exc:
            return Failure.from_exception(exc, self.debug)
        except Exception as exc:
            logger.exception(f"Handler for {ability.value} failed on {invocation.link}")
            return Failure.from_exception(exc, self.debug)

    async def dispatch(self, message: InvocationMessage) -> ReceiptMessage:
        """Decode, execute and encode; used by both in-memory and HTTP paths."""
        try:
            invocation, blocks = message.to_invocation()
        except (BlobnetError, ValueError) as exc:
            raise AuthorizationError(f"malformed invocation: {exc}") from exc
        receipt = await self.execute(invocation, blocks)
        return ReceiptMessage.from_receipt(receipt)

    async def _endpoint(self, request: Request) -> Response:
        try:
            message = InvocationMessage.from_json(await request.body())
        except ValidationError as exc:
            return JSONResponse({"error": str(exc)}, status_code=400)
        try:
            receipt = await self.dispatch(message)
        except AuthorizationError as exc:
            return JSONResponse({"error": str(exc)}, status_code=400)
        return Response(receipt.to_json(), media_type="application/json")

    def routes(self) -> list[Route]:
        return [Route("/", self._endpoint, methods=["POST"])]
