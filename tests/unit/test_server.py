"""Tests for the invocation server and connections."""

import httpx
import pytest
from starlette.applications import Starlette

from blobnet.capabilities import AllocateCaveats, AllocateOk, Empty
from blobnet.config import BlobnetConfig
from blobnet.digest import format_digest, random_link, sum_sha256
from blobnet.errors import BlobNotFoundError, TransportError
from blobnet.message import ReceiptMessage
from blobnet.receipts import Failure, Ok, Receipt
from blobnet.server import Server, Success
from blobnet.transports import HttpConnection, InMemoryConnection, get_connection
from blobnet.ucan import Ability, Signer, capability, delegate, invoke


def allocate_nb(size=1):
    return {
        "space": Signer.generate().did,
        "blob": {"digest": format_digest(sum_sha256(b"blob")), "size": size},
        "cause": str(random_link()),
    }


@pytest.fixture
def parties():
    service, broker = Signer.generate(), Signer.generate()
    grant = delegate(service, broker, [capability(Ability.ALL, service.did)])
    return service, broker, grant


@pytest.fixture
def server(parties):
    service, _, _ = parties
    srv = Server(service)

    async def allocate(inv):
        return Success(AllocateOk(size=inv.caveats.blob.size))

    async def explode(inv):
        raise RuntimeError("boom")

    async def missing(inv):
        raise BlobNotFoundError("never written")

    srv.register(Ability.BLOB_ALLOCATE, AllocateCaveats, allocate)
    srv.register(Ability.ASSERT_INDEX, Empty, explode)
    srv.register(Ability.ASSERT_EQUALS, Empty, missing)
    return srv


@pytest.mark.asyncio
async def test_execute_returns_signed_ok(parties, server):
    service, broker, grant = parties
    inv = invoke(broker, service, capability(Ability.BLOB_ALLOCATE, service.did, allocate_nb(7)), [grant])

    receipt = await server.execute(inv)

    assert receipt.ran == inv.link
    assert receipt.out == Ok({"size": 7})
    assert receipt.verify()


@pytest.mark.asyncio
async def test_execute_unauthorized(parties, server):
    service, broker, _ = parties
    inv = invoke(broker, service, capability(Ability.BLOB_ALLOCATE, service.did, allocate_nb()))

    receipt = await server.execute(inv)

    assert isinstance(receipt.out, Failure)
    assert receipt.out.name == "Unauthorized"


@pytest.mark.asyncio
async def test_execute_failures_become_values(parties, server):
    service, broker, grant = parties

    async def run(ability, nb):
        inv = invoke(broker, service, capability(ability, service.did, nb), [grant])
        return (await server.execute(inv)).out

    assert (await run(Ability.BLOB_ACCEPT, {})).name == "HandlerNotFound"
    assert (await run(Ability.BLOB_ALLOCATE, {"space": "x"})).name == "MalformedCaveats"
    assert (await run(Ability.ASSERT_INDEX, {})).name == "HandlerExecutionError"
    assert (await run(Ability.ASSERT_EQUALS, {})).name == "BlobNotFound"


@pytest.mark.asyncio
async def test_inmemory_connection(parties, server):
    service, broker, grant = parties
    conn = InMemoryConnection(server)
    inv = invoke(broker, service, capability(Ability.BLOB_ALLOCATE, service.did, allocate_nb(3)), [grant])

    receipt = await conn.execute(inv)

    assert receipt.read(AllocateOk) == Ok(AllocateOk(size=3))


@pytest.mark.asyncio
async def test_http_connection_over_asgi(parties, server):
    service, broker, grant = parties
    app = Starlette(routes=server.routes())
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app)) as client:
        conn = HttpConnection(service.did, "http://service.test/", client=client)
        inv = invoke(broker, service, capability(Ability.BLOB_ALLOCATE, service.did, allocate_nb(5)), [grant])
        receipt = await conn.execute(inv)

    assert receipt.out == Ok({"size": 5})


@pytest.mark.asyncio
async def test_http_connection_status_error(parties):
    service, broker, grant = parties
    transport = httpx.MockTransport(lambda request: httpx.Response(503, text="down"))
    async with httpx.AsyncClient(transport=transport) as client:
        conn = HttpConnection(service.did, "http://service.test/", client=client)
        inv = invoke(broker, service, capability(Ability.BLOB_ALLOCATE, service.did), [grant])
        with pytest.raises(TransportError) as info:
            await conn.execute(inv)
    assert info.value.status_code == 503


@pytest.mark.asyncio
async def test_connection_rejects_receipt_from_impostor(parties):
    service, broker, grant = parties
    impostor = Signer.generate()
    inv = invoke(broker, service, capability(Ability.BLOB_ALLOCATE, service.did), [grant])
    forged = Receipt(ran=inv.link, out=Ok({"size": 0}), issuer=impostor.did).sign(impostor)
    body = ReceiptMessage.from_receipt(forged).to_json()

    transport = httpx.MockTransport(lambda request: httpx.Response(200, text=body))
    async with httpx.AsyncClient(transport=transport) as client:
        conn = HttpConnection(service.did, "http://service.test/", client=client)
        with pytest.raises(TransportError):
            await conn.execute(inv)


@pytest.mark.asyncio
async def test_http_endpoint_rejects_garbage(server):
    app = Starlette(routes=server.routes())
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app)) as client:
        response = await client.post("http://service.test/", content=b"not json")
    assert response.status_code == 400


def test_get_connection_selects_backend(server, monkeypatch):
    monkeypatch.delenv("BLOBNET_TRANSPORT", raising=False)
    config = BlobnetConfig()

    assert isinstance(get_connection(server, "http://s/", config=config), HttpConnection)
    assert isinstance(
        get_connection(server, "http://s/", backend="inmemory", config=config), InMemoryConnection
    )
    monkeypatch.setenv("BLOBNET_TRANSPORT", "inmemory")
    assert isinstance(get_connection(server, "http://s/", config=config), InMemoryConnection)
    with pytest.raises(ValueError):
        get_connection(server, "http://s/", backend="carrier-pigeon", config=config)
