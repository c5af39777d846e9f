"""Tests for results, receipts and wire envelopes."""

import pytest

from blobnet.capabilities import AllocateOk, Address
from blobnet.digest import random_link
from blobnet.errors import AuthorizationError, StructuredFailureError
from blobnet.message import InvocationMessage, ReceiptMessage
from blobnet.receipts import Failure, Ok, Receipt
from blobnet.ucan import Ability, Signer, capability, delegate, invoke


def test_failure_from_domain_error_uses_failure_name():
    failure = Failure.from_exception(AuthorizationError("no proof"))
    assert failure.name == "Unauthorized"
    assert failure.message == "no proof"
    assert failure.stack is None


def test_failure_from_unexpected_error_keeps_stack():
    try:
        raise RuntimeError("boom")
    except RuntimeError as exc:
        failure = Failure.from_exception(exc, include_stack=True)
    assert failure.name == "HandlerExecutionError"
    assert "RuntimeError: boom" in failure.stack


def test_unwrap():
    assert Ok(3).unwrap() == 3
    with pytest.raises(StructuredFailureError) as info:
        Failure(name="BlobNotFound", message="missing").unwrap()
    assert info.value.failure.name == "BlobNotFound"


def test_receipt_signature_covers_outcome():
    service = Signer.generate()
    receipt = Receipt(ran=random_link(), out=Ok({"size": 1}), issuer=service.did).sign(service)
    assert receipt.verify()

    receipt.out = Ok({"size": 2})
    assert not receipt.verify()


def test_receipt_read_parses_ok_model():
    service = Signer.generate()
    ok = {"size": 4, "address": {"url": "http://x/blob", "headers": {}, "expires": 10}}
    receipt = Receipt(ran=random_link(), out=Ok(ok), issuer=service.did)

    result = receipt.read(AllocateOk)

    assert isinstance(result, Ok)
    assert result.value.address == Address(url="http://x/blob", expires=10)


def test_receipt_message_roundtrip_keeps_signature():
    service = Signer.generate()
    receipt = Receipt(
        ran=random_link(),
        out=Failure(name="BlobNotFound", message="never written"),
        issuer=service.did,
    ).sign(service)

    restored = ReceiptMessage.from_json(ReceiptMessage.from_receipt(receipt).to_json()).to_receipt()

    assert isinstance(restored.out, Failure)
    assert restored.out.name == "BlobNotFound"
    assert restored.verify()


def test_invocation_message_carries_proofs():
    service, broker = Signer.generate(), Signer.generate()
    grant = delegate(service, broker, [capability(Ability.BLOB_ACCEPT, service.did)])
    inv = invoke(broker, service, capability(Ability.BLOB_ACCEPT, service.did), [grant])

    message = InvocationMessage.from_json(InvocationMessage.from_invocation(inv).to_json())
    rebuilt, blocks = message.to_invocation()

    assert rebuilt == inv
    assert grant.link in blocks
