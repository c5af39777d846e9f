"""Tests for identities, delegations and proof-chain authorization."""

import time

import pytest

from blobnet.errors import AuthorizationError
from blobnet.ucan import (
    Ability,
    Signer,
    Verifier,
    authorize,
    capability,
    decode,
    delegate,
    invoke,
    view,
)


def test_did_key_roundtrip():
    signer = Signer.generate()
    verifier = Verifier.parse(signer.did)

    assert signer.did.startswith("did:key:z6Mk")
    assert verifier == signer.verifier()
    assert verifier.verify(signer.sign(b"msg"), b"msg")
    assert not verifier.verify(signer.sign(b"msg"), b"other")


def test_signer_bytes_roundtrip():
    signer = Signer.generate()
    assert Signer.from_bytes(signer.to_bytes()).did == signer.did


def test_invocation_authorized_through_chain():
    service, broker, worker = Signer.generate(), Signer.generate(), Signer.generate()
    grant = delegate(service, broker, [capability(Ability.BLOB_ALL, service.did)])
    sub = delegate(
        broker, worker, [capability(Ability.BLOB_ALLOCATE, service.did)], proofs=[grant]
    )

    inv = invoke(worker, service, capability(Ability.BLOB_ALLOCATE, service.did), [sub])
    auth = authorize(inv, service.did)

    assert auth.issuer == worker.did
    assert [p.link for p in auth.chain] == [sub.link, grant.link]
    assert auth.root == service.did


def test_delegate_without_authority_fails():
    owner, stranger, other = Signer.generate(), Signer.generate(), Signer.generate()
    with pytest.raises(AuthorizationError):
        delegate(stranger, other, [capability(Ability.BLOB_ALLOCATE, owner.did)])


def test_authorize_rejects_ungranted_ability():
    service, broker = Signer.generate(), Signer.generate()
    grant = delegate(service, broker, [capability(Ability.BLOB_ALLOCATE, service.did)])
    inv = invoke(broker, service, capability(Ability.BLOB_ACCEPT, service.did), [grant])

    with pytest.raises(AuthorizationError):
        authorize(inv, service.did)


def test_authorize_rejects_wrong_audience():
    service, other = Signer.generate(), Signer.generate()
    inv = invoke(service, other, capability(Ability.BLOB_ALLOCATE, service.did))

    with pytest.raises(AuthorizationError, match="addressed to"):
        authorize(inv, service.did)


def test_expired_proof_is_rejected():
    service, broker = Signer.generate(), Signer.generate()
    grant = delegate(
        service,
        broker,
        [capability(Ability.BLOB_ALLOCATE, service.did)],
        expiration=int(time.time()) - 60,
    )
    inv = invoke(broker, service, capability(Ability.BLOB_ALLOCATE, service.did), [grant])

    with pytest.raises(AuthorizationError, match="expired"):
        authorize(inv, service.did)


def test_caveats_on_grant_constrain_request():
    service, broker = Signer.generate(), Signer.generate()
    grant = delegate(
        service,
        broker,
        [capability(Ability.BLOB_ALLOCATE, service.did, {"space": "did:key:zA"})],
    )
    allowed = invoke(
        broker,
        service,
        capability(Ability.BLOB_ALLOCATE, service.did, {"space": "did:key:zA", "size": 1}),
        [grant],
    )
    denied = invoke(
        broker,
        service,
        capability(Ability.BLOB_ALLOCATE, service.did, {"space": "did:key:zB"}),
        [grant],
    )

    authorize(allowed, service.did)
    with pytest.raises(AuthorizationError):
        authorize(denied, service.did)


def test_wildcard_abilities():
    assert Ability.ALL.covers(Ability.ASSERT_INDEX)
    assert Ability.BLOB_ALL.covers(Ability.BLOB_ACCEPT)
    assert not Ability.BLOB_ALL.covers(Ability.ASSERT_INDEX)
    assert not Ability.BLOB_ALLOCATE.covers(Ability.BLOB_ACCEPT)


def test_view_rebuilds_delegation_and_proofs():
    service, broker = Signer.generate(), Signer.generate()
    grant = delegate(service, broker, [capability(Ability.BLOB_ALLOCATE, service.did)])
    inv = invoke(broker, service, capability(Ability.BLOB_ALLOCATE, service.did), [grant])

    rebuilt = view(inv.link, inv.blocks())

    assert rebuilt == inv
    assert rebuilt.proofs == (grant,)


def test_view_missing_block():
    service = Signer.generate()
    inv = invoke(service, service, capability(Ability.BLOB_ALLOCATE, service.did))
    with pytest.raises(ValueError):
        view(inv.link, {})


def test_decode_rejects_forged_signature():
    alice, bob = Signer.generate(), Signer.generate()
    genuine = invoke(alice, bob, capability(Ability.BLOB_ALLOCATE, alice.did))
    other = invoke(bob, alice, capability(Ability.BLOB_ALLOCATE, bob.did))
    header, payload, _ = genuine.token.split(".")
    forged = ".".join([header, payload, other.token.split(".")[2]])

    with pytest.raises(AuthorizationError):
        decode(forged)
