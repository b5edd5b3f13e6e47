"""
Tests for EIP-2612 permit verification
"""

import pytest
from eth_account.messages import encode_typed_data
from eth_hash.auto import keccak

from privateoffer import BadSignature, Expired, NonceMismatch, Permit, sign_permit
from privateoffer.services import build_permit_typed_data

from conftest import NOW, make_account

SPENDER = "0x" + "5e" * 20


def _permit(currency, owner, value=100, deadline=NOW + 60, nonce=None):
    return Permit(
        owner=owner.address,
        spender=SPENDER,
        value=value,
        nonce=currency.nonces(owner.address) if nonce is None else nonce,
        deadline=deadline,
    )


def test_digest_matches_eip712_encoding(currency, investor):
    permit = _permit(currency, investor)
    signable = encode_typed_data(full_message=build_permit_typed_data(currency.domain, permit))

    assert currency.verifier.domain_separator == signable.header
    assert currency.verifier.digest(permit) == keccak(b"\x19" + signable.version + signable.header + signable.body)


def test_valid_permit_consumes_nonce(currency, investor):
    permit = _permit(currency, investor)
    consumed = currency.verifier.verify(permit, sign_permit(currency.domain, permit, investor.key))

    assert consumed.owner == investor.address
    assert consumed.spender == SPENDER
    assert consumed.value == 100
    assert consumed.nonce == 0
    assert currency.nonces(investor.address) == 1


def test_replayed_permit_rejected(currency, investor):
    permit = _permit(currency, investor)
    signature = sign_permit(currency.domain, permit, investor.key)
    currency.verifier.verify(permit, signature)

    with pytest.raises(NonceMismatch):
        currency.verifier.verify(permit, signature)
    assert currency.nonces(investor.address) == 1


def test_future_nonce_rejected(currency, investor):
    permit = _permit(currency, investor, nonce=1)
    with pytest.raises(NonceMismatch):
        currency.verifier.verify(permit, sign_permit(currency.domain, permit, investor.key))
    assert currency.nonces(investor.address) == 0


def test_wrong_signer_rejected(currency, investor):
    permit = _permit(currency, investor)
    with pytest.raises(BadSignature):
        currency.verifier.verify(permit, sign_permit(currency.domain, permit, make_account(99).key))
    assert currency.nonces(investor.address) == 0


def test_tampered_value_rejected(currency, investor):
    permit = _permit(currency, investor, value=100)
    signature = sign_permit(currency.domain, permit, investor.key)
    with pytest.raises(BadSignature):
        currency.verifier.verify(_permit(currency, investor, value=101), signature)


def test_garbage_signature_rejected(currency, investor):
    with pytest.raises(BadSignature):
        currency.verifier.verify(_permit(currency, investor), b"\x01" * 10)


def test_deadline_is_inclusive(currency, investor, clock):
    permit = _permit(currency, investor, deadline=NOW)
    currency.verifier.verify(permit, sign_permit(currency.domain, permit, investor.key))

    clock.now = NOW + 1
    late = _permit(currency, investor, deadline=NOW)
    with pytest.raises(Expired):
        currency.verifier.verify(late, sign_permit(currency.domain, late, investor.key))
    assert currency.nonces(investor.address) == 1


def test_permit_sets_allowance(currency, investor):
    permit = _permit(currency, investor, value=35)
    # Relayed by someone other than the owner
    currency.permit(permit.owner, permit.spender, permit.value, permit.deadline,
                    sign_permit(currency.domain, permit, investor.key))

    assert currency.allowance(investor.address, SPENDER) == 35
    assert currency.nonces(investor.address) == 1


def test_permit_bound_to_expected_spender(currency, investor):
    permit = _permit(currency, investor)
    signature = sign_permit(currency.domain, permit, investor.key)

    with pytest.raises(BadSignature):
        currency.verifier.verify(permit, signature, expected_spender="0x" + "c1" * 20)
    assert currency.nonces(investor.address) == 0

    consumed = currency.verifier.verify(permit, signature, expected_owner=investor.address,
                                        expected_spender=SPENDER)
    assert consumed.spender == SPENDER


def test_permit_bound_to_expected_owner(currency, investor):
    other = make_account(99)
    permit = _permit(currency, other)
    with pytest.raises(BadSignature):
        currency.verifier.verify(permit, sign_permit(currency.domain, permit, other.key),
                                 expected_owner=investor.address)
    assert currency.nonces(investor.address) == 0
    assert currency.nonces(other.address) == 0
