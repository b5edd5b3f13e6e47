"""
EIP-2612 permit verification with per-owner replay protection
"""

import logging
import time
import dataclasses
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_hash.auto import keccak

from privateoffer.database.state import StateStore
from privateoffer.exceptions import BadSignature, Expired, NonceMismatch
from privateoffer.models import ConsumedPermit, Permit, checksum

EIP712_DOMAIN_TYPEHASH = keccak(
    b"EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)
PERMIT_TYPEHASH = keccak(
    b"Permit(address owner,address spender,uint256 value,uint256 nonce,uint256 deadline)"
)

PERMIT_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "Permit": [
        {"name": "owner", "type": "address"},
        {"name": "spender", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "deadline", "type": "uint256"},
    ],
}


@dataclass(frozen=True)
class PermitDomain:
    """EIP-712 domain of the token that accepts the permit"""
    name: str
    chain_id: int
    verifying_contract: str
    version: str = "1"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": checksum(self.verifying_contract, "verifying_contract"),
        }

    @property
    def separator(self) -> bytes:
        return keccak(encode(
            ["bytes32", "bytes32", "bytes32", "uint256", "address"],
            [
                EIP712_DOMAIN_TYPEHASH,
                keccak(self.name.encode()),
                keccak(self.version.encode()),
                self.chain_id,
                checksum(self.verifying_contract, "verifying_contract"),
            ],
        ))


def build_permit_typed_data(domain: PermitDomain, permit: Permit) -> Dict[str, Any]:
    """Full EIP-712 message, ready for ``encode_typed_data(full_message=...)``"""
    return {
        "types": PERMIT_TYPES,
        "primaryType": "Permit",
        "domain": domain.to_dict(),
        "message": permit.to_dict(),
    }


def sign_permit(domain: PermitDomain, permit: Permit, private_key: Union[str, bytes]) -> bytes:
    """Off-chain signer side: 65-byte r||s||v signature over the permit"""
    signable = encode_typed_data(full_message=build_permit_typed_data(domain, permit))
    signed = Account.sign_message(signable, private_key=private_key)
    return bytes(signed.signature)


class PermitVerifier:
    """Checks signed permits for one token domain and consumes their nonces"""

    def __init__(self, store: StateStore, domain: PermitDomain,
                 clock: Optional[Callable[[], int]] = None):
        self.store = store
        self.domain = domain
        self.token = checksum(domain.verifying_contract, "verifying_contract")
        self.clock = clock or (lambda: int(time.time()))
        self.logger = logging.getLogger('privateoffer')

    @property
    def domain_separator(self) -> bytes:
        return self.domain.separator

    def nonces(self, owner: str) -> int:
        """Next nonce the owner must sign"""
        return self.store.get('nonces', (self.token, checksum(owner, "owner")), 0)

    def digest(self, permit: Permit) -> bytes:
        """EIP-712 digest: keccak256(0x1901 || domainSeparator || structHash)"""
        struct_hash = keccak(encode(
            ["bytes32", "address", "address", "uint256", "uint256", "uint256"],
            [PERMIT_TYPEHASH, permit.owner, permit.spender, permit.value, permit.nonce, permit.deadline],
        ))
        return keccak(b"\x19\x01" + self.domain_separator + struct_hash)

    def recover_signer(self, permit: Permit, signature: Union[bytes, str]) -> str:
        signable = encode_typed_data(full_message=build_permit_typed_data(self.domain, permit))
        try:
            return Account.recover_message(signable, signature=signature)
        except Exception as e:
            raise BadSignature(f"Unrecoverable permit signature: {e}") from e

    def verify(self, permit: Permit, signature: Union[bytes, str],
               expected_owner: Optional[str] = None, expected_spender: Optional[str] = None) -> ConsumedPermit:
        """Validate the permit and advance the owner's nonce exactly once.

        With ``expected_owner`` or ``expected_spender`` the digest is rebuilt
        around those addresses, so a permit signed for anyone else does not
        recover to the owner and fails with BadSignature.
        """
        if expected_owner is not None or expected_spender is not None:
            permit = dataclasses.replace(
                permit,
                owner=expected_owner or permit.owner,
                spender=expected_spender or permit.spender,
            )
        if signature is None:
            raise BadSignature("Permit supplied without a signature")
        signer = self.recover_signer(permit, signature)
        if signer != permit.owner:
            raise BadSignature(f"Permit signed by {signer}, expected {permit.owner}")

        now = self.clock()
        if now > permit.deadline:
            raise Expired(f"Permit deadline {permit.deadline} passed (now {now})")

        with self.store.transaction():
            expected = self.nonces(permit.owner)
            if permit.nonce != expected:
                raise NonceMismatch(
                    f"Permit nonce {permit.nonce} for {permit.owner}, expected {expected}"
                )
            self.store.set('nonces', (self.token, permit.owner), expected + 1)

        self.logger.debug(f"Permit {permit.owner} -> {permit.spender} ({permit.value}) consumed nonce {expected}")
        return ConsumedPermit(
            owner=permit.owner,
            spender=permit.spender,
            value=permit.value,
            nonce=permit.nonce,
        )
