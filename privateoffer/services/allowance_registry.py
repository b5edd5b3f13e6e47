"""
Role-gated minting allowance ledger
"""

import logging

from eth_hash.auto import keccak

from privateoffer.database.state import StateStore
from privateoffer.exceptions import InsufficientAllowance, InvalidInput, Overflow, Unauthorized
from privateoffer.models import MAX_UINT256, checksum, uint256

DEFAULT_ADMIN_ROLE = "0x" + "00" * 32
MINTALLOWER_ROLE = "0x" + keccak(b"MINTALLOWER_ROLE").hex()


class AllowanceRegistry:
    """Per-token roles and minting allowances.

    Allowances are keyed by address only. Nothing checks whether an entity
    lives at the beneficiary address, so a clone address can be funded before
    the clone exists.
    """

    def __init__(self, store: StateStore, token: str, admin: str):
        self.store = store
        self.token = checksum(token, "token")
        self.logger = logging.getLogger('privateoffer')
        with self.store.transaction():
            self._set_role(DEFAULT_ADMIN_ROLE, checksum(admin, "admin"), admin)

    # Roles

    def has_role(self, role: str, account: str) -> bool:
        return bool(self.store.get('roles', (self.token, role, checksum(account))))

    def grant_role(self, admin: str, role: str, account: str) -> None:
        """Grant ``role``; granting an existing role is a no-op"""
        self._check_admin(admin)
        account = checksum(account)
        with self.store.transaction():
            if not self.has_role(role, account):
                self._set_role(role, account, admin)

    def revoke_role(self, admin: str, role: str, account: str) -> None:
        self._check_admin(admin)
        account = checksum(account)
        with self.store.transaction():
            if self.store.delete('roles', (self.token, role, account)):
                self.store.emit('RoleRevoked', token=self.token, role=role, account=account, sender=checksum(admin))

    def _set_role(self, role: str, account: str, sender: str):
        self.store.set('roles', (self.token, role, account), True)
        self.store.emit('RoleGranted', token=self.token, role=role, account=account, sender=checksum(sender))

    def _check_admin(self, caller: str):
        if not self.has_role(DEFAULT_ADMIN_ROLE, caller):
            raise Unauthorized(f"{caller} is missing the admin role on {self.token}")

    # Allowances

    def allowance(self, beneficiary: str) -> int:
        return self.store.get('minting_allowances', (self.token, checksum(beneficiary)), 0)

    def increase_allowance(self, caller: str, beneficiary: str, amount: int) -> int:
        """Add ``amount`` to the beneficiary's minting allowance, returns the new value"""
        self._check_allower(caller)
        beneficiary = checksum(beneficiary, "beneficiary")
        uint256(amount, "amount")
        with self.store.transaction():
            current = self.allowance(beneficiary)
            if current + amount > MAX_UINT256:
                raise Overflow(f"Minting allowance for {beneficiary} would overflow")
            self._write_allowance(beneficiary, current + amount)
        self.logger.info(f"Minting allowance for {beneficiary} increased by {amount} to {current + amount}")
        return current + amount

    def decrease_allowance(self, caller: str, beneficiary: str, amount: int) -> int:
        """Subtract ``amount``, stopping at zero"""
        self._check_allower(caller)
        beneficiary = checksum(beneficiary, "beneficiary")
        uint256(amount, "amount")
        with self.store.transaction():
            remaining = max(0, self.allowance(beneficiary) - amount)
            self._write_allowance(beneficiary, remaining)
        return remaining

    def _consume_allowance(self, beneficiary: str, amount: int) -> int:
        """Spend ``amount`` of the beneficiary's allowance; only SecurityToken.mint calls this"""
        beneficiary = checksum(beneficiary, "beneficiary")
        if not isinstance(amount, int) or amount < 0:
            raise InvalidInput(f"amount must be a non-negative int, got {amount!r}")
        with self.store.transaction():
            current = self.allowance(beneficiary)
            if amount > current:
                raise InsufficientAllowance(
                    f"{beneficiary} has minting allowance {current}, needs {amount}"
                )
            self._write_allowance(beneficiary, current - amount)
        return current - amount

    def _write_allowance(self, beneficiary: str, value: int):
        if value:
            self.store.set('minting_allowances', (self.token, beneficiary), value)
        else:
            self.store.delete('minting_allowances', (self.token, beneficiary))
        self.store.emit('MintingAllowanceChanged', token=self.token, minter=beneficiary, allowance=value)

    def _check_allower(self, caller: str):
        if not self.has_role(MINTALLOWER_ROLE, caller):
            raise Unauthorized(f"{caller} is missing MINTALLOWER_ROLE on {self.token}")
