"""
Token ledgers touched by settlement: a permit-capable payment currency and
the role-gated security token that private offers deliver
"""

import logging
from typing import Callable, Iterable, Optional, Union

from privateoffer.database.state import StateStore
from privateoffer.exceptions import InsufficientAllowance, InsufficientBalance, Overflow
from privateoffer.models import MAX_UINT256, ZERO_ADDRESS, Permit, checksum, uint256
from privateoffer.services.allowance_registry import AllowanceRegistry
from privateoffer.services.fee_settings import AllowList, FeeSettings
from privateoffer.services.permit_verifier import PermitDomain, PermitVerifier


class Erc20Ledger:
    """Balances and allowances for one token address"""

    def __init__(self, store: StateStore, address: str, name: str, symbol: str, decimals: int = 18):
        self.store = store
        self.address = checksum(address, "token")
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.logger = logging.getLogger('privateoffer')

    def balance_of(self, account: str) -> int:
        return self.store.get('balances', (self.address, checksum(account)), 0)

    def total_supply(self) -> int:
        return self.store.get('supply', self.address, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.store.get('allowances', (self.address, checksum(owner), checksum(spender)), 0)

    def transfer(self, caller: str, to: str, amount: int) -> None:
        with self.store.transaction():
            self._transfer(checksum(caller), checksum(to), amount)

    def approve(self, caller: str, spender: str, amount: int) -> None:
        with self.store.transaction():
            self._approve(checksum(caller), checksum(spender), amount)

    def transfer_from(self, caller: str, sender: str, recipient: str, amount: int) -> None:
        caller, sender, recipient = checksum(caller), checksum(sender), checksum(recipient)
        with self.store.transaction():
            self._spend_allowance(sender, caller, amount)
            self._transfer(sender, recipient, amount)

    def _transfer(self, sender: str, recipient: str, amount: int):
        uint256(amount, "amount")
        balance = self.balance_of(sender)
        if amount > balance:
            raise InsufficientBalance(f"{sender} holds {balance} {self.symbol}, needs {amount}")
        self._write_balance(sender, balance - amount)
        self._write_balance(recipient, self.balance_of(recipient) + amount)
        self.store.emit('Transfer', token=self.address, sender=sender, recipient=recipient, value=amount)

    def _approve(self, owner: str, spender: str, amount: int):
        uint256(amount, "amount")
        key = (self.address, owner, spender)
        if amount:
            self.store.set('allowances', key, amount)
        else:
            self.store.delete('allowances', key)
        self.store.emit('Approval', token=self.address, owner=owner, spender=spender, value=amount)

    def _spend_allowance(self, owner: str, spender: str, amount: int):
        current = self.allowance(owner, spender)
        if current == MAX_UINT256:
            return
        if amount > current:
            raise InsufficientAllowance(
                f"{spender} may spend {current} {self.symbol} of {owner}, needs {amount}"
            )
        self._approve(owner, spender, current - amount)

    def _mint(self, to: str, amount: int):
        uint256(amount, "amount")
        supply = self.total_supply()
        if supply + amount > MAX_UINT256:
            raise Overflow(f"Minting {amount} {self.symbol} overflows total supply")
        self.store.set('supply', self.address, supply + amount)
        self._write_balance(to, self.balance_of(to) + amount)
        self.store.emit('Transfer', token=self.address, sender=ZERO_ADDRESS, recipient=to, value=amount)

    def _write_balance(self, account: str, value: int):
        if value:
            self.store.set('balances', (self.address, account), value)
        else:
            self.store.delete('balances', (self.address, account))

    def release_allowances(self, owners: Iterable[str], spender: str) -> int:
        """Drop what each owner still allows ``spender``; returns rows removed"""
        spender = checksum(spender)
        removed = 0
        with self.store.transaction():
            for owner in owners:
                if self.store.delete('allowances', (self.address, checksum(owner), spender)):
                    removed += 1
        return removed


class PaymentToken(Erc20Ledger):
    """ERC-20 currency with EIP-2612 permit"""

    def __init__(self, store: StateStore, address: str, name: str, symbol: str, decimals: int = 6,
                 chain_id: int = 1, clock: Optional[Callable[[], int]] = None):
        super().__init__(store, address, name, symbol, decimals)
        self.verifier = PermitVerifier(store, PermitDomain(name, chain_id, self.address), clock)

    @property
    def domain(self) -> PermitDomain:
        return self.verifier.domain

    def nonces(self, owner: str) -> int:
        return self.verifier.nonces(owner)

    def permit(self, owner: str, spender: str, value: int, deadline: int,
               signature: Union[bytes, str], nonce: Optional[int] = None) -> None:
        """Submit an off-chain signed approval; any relayer may call this"""
        if nonce is None:
            nonce = self.nonces(owner)
        self.consume_permit(Permit(owner, spender, value, nonce, deadline), signature)

    def consume_permit(self, permit: Permit, signature: Union[bytes, str],
                       owner: Optional[str] = None, spender: Optional[str] = None) -> None:
        """Verify and apply a permit; ``owner``/``spender`` pin who it must authorize"""
        with self.store.transaction():
            consumed = self.verifier.verify(permit, signature, expected_owner=owner, expected_spender=spender)
            self._approve(consumed.owner, consumed.spender, consumed.value)

    def mint(self, to: str, amount: int) -> None:
        """Faucet mint for funding accounts; the currency is not role-gated"""
        with self.store.transaction():
            self._mint(checksum(to), amount)


class SecurityToken(Erc20Ledger):
    """Deliverable token: minting is limited by per-minter allowances"""

    def __init__(self, store: StateStore, address: str, name: str, symbol: str, admin: str,
                 allow_list: Optional[AllowList] = None, fee_settings: Optional[FeeSettings] = None,
                 decimals: int = 18):
        super().__init__(store, address, name, symbol, decimals)
        self.registry = AllowanceRegistry(store, self.address, admin)
        self.allow_list = allow_list
        self.fee_settings = fee_settings

    def has_role(self, role: str, account: str) -> bool:
        return self.registry.has_role(role, account)

    def grant_role(self, caller: str, role: str, account: str) -> None:
        self.registry.grant_role(caller, role, account)

    def revoke_role(self, caller: str, role: str, account: str) -> None:
        self.registry.revoke_role(caller, role, account)

    def minting_allowance(self, minter: str) -> int:
        return self.registry.allowance(minter)

    def increase_minting_allowance(self, caller: str, minter: str, amount: int) -> int:
        return self.registry.increase_allowance(caller, minter, amount)

    def decrease_minting_allowance(self, caller: str, minter: str, amount: int) -> int:
        return self.registry.decrease_allowance(caller, minter, amount)

    def mint(self, caller: str, to: str, amount: int) -> int:
        """Mint against the caller's allowance; returns the token fee minted on top"""
        to = checksum(to)
        fee = 0
        with self.store.transaction():
            self.registry._consume_allowance(caller, amount)
            self._mint(to, amount)
            if self.fee_settings is not None:
                fee = self.fee_settings.token_fee(amount)
                if fee:
                    self._mint(self.fee_settings.token_fee_collector, fee)
        return fee
