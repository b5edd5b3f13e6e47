"""
Platform fee schedule and currency allow list
"""

from dataclasses import dataclass

from privateoffer.database.state import StateStore
from privateoffer.exceptions import InvalidInput, Unauthorized
from privateoffer.models import checksum, uint256

FEE_DENOMINATOR = 10_000
TRUSTED_CURRENCY = 2**255


@dataclass(frozen=True)
class FeeSettings:
    """Fees in basis points of FEE_DENOMINATOR"""
    token_fee_numerator: int
    private_offer_fee_numerator: int
    token_fee_collector: str
    private_offer_fee_collector: str

    def __post_init__(self):
        for name in ("token_fee_numerator", "private_offer_fee_numerator"):
            value = getattr(self, name)
            if not isinstance(value, int) or not 0 <= value < FEE_DENOMINATOR:
                raise InvalidInput(f"{name} must be in [0, {FEE_DENOMINATOR}), got {value!r}")
        object.__setattr__(self, "token_fee_collector", checksum(self.token_fee_collector, "token_fee_collector"))
        object.__setattr__(self, "private_offer_fee_collector",
                           checksum(self.private_offer_fee_collector, "private_offer_fee_collector"))

    def token_fee(self, token_amount: int) -> int:
        return token_amount * self.token_fee_numerator // FEE_DENOMINATOR

    def private_offer_fee(self, currency_amount: int) -> int:
        return currency_amount * self.private_offer_fee_numerator // FEE_DENOMINATOR


class AllowList:
    """Owner-managed attribute bitmap per address"""

    def __init__(self, store: StateStore, address: str, owner: str):
        self.store = store
        self.address = checksum(address, "allow_list")
        self.owner = checksum(owner, "owner")

    def map(self, account: str) -> int:
        return self.store.get('allow_list', (self.address, checksum(account)), 0)

    def set(self, caller: str, account: str, attributes: int) -> None:
        if checksum(caller) != self.owner:
            raise Unauthorized(f"{caller} does not own allow list {self.address}")
        account = checksum(account)
        uint256(attributes, "attributes")
        with self.store.transaction():
            if attributes:
                self.store.set('allow_list', (self.address, account), attributes)
            else:
                self.store.delete('allow_list', (self.address, account))
            self.store.emit('AllowListSet', allow_list=self.address, account=account, attributes=attributes)

    def is_trusted_currency(self, currency: str) -> bool:
        return self.map(currency) & TRUSTED_CURRENCY == TRUSTED_CURRENCY
