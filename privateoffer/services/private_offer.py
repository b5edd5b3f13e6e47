"""
One-shot settlement instance created at a predicted clone address
"""

import logging
from typing import Optional, Tuple

from privateoffer.exceptions import OfferExpired, TermsViolated
from privateoffer.models import FixedArgs, VariableArgs
from privateoffer.services.fee_settings import FeeSettings
from privateoffer.services.tokens import PaymentToken, SecurityToken


def currency_amount(token_amount: int, token_price: int, token_decimals: int) -> int:
    """Currency owed for ``token_amount`` base units, rounded up"""
    return -(-token_amount * token_price // 10**token_decimals)


class PrivateOffer:
    """Lives for exactly one create call.

    The factory constructs it at the clone address, runs ``check_terms``,
    ``execute`` and ``retire`` inside a single state transaction, then drops
    it. It is never stored.
    """

    def __init__(self, address: str, fixed_args: FixedArgs, variable_args: VariableArgs,
                 currency: PaymentToken, token: SecurityToken,
                 fee_settings: Optional[FeeSettings] = None):
        self.address = address
        self.fixed = fixed_args
        self.variable = variable_args
        self.currency = currency
        self.token = token
        self.fee_settings = fee_settings
        self.logger = logging.getLogger('privateoffer')

    @property
    def currency_amount(self) -> int:
        return currency_amount(self.variable.token_amount, self.fixed.token_price, self.token.decimals)

    def check_terms(self, now: int) -> None:
        amount = self.variable.token_amount
        if amount < self.fixed.min_token_amount:
            raise TermsViolated(f"Token amount {amount} below minimum {self.fixed.min_token_amount}")
        if amount > self.fixed.max_token_amount:
            raise TermsViolated(f"Token amount {amount} above maximum {self.fixed.max_token_amount}")
        if now > self.fixed.expiration:
            raise OfferExpired(f"Offer expired at {self.fixed.expiration} (now {now})")
        if self.token.allow_list is not None and not self.token.allow_list.is_trusted_currency(self.currency.address):
            raise TermsViolated(f"Currency {self.currency.address} is not trusted by {self.token.symbol}")

    def execute(self) -> Tuple[int, int, int]:
        """Pull payment and deliver tokens; returns (currency_amount, platform_fee, token_fee)"""
        cost = self.currency_amount
        payer = self.variable.currency_payer

        platform_fee = self.fee_settings.private_offer_fee(cost) if self.fee_settings else 0
        if platform_fee:
            self.currency.transfer_from(self.address, payer, self.fee_settings.private_offer_fee_collector,
                                        platform_fee)
        self.currency.transfer_from(self.address, payer, self.fixed.currency_receiver, cost - platform_fee)

        token_fee = 0
        if self.fixed.mints:
            token_fee = self.token.mint(self.address, self.variable.token_receiver, self.variable.token_amount)
        else:
            self.token.transfer_from(self.address, self.fixed.token_holder, self.variable.token_receiver,
                                     self.variable.token_amount)

        self.logger.debug(f"Offer {self.address}: {cost} {self.currency.symbol} for "
                          f"{self.variable.token_amount} {self.token.symbol}")
        return cost, platform_fee, token_fee

    def retire(self) -> int:
        """Release storage tied to this address; returns entries released"""
        released = self.currency.release_allowances([self.variable.currency_payer], self.address)
        if not self.fixed.mints:
            released += self.token.release_allowances([self.fixed.token_holder], self.address)
        return released
