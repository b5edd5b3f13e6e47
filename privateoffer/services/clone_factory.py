"""
Private offer clone factory: predict, pre-authorize, create-and-settle
"""

import logging
import time
from datetime import datetime
from typing import Callable, Dict, Optional, Union

from privateoffer.database.state import StateStore
from privateoffer.exceptions import SettlementError, SlotOccupied, TermsViolated
from privateoffer.models import (
    ExecutionReceipt,
    FixedArgs,
    Permit,
    SlotState,
    VariableArgs,
    checksum,
)
from privateoffer.services import address_oracle
from privateoffer.services.fee_settings import FeeSettings
from privateoffer.services.private_offer import PrivateOffer
from privateoffer.services.tokens import Erc20Ledger, PaymentToken, SecurityToken


class PrivateOfferCloneFactory:
    """Creates private offer clones at CREATE2-predictable addresses.

    Each (salt, fixed_args) pair selects one slot. ``create_private_offer_clone``
    is the only mutating entry point; it settles the trade and closes the slot
    in one state transaction, so either everything happens or nothing does.
    """

    def __init__(self, store: StateStore, address: str, template: str,
                 fee_settings: Optional[FeeSettings] = None,
                 clock: Optional[Callable[[], int]] = None):
        self.store = store
        self.address = checksum(address, "factory")
        self.template = checksum(template, "template")
        self.fee_settings = fee_settings
        self.clock = clock or (lambda: int(time.time()))
        self.tokens: Dict[str, Erc20Ledger] = {}
        self.logger = logging.getLogger('privateoffer')

    def register_token(self, token: Erc20Ledger) -> None:
        """Make a currency or deliverable token known to the factory"""
        self.tokens[token.address] = token

    def predict_clone_address(self, salt: Union[bytes, str], fixed_args: FixedArgs) -> str:
        return address_oracle.predict(self.address, self.template, salt, fixed_args)

    def slot_state(self, salt: Union[bytes, str], fixed_args: FixedArgs) -> SlotState:
        clone = self.predict_clone_address(salt, fixed_args)
        if self.store.get('slots', clone) is not None:
            return SlotState.SETTLED
        token = self.tokens.get(fixed_args.token)
        if isinstance(token, SecurityToken) and token.minting_allowance(clone):
            return SlotState.PRE_AUTHORIZED
        for (token_address, _, spender), value in self.store.items('allowances'):
            if spender == clone and token_address == fixed_args.currency and value:
                return SlotState.PRE_AUTHORIZED
        return SlotState.PREDICTED

    def create_private_offer_clone(self, salt: Union[bytes, str], fixed_args: FixedArgs,
                                   variable_args: VariableArgs, permit: Optional[Permit] = None,
                                   signature: Optional[Union[bytes, str]] = None) -> ExecutionReceipt:
        """Create the clone at its predicted address and settle the trade atomically"""
        salt_bytes = address_oracle.to_bytes32(salt)
        clone = self.predict_clone_address(salt_bytes, fixed_args)
        try:
            with self.store.transaction():
                if self.store.get('slots', clone) is not None:
                    raise SlotOccupied(f"Private offer already settled at {clone}")

                currency, token = self._resolve_tokens(fixed_args)
                offer = PrivateOffer(clone, fixed_args, variable_args, currency, token, self.fee_settings)
                now = self.clock()
                offer.check_terms(now)

                if permit is not None:
                    self._check_permit_value(permit, offer)
                    currency.consume_permit(permit, signature, owner=variable_args.currency_payer, spender=clone)

                cost, platform_fee, token_fee = offer.execute()
                released = offer.retire()

                self.store.set('slots', clone, {
                    'status': SlotState.SETTLED.value,
                    'salt': '0x' + salt_bytes.hex(),
                    'settled_at': now,
                })
                self.store.emit('Deal', clone=clone, currency_payer=variable_args.currency_payer,
                                token_receiver=variable_args.token_receiver,
                                token_amount=variable_args.token_amount, token_price=fixed_args.token_price,
                                currency=currency.address, token=token.address)
                self.store.emit('NewClone', clone=clone)
        except SettlementError as e:
            self.logger.warning(f"Private offer at {clone} not settled: {type(e).__name__}: {e}")
            raise

        self.logger.info(f"Private offer settled at {clone}: {variable_args.token_amount} "
                         f"{token.symbol} for {cost} {currency.symbol}")
        return ExecutionReceipt(
            clone_address=clone,
            salt='0x' + salt_bytes.hex(),
            currency_payer=variable_args.currency_payer,
            token_receiver=variable_args.token_receiver,
            token_amount=variable_args.token_amount,
            currency_amount=cost,
            platform_fee=platform_fee,
            token_fee=token_fee,
            minted=fixed_args.mints,
            executed_at=datetime.fromtimestamp(now),
            storage_released=released,
        )

    # Short aliases
    predict_address = predict_clone_address
    create = create_private_offer_clone

    def _resolve_tokens(self, fixed_args: FixedArgs):
        currency = self.tokens.get(fixed_args.currency)
        if not isinstance(currency, PaymentToken):
            raise TermsViolated(f"Unknown payment currency {fixed_args.currency}")
        token = self.tokens.get(fixed_args.token)
        if not isinstance(token, SecurityToken):
            raise TermsViolated(f"Unknown deliverable token {fixed_args.token}")
        return currency, token

    def _check_permit_value(self, permit: Permit, offer: PrivateOffer):
        if permit.value < offer.currency_amount:
            raise TermsViolated(f"Permit value {permit.value} below price {offer.currency_amount}")
