"""
Settlement services
"""

from .allowance_registry import AllowanceRegistry, DEFAULT_ADMIN_ROLE, MINTALLOWER_ROLE
from .permit_verifier import PermitDomain, PermitVerifier, build_permit_typed_data, sign_permit
from .fee_settings import AllowList, FeeSettings, FEE_DENOMINATOR, TRUSTED_CURRENCY
from .tokens import Erc20Ledger, PaymentToken, SecurityToken
from .private_offer import PrivateOffer, currency_amount
from .clone_factory import PrivateOfferCloneFactory
from .notifier import TelegramNotifier

__all__ = [
    'AllowanceRegistry',
    'DEFAULT_ADMIN_ROLE',
    'MINTALLOWER_ROLE',
    'PermitDomain',
    'PermitVerifier',
    'build_permit_typed_data',
    'sign_permit',
    'AllowList',
    'FeeSettings',
    'FEE_DENOMINATOR',
    'TRUSTED_CURRENCY',
    'Erc20Ledger',
    'PaymentToken',
    'SecurityToken',
    'PrivateOffer',
    'currency_amount',
    'PrivateOfferCloneFactory',
    'TelegramNotifier',
]
