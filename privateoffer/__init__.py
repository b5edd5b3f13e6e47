"""
Private offer clone deployment and atomic settlement
"""

from .exceptions import (
    SettlementError,
    InvalidInput,
    TermsViolated,
    PermitError,
    BadSignature,
    Expired,
    NonceMismatch,
    OfferExpired,
    InsufficientAllowance,
    InsufficientBalance,
    SlotOccupied,
    Overflow,
    Unauthorized,
)
from .models import (
    ZERO_ADDRESS,
    FixedArgs,
    VariableArgs,
    Permit,
    ExecutionReceipt,
    SlotState,
    Event,
)
from .database import StateStore, LedgerDatabase
from .services import (
    DEFAULT_ADMIN_ROLE,
    MINTALLOWER_ROLE,
    TRUSTED_CURRENCY,
    AllowList,
    FeeSettings,
    PaymentToken,
    SecurityToken,
    PermitDomain,
    PrivateOfferCloneFactory,
    TelegramNotifier,
    sign_permit,
)

__version__ = '0.1.0'
