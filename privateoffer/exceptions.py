"""
Errors raised by the private offer settlement protocol.

Every error is terminal for the operation that raised it. The state store
rolls back all effects before the exception reaches the caller, so a failed
call is indistinguishable from one that was never made.
"""


class SettlementError(Exception):
    """Base class for all protocol errors"""


class InvalidInput(SettlementError, ValueError):
    """Malformed salt, address or out-of-range integer"""


class TermsViolated(SettlementError):
    """Variable arguments do not satisfy the fixed offer terms"""


class PermitError(SettlementError):
    """Base class for permit failures; a fresh signed permit is needed"""


class BadSignature(PermitError):
    """Signature does not recover to the permit owner"""


class Expired(PermitError):
    """Deadline has passed"""


class NonceMismatch(PermitError):
    """Permit nonce is not the owner's next expected nonce"""


class OfferExpired(TermsViolated, Expired):
    """Offer expiration has passed"""


class InsufficientAllowance(SettlementError):
    """Requested amount exceeds the remaining allowance"""


class InsufficientBalance(SettlementError):
    """Account balance too low for the transfer"""


class SlotOccupied(SettlementError):
    """A settlement has already executed at the predicted address"""


class Overflow(SettlementError):
    """Result would exceed the uint256 range"""


class Unauthorized(SettlementError):
    """Caller lacks the required role"""
