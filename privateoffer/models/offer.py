"""
Data models for private offers
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Tuple, Union

from eth_utils import to_checksum_address

from privateoffer.exceptions import InvalidInput

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
MAX_UINT256 = 2**256 - 1


def checksum(value: str, name: str = "address") -> str:
    """Validate and checksum an address, raising InvalidInput on garbage"""
    if not isinstance(value, str):
        raise InvalidInput(f"{name} must be a hex string, got {type(value).__name__}")
    try:
        return to_checksum_address(value)
    except ValueError as e:
        raise InvalidInput(f"{name} is not a valid address: {value!r}") from e


def uint256(value: int, name: str = "value") -> int:
    """Validate an integer fits in uint256"""
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidInput(f"{name} must be an int, got {type(value).__name__}")
    if value < 0 or value > MAX_UINT256:
        raise InvalidInput(f"{name} out of uint256 range: {value}")
    return value


@dataclass(frozen=True)
class FixedArgs:
    """Offer terms baked into the predicted clone address"""
    currency_receiver: str
    token_holder: str  # ZERO_ADDRESS means mint on settlement
    min_token_amount: int
    max_token_amount: int
    token_price: int  # currency base units per whole token
    expiration: int  # unix timestamp, inclusive
    currency: str
    token: str

    def __post_init__(self):
        for name in ("currency_receiver", "token_holder", "currency", "token"):
            object.__setattr__(self, name, checksum(getattr(self, name), name))
        for name in ("min_token_amount", "max_token_amount", "token_price", "expiration"):
            uint256(getattr(self, name), name)

    @property
    def mints(self) -> bool:
        return self.token_holder == ZERO_ADDRESS

    def as_tuple(self) -> Tuple:
        """ABI tuple in struct field order"""
        return (
            self.currency_receiver,
            self.token_holder,
            self.min_token_amount,
            self.max_token_amount,
            self.token_price,
            self.expiration,
            self.currency,
            self.token,
        )


@dataclass(frozen=True)
class VariableArgs:
    """Late-bound execution parameters, not part of the address pre-image"""
    currency_payer: str
    token_receiver: str
    token_amount: int

    def __post_init__(self):
        object.__setattr__(self, "currency_payer", checksum(self.currency_payer, "currency_payer"))
        object.__setattr__(self, "token_receiver", checksum(self.token_receiver, "token_receiver"))
        uint256(self.token_amount, "token_amount")

    def as_tuple(self) -> Tuple:
        return (self.currency_payer, self.token_receiver, self.token_amount)


@dataclass(frozen=True)
class Permit:
    """EIP-2612 permit message"""
    owner: str
    spender: str
    value: int
    nonce: int
    deadline: int

    def __post_init__(self):
        object.__setattr__(self, "owner", checksum(self.owner, "owner"))
        object.__setattr__(self, "spender", checksum(self.spender, "spender"))
        for name in ("value", "nonce", "deadline"):
            uint256(getattr(self, name), name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "spender": self.spender,
            "value": self.value,
            "nonce": self.nonce,
            "deadline": self.deadline,
        }


@dataclass(frozen=True)
class ConsumedPermit:
    """Authorization produced by a successfully verified permit"""
    owner: str
    spender: str
    value: int
    nonce: int


class SlotState(Enum):
    PREDICTED = "predicted"
    PRE_AUTHORIZED = "pre_authorized"
    SETTLED = "settled"


@dataclass
class ExecutionReceipt:
    """Outcome of one create-and-execute call"""
    clone_address: str
    salt: str
    currency_payer: str
    token_receiver: str
    token_amount: int
    currency_amount: int
    platform_fee: int = 0
    token_fee: int = 0
    minted: bool = True
    executed_at: datetime = field(default_factory=datetime.now)
    storage_released: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Event:
    """Observable state change, delivered to subscribers after commit"""
    name: str
    args: Dict[str, Union[str, int]]
