"""
Data models for private offer settlement
"""

from .offer import (
    ZERO_ADDRESS,
    MAX_UINT256,
    FixedArgs,
    VariableArgs,
    Permit,
    ConsumedPermit,
    SlotState,
    ExecutionReceipt,
    Event,
    checksum,
    uint256,
)

__all__ = [
    'ZERO_ADDRESS',
    'MAX_UINT256',
    'FixedArgs',
    'VariableArgs',
    'Permit',
    'ConsumedPermit',
    'SlotState',
    'ExecutionReceipt',
    'Event',
    'checksum',
    'uint256',
]
