"""
State storage and persistence
"""

from .state import StateStore
from .ledger_db import LedgerDatabase

__all__ = ['StateStore', 'LedgerDatabase']
