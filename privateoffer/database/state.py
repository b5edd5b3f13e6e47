"""
Journaled in-memory state shared by every settlement component
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Hashable, Iterator, List, Tuple

from privateoffer.models import Event

_MISSING = object()


class StateStore:
    """Holds the allowance, nonce, balance, role and slot tables.

    All writes go through ``transaction()``. Each write records the previous
    value in a journal; if the outermost transaction raises, the journal is
    replayed backwards and buffered events are discarded. Events are only
    delivered to subscribers once the outermost transaction commits.
    """

    TABLES = (
        'balances',            # (token, account) -> int
        'supply',              # token -> int
        'allowances',          # (token, owner, spender) -> int
        'nonces',              # (token, owner) -> int
        'minting_allowances',  # (token, beneficiary) -> int
        'roles',               # (token, role, account) -> True
        'allow_list',          # (list, account) -> int attributes
        'slots',               # clone address -> slot record dict
    )

    def __init__(self):
        self._tables: Dict[str, Dict[Hashable, Any]] = {name: {} for name in self.TABLES}
        self._journal: List[Tuple[str, Hashable, Any]] = []
        self._pending_events: List[Event] = []
        self._depth = 0
        self._lock = threading.RLock()
        self._listeners: List[Callable[[Event], None]] = []
        self.events: List[Event] = []
        self.logger = logging.getLogger('privateoffer')

    @contextmanager
    def transaction(self) -> Iterator['StateStore']:
        """Run a block as one indivisible unit against the shared state.

        Listeners run after the lock is released, so a slow subscriber never
        holds up other transactions.
        """
        committed: List[Event] = []
        with self._lock:
            journal_mark = len(self._journal)
            event_mark = len(self._pending_events)
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                self._rollback(journal_mark)
                del self._pending_events[event_mark:]
                raise
            self._depth -= 1
            if self._depth == 0:
                committed = self._commit()
        self._deliver(committed)

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def get(self, table: str, key: Hashable, default: Any = None) -> Any:
        return self._tables[table].get(key, default)

    def set(self, table: str, key: Hashable, value: Any) -> None:
        self._require_transaction()
        rows = self._tables[table]
        self._journal.append((table, key, rows.get(key, _MISSING)))
        rows[key] = value

    def delete(self, table: str, key: Hashable) -> bool:
        """Remove a row; returns whether anything was removed"""
        self._require_transaction()
        rows = self._tables[table]
        if key not in rows:
            return False
        self._journal.append((table, key, rows[key]))
        del rows[key]
        return True

    def items(self, table: str) -> List[Tuple[Hashable, Any]]:
        return list(self._tables[table].items())

    def emit(self, name: str, **args) -> Event:
        self._require_transaction()
        event = Event(name=name, args=args)
        self._pending_events.append(event)
        return event

    def subscribe(self, listener: Callable[[Event], None]) -> None:
        self._listeners.append(listener)

    def dump(self) -> Dict[str, Dict[Hashable, Any]]:
        """Copy of every table, for persistence"""
        with self._lock:
            return {name: dict(rows) for name, rows in self._tables.items()}

    def load(self, tables: Dict[str, Dict[Hashable, Any]]) -> None:
        """Replace table contents wholesale; not journaled"""
        with self._lock:
            if self._depth:
                raise RuntimeError("Cannot load state inside a transaction")
            for name in self.TABLES:
                self._tables[name] = dict(tables.get(name, {}))

    def _require_transaction(self):
        if not self._depth:
            raise RuntimeError("State writes must happen inside store.transaction()")

    def _rollback(self, mark: int):
        while len(self._journal) > mark:
            table, key, previous = self._journal.pop()
            if previous is _MISSING:
                self._tables[table].pop(key, None)
            else:
                self._tables[table][key] = previous

    def _commit(self) -> List[Event]:
        self._journal.clear()
        events, self._pending_events = self._pending_events, []
        self.events.extend(events)
        return events

    def _deliver(self, events: List[Event]):
        for event in events:
            for listener in self._listeners:
                try:
                    listener(event)
                except Exception as e:
                    self.logger.error(f"Event listener failed on {event.name}: {e}", exc_info=True)
