"""
Database operations for settlement state and settlement history
"""

import json
import logging
import sqlite3
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from privateoffer.database.state import StateStore
from privateoffer.models import Event, ExecutionReceipt

# Configure SQLite to handle datetime properly for Python 3.12+
sqlite3.register_adapter(datetime, lambda dt: dt.isoformat())
sqlite3.register_converter("timestamp", lambda b: datetime.fromisoformat(b.decode()))


def _encode_key(key) -> str:
    return json.dumps(list(key) if isinstance(key, tuple) else key)


def _decode_key(raw: str):
    key = json.loads(raw)
    return tuple(key) if isinstance(key, list) else key


class LedgerDatabase:
    """Persists the state tables, executed settlements and emitted events"""

    def __init__(self, db_path: str = 'settlements.db'):
        """Initialize database connection"""
        self.db_path = db_path
        self.logger = logging.getLogger('privateoffer')
        self._setup_database()

    def _connect(self):
        return sqlite3.connect(self.db_path, detect_types=sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES)

    def _setup_database(self):
        """Setup SQLite database for state and settlement tracking"""
        with self._connect() as conn:
            # uint256 values exceed sqlite integers, everything numeric is stored as text
            conn.execute('''
                CREATE TABLE IF NOT EXISTS state_entries (
                    table_name TEXT,
                    entry_key TEXT,
                    entry_value TEXT,
                    PRIMARY KEY (table_name, entry_key)
                )
            ''')

            conn.execute('''
                CREATE TABLE IF NOT EXISTS settlements (
                    clone_address TEXT PRIMARY KEY,
                    salt TEXT,
                    currency_payer TEXT,
                    token_receiver TEXT,
                    token_amount TEXT,
                    currency_amount TEXT,
                    platform_fee TEXT,
                    token_fee TEXT,
                    minted BOOLEAN,
                    storage_released INTEGER,
                    executed_at TIMESTAMP
                )
            ''')

            conn.execute('''
                CREATE TABLE IF NOT EXISTS events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT,
                    args TEXT,
                    recorded_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            conn.execute('''
                CREATE INDEX IF NOT EXISTS idx_events_name
                ON events(name)
            ''')

        self.logger.info(f"Ledger database initialized at {self.db_path}")

    def save_state(self, store: StateStore) -> int:
        """Replace the persisted state with the store's current tables"""
        tables = store.dump()
        rows = [
            (name, _encode_key(key), json.dumps(value))
            for name, entries in tables.items()
            for key, value in entries.items()
        ]
        with self._connect() as conn:
            conn.execute('DELETE FROM state_entries')
            conn.executemany(
                'INSERT INTO state_entries (table_name, entry_key, entry_value) VALUES (?, ?, ?)',
                rows
            )
        self.logger.debug(f"Saved {len(rows)} state entries")
        return len(rows)

    def load_state(self, store: StateStore) -> int:
        """Load persisted tables into ``store``; returns number of entries"""
        tables: Dict[str, Dict] = {name: {} for name in StateStore.TABLES}
        with self._connect() as conn:
            cursor = conn.execute('SELECT table_name, entry_key, entry_value FROM state_entries')
            count = 0
            for table_name, entry_key, entry_value in cursor.fetchall():
                if table_name not in tables:
                    self.logger.warning(f"Skipping unknown state table {table_name}")
                    continue
                tables[table_name][_decode_key(entry_key)] = json.loads(entry_value)
                count += 1
        store.load(tables)
        return count

    def save_settlement(self, receipt: ExecutionReceipt) -> None:
        """Save an executed settlement"""
        with self._connect() as conn:
            conn.execute('''
                INSERT INTO settlements
                (clone_address, salt, currency_payer, token_receiver, token_amount,
                 currency_amount, platform_fee, token_fee, minted, storage_released, executed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (
                receipt.clone_address, receipt.salt, receipt.currency_payer, receipt.token_receiver,
                str(receipt.token_amount), str(receipt.currency_amount), str(receipt.platform_fee),
                str(receipt.token_fee), receipt.minted, receipt.storage_released, receipt.executed_at
            ))

    def get_settlement(self, clone_address: str) -> Optional[ExecutionReceipt]:
        with self._connect() as conn:
            cursor = conn.execute('''
                SELECT clone_address, salt, currency_payer, token_receiver, token_amount,
                       currency_amount, platform_fee, token_fee, minted, storage_released, executed_at
                FROM settlements WHERE LOWER(clone_address) = LOWER(?)
            ''', (clone_address,))
            row = cursor.fetchone()
        return self._row_to_receipt(row) if row else None

    def get_settlements(self, limit: int = 100) -> List[ExecutionReceipt]:
        """Most recent settlements first"""
        with self._connect() as conn:
            cursor = conn.execute('''
                SELECT clone_address, salt, currency_payer, token_receiver, token_amount,
                       currency_amount, platform_fee, token_fee, minted, storage_released, executed_at
                FROM settlements
                ORDER BY executed_at DESC
                LIMIT ?
            ''', (limit,))
            return [self._row_to_receipt(row) for row in cursor.fetchall()]

    def record_event(self, event: Event) -> None:
        """Store an event; usable directly as a StateStore subscriber"""
        with self._connect() as conn:
            conn.execute(
                'INSERT INTO events (name, args, recorded_at) VALUES (?, ?, ?)',
                (event.name, json.dumps(event.args), datetime.now())
            )

    def get_events(self, name: Optional[str] = None) -> List[Event]:
        with self._connect() as conn:
            if name:
                cursor = conn.execute('SELECT name, args FROM events WHERE name = ? ORDER BY id', (name,))
            else:
                cursor = conn.execute('SELECT name, args FROM events ORDER BY id')
            return [Event(name=row[0], args=json.loads(row[1])) for row in cursor.fetchall()]

    def get_settlement_stats(self) -> Dict:
        """Settlement statistics for the last 24 hours"""
        with self._connect() as conn:
            cursor = conn.execute('''
                SELECT
                    COUNT(*) as total,
                    SUM(CASE WHEN minted THEN 1 ELSE 0 END) as minted,
                    COUNT(DISTINCT currency_payer) as unique_payers
                FROM settlements
                WHERE executed_at > ?
            ''', (datetime.now() - timedelta(hours=24),))
            stats = cursor.fetchone()

        return {
            'settlements_24h': stats[0],
            'minted_24h': stats[1] or 0,
            'unique_payers_24h': stats[2]
        }

    @staticmethod
    def _row_to_receipt(row) -> ExecutionReceipt:
        return ExecutionReceipt(
            clone_address=row[0],
            salt=row[1],
            currency_payer=row[2],
            token_receiver=row[3],
            token_amount=int(row[4]),
            currency_amount=int(row[5]),
            platform_fee=int(row[6]),
            token_fee=int(row[7]),
            minted=bool(row[8]),
            storage_released=row[9],
            executed_at=row[10],
        )
