"""Repository: per-bank transaction stores in SQLite using raw SQL.

Each store is one table (e.g. ``HB_2025``) with the columns listed in
``models.COLUMNS``. All methods take/return dataclass instances from
models.py. Connection management uses a single connection with WAL mode.
"""

from __future__ import annotations

import dataclasses
import re
import sqlite3

from .models import COLUMNS, Transaction, utc_now

# Error codes the hosted backend reports for a store that does not exist.
# Both mean "nothing stored yet" to callers, not a failure.
RESOURCE_NOT_FOUND = "PGRST116"
UNDEFINED_TABLE = "42P01"
STORE_MISSING_CODES = frozenset({RESOURCE_NOT_FOUND, UNDEFINED_TABLE})

_STORE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class StoreError(Exception):
    """Raised when a store cannot be read or written."""

    def __init__(self, code: str | None, message: str):
        self.code = code
        super().__init__(message)

    @property
    def is_missing_store(self) -> bool:
        return self.code in STORE_MISSING_CODES


def validate_store_name(store_name: str) -> str:
    """Return store_name if it is a safe SQL identifier, else raise ValueError.

    Table names cannot be bound as parameters, so they are checked here.
    """
    if not store_name or not _STORE_NAME_RE.match(store_name):
        raise ValueError(f"Invalid store name: {store_name!r}")
    return store_name


class Repository:
    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ── Stores ──────────────────────────────────────────────

    def create_store(self, store_name: str):
        """Create the store table if it does not exist yet."""
        validate_store_name(store_name)
        self.conn.execute(
            f'CREATE TABLE IF NOT EXISTS "{store_name}" ('
            "  id INTEGER PRIMARY KEY,"
            "  date TEXT,"
            "  description TEXT NOT NULL DEFAULT '',"
            "  amount REAL NOT NULL,"
            "  balance REAL,"
            "  category TEXT,"
            "  responsible TEXT,"
            "  comment TEXT,"
            "  user_id TEXT,"
            "  bank TEXT,"
            "  created_at TEXT"
            ")"
        )
        self.conn.commit()

    def list_stores(self) -> list[str]:
        rows = self.conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table'"
            " AND name NOT LIKE 'sqlite_%' ORDER BY name"
        ).fetchall()
        return [r["name"] for r in rows]

    def store_exists(self, store_name: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
            (store_name,),
        ).fetchone()
        return row is not None

    # ── Reads ───────────────────────────────────────────────

    def fetch_all(self, store_name: str) -> list[Transaction]:
        """Return every transaction in the store, newest date first.

        Raises:
            StoreError: code UNDEFINED_TABLE if the store does not exist.
        """
        validate_store_name(store_name)
        if not self.store_exists(store_name):
            raise StoreError(
                UNDEFINED_TABLE, f'relation "{store_name}" does not exist'
            )
        rows = self.conn.execute(
            f'SELECT * FROM "{store_name}" ORDER BY date DESC, id DESC'
        ).fetchall()
        return [Transaction.from_mapping(r) for r in rows]

    def max_id(self, store_name: str) -> int:
        """Highest stored id, or 0 for an empty or missing store."""
        validate_store_name(store_name)
        if not self.store_exists(store_name):
            return 0
        row = self.conn.execute(
            f'SELECT MAX(id) FROM "{store_name}"'
        ).fetchone()
        return row[0] or 0

    def count(self, store_name: str) -> int:
        validate_store_name(store_name)
        if not self.store_exists(store_name):
            return 0
        row = self.conn.execute(
            f'SELECT COUNT(*) FROM "{store_name}"'
        ).fetchone()
        return row[0]

    # ── Writes ──────────────────────────────────────────────

    def insert_transactions(
        self, store_name: str, txns: list[Transaction]
    ) -> list[Transaction]:
        """Append transactions to a store atomically.

        Ids are reassigned to continue from the store's current max id, so
        the candidate ids used during review never collide with stored rows.
        Returns the inserted transactions with their stored ids.
        """
        if not txns:
            return []
        self.create_store(store_name)
        start = self.max_id(store_name) + 1
        stored = [
            dataclasses.replace(
                t, id=start + i, created_at=t.created_at or utc_now(),
            )
            for i, t in enumerate(txns)
        ]
        placeholders = ",".join("?" for _ in COLUMNS)
        try:
            self.conn.execute("BEGIN")
            self.conn.executemany(
                f'INSERT INTO "{store_name}" ({", ".join(COLUMNS)})'
                f" VALUES ({placeholders})",
                [t.to_row() for t in stored],
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return stored
