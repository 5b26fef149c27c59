"""Dataclass models for stored and uploaded transactions.

One dataclass per record shape. Field names match the column names of a
per-bank store table exactly.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone

# Columns of every store table, in insert order.
COLUMNS: tuple[str, ...] = (
    "id", "date", "description", "amount", "balance", "category",
    "responsible", "comment", "user_id", "bank", "created_at",
)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Transaction:
    """A bank transaction, either already stored or freshly uploaded.

    For uploaded candidates ``id`` is only a key for review decisions; the
    repository assigns the stored id at insert time.
    """
    id: int
    date: str | None       # YYYY-MM-DD, None when the statement row had none
    description: str
    amount: float          # signed: negative=outflow, positive=inflow
    balance: float | None = None
    category: str | None = None
    responsible: str | None = None
    comment: str | None = None
    user_id: str | None = None
    bank: str | None = None
    created_at: str | None = None

    def to_row(self) -> tuple:
        data = asdict(self)
        return tuple(data[col] for col in COLUMNS)

    @classmethod
    def from_mapping(cls, row) -> Transaction:
        """Build a Transaction from a sqlite3.Row or plain dict."""
        keys = set(row.keys())
        values = {col: row[col] for col in COLUMNS if col in keys}
        values["amount"] = float(values.get("amount") or 0.0)
        values["description"] = values.get("description") or ""
        return cls(**values)
