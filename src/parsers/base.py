"""Base loader: shared interface and helpers for normalized record files.

Loaders read files that already hold normalized transactions (one record
per row/object with date, description and amount). Bank-specific statement
formats are converted to this shape before they reach the app.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path

from src.database.models import Transaction

logger = logging.getLogger(__name__)

# Optional metadata fields carried through unchanged.
METADATA_FIELDS = (
    "balance", "category", "responsible", "comment", "user_id", "bank",
    "created_at",
)

_AMOUNT_STRIP_RE = re.compile(r"\s")


class BaseLoader(ABC):
    """Abstract base for all record loaders.

    Attributes:
        skipped_count: Number of records skipped during parsing (e.g. a
            non-numeric amount). Check this after parse() to detect silent
            data loss.
    """

    def __init__(self):
        self.skipped_count: int = 0

    @abstractmethod
    def parse(self, file_path: Path) -> list[Transaction]:
        """Load a file and return its transactions in file order."""

    @abstractmethod
    def detect(self, file_path: Path) -> bool:
        """Return True if this loader can handle the given file."""


def _normalize_separators(text: str) -> str:
    """Rewrite "1.249,50" / "1,249.50" / "1,249" as a plain float literal.

    The last "," or "." is the decimal mark unless exactly three digits
    follow it, in which case it groups thousands like every earlier one.
    """
    last = max(text.rfind(","), text.rfind("."))
    if last == -1:
        return text
    head = text[:last].replace(",", "").replace(".", "")
    tail = text[last + 1:]
    if len(tail) == 3 and tail.isdigit():
        return head + tail
    return f"{head}.{tail}"


def parse_amount(value) -> float | None:
    """Parse an amount cell: numbers, "-249.00", "-1 249,50", "1.249,50"
    or "1,249.50".

    Returns None if the value is empty or not numeric.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = _AMOUNT_STRIP_RE.sub("", str(value))
    if not text:
        return None
    text = _normalize_separators(text)
    try:
        return float(text)
    except ValueError:
        return None


def clean_text(value) -> str | None:
    """Strip a text cell, mapping empty cells to None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_id(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = str(value).strip() if value is not None else ""
    if text.isdigit():
        return int(text)
    return None


def build_transaction(record: dict, position: int) -> Transaction | None:
    """Build a Transaction from a record with lower-cased keys.

    The record's own id is kept when it is an integer; otherwise the
    1-based position in the batch is used so review decisions have a
    stable key before anything is stored. Returns None if the amount is
    missing or not numeric.
    """
    amount = parse_amount(record.get("amount"))
    if amount is None:
        return None

    txn_id = _parse_id(record.get("id"))
    if txn_id is None:
        txn_id = position

    metadata = {key: record.get(key) for key in METADATA_FIELDS}
    metadata["balance"] = parse_amount(metadata["balance"])
    for key in METADATA_FIELDS:
        if key != "balance":
            metadata[key] = clean_text(metadata[key])

    return Transaction(
        id=txn_id,
        date=clean_text(record.get("date")),
        description=clean_text(record.get("description")) or "",
        amount=amount,
        **metadata,
    )


def ensure_unique_ids(
    transactions: list[Transaction], positions: list[int]
) -> list[Transaction]:
    """Key every transaction by its file position if any id repeats.

    Review decisions are keyed by id, so a repeated id (two explicit ids,
    or an explicit id equal to another row's position) would let one
    decision apply to several rows. Positions are unique within a file.
    """
    ids = [t.id for t in transactions]
    if len(set(ids)) == len(ids):
        return transactions
    logger.warning(
        "Repeated transaction ids in batch; using file positions as ids instead"
    )
    return [
        dataclasses.replace(t, id=position)
        for t, position in zip(transactions, positions)
    ]
