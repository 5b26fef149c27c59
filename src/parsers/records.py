"""Loaders for normalized transaction files (JSON and CSV).

JSON: an array of objects, or an object with a "transactions" array.
CSV: a header row with at least Date, Description and Amount columns.

Keys/headers are matched case-insensitively, so the dashboard's
"Date"/"Description"/"Amount" exports load as-is.
"""

from __future__ import annotations

import csv
import json
import logging
from pathlib import Path

from src.database.models import Transaction

from .base import BaseLoader, build_transaction, ensure_unique_ids

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".json", ".csv"}

REQUIRED_COLUMNS = {"date", "description", "amount"}


def _lower_keys(record: dict) -> dict:
    return {str(k).strip().lower(): v for k, v in record.items()}


class JsonRecordsLoader(BaseLoader):
    """Load transactions from a JSON export."""

    def detect(self, file_path: Path) -> bool:
        return file_path.suffix.lower() == ".json"

    def parse(self, file_path: Path) -> list[Transaction]:
        self.skipped_count = 0  # Reset for each parse
        try:
            with open(file_path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {file_path}: {e}") from e

        if isinstance(data, dict):
            data = data.get("transactions")
        if not isinstance(data, list):
            raise ValueError(
                f"Expected a list of transactions in {file_path}"
            )

        transactions: list[Transaction] = []
        positions: list[int] = []
        for position, record in enumerate(data, start=1):
            if not isinstance(record, dict):
                self.skipped_count += 1
                continue
            txn = build_transaction(_lower_keys(record), position)
            if txn is None:
                self.skipped_count += 1
                continue
            transactions.append(txn)
            positions.append(position)

        if self.skipped_count:
            logger.warning(
                "Skipped %d record(s) without a numeric amount in %s",
                self.skipped_count, file_path.name,
            )
        return ensure_unique_ids(transactions, positions)


class CsvRecordsLoader(BaseLoader):
    """Load transactions from a CSV export with a header row."""

    def detect(self, file_path: Path) -> bool:
        """CSV files whose header names the required columns."""
        if file_path.suffix.lower() != ".csv":
            return False
        try:
            with open(file_path, "r", encoding="utf-8-sig", errors="replace") as f:
                header = f.readline()
        except OSError:
            return False
        columns = {c.strip().lower() for c in header.split(",")}
        return REQUIRED_COLUMNS <= columns

    def parse(self, file_path: Path) -> list[Transaction]:
        transactions: list[Transaction] = []
        positions: list[int] = []
        self.skipped_count = 0  # Reset for each parse

        with open(file_path, "r", newline="", encoding="utf-8-sig") as f:
            reader = csv.DictReader(f)
            columns = {c.strip().lower() for c in (reader.fieldnames or [])}
            missing = REQUIRED_COLUMNS - columns
            if missing:
                raise ValueError(
                    f"CSV file {file_path.name} is missing columns: {sorted(missing)}"
                )
            for position, row in enumerate(reader, start=1):
                txn = build_transaction(_lower_keys(row), position)
                if txn is None:
                    self.skipped_count += 1
                    continue
                transactions.append(txn)
                positions.append(position)

        if self.skipped_count:
            logger.warning(
                "Skipped %d row(s) without a numeric amount in %s",
                self.skipped_count, file_path.name,
            )
        return ensure_unique_ids(transactions, positions)


def detect_loader(file_path: Path) -> BaseLoader:
    """Pick the loader for a file.

    Raises:
        ValueError: If no loader can handle the file.
    """
    for loader in (JsonRecordsLoader(), CsvRecordsLoader()):
        if loader.detect(file_path):
            return loader
    raise ValueError(f"No loader found for file: {file_path}")


def load_transactions(file_path: Path) -> list[Transaction]:
    """Load a normalized transaction file with the matching loader."""
    return detect_loader(Path(file_path)).parse(Path(file_path))
