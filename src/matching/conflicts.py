"""4-level conflict analysis for uploaded transactions.

Levels (evaluated in order, first non-empty level wins):
1. Exact duplicate: same date, normalized description and amount
2. High confidence: same date and amount, description within 2 edits
3. Adjacent date: dates at most 1 day apart, same amount
4. Similar: dates at most 2 days apart, amounts within 10, descriptions
   more than 80% similar (Jaro-Winkler)

Levels 1-2 default to "skip" since they are almost certainly re-uploads of
rows already stored. Levels 3-4 default to "add": banks post the same
purchase on adjacent days often enough, but so do people buy the same
thing twice, so they are shown for review instead of being dropped.

Levels 3 and 4 need a date on both sides. A record whose date is missing
or unparseable can only ever be caught by levels 1 and 2.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Protocol

from src.database.models import Transaction
from src.database.repository import StoreError
from src.matching.similarity import (
    amounts_equal,
    date_delta_days,
    edit_distance,
    normalize_string,
    parse_date,
    similarity_percent,
)

logger = logging.getLogger(__name__)

# Placeholder some bank exports write into empty cells.
PLACEHOLDER = "N/A"


class MatchLevel(IntEnum):
    EXACT = 1
    HIGH_CONFIDENCE = 2
    ADJACENT_DATE = 3
    SIMILAR = 4


class Action(str, Enum):
    ADD = "add"
    SKIP = "skip"


@dataclass(frozen=True)
class LevelInfo:
    score: int
    reason: str
    default_action: Action
    border_color: str


LEVEL_INFO: dict[MatchLevel, LevelInfo] = {
    MatchLevel.EXACT: LevelInfo(
        score=100,
        reason="Exact duplicate (same date, description, and amount)",
        default_action=Action.SKIP,
        border_color="red",
    ),
    MatchLevel.HIGH_CONFIDENCE: LevelInfo(
        score=90,
        reason="Same date and amount, very similar description",
        default_action=Action.SKIP,
        border_color="orange",
    ),
    MatchLevel.ADJACENT_DATE: LevelInfo(
        score=70,
        reason="Adjacent date (±1 day), same amount",
        default_action=Action.ADD,
        border_color="yellow",
    ),
    MatchLevel.SIMILAR: LevelInfo(
        score=50,
        reason="Similar date (±2 days), similar amount (±10), similar description",
        default_action=Action.ADD,
        border_color="gray",
    ),
}


@dataclass
class ConflictMatch:
    """A candidate that looks like one or more stored transactions."""
    new_transaction: Transaction
    possible_duplicates: list[Transaction]
    match_level: MatchLevel
    match_score: int
    match_reason: str
    default_action: Action
    border_color: str


@dataclass
class ConflictAnalysis:
    """Outcome of analyzing one uploaded batch against a store."""
    store_name: str
    total_new_transactions: int
    safe_to_add: list[Transaction] = field(default_factory=list)
    conflicts: list[ConflictMatch] = field(default_factory=list)
    auto_skipped: list[Transaction] = field(default_factory=list)
    existing_transactions: list[Transaction] = field(default_factory=list)


class RecordSource(Protocol):
    def fetch_all(self, store_name: str) -> list[Transaction]:
        ...


# ── Level 1: Exact duplicate ──────────────────────────────

AMOUNT_TOLERANCE = 0.01


def check_exact_match(
    candidate: Transaction, existing: list[Transaction]
) -> list[Transaction]:
    """Same date, same normalized description, amounts within 0.01.

    Dates are compared as plain values, so two undated rows with the same
    description and amount are exact duplicates.
    """
    norm_desc = normalize_string(candidate.description)
    return [
        e for e in existing
        if candidate.date == e.date
        and normalize_string(e.description) == norm_desc
        and amounts_equal(candidate.amount, e.amount, AMOUNT_TOLERANCE)
    ]


# ── Level 2: High confidence ──────────────────────────────

MAX_EDIT_DISTANCE = 2


def check_high_confidence_match(
    candidate: Transaction, existing: list[Transaction]
) -> list[Transaction]:
    """Same date and amount, descriptions at most 2 edits apart."""
    return [
        e for e in existing
        if candidate.date == e.date
        and amounts_equal(candidate.amount, e.amount, AMOUNT_TOLERANCE)
        and edit_distance(candidate.description, e.description) <= MAX_EDIT_DISTANCE
    ]


# ── Level 3: Adjacent date ────────────────────────────────

ADJACENT_DAYS = 1


def check_adjacent_date_match(
    candidate: Transaction, existing: list[Transaction]
) -> list[Transaction]:
    """Dates at most one day apart and the same amount."""
    candidate_date = parse_date(candidate.date)
    if candidate_date is None:
        return []
    matches = []
    for e in existing:
        existing_date = parse_date(e.date)
        if existing_date is None:
            continue
        if (
            date_delta_days(candidate_date, existing_date) <= ADJACENT_DAYS
            and amounts_equal(candidate.amount, e.amount, AMOUNT_TOLERANCE)
        ):
            matches.append(e)
    return matches


# ── Level 4: Similar ──────────────────────────────────────

SIMILAR_DAYS = 2
SIMILAR_AMOUNT = 10.0
SIMILAR_DESCRIPTION_PERCENT = 80


def check_similar_match(
    candidate: Transaction, existing: list[Transaction]
) -> list[Transaction]:
    """Dates within 2 days, amounts within 10, descriptions over 80% alike.

    The amount window is absolute currency units, not the 0.01 tolerance
    used by the stricter levels.
    """
    candidate_date = parse_date(candidate.date)
    if candidate_date is None:
        return []
    matches = []
    for e in existing:
        existing_date = parse_date(e.date)
        if existing_date is None:
            continue
        if (
            date_delta_days(candidate_date, existing_date) <= SIMILAR_DAYS
            and round(abs(candidate.amount - e.amount), 9) <= SIMILAR_AMOUNT
            and similarity_percent(candidate.description, e.description)
            > SIMILAR_DESCRIPTION_PERCENT
        ):
            matches.append(e)
    return matches


# ── Resolution ────────────────────────────────────────────

_CLASSIFIERS = (
    (MatchLevel.EXACT, check_exact_match),
    (MatchLevel.HIGH_CONFIDENCE, check_high_confidence_match),
    (MatchLevel.ADJACENT_DATE, check_adjacent_date_match),
    (MatchLevel.SIMILAR, check_similar_match),
)


def create_conflict_match(
    candidate: Transaction, matches: list[Transaction], level: MatchLevel
) -> ConflictMatch:
    info = LEVEL_INFO[level]
    return ConflictMatch(
        new_transaction=candidate,
        possible_duplicates=matches,
        match_level=level,
        match_score=info.score,
        match_reason=info.reason,
        default_action=info.default_action,
        border_color=info.border_color,
    )


def find_best_match(
    candidate: Transaction, existing: list[Transaction]
) -> ConflictMatch | None:
    """Return the strictest level with at least one match, or None.

    All records matching that level are carried as possible duplicates.
    Looser levels are not evaluated once a stricter one matches, and scores
    are never combined across levels.
    """
    for level, classifier in _CLASSIFIERS:
        matches = classifier(candidate, existing)
        if matches:
            return create_conflict_match(candidate, matches, level)
    return None


def _has_value(value: str | None) -> bool:
    return bool(value) and value != PLACEHOLDER and bool(value.strip())


def is_valid_candidate(txn: Transaction) -> bool:
    """A candidate needs a date or a description; header and filler rows
    from statement exports usually have neither."""
    return _has_value(txn.date) or _has_value(txn.description)


# ── Batch analysis ────────────────────────────────────────


class ConflictEngine:
    """Analyze uploaded batches against a store's existing transactions.

    Args:
        repo: Anything with ``fetch_all(store_name)`` raising StoreError,
            normally a Repository.
    """

    def __init__(self, repo: RecordSource):
        self.repo = repo

    def analyze(
        self,
        store_name: str,
        new_transactions: list[Transaction],
        auto_skip_exact: bool = False,
    ) -> ConflictAnalysis:
        """Partition a batch into safe, conflicting and auto-skipped rows.

        Invalid rows (no date and no description) are dropped silently.
        A missing store counts as an empty one. Any other fetch error
        propagates and no partial analysis is returned.
        """
        logger.info(
            "Analyzing %d uploaded transaction(s) against %s (auto-skip=%s)",
            len(new_transactions), store_name, auto_skip_exact,
        )
        valid = [t for t in new_transactions if is_valid_candidate(t)]
        dropped = len(new_transactions) - len(valid)
        if dropped:
            logger.debug("Filtered out %d invalid row(s)", dropped)

        try:
            existing = self.repo.fetch_all(store_name)
        except StoreError as e:
            if not e.is_missing_store:
                raise
            logger.info("Store %s does not exist; all rows are safe to add", store_name)
            existing = []

        if not existing:
            return ConflictAnalysis(
                store_name=store_name,
                total_new_transactions=len(valid),
                safe_to_add=valid,
            )

        result = ConflictAnalysis(
            store_name=store_name,
            total_new_transactions=len(valid),
            existing_transactions=existing,
        )
        for txn in valid:
            match = find_best_match(txn, existing)
            if match is None:
                result.safe_to_add.append(txn)
            elif auto_skip_exact and match.match_level == MatchLevel.EXACT:
                result.auto_skipped.append(txn)
            else:
                result.conflicts.append(match)

        logger.info(
            "Analysis of %s complete: safe=%d, conflicts=%d, auto-skipped=%d",
            store_name, len(result.safe_to_add), len(result.conflicts),
            len(result.auto_skipped),
        )
        return result
