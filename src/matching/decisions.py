"""Review decisions: turn a ConflictAnalysis into the rows to store.

A decisions map holds one Action per conflict, keyed by the candidate's
id. Conflicts without an entry fall back to their level's default action.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.database.models import Transaction
from src.matching.conflicts import Action, ConflictAnalysis, ConflictMatch

Decisions = dict[int, Action]

SORT_KEYS = ("date", "amount", "match_score")


@dataclass
class DecisionSummary:
    """Counts shown while a batch is under review."""
    safe: int
    conflicts: int
    auto_skipped: int
    existing: int
    to_add: int
    to_skip: int


def apply_decisions(
    analysis: ConflictAnalysis, decisions: Decisions
) -> list[Transaction]:
    """Return the transactions approved for insertion.

    Safe rows are always included; auto-skipped rows never are. Each
    conflict is included iff its decision (or default action) is "add".
    """
    approved = list(analysis.safe_to_add)
    for conflict in analysis.conflicts:
        action = decisions.get(conflict.new_transaction.id, conflict.default_action)
        if action == Action.ADD:
            approved.append(conflict.new_transaction)
    return approved


def initialize_default_decisions(conflicts: list[ConflictMatch]) -> Decisions:
    """Seed a decisions map with every conflict's default action."""
    return {c.new_transaction.id: c.default_action for c in conflicts}


def unresolved_conflict_count(
    conflicts: list[ConflictMatch], decisions: Decisions
) -> int:
    """Number of conflicts with no explicit decision yet.

    Every conflict has a default action, so this measures how much of the
    review has been gone through, not how many rows are at risk.
    """
    return sum(1 for c in conflicts if c.new_transaction.id not in decisions)


def set_decision(
    decisions: Decisions, conflict: ConflictMatch, action: Action
) -> Decisions:
    updated = dict(decisions)
    updated[conflict.new_transaction.id] = Action(action)
    return updated


def skip_all_conflicts(
    conflicts: list[ConflictMatch], decisions: Decisions | None = None
) -> Decisions:
    """Return a copy of decisions with every conflict set to skip."""
    updated = dict(decisions or {})
    for c in conflicts:
        updated[c.new_transaction.id] = Action.SKIP
    return updated


def summarize_decisions(
    analysis: ConflictAnalysis, decisions: Decisions
) -> DecisionSummary:
    """Count what a commit would add and skip given explicit decisions.

    Only explicit entries are counted, so seed the map with
    initialize_default_decisions() first to include defaults.
    """
    adds = sum(1 for a in decisions.values() if a == Action.ADD)
    skips = sum(1 for a in decisions.values() if a == Action.SKIP)
    return DecisionSummary(
        safe=len(analysis.safe_to_add),
        conflicts=len(analysis.conflicts),
        auto_skipped=len(analysis.auto_skipped),
        existing=len(analysis.existing_transactions),
        to_add=len(analysis.safe_to_add) + adds,
        to_skip=len(analysis.auto_skipped) + skips,
    )


def _matches_query(conflict: ConflictMatch, query: str) -> bool:
    txn = conflict.new_transaction
    return (
        query in txn.description.lower()
        or (txn.date is not None and query in txn.date)
        or query in str(txn.amount)
    )


def filter_conflicts(
    conflicts: list[ConflictMatch],
    query: str = "",
    sort_by: str | None = None,
) -> list[ConflictMatch]:
    """Search and sort conflicts for display.

    Args:
        query: Case-insensitive substring of description, date or amount.
        sort_by: "date" (oldest first, undated first), "amount" (largest
            absolute amount first) or "match_score" (highest first).
            None keeps analysis order.
    """
    if sort_by is not None and sort_by not in SORT_KEYS:
        raise ValueError(f"Unknown sort key: {sort_by}")

    result = list(conflicts)
    query = query.strip().lower()
    if query:
        result = [c for c in result if _matches_query(c, query)]

    if sort_by == "date":
        result.sort(key=lambda c: c.new_transaction.date or "")
    elif sort_by == "amount":
        result.sort(key=lambda c: abs(c.new_transaction.amount), reverse=True)
    elif sort_by == "match_score":
        result.sort(key=lambda c: c.match_score, reverse=True)
    return result


def parse_decisions(raw: dict) -> Decisions:
    """Convert a loaded ``{id: "add"|"skip"}`` mapping into Decisions.

    JSON object keys are strings, so ids are converted to int.

    Raises:
        ValueError: On a non-integer id or an unknown action.
    """
    decisions: Decisions = {}
    for key, value in raw.items():
        try:
            txn_id = int(key)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid transaction id in decisions: {key!r}") from e
        try:
            decisions[txn_id] = Action(str(value).lower())
        except ValueError as e:
            raise ValueError(
                f"Invalid action for transaction {txn_id}: {value!r}"
                " (expected 'add' or 'skip')"
            ) from e
    return decisions
