"""String and number similarity primitives for duplicate detection.

All functions are pure. String comparisons lower-case and trim their
inputs first, so "NETFLIX " and "netflix" compare as identical.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone

_SECONDS_PER_DAY = 86400

_WHITESPACE_RE = re.compile(r"\s+")
_TRADEMARK_RE = re.compile(r"[®™©]")
_SPECIAL_CHARS_RE = re.compile(r"[^\w\s-]")


def _prep(s: str) -> str:
    return s.lower().strip()


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance: minimum single-character edits to turn a into b.

    Insertions, deletions and substitutions all cost 1.

        edit_distance("NETFLIX", "NETFLEX") == 1
        edit_distance("TELIA", "TEILA") == 2   # a swap is two edits
    """
    s1, s2 = _prep(a), _prep(b)
    if s1 == s2:
        return 0
    if not s1:
        return len(s2)
    if not s2:
        return len(s1)

    previous = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, start=1):
        current = [i]
        for j, c2 in enumerate(s2, start=1):
            if c1 == c2:
                current.append(previous[j - 1])
            else:
                current.append(min(
                    previous[j - 1] + 1,  # substitution
                    current[j - 1] + 1,   # insertion
                    previous[j] + 1,      # deletion
                ))
        previous = current
    return previous[-1]


def _jaro(s1: str, s2: str) -> float:
    window = max(len(s1), len(s2)) // 2 - 1
    s1_matched = [False] * len(s1)
    s2_matched = [False] * len(s2)

    matches = 0
    for i, c in enumerate(s1):
        start = max(0, i - window)
        end = min(i + window + 1, len(s2))
        for j in range(start, end):
            if s2_matched[j] or s2[j] != c:
                continue
            s1_matched[i] = True
            s2_matched[j] = True
            matches += 1
            break

    if matches == 0:
        return 0.0

    transpositions = 0
    k = 0
    for i, c in enumerate(s1):
        if not s1_matched[i]:
            continue
        while not s2_matched[k]:
            k += 1
        if c != s2[k]:
            transpositions += 1
        k += 1

    return (
        matches / len(s1)
        + matches / len(s2)
        + (matches - transpositions / 2) / matches
    ) / 3


def jaro_winkler_similarity(a: str, b: str) -> float:
    """Jaro-Winkler similarity in [0, 1].

    More forgiving than edit distance for transposed characters, and
    rewards strings that start the same way. The shared-prefix bonus (up
    to 4 chars, 0.1 per char) is only applied when the Jaro score is at
    least 0.7.
    """
    s1, s2 = _prep(a), _prep(b)
    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0

    jaro = _jaro(s1, s2)
    if jaro < 0.7:
        return jaro

    prefix = 0
    for c1, c2 in zip(s1[:4], s2[:4]):
        if c1 != c2:
            break
        prefix += 1
    return jaro + prefix * 0.1 * (1 - jaro)


def similarity_percent(a: str, b: str) -> int:
    """Jaro-Winkler similarity as an integer percentage (0-100)."""
    # Round half up; round() would use banker's rounding.
    return int(math.floor(jaro_winkler_similarity(a, b) * 100 + 0.5))


def are_strings_similar(a: str, b: str, threshold: float = 0.8) -> bool:
    return jaro_winkler_similarity(a, b) >= threshold


def _to_utc_datetime(value: str | date | datetime) -> datetime:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_date(value) -> datetime | None:
    """Parse a transaction date leniently.

    Returns None for absent, blank or unparseable values instead of raising.
    """
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        return _to_utc_datetime(value)
    except (AttributeError, TypeError, ValueError):
        return None


def date_delta_days(d1: str | date | datetime, d2: str | date | datetime) -> int:
    """Absolute difference in whole days, truncated rather than rounded.

        date_delta_days("2025-04-30", "2025-05-01") == 1
        date_delta_days("2025-04-28", "2025-05-02") == 4

    Raises:
        ValueError: If either date cannot be parsed.
    """
    delta = abs(_to_utc_datetime(d1) - _to_utc_datetime(d2))
    return int(delta.total_seconds() // _SECONDS_PER_DAY)


def amounts_equal(a: float, b: float, tolerance: float = 0.01) -> bool:
    """True if the amounts differ by strictly less than tolerance.

    amounts_equal(749.00, 749.01) is False; amounts_equal(749.00, 749.001)
    is True.
    """
    # Rounding drops float noise: abs(-249.00 - -249.01) is 0.00999...
    return round(abs(a - b), 9) < tolerance


def normalize_string(s: str) -> str:
    """Normalize a description for exact comparison.

    - Lowercase and trim
    - Collapse whitespace runs to a single space
    - Strip trademark symbols
    - Strip everything except word characters, whitespace and hyphens
    """
    s = s.lower().strip()
    s = _WHITESPACE_RE.sub(" ", s)
    s = _TRADEMARK_RE.sub("", s)
    return _SPECIAL_CHARS_RE.sub("", s)
