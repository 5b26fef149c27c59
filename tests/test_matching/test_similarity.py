"""Tests for string/number similarity primitives."""

from datetime import date, datetime, timezone

import pytest

from src.matching.similarity import (
    amounts_equal,
    are_strings_similar,
    date_delta_days,
    edit_distance,
    jaro_winkler_similarity,
    normalize_string,
    parse_date,
    similarity_percent,
)


# ── edit_distance ─────────────────────────────────────────


class TestEditDistance:
    def test_identical(self):
        assert edit_distance("TELIA BREDBAND", "TELIA BREDBAND") == 0

    def test_case_and_surrounding_whitespace_ignored(self):
        assert edit_distance("  Telia Bredband ", "TELIA BREDBAND") == 0

    def test_single_substitution(self):
        assert edit_distance("NETFLIX", "NETFLEX") == 1

    def test_swap_is_two_edits(self):
        assert edit_distance("TELIA", "TEILA") == 2

    def test_classic_example(self):
        assert edit_distance("kitten", "sitting") == 3

    def test_empty_strings(self):
        assert edit_distance("", "abc") == 3
        assert edit_distance("abc", "") == 3
        assert edit_distance("", "") == 0

    def test_symmetric(self):
        assert edit_distance("ICA Supermarket", "ICA Maxi") == edit_distance(
            "ICA Maxi", "ICA Supermarket"
        )

    def test_triangle_inequality(self):
        a, b, c = "spotify", "spotfy", "shopify"
        assert edit_distance(a, c) <= edit_distance(a, b) + edit_distance(b, c)


# ── jaro_winkler_similarity ───────────────────────────────


class TestJaroWinkler:
    def test_identical(self):
        assert jaro_winkler_similarity("NETFLIX", "netflix ") == 1.0

    def test_one_empty(self):
        assert jaro_winkler_similarity("NETFLIX", "") == 0.0
        assert jaro_winkler_similarity("", "NETFLIX") == 0.0

    def test_transposition(self):
        assert jaro_winkler_similarity("MARTHA", "MARHTA") == pytest.approx(0.9611, abs=1e-3)

    def test_dixon(self):
        assert jaro_winkler_similarity("DIXON", "DICKSONX") == pytest.approx(0.8133, abs=1e-3)

    def test_unrelated_is_low(self):
        score = jaro_winkler_similarity("NETFLIX", "SPOTIFY")
        assert 0.0 <= score < 0.7

    def test_no_prefix_bonus_below_threshold(self):
        # Jaro is exactly 0.6 here; the shared "abcd" prefix must not lift it.
        assert jaro_winkler_similarity("abcdxxxxxx", "abcdyyyyyy") == pytest.approx(0.6)

    def test_symmetric_for_transposition(self):
        assert jaro_winkler_similarity("MARTHA", "MARHTA") == pytest.approx(
            jaro_winkler_similarity("MARHTA", "MARTHA")
        )

    def test_bounded(self):
        for a, b in [("a", "b"), ("ab", "ba"), ("ICA", "ICA Maxi Stormarknad")]:
            assert 0.0 <= jaro_winkler_similarity(a, b) <= 1.0


class TestSimilarityPercent:
    def test_rounds_to_integer(self):
        assert similarity_percent("MARTHA", "MARHTA") == 96

    def test_identical_is_100(self):
        assert similarity_percent("ICA", "ica") == 100

    def test_empty_is_0(self):
        assert similarity_percent("ICA", "") == 0

    def test_punctuation_difference(self):
        assert similarity_percent("Netflix.com", "Netflix com") == 96


class TestAreStringsSimilar:
    def test_typo(self):
        assert are_strings_similar("TELIA BREDBAND", "TELIA BREBAND") is True

    def test_different(self):
        assert are_strings_similar("NETFLIX", "SPOTIFY") is False


# ── dates ─────────────────────────────────────────────────


class TestDateDelta:
    def test_adjacent_days(self):
        assert date_delta_days("2025-04-30", "2025-05-01") == 1

    def test_across_month(self):
        assert date_delta_days("2025-04-28", "2025-05-02") == 4

    def test_absolute(self):
        assert date_delta_days("2025-05-02", "2025-04-28") == 4

    def test_same_day(self):
        assert date_delta_days("2025-04-30", "2025-04-30") == 0

    def test_truncates_partial_days(self):
        assert date_delta_days("2025-04-30T23:00:00", "2025-05-01T22:00:00") == 0
        assert date_delta_days("2025-04-30T00:00:00", "2025-05-02T23:59:00") == 2

    def test_accepts_date_objects(self):
        assert date_delta_days(date(2025, 1, 1), "2025-01-03") == 2

    def test_timezone_aware(self):
        a = datetime(2025, 1, 1, 23, 0, tzinfo=timezone.utc)
        assert date_delta_days(a, "2025-01-03T01:00:00+02:00") == 1

    def test_unparseable_raises(self):
        with pytest.raises(ValueError):
            date_delta_days("not a date", "2025-01-01")


class TestParseDate:
    def test_iso_date(self):
        assert parse_date("2025-04-30") == datetime(2025, 4, 30, tzinfo=timezone.utc)

    def test_absent_values(self):
        assert parse_date(None) is None
        assert parse_date("") is None
        assert parse_date("   ") is None

    def test_placeholder_is_unparseable(self):
        assert parse_date("N/A") is None

    def test_wrong_type(self):
        assert parse_date(20250430) is None


# ── amounts ───────────────────────────────────────────────


class TestAmountsEqual:
    def test_equal(self):
        assert amounts_equal(749.00, 749.00) is True

    def test_cent_difference_is_not_equal(self):
        assert amounts_equal(100.00, 100.01, 0.01) is False

    def test_cent_difference_with_float_noise(self):
        # abs(-249.00 - -249.01) evaluates to just under 0.01
        assert amounts_equal(-249.00, -249.01) is False
        assert amounts_equal(0.1 + 0.2, 0.31) is False

    def test_sub_cent_difference_is_equal(self):
        assert amounts_equal(100.00, 100.009, 0.01) is True

    def test_difference_equal_to_tolerance_is_not_equal(self):
        assert amounts_equal(1.0, 1.5, tolerance=0.5) is False

    def test_negative_amounts(self):
        assert amounts_equal(-249.00, -249.001) is True
        assert amounts_equal(-249.00, 249.00) is False


# ── normalize_string ──────────────────────────────────────


class TestNormalizeString:
    def test_collapses_whitespace(self):
        assert normalize_string("  TELIA  BREDBAND  ") == "telia bredband"

    def test_strips_trademark(self):
        assert normalize_string("American Express®") == "american express"
        assert normalize_string("Spotify™ Premium©") == "spotify premium"

    def test_keeps_hyphens(self):
        assert normalize_string("ICA-Supermarket!") == "ica-supermarket"

    def test_strips_punctuation(self):
        assert normalize_string("NETFLIX.COM*12") == "netflixcom12"

    def test_tabs_and_newlines(self):
        assert normalize_string("ICA\tMaxi\nLund") == "ica maxi lund"

    def test_keeps_non_ascii_letters(self):
        assert normalize_string("Hemköp") == "hemköp"
        assert normalize_string("Hemköp") != normalize_string("Hemkp")
        assert normalize_string("Padaria São João!") == "padaria são joão"
