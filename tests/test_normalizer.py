"""
Tests for Normalizer

Covers:
- Multi-value parsing (lists, JSON strings, delimited strings)
- Amount ranges with shorthand suffixes
- Timeline buckets from keywords and durations
- Fuzzy name similarity
"""

import pytest

from matchiq.processing.normalizer import Normalizer


@pytest.fixture
def normalizer():
    return Normalizer()


# =============================================================================
# MULTI-VALUE FIELDS
# =============================================================================

class TestParseMultiValue:
    """Profile fields arrive as lists, JSON text or delimited strings."""

    def test_none_and_blank(self, normalizer):
        assert normalizer.parse_multi_value(None) == []
        assert normalizer.parse_multi_value("   ") == []

    def test_json_array(self, normalizer):
        assert normalizer.parse_multi_value('["Thailand", "Vietnam"]') == ["Thailand", "Vietnam"]

    def test_delimited_string(self, normalizer):
        assert normalizer.parse_multi_value("Thailand, Vietnam; Laos") == ["Thailand", "Vietnam", "Laos"]

    def test_list_drops_blanks(self, normalizer):
        assert normalizer.parse_multi_value(["a", " ", None, "b "]) == ["a", "b"]

    def test_scalar(self, normalizer):
        assert normalizer.parse_multi_value(7) == [7]


# =============================================================================
# AMOUNTS
# =============================================================================

class TestNormalizeAmount:

    def test_range_with_suffixes(self, normalizer):
        assert normalizer.normalize_amount("$1M - $5M") == (1_000_000, 5_000_000)

    def test_plain_amount(self, normalizer):
        assert normalizer.normalize_amount("$5,000,000") == (5_000_000, 5_000_000)

    def test_up_to(self, normalizer):
        assert normalizer.normalize_amount("Up to 10m") == (None, 10_000_000)

    def test_open_ended(self, normalizer):
        assert normalizer.normalize_amount("500k+") == (500_000, None)

    def test_words(self, normalizer):
        assert normalizer.normalize_amount("USD 2.5 million") == (2_500_000, 2_500_000)

    def test_unparseable(self, normalizer):
        assert normalizer.normalize_amount("varies") == (None, None)
        assert normalizer.normalize_amount("") == (None, None)


# =============================================================================
# TIMELINES
# =============================================================================

class TestNormalizeTimeline:

    @pytest.mark.parametrize("raw,expected", [
        ("ASAP", "immediate"),
        ("3-6 months", "3-6 months"),
        ("within 2 months", "1-3 months"),
        ("1-2 years", "12-24 months"),
        ("3 years", "24+ months"),
        ("Flexible", "flexible"),
        ("long-term", "12-24 months"),
    ])
    def test_buckets(self, normalizer, raw, expected):
        assert normalizer.normalize_timeline(raw) == expected

    def test_unrecognised(self, normalizer):
        assert normalizer.normalize_timeline("whenever the stars align") is None
        assert normalizer.normalize_timeline("12") is None
        assert normalizer.normalize_timeline(None) is None


# =============================================================================
# SIMILARITY
# =============================================================================

class TestSimilarity:

    def test_identical_after_normalising(self, normalizer):
        assert normalizer.text_similarity("  Food  Processing", "food processing") == 1.0

    def test_empty(self, normalizer):
        assert normalizer.text_similarity("", "food") == 0.0

    def test_token_overlap_ignores_order_and_noise(self, normalizer):
        assert normalizer.token_overlap("Logistics & Transportation", "Transportation Logistics") == 1.0

    def test_percentage(self, normalizer):
        assert normalizer.normalize_percentage("51%") == 51.0
        assert normalizer.normalize_percentage(30) == 30.0
        assert normalizer.normalize_percentage("n/a") is None
