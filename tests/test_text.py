# tests/test_text.py
"""
Tests for the lexical heuristics.
"""

import pytest

from need_miner.text import (
    QueryType,
    SemanticDeviation,
    classify_query_type,
    classify_semantic_deviation,
    is_commercial,
    jaccard,
    tokenize,
    word_overlap,
)


class TestTokenize:
    def test_lowercases_and_splits(self):
        assert tokenize("  Standing   DESK\tprice ") == ["standing", "desk", "price"]

    def test_empty(self):
        assert tokenize("   ") == []


class TestOverlap:
    def test_identical(self):
        assert word_overlap("standing desk", "standing desk") == 1.0

    def test_relative_to_longer_query(self):
        assert word_overlap("standing desk", "standing desk price") == pytest.approx(2 / 3)

    def test_empty_side(self):
        assert word_overlap("", "desk") == 0.0

    def test_jaccard(self):
        assert jaccard("a b", "b c") == pytest.approx(1 / 3)
        assert jaccard("", "") == 1.0


class TestSemanticDeviation:
    @pytest.mark.parametrize(
        "current,following,expected",
        [
            ("standing desk", "standing desk", SemanticDeviation.LOW),
            ("standing desk", "standing desk price", SemanticDeviation.MEDIUM),
            ("standing desk", "garden hose", SemanticDeviation.HIGH),
        ],
    )
    def test_buckets(self, current, following, expected):
        assert classify_semantic_deviation(current, following) is expected


class TestQueryType:
    @pytest.mark.parametrize(
        "query,expected",
        [
            ("standing desk vs sitting desk", QueryType.COMPARISON),
            ("standing desk price", QueryType.TRANSACTIONAL),
            ("best standing desk", QueryType.COMMERCIAL),
            ("standing desk market research", QueryType.RESEARCH),
            ("how to assemble a standing desk", QueryType.INFORMATIONAL),
            ("ikea official site", QueryType.NAVIGATIONAL),
            ("standing desk", QueryType.INFORMATIONAL),
            ("升降桌价格", QueryType.TRANSACTIONAL),
        ],
    )
    def test_classification(self, query, expected):
        assert classify_query_type(query) == expected.value

    def test_comparison_wins_over_price(self):
        assert classify_query_type("compare desk price") == QueryType.COMPARISON.value


class TestCommercial:
    def test_detects_indicator(self):
        assert is_commercial("Cheap standing desk")

    def test_plain_query(self):
        assert not is_commercial("standing desk assembly")
