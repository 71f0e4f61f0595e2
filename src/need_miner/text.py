# need_miner/text.py
"""
Lightweight lexical heuristics shared by scoring and journey simulation.

They run for every candidate suggestion and every discovered keyword,
and serve as the fallback whenever an LLM sub-analysis is unavailable.
"""

from __future__ import annotations

import re
from enum import Enum


class SemanticDeviation(str, Enum):
    """Bucketed distance between two queries."""

    LOW = "low"  # Fine-tuning of the same query
    MEDIUM = "medium"  # Related but different direction
    HIGH = "high"  # Different direction entirely


class QueryType(str, Enum):
    """Search intent categories used for adoption multipliers."""

    INFORMATIONAL = "informational"
    NAVIGATIONAL = "navigational"
    COMMERCIAL = "commercial"
    TRANSACTIONAL = "transactional"
    COMPARISON = "comparison"
    RESEARCH = "research"


COMMERCIAL_INDICATORS = ("buy", "price", "cost", "review", "best", "vs", "compare", "cheap", "discount", "deal")

QUESTION_WORDS_PATTERN = re.compile(r"^(how|what|why|when|where|who|which)\b", re.IGNORECASE)
COMMERCIAL_PATTERN = re.compile(r"(buy|price|review|best|vs|compare)", re.IGNORECASE)

# Checked in order; first match wins
_QUERY_TYPE_PATTERNS: list[tuple[QueryType, re.Pattern[str]]] = [
    (QueryType.COMPARISON, re.compile(r"比较|对比|\bvs\b|versus|\bcompare\b", re.IGNORECASE)),
    (QueryType.TRANSACTIONAL, re.compile(r"买|价格|多少钱|优惠|促销|购买|\bbuy\b|\bshop\b|\bprice\b|\bcoupon\b|\bdeal\b", re.IGNORECASE)),
    (QueryType.COMMERCIAL, re.compile(r"推荐|排名|排行|评价|\bbest\b|\btop\b|\breview", re.IGNORECASE)),
    (QueryType.RESEARCH, re.compile(r"研究|报告|\bstatistics\b|\bstudy\b|\bresearch\b|\btrends?\b|\bdata\b", re.IGNORECASE)),
    (QueryType.INFORMATIONAL, re.compile(r"如何|怎么|教程|方法|步骤|指南|\bhow\b|\bguide\b|\bwhat\b|\bwhy\b|\btutorial\b", re.IGNORECASE)),
    (QueryType.NAVIGATIONAL, re.compile(r"官网|网站|登录|官方|\blogin\b|\bsite\b|\bofficial\b|\.com\b", re.IGNORECASE)),
]

_TOKEN_SPLIT = re.compile(r"\s+")


def tokenize(text: str) -> list[str]:
    """Lower-case whitespace tokens with empty strings removed."""
    return [t for t in _TOKEN_SPLIT.split(text.lower().strip()) if t]


def word_overlap(a: str, b: str) -> float:
    """Shared-word ratio relative to the longer query, in [0, 1]."""
    words_a = tokenize(a)
    words_b = tokenize(b)
    if not words_a or not words_b:
        return 0.0
    set_b = set(words_b)
    common = [w for w in words_a if w in set_b]
    return min(1.0, len(common) / max(len(words_a), len(words_b)))


def jaccard(a: str, b: str) -> float:
    set_a, set_b = set(tokenize(a)), set(tokenize(b))
    if not set_a and not set_b:
        return 1.0
    return len(set_a & set_b) / len(set_a | set_b)


def classify_semantic_deviation(current_query: str, next_query: str) -> SemanticDeviation:
    """Bucket how far ``next_query`` moves away from ``current_query``."""
    overlap = word_overlap(current_query, next_query)
    if overlap >= 0.7:
        return SemanticDeviation.LOW
    if overlap >= 0.3:
        return SemanticDeviation.MEDIUM
    return SemanticDeviation.HIGH


def classify_query_type(query: str) -> str:
    """Best-effort intent label for a raw query. Defaults to informational."""
    for query_type, pattern in _QUERY_TYPE_PATTERNS:
        if pattern.search(query):
            return query_type.value
    return QueryType.INFORMATIONAL.value


def is_commercial(query: str) -> bool:
    lowered = query.lower()
    return any(indicator in lowered for indicator in COMMERCIAL_INDICATORS)
