# tests/test_planner.py
"""
Tests for next-query planning and keyword sampling.
"""

import json
import random

from need_miner.discovery.models import EvaluationResult
from need_miner.discovery.planner import FALLBACK_VARIANTS, QueryPlanner, fallback_query, keyword_sample


class TestFallbackQuery:
    def test_cycles_through_variants(self):
        queries = [fallback_query("desk", i) for i in range(len(FALLBACK_VARIANTS) + 1)]
        assert queries[0] == queries[-1]
        assert len(set(queries)) == len(FALLBACK_VARIANTS)
        assert all(q.startswith("desk ") for q in queries)


class TestKeywordSample:
    def test_small_pool_is_returned_whole(self):
        assert sorted(keyword_sample(["a", "b", "a"])) == ["a", "b"]

    def test_empty(self):
        assert keyword_sample([]) == []

    def test_mixes_longest_and_commercial(self):
        keywords = [f"desk {i}" for i in range(30)] + [
            "a very long standing desk keyword for tall people",
            "another rather long standing desk keyword",
            "desk price",
            "desk review",
        ]
        sample = keyword_sample(keywords, size=8, rng=random.Random(0))

        assert len(sample) == 8
        assert len(set(sample)) == 8
        assert sample[:2] == [
            "a very long standing desk keyword for tall people",
            "another rather long standing desk keyword",
        ]
        assert sample[2:4] == ["desk price", "desk review"]


class TestQueryPlanner:
    async def test_without_gateway_uses_fallback(self):
        plan = await QueryPlanner().plan("desk", 2, ["desk a"])
        assert plan.query == fallback_query("desk", 2)
        assert plan.source == "fallback"

    async def test_llm_plan_skips_used_queries(self, make_gateway):
        answer = {
            "gaps": ["pricing"],
            "targetGoals": ["more commercial terms"],
            "recommendedQueries": ["Desk Price", "desk for small rooms"],
        }
        gateway, transport = make_gateway(default=json.dumps(answer))

        plan = await QueryPlanner(gateway).plan("desk", 2, ["desk a", "desk b"], previous_queries=["desk price"])

        assert plan.query == "desk for small rooms"
        assert plan.source == "llm"
        assert plan.gaps == ["pricing"]
        assert plan.target_goals == ["more commercial terms"]
        assert '"desk price"' in transport.calls[0][0][-1]["content"]

    async def test_weakest_dimensions_reach_the_prompt(self, make_gateway):
        gateway, transport = make_gateway(default=json.dumps({"recommendedQueries": ["desk lamp"]}))
        evaluation = EvaluationResult(dimensions={"relevance": 9.0, "novelty": 1.0, "diversity": 2.0})

        await QueryPlanner(gateway).plan("desk", 2, ["desk a"], last_evaluation=evaluation)

        prompt = transport.calls[0][0][-1]["content"]
        assert "Dimensions that need improvement: novelty, diversity" in prompt

    async def test_only_repeats_uses_fallback(self, make_gateway):
        gateway, _ = make_gateway(default=json.dumps({"recommendedQueries": ["desk"]}))
        plan = await QueryPlanner(gateway).plan("desk", 3, [], previous_queries=["desk"])

        assert plan.query == fallback_query("desk", 3)
        assert plan.source == "fallback"
        assert plan.recommended_queries == ["desk"]

    async def test_degraded_uses_fallback(self, make_gateway):
        gateway, _ = make_gateway(default="no idea")
        plan = await QueryPlanner(gateway).plan("desk", 1, [])
        assert plan.query == fallback_query("desk", 1)
