# tests/test_scorer.py
"""
Tests for the evaluation scorer: weighted overall score, heuristics and
per-dimension LLM fallback.
"""

import json

import pytest

from need_miner.discovery.models import (
    DEFAULT_EVALUATION_WEIGHTS,
    ConvergencePolicy,
    EvaluationDimension,
    IterationData,
)
from need_miner.discovery.scorer import EvaluationScorer, heuristic_score, weighted_overall

POSITIVE_WEIGHT_SUM = sum(w for w in DEFAULT_EVALUATION_WEIGHTS.values() if w > 0)


@pytest.fixture
def policy():
    return ConvergencePolicy()


@pytest.fixture
def data():
    return IterationData(
        seed_keyword="standing desk",
        query="standing desk best",
        iteration_number=1,
        new_keywords=[
            "standing desk price",
            "best standing desk for small spaces",
            "how to assemble a standing desk",
            "standing desk vs sitting desk",
            "buy standing desk online",
        ],
        previous_keywords=["standing desk", "standing desk review"],
    )


def _dimension_from_prompt(messages):
    for line in messages[-1]["content"].splitlines():
        if line.startswith("Dimension: "):
            return line.removeprefix("Dimension: ")
    raise AssertionError("no dimension in prompt")


class TestWeightedOverall:
    def test_perfect_iteration_reaches_ten(self):
        dims = {name: 10.0 for name in DEFAULT_EVALUATION_WEIGHTS}
        dims[EvaluationDimension.REPETITION_PENALTY.value] = 0.0
        assert weighted_overall(dims, DEFAULT_EVALUATION_WEIGHTS) == pytest.approx(10.0)

    def test_repetition_pulls_down(self):
        dims = {name: 10.0 for name in DEFAULT_EVALUATION_WEIGHTS}
        expected = (10.0 * POSITIVE_WEIGHT_SUM - 1.0) / POSITIVE_WEIGHT_SUM
        assert weighted_overall(dims, DEFAULT_EVALUATION_WEIGHTS) == pytest.approx(expected)

    def test_clipped_at_zero(self):
        dims = {EvaluationDimension.REPETITION_PENALTY.value: 10.0}
        assert weighted_overall(dims, DEFAULT_EVALUATION_WEIGHTS) == 0.0

    def test_missing_dimensions_count_as_zero(self):
        assert weighted_overall({}, DEFAULT_EVALUATION_WEIGHTS) == 0.0


class TestHeuristics:
    def test_all_within_range(self, data, policy):
        for name in DEFAULT_EVALUATION_WEIGHTS:
            assert 0.0 <= heuristic_score(name, data, policy) <= 10.0

    def test_relevance_counts_seed_overlap(self, policy):
        data = IterationData(seed_keyword="standing desk", query="q", new_keywords=["desk lamp", "garden hose"])
        assert heuristic_score("relevance", data, policy) == pytest.approx(5.0)

    def test_novelty_without_history_is_full(self, policy):
        data = IterationData(seed_keyword="s", query="q", new_keywords=["a b"])
        assert heuristic_score("novelty", data, policy) == 10.0

    def test_goal_achievement_tracks_new_count(self, policy):
        data = IterationData(seed_keyword="s", query="q", new_keywords=[f"kw {i}" for i in range(5)])
        assert heuristic_score("goal_achievement", data, policy) == pytest.approx(5.0)

    def test_repetition_detects_near_duplicates(self, policy):
        data = IterationData(seed_keyword="s", query="q", new_keywords=["desk price", "price desk", "lamp"])
        assert heuristic_score("repetition_penalty", data, policy) == pytest.approx(10 / 3)

    def test_unknown_dimension_scores_zero(self, data, policy):
        assert heuristic_score("vibes", data, policy) == 0.0


class TestEvaluationScorer:
    async def test_without_gateway_everything_is_heuristic(self, data, policy):
        result = await EvaluationScorer().score(data, policy)

        assert set(result.dimensions) == set(DEFAULT_EVALUATION_WEIGHTS)
        assert set(result.heuristic_dimensions) == set(DEFAULT_EVALUATION_WEIGHTS)
        assert 0.0 <= result.overall_score <= 10.0
        assert result.new_keywords_count == 5

    async def test_llm_scores_every_dimension(self, data, policy, make_gateway):
        gateway, transport = make_gateway(default='{"score": 8, "reason": "fine", "suggestions": ["add prices"]}')

        result = await EvaluationScorer(gateway).score(data, policy)

        assert len(transport.calls) == len(DEFAULT_EVALUATION_WEIGHTS)
        assert all(score == 8.0 for score in result.dimensions.values())
        assert result.overall_score == pytest.approx((8.0 * POSITIVE_WEIGHT_SUM - 0.8) / POSITIVE_WEIGHT_SUM)
        assert result.heuristic_dimensions == []
        assert "add prices" in result.improvement_suggestions

    async def test_unusable_sub_analysis_falls_back_per_dimension(self, data, policy, make_gateway):
        def answer(messages, request):
            dimension = _dimension_from_prompt(messages)
            if dimension == "novelty":
                return "I cannot rate this"
            if dimension == "diversity":
                return json.dumps({"score": True})
            return json.dumps({"score": 6})

        gateway, _ = make_gateway(default=answer)
        result = await EvaluationScorer(gateway).score(data, policy)

        assert sorted(result.heuristic_dimensions) == ["diversity", "novelty"]
        assert result.dimensions["relevance"] == 6.0
        assert result.dimensions["novelty"] == pytest.approx(heuristic_score("novelty", data, policy), abs=1e-4)

    async def test_scores_are_clipped(self, data, policy, make_gateway):
        gateway, _ = make_gateway(default='{"score": 42}')
        result = await EvaluationScorer(gateway).score(data, policy)
        assert all(score == 10.0 for score in result.dimensions.values())

    async def test_empty_iteration_skips_the_llm(self, policy, make_gateway):
        gateway, transport = make_gateway(default='{"score": 9}')
        data = IterationData(seed_keyword="s", query="q", new_keywords=[])

        result = await EvaluationScorer(gateway).score(data, policy)

        assert transport.calls == []
        assert result.overall_score == pytest.approx(0.0)

    @pytest.mark.parametrize("threshold,expected", [(0.95, True), (0.5, False)])
    async def test_recommend_continue(self, policy, make_gateway, data, threshold, expected):
        gateway, _ = make_gateway(default='{"score": 8}')
        result = await EvaluationScorer(gateway).score(data, policy, threshold)
        assert result.recommend_continue is expected

    def test_score_heuristic_is_synchronous(self, data, policy):
        result = EvaluationScorer().score_heuristic(data, policy)
        assert set(result.heuristic_dimensions) == set(policy.weights)
        assert result.analysis.startswith("Iteration 1 found 5 new keywords")

    def test_weakest_dimensions_ignore_negative_weights(self):
        dims = {"relevance": 2.0, "novelty": 5.0, "diversity": 9.0, "repetition_penalty": 0.0}
        assert EvaluationScorer.weakest_dimensions(dims, DEFAULT_EVALUATION_WEIGHTS) == ["relevance", "novelty"]
