# need_miner/discovery/scorer.py
"""
Evaluation Scorer - weighted multi-dimensional quality score for one iteration.

Each dimension is scored by its own LLM sub-analysis. The sub-analyses of
one evaluation run concurrently; any that degrade or return something
unusable fall back to a local heuristic for that dimension only, so one bad
answer never voids the whole evaluation.

    overall = sum(w_d * s_d) / sum(w_d for w_d > 0)      clipped to [0, 10]

Dividing by the positive weights only means a perfect iteration (every
positive dimension at 10, no repetition) reaches exactly 10; the negative
repetition weight can only pull the score down.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from itertools import combinations
from typing import Any

from need_miner.discovery.models import (
    ConvergencePolicy,
    EvaluationDimension,
    EvaluationResult,
    IterationData,
)
from need_miner.llm.gateway import CallOptions, LLMGateway, is_degraded
from need_miner.prompts import EVALUATOR_SYSTEM_PROMPT, build_dimension_prompt
from need_miner.text import QueryType, classify_query_type, is_commercial, jaccard, tokenize

logger = logging.getLogger(__name__)

NEAR_DUPLICATE_SIMILARITY = 0.8
MAX_NOVELTY_REFERENCE = 200

_SUGGESTIONS = {
    EvaluationDimension.RELEVANCE.value: "Stay closer to the original topic",
    EvaluationDimension.LONG_TAIL_VALUE.value: "Use longer, more specific query modifiers",
    EvaluationDimension.COMMERCIAL_VALUE.value: "Add commercial intent words (best, price, review, buy)",
    EvaluationDimension.DIVERSITY.value: "Explore different angles and question words",
    EvaluationDimension.NOVELTY.value: "Move away from patterns already covered",
    EvaluationDimension.SEARCH_VOLUME_POTENTIAL.value: "Include broader head terms",
    EvaluationDimension.GOAL_ACHIEVEMENT.value: "Pick queries that surface more new keywords",
    EvaluationDimension.DOMAIN_COVERAGE.value: "Explore underrepresented industries and use cases",
}


def clip_score(value: float, low: float = 0.0, high: float = 10.0) -> float:
    return max(low, min(high, value))


def weighted_overall(dimensions: dict[str, float], weights: dict[str, float]) -> float:
    """Weighted sum normalized by the positive weights, clipped to [0, 10]."""
    positive = sum(w for w in weights.values() if w > 0)
    if positive <= 0:
        return 0.0
    total = sum(weight * dimensions.get(name, 0.0) for name, weight in weights.items())
    return clip_score(total / positive)


# ----------------------------------------------------------------------
# Heuristics
# ----------------------------------------------------------------------


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _relevance(data: IterationData, policy: ConvergencePolicy) -> float:
    seed_tokens = set(tokenize(data.seed_keyword))
    if not data.new_keywords or not seed_tokens:
        return 0.0
    seed = data.seed_keyword.lower()
    hits = [1.0 if seed_tokens & set(tokenize(kw)) or seed in kw.lower() else 0.0 for kw in data.new_keywords]
    return _mean(hits) * 10


def _long_tail(data: IterationData, policy: ConvergencePolicy) -> float:
    return _mean([min(len(tokenize(kw)) / 5, 1.0) for kw in data.new_keywords]) * 10


def _commercial(data: IterationData, policy: ConvergencePolicy) -> float:
    return _mean([1.0 if is_commercial(kw) else 0.0 for kw in data.new_keywords]) * 10


def _diversity(data: IterationData, policy: ConvergencePolicy) -> float:
    tokens = [t for kw in data.new_keywords for t in tokenize(kw)]
    if not tokens:
        return 0.0
    return len(set(tokens)) / len(tokens) * 10


def _novelty(data: IterationData, policy: ConvergencePolicy) -> float:
    if not data.new_keywords:
        return 0.0
    reference = data.previous_keywords[-MAX_NOVELTY_REFERENCE:]
    if not reference:
        return 10.0
    closest = [max(jaccard(kw, prev) for prev in reference) for kw in data.new_keywords]
    return (1 - _mean(closest)) * 10


def _search_volume(data: IterationData, policy: ConvergencePolicy) -> float:
    # Shorter queries are searched more often
    return _mean([1 - min(len(tokenize(kw)) - 1, 5) / 5 for kw in data.new_keywords]) * 10


def _goal_achievement(data: IterationData, policy: ConvergencePolicy) -> float:
    return min(len(data.new_keywords) / policy.min_new_per_iteration, 1.0) * 10


def _domain_coverage(data: IterationData, policy: ConvergencePolicy) -> float:
    if not data.new_keywords:
        return 0.0
    types = {classify_query_type(kw) for kw in data.new_keywords}
    return len(types) / len(QueryType) * 10


def _repetition(data: IterationData, policy: ConvergencePolicy) -> float:
    keywords = data.new_keywords
    if len(keywords) < 2:
        return 0.0
    pairs = list(combinations(keywords, 2))
    near = sum(1 for a, b in pairs if jaccard(a, b) >= NEAR_DUPLICATE_SIMILARITY)
    return near / len(pairs) * 10


HEURISTICS: dict[str, Callable[[IterationData, ConvergencePolicy], float]] = {
    EvaluationDimension.RELEVANCE.value: _relevance,
    EvaluationDimension.LONG_TAIL_VALUE.value: _long_tail,
    EvaluationDimension.COMMERCIAL_VALUE.value: _commercial,
    EvaluationDimension.DIVERSITY.value: _diversity,
    EvaluationDimension.NOVELTY.value: _novelty,
    EvaluationDimension.SEARCH_VOLUME_POTENTIAL.value: _search_volume,
    EvaluationDimension.GOAL_ACHIEVEMENT.value: _goal_achievement,
    EvaluationDimension.DOMAIN_COVERAGE.value: _domain_coverage,
    EvaluationDimension.REPETITION_PENALTY.value: _repetition,
}


def heuristic_score(dimension: str, data: IterationData, policy: ConvergencePolicy) -> float:
    """Local estimate for ``dimension``; unknown dimensions score 0."""
    func = HEURISTICS.get(dimension)
    if func is None:
        return 0.0
    return clip_score(func(data, policy))


def _extract_score(result: Any) -> float | None:
    if not isinstance(result, dict):
        return None
    raw = result.get("score")
    if isinstance(raw, bool):
        return None
    try:
        score = float(raw)
    except (TypeError, ValueError):
        return None
    if score != score:  # NaN
        return None
    return clip_score(score)


class EvaluationScorer:
    """
    Scores an iteration's new keywords across the policy's dimensions.

    Without a gateway every dimension is scored heuristically.
    """

    def __init__(self, gateway: LLMGateway | None = None, logger: logging.Logger | None = None):
        self.gateway = gateway
        self._log = logger or logging.getLogger(__name__)

    async def _score_dimension(
        self, dimension: str, data: IterationData, policy: ConvergencePolicy
    ) -> tuple[float, list[str], bool]:
        """Returns (score, suggestions, used_heuristic)."""
        if self.gateway is None or not data.new_keywords:
            return heuristic_score(dimension, data, policy), [], True

        prompt = build_dimension_prompt(
            dimension, data.seed_keyword, data.new_keywords, data.previous_keywords, data.goals
        )
        result = await self.gateway.analyze(
            prompt,
            f"evaluate_{dimension}",
            CallOptions(system_prompt=EVALUATOR_SYSTEM_PROMPT, temperature=0.3, strict_format=True),
        )

        score = None if is_degraded(result) else _extract_score(result)
        if score is None:
            self._log.warning(f"Sub-analysis for '{dimension}' unusable, scoring it heuristically")
            return heuristic_score(dimension, data, policy), [], True

        suggestions = result.get("suggestions") or []
        if not isinstance(suggestions, list):
            suggestions = [str(suggestions)]
        return score, [str(s) for s in suggestions if s], False

    async def score(
        self, data: IterationData, policy: ConvergencePolicy, threshold: float | None = None
    ) -> EvaluationResult:
        """
        Score one iteration.

        Args:
            data: The iteration's new and previous keywords.
            policy: Supplies the dimension weights.
            threshold: Effective acceptance threshold in [0, 1]; defaults to
                the policy's threshold for ``data.iteration_number``.

        Returns:
            A fresh EvaluationResult with ``overall_score`` in [0, 10].
        """
        if threshold is None:
            threshold = policy.effective_threshold(data.iteration_number)

        names = list(policy.weights)
        outcomes = await asyncio.gather(*(self._score_dimension(name, data, policy) for name in names))

        dimensions: dict[str, float] = {}
        llm_suggestions: list[str] = []
        heuristic: list[str] = []
        for name, (score, suggestions, used_heuristic) in zip(names, outcomes, strict=True):
            dimensions[name] = round(score, 4)
            llm_suggestions.extend(suggestions)
            if used_heuristic:
                heuristic.append(name)

        return self._build_result(data, policy, threshold, dimensions, llm_suggestions, heuristic)

    def score_heuristic(
        self, data: IterationData, policy: ConvergencePolicy, threshold: float | None = None
    ) -> EvaluationResult:
        """Synchronous, LLM-free scoring used when the LLM path cannot be trusted at all."""
        if threshold is None:
            threshold = policy.effective_threshold(data.iteration_number)
        dimensions = {name: round(heuristic_score(name, data, policy), 4) for name in policy.weights}
        return self._build_result(data, policy, threshold, dimensions, [], list(policy.weights))

    def _build_result(
        self,
        data: IterationData,
        policy: ConvergencePolicy,
        threshold: float,
        dimensions: dict[str, float],
        llm_suggestions: list[str],
        heuristic: list[str],
    ) -> EvaluationResult:
        overall = weighted_overall(dimensions, policy.weights)
        weakest = self.weakest_dimensions(dimensions, policy.weights, count=2)

        suggestions = list(dict.fromkeys(llm_suggestions))
        suggestions.extend(_SUGGESTIONS[name] for name in weakest if name in _SUGGESTIONS)

        analysis = (
            f"Iteration {data.iteration_number} found {len(data.new_keywords)} new keywords; "
            f"overall {overall:.2f}/10 against threshold {threshold:.2f}"
        )
        if weakest:
            analysis += f"; weakest: {', '.join(weakest)}"

        self._log.debug(f"Evaluation for '{data.query}': {analysis}")
        return EvaluationResult(
            dimensions=dimensions,
            overall_score=overall,
            recommend_continue=overall / 10 < threshold,
            improvement_suggestions=list(dict.fromkeys(suggestions)),
            analysis=analysis,
            new_keywords_count=len(data.new_keywords),
            heuristic_dimensions=heuristic,
        )

    @staticmethod
    def weakest_dimensions(dimensions: dict[str, float], weights: dict[str, float], count: int = 2) -> list[str]:
        """Lowest-scoring positively weighted dimensions."""
        ranked = sorted((score, name) for name, score in dimensions.items() if weights.get(name, 0) > 0)
        return [name for _, name in ranked[:count]]
