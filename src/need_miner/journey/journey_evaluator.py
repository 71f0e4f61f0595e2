# need_miner/journey/journey_evaluator.py
"""
Journey Evaluator - how closely a simulated search journey follows the path
a real user took.

Three heuristics, each in [0, 1]:

    pattern      Jaccard over the two sets of refinement patterns
    intent       matched transitions / max(simulated, real) transitions
    relevance    Jaccard over the words longer than two characters in
                 every query of each journey

Two transitions match when both their from-queries and their to-queries
share at least half their words; when both sides carry intent labels the
labels must be equal too. For every heuristic, two empty sides count as a
perfect match and one empty side as none.

    overall = weighted sum of the three, weights renormalized to sum to 1
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator

from need_miner.journey.models import (
    IntentTransition,
    JourneyBatchEvaluation,
    JourneyEvaluationMetrics,
    RealJourneyData,
    UserJourney,
)
from need_miner.text import tokenize, word_overlap

logger = logging.getLogger(__name__)

SIMILAR_QUERY_OVERLAP = 0.5
MIN_RELEVANT_WORD_LENGTH = 3


class JourneyWeights(BaseModel):
    model_config = ConfigDict(frozen=True)

    pattern: float = Field(default=0.3, ge=0.0)
    intent: float = Field(default=0.4, ge=0.0)
    relevance: float = Field(default=0.3, ge=0.0)

    @model_validator(mode="after")
    def _check_total(self) -> JourneyWeights:
        if self.total <= 0:
            raise ValueError("at least one journey weight must be positive")
        return self

    @property
    def total(self) -> float:
        return self.pattern + self.intent + self.relevance

    def normalized(self) -> JourneyWeights:
        """Copy whose weights sum to 1."""
        total = self.total
        if math.isclose(total, 1.0):
            return self
        return JourneyWeights(pattern=self.pattern / total, intent=self.intent / total, relevance=self.relevance / total)


# ----------------------------------------------------------------------
# Heuristics
# ----------------------------------------------------------------------


def _set_similarity(a: set[str], b: set[str]) -> float:
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def pattern_similarity(simulated: Sequence[str], real: Sequence[str]) -> float:
    return _set_similarity(set(simulated), set(real))


def queries_similar(a: str, b: str) -> bool:
    return word_overlap(a, b) >= SIMILAR_QUERY_OVERLAP


def transitions_match(simulated: IntentTransition, real: IntentTransition) -> bool:
    if not (queries_similar(simulated.from_query, real.from_query) and queries_similar(simulated.to_query, real.to_query)):
        return False
    labelled = all((simulated.from_intent, simulated.to_intent, real.from_intent, real.to_intent))
    if labelled:
        return simulated.from_intent == real.from_intent and simulated.to_intent == real.to_intent
    return True


def intent_transition_accuracy(simulated: Sequence[IntentTransition], real: Sequence[IntentTransition]) -> float:
    if not simulated and not real:
        return 1.0
    if not simulated or not real:
        return 0.0
    matched = sum(1 for s in simulated if any(transitions_match(s, r) for r in real))
    return matched / max(len(simulated), len(real))


def _relevant_words(queries: Sequence[str]) -> set[str]:
    return {word for query in queries for word in tokenize(query) if len(word) >= MIN_RELEVANT_WORD_LENGTH}


def query_relevance(simulated: Sequence[str], real: Sequence[str]) -> float:
    if not simulated and not real:
        return 1.0
    if not simulated or not real:
        return 0.0
    words_sim, words_real = _relevant_words(simulated), _relevant_words(real)
    if not words_sim or not words_real:
        return 0.0
    return len(words_sim & words_real) / len(words_sim | words_real)


def simulated_transitions(journey: UserJourney) -> list[IntentTransition]:
    """The journey's decision points as transitions; intents only where they shifted."""
    return [
        IntentTransition(
            from_query=point.from_query,
            to_query=point.to_query,
            from_intent=point.intent_change.from_intent if point.intent_change else None,
            to_intent=point.intent_change.to_intent if point.intent_change else None,
        )
        for point in journey.decision_points
    ]


def _average(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return max(0.0, min(1.0, sum(values) / len(values)))


class JourneyEvaluator:
    """
    Scores simulated journeys against journeys recorded from real users.

    Examples:
        ```python
        evaluator = JourneyEvaluator()
        metrics = evaluator.evaluate(journey, RealJourneyData(queries=[...]))
        metrics.overall_score   # 0.0 - 1.0
        ```
    """

    def __init__(self, weights: JourneyWeights | None = None, logger: logging.Logger | None = None):
        self.weights = (weights or JourneyWeights()).normalized()
        self._log = logger or logging.getLogger(__name__)

    def evaluate(self, simulated: UserJourney, real: RealJourneyData) -> JourneyEvaluationMetrics:
        pattern = pattern_similarity(simulated.summary.refinement_patterns, real.refinement_patterns)
        intent = intent_transition_accuracy(simulated_transitions(simulated), real.intent_transitions)
        relevance = query_relevance(simulated.query_path, real.queries)

        w = self.weights
        overall = w.pattern * pattern + w.intent * intent + w.relevance * relevance
        metrics = JourneyEvaluationMetrics(
            pattern_similarity=pattern,
            intent_transition_accuracy=intent,
            query_relevance=relevance,
            overall_score=max(0.0, min(1.0, overall)),
        )
        self._log.debug(f"Journey '{simulated.initial_query}' scored {metrics.overall_score:.3f}")
        return metrics

    def evaluate_batch(
        self, simulated: Sequence[UserJourney], real: Sequence[RealJourneyData]
    ) -> JourneyBatchEvaluation:
        """
        Pair journeys with real data by index and average the scores.

        Journeys past the end of ``real`` are compared with its first entry.
        """
        if simulated and not real:
            raise ValueError("evaluate_batch needs at least one real journey")

        scores = [self.evaluate(journey, real[i] if i < len(real) else real[0]) for i, journey in enumerate(simulated)]
        average = JourneyEvaluationMetrics(
            pattern_similarity=_average([s.pattern_similarity for s in scores]),
            intent_transition_accuracy=_average([s.intent_transition_accuracy for s in scores]),
            query_relevance=_average([s.query_relevance for s in scores]),
            overall_score=_average([s.overall_score for s in scores]),
        )
        self._log.info(f"Evaluated {len(scores)} journeys: average overall {average.overall_score:.3f}")
        return JourneyBatchEvaluation(individual_scores=scores, average_score=average)
