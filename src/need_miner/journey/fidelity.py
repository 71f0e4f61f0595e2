# need_miner/journey/fidelity.py
"""
Fidelity Evaluator - how closely simulated autocomplete behavior matches
behavior observed from real users.

Both sides are reduced to BehaviorMetrics, then compared component-wise:

    adoption     1 - |sim.rate - real.rate|
    position     max(0, 1 - euclidean(sim.pref, real.pref))   lists zero-padded
    deviation    max(0, 1 - mean |sim[k] - real[k]|)          over the key union
    query type   same as deviation

    overall = weighted sum of the four, weights renormalized to sum to 1

Every component, and therefore the overall score, lies in [0, 1].
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator

from need_miner.journey.models import (
    POSITION_SLOTS,
    AdoptionScore,
    AutocompleteSession,
    BehaviorMetrics,
    UserJourney,
)
from need_miner.text import SemanticDeviation, classify_query_type, classify_semantic_deviation

logger = logging.getLogger(__name__)


class FidelityWeights(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall_adoption: float = Field(default=0.25, ge=0.0)
    position_preference: float = Field(default=0.30, ge=0.0)
    semantic_deviation: float = Field(default=0.25, ge=0.0)
    query_type_influence: float = Field(default=0.20, ge=0.0)

    @model_validator(mode="after")
    def _check_total(self) -> FidelityWeights:
        if self.total <= 0:
            raise ValueError("at least one fidelity weight must be positive")
        return self

    @property
    def total(self) -> float:
        return self.overall_adoption + self.position_preference + self.semantic_deviation + self.query_type_influence

    def normalized(self) -> FidelityWeights:
        """Copy whose weights sum to 1."""
        total = self.total
        if math.isclose(total, 1.0):
            return self
        return FidelityWeights(
            overall_adoption=self.overall_adoption / total,
            position_preference=self.position_preference / total,
            semantic_deviation=self.semantic_deviation / total,
            query_type_influence=self.query_type_influence / total,
        )


# ----------------------------------------------------------------------
# Similarity measures
# ----------------------------------------------------------------------


def _unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def position_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    size = max(len(a), len(b))
    padded_a = list(a) + [0.0] * (size - len(a))
    padded_b = list(b) + [0.0] * (size - len(b))
    distance = math.sqrt(sum((x - y) ** 2 for x, y in zip(padded_a, padded_b, strict=True)))
    return _unit(1 - distance)


def distribution_similarity(a: dict[str, float], b: dict[str, float]) -> float:
    keys = set(a) | set(b)
    if not keys:
        return 1.0
    mean_diff = sum(abs(a.get(k, 0.0) - b.get(k, 0.0)) for k in keys) / len(keys)
    return _unit(1 - mean_diff)


# ----------------------------------------------------------------------
# Metric extraction
# ----------------------------------------------------------------------


class _Tally:
    """Accumulates adoption opportunities into BehaviorMetrics."""

    def __init__(self) -> None:
        self.total = 0
        self.adopted = 0
        self.positions = [0] * POSITION_SLOTS
        self.deviations: Counter[str] = Counter()
        self.intent_total: Counter[str] = Counter()
        self.intent_adopted: Counter[str] = Counter()

    def add(self, intent: str, adopted: bool, position: int | None, deviation: SemanticDeviation | None) -> None:
        self.total += 1
        self.intent_total[intent] += 1
        if not adopted:
            return
        self.adopted += 1
        self.intent_adopted[intent] += 1
        if position is not None and 0 <= position < POSITION_SLOTS:
            self.positions[position] += 1
        if deviation is not None:
            self.deviations[SemanticDeviation(deviation).value] += 1

    def metrics(self) -> BehaviorMetrics:
        # Normalized over what was actually counted, so each histogram sums to 1
        position_total = sum(self.positions)
        if position_total:
            preference = [count / position_total for count in self.positions]
        else:
            preference = [0.0] * POSITION_SLOTS

        deviation_total = sum(self.deviations.values())
        if deviation_total:
            distribution = {d.value: self.deviations[d.value] / deviation_total for d in SemanticDeviation}
        else:
            distribution = {d.value: 1 / len(SemanticDeviation) for d in SemanticDeviation}

        return BehaviorMetrics(
            adoption_rate=self.adopted / self.total if self.total else 0.0,
            position_preference=preference,
            semantic_deviation_distribution=distribution,
            query_type_influence={
                intent: self.intent_adopted[intent] / count for intent, count in self.intent_total.items()
            },
        )


class FidelityEvaluator:
    """
    Compares simulated journeys against real autocomplete sessions.

    Examples:
        ```python
        evaluator = FidelityEvaluator()
        real = evaluator.extract_metrics_from_sessions(sessions)
        score = evaluator.evaluate(journeys, real)
        score.overall_similarity   # 0.0 - 1.0
        ```
    """

    def __init__(self, weights: FidelityWeights | None = None, logger: logging.Logger | None = None):
        self.weights = (weights or FidelityWeights()).normalized()
        self._log = logger or logging.getLogger(__name__)

    def extract_simulated_metrics(self, journeys: Sequence[UserJourney]) -> BehaviorMetrics:
        """
        Every step but the last of each journey is an adoption opportunity.

        The opportunity at step i is adopted when step i+1 came from
        autocomplete; it is attributed to step i's intent type, and the
        adopted step's rank and deviation feed the histograms.
        """
        tally = _Tally()
        for journey in journeys:
            for current, following in zip(journey.steps, journey.steps[1:]):
                tally.add(current.intent_type, following.adopted, following.position, following.semantic_deviation)
        return tally.metrics()

    def extract_metrics_from_sessions(self, sessions: Sequence[AutocompleteSession]) -> BehaviorMetrics:
        tally = _Tally()
        for session in sessions:
            deviation = None
            if session.suggestion_adopted and session.next_query:
                deviation = classify_semantic_deviation(session.query, session.next_query)
            tally.add(
                classify_query_type(session.query),
                session.suggestion_adopted,
                session.adopted_position,
                deviation,
            )
        return tally.metrics()

    def compare(self, simulated: BehaviorMetrics, real: BehaviorMetrics) -> AdoptionScore:
        adoption = _unit(1 - abs(simulated.adoption_rate - real.adoption_rate))
        position = position_similarity(simulated.position_preference, real.position_preference)
        deviation = distribution_similarity(
            simulated.semantic_deviation_distribution, real.semantic_deviation_distribution
        )
        query_type = distribution_similarity(simulated.query_type_influence, real.query_type_influence)

        w = self.weights
        overall = (
            w.overall_adoption * adoption
            + w.position_preference * position
            + w.semantic_deviation * deviation
            + w.query_type_influence * query_type
        )
        return AdoptionScore(
            overall_adoption_similarity=adoption,
            position_preference_similarity=position,
            semantic_deviation_similarity=deviation,
            query_type_influence_similarity=query_type,
            overall_similarity=_unit(overall),
        )

    def evaluate(self, journeys: Sequence[UserJourney], real: BehaviorMetrics) -> AdoptionScore:
        """Score simulated ``journeys`` against ``real`` behavior."""
        score = self.compare(self.extract_simulated_metrics(journeys), real)
        self._log.info(
            f"Fidelity over {len(journeys)} journeys: overall {score.overall_similarity:.3f} "
            f"(adoption {score.overall_adoption_similarity:.3f}, position {score.position_preference_similarity:.3f})"
        )
        return score
