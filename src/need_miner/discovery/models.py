# need_miner/discovery/models.py
"""
Data models for iterative keyword discovery.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Suggestion(BaseModel):
    """One autocomplete suggestion as returned by a SuggestionProvider."""

    model_config = ConfigDict(frozen=True)

    query: str
    position: int = Field(default=0, ge=0, description="0-indexed rank in the suggestion list")


@runtime_checkable
class SuggestionProvider(Protocol):
    """Source of autocomplete suggestions for a query."""

    async def get_suggestions(self, query: str) -> list[Suggestion]: ...


def coerce_suggestions(raw: Any) -> list[Suggestion]:
    """
    Normalize whatever a provider returned into ranked Suggestions.

    Accepts Suggestion objects, plain strings, dicts carrying ``query``,
    ``text`` or ``suggestion``, or a dict wrapping them under ``suggestions``.
    """
    if isinstance(raw, dict):
        raw = raw.get("suggestions", [])
    if not raw:
        return []

    result: list[Suggestion] = []
    for index, item in enumerate(raw):
        if isinstance(item, Suggestion):
            result.append(item)
            continue
        if isinstance(item, str):
            text = item
        elif isinstance(item, dict):
            text = item.get("query") or item.get("text") or item.get("suggestion") or ""
        else:
            text = str(item)
        text = text.strip()
        if text:
            result.append(Suggestion(query=text, position=index))
    return result


class EvaluationDimension(str, Enum):
    """Named quality dimensions an iteration is scored on."""

    RELEVANCE = "relevance"
    LONG_TAIL_VALUE = "long_tail_value"
    COMMERCIAL_VALUE = "commercial_value"
    DIVERSITY = "diversity"
    NOVELTY = "novelty"
    SEARCH_VOLUME_POTENTIAL = "search_volume_potential"
    GOAL_ACHIEVEMENT = "goal_achievement"
    DOMAIN_COVERAGE = "domain_coverage"
    REPETITION_PENALTY = "repetition_penalty"  # Negative weight


DEFAULT_EVALUATION_WEIGHTS: dict[str, float] = {
    EvaluationDimension.RELEVANCE.value: 0.15,
    EvaluationDimension.LONG_TAIL_VALUE.value: 0.20,
    EvaluationDimension.COMMERCIAL_VALUE.value: 0.18,
    EvaluationDimension.DIVERSITY.value: 0.20,
    EvaluationDimension.NOVELTY.value: 0.12,
    EvaluationDimension.SEARCH_VOLUME_POTENTIAL.value: 0.05,
    EvaluationDimension.GOAL_ACHIEVEMENT.value: 0.05,
    EvaluationDimension.DOMAIN_COVERAGE.value: 0.15,
    EvaluationDimension.REPETITION_PENALTY.value: -0.10,
}


class DynamicThreshold(BaseModel):
    """Acceptance threshold that decays linearly from ``initial`` to ``final``."""

    enabled: bool = True
    initial: float = Field(default=0.95, ge=0.0, le=1.0)
    final: float = Field(default=0.75, ge=0.0, le=1.0)
    decay_rate: float = Field(default=0.05, ge=0.0)

    @model_validator(mode="after")
    def _check_bounds(self) -> DynamicThreshold:
        if self.final > self.initial:
            raise ValueError(f"final threshold {self.final} exceeds initial threshold {self.initial}")
        return self

    def at(self, iteration: int) -> float:
        """Threshold for 1-indexed ``iteration``, always within ``[final, initial]``."""
        return min(self.initial, max(self.final, self.initial - self.decay_rate * (iteration - 1)))


class ConvergencePolicy(BaseModel):
    """
    Loop limits, acceptance threshold and dimension weights for one run.

    Read-only once the controller is built.
    """

    model_config = ConfigDict(frozen=True)

    max_iterations: int = Field(default=5, ge=1)
    min_forced_iterations: int = Field(default=3, ge=0)
    satisfaction_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    dynamic_threshold: DynamicThreshold = Field(default_factory=DynamicThreshold)
    weights: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_EVALUATION_WEIGHTS))
    min_new_per_iteration: int = Field(default=10, ge=1)

    @model_validator(mode="after")
    def _check_limits(self) -> ConvergencePolicy:
        if self.min_forced_iterations > self.max_iterations:
            raise ValueError(
                f"min_forced_iterations ({self.min_forced_iterations}) exceeds max_iterations ({self.max_iterations})"
            )
        if not any(w > 0 for w in self.weights.values()):
            raise ValueError("at least one evaluation weight must be positive")
        return self

    def effective_threshold(self, iteration: int) -> float:
        if self.dynamic_threshold.enabled:
            return self.dynamic_threshold.at(iteration)
        return self.satisfaction_threshold

    def should_continue(self, iteration: int, overall_score: float) -> bool:
        """Continue while forced, or while under budget and below the threshold."""
        if iteration < self.min_forced_iterations:
            return True
        return iteration < self.max_iterations and overall_score / 10 < self.effective_threshold(iteration)


class IterationData(BaseModel):
    """Raw inputs for scoring one iteration."""

    seed_keyword: str
    query: str
    iteration_number: int = 1
    new_keywords: list[str] = Field(default_factory=list)
    previous_keywords: list[str] = Field(default_factory=list)
    goals: list[str] = Field(default_factory=list)


class EvaluationResult(BaseModel):
    """Scores for one iteration. Produced fresh per iteration, never mutated."""

    model_config = ConfigDict(frozen=True)

    dimensions: dict[str, float] = Field(default_factory=dict, description="dimension -> score in [0, 10]")
    overall_score: float = Field(default=0.0, ge=0.0, le=10.0)
    recommend_continue: bool = True
    improvement_suggestions: list[str] = Field(default_factory=list)
    analysis: str = ""
    new_keywords_count: int = 0
    heuristic_dimensions: list[str] = Field(
        default_factory=list, description="Dimensions scored locally because the LLM sub-analysis was unusable"
    )


class QueryPlan(BaseModel):
    """The next query to run, and where it came from."""

    query: str
    source: str = "fallback"  # "llm" or "fallback"
    gaps: list[str] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)
    target_goals: list[str] = Field(default_factory=list)
    recommended_queries: list[str] = Field(default_factory=list)


class Iteration(BaseModel):
    """One completed discovery round."""

    model_config = ConfigDict(frozen=True)

    number: int
    query: str
    discoveries: list[str] = Field(default_factory=list, description="Every suggestion returned this round")
    new_keywords: list[str] = Field(default_factory=list)
    new_count: int = 0
    evaluation: EvaluationResult = Field(default_factory=EvaluationResult)
    satisfaction_score: float = Field(default=0.0, ge=0.0, le=1.0)
    threshold: float = 0.0
    error: str | None = None


class ConvergenceState(str, Enum):
    ITERATING = "iterating"
    CONVERGED = "converged"  # Threshold met
    EXHAUSTED = "exhausted"  # Iteration budget spent without meeting the threshold
    CANCELLED = "cancelled"  # Cancel event or deadline tripped


class DiscoveryResult(BaseModel):
    """Outcome of one keyword's discovery run."""

    keyword: str
    state: ConvergenceState
    iterations: list[Iteration] = Field(default_factory=list)
    seed_keywords: list[str] = Field(default_factory=list)
    all_keywords: list[str] = Field(default_factory=list)
    completion_reason: str = ""

    @property
    def total_keywords(self) -> int:
        return len(self.all_keywords)

    @property
    def keywords_per_iteration(self) -> list[int]:
        return [it.new_count for it in self.iterations]

    @property
    def average_satisfaction(self) -> float:
        if not self.iterations:
            return 0.0
        return sum(it.satisfaction_score for it in self.iterations) / len(self.iterations)
