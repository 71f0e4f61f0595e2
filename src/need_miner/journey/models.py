# need_miner/journey/models.py
"""
Data models for user-journey simulation and autocomplete adoption.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from need_miner.discovery.models import Suggestion
from need_miner.text import QueryType, SemanticDeviation

POSITION_SLOTS = 10


class SuggestedBy(str, Enum):
    """Where a journey step's query came from."""

    LLM_ONLY = "llm_only"
    AUTOCOMPLETE = "autocomplete"
    ENHANCED_AUTOCOMPLETE = "enhanced_autocomplete"


ADOPTED_SOURCES = frozenset({SuggestedBy.AUTOCOMPLETE, SuggestedBy.ENHANCED_AUTOCOMPLETE})


class JourneyStep(BaseModel):
    """One query in a simulated search journey."""

    query: str
    intent_type: str = QueryType.INFORMATIONAL.value
    satisfaction: float = Field(default=0.0, ge=0.0, le=1.0)
    next_candidates: list[str] = Field(default_factory=list)
    expected_results: list[str] = Field(default_factory=list)
    user_action: str = ""
    reasoning: str = ""

    # Autocomplete influence
    suggested_by: SuggestedBy | None = None
    original_query: str | None = None
    position: int | None = Field(default=None, ge=0)
    semantic_deviation: SemanticDeviation | None = None
    suggestions_shown: list[Suggestion] = Field(default_factory=list)

    @property
    def adopted(self) -> bool:
        return self.suggested_by in ADOPTED_SOURCES


class IntentChange(BaseModel):
    from_intent: str
    to_intent: str


class DecisionPoint(BaseModel):
    """A transition where the query changed between consecutive steps."""

    step: int
    from_query: str
    to_query: str
    reason: str = ""
    intent_shift: bool = False
    intent_change: IntentChange | None = None


class JourneySummary(BaseModel):
    total_steps: int = 0
    intent_shifts: int = 0
    refinement_patterns: list[str] = Field(default_factory=list)
    main_intent: str = QueryType.INFORMATIONAL.value
    autocomplete_influence: float | None = None


class UserJourney(BaseModel):
    initial_query: str
    steps: list[JourneyStep] = Field(default_factory=list)
    decision_points: list[DecisionPoint] = Field(default_factory=list)
    final_query: str = ""
    summary: JourneySummary = Field(default_factory=JourneySummary)

    @property
    def query_path(self) -> list[str]:
        return [step.query for step in self.steps]

    @property
    def intent_path(self) -> list[str]:
        return [step.intent_type for step in self.steps]


class JourneyBatchSummary(BaseModel):
    """Common patterns across many simulated journeys."""

    total_journeys: int = 0
    average_steps: float = 0.0
    pattern_counts: dict[str, int] = Field(default_factory=dict)
    common_intents: list[str] = Field(default_factory=list)
    common_refinements: list[str] = Field(default_factory=list)


def _default_position_weights() -> list[float]:
    return [1.0, 0.8, 0.6, 0.5, 0.4, 0.3, 0.2, 0.1, 0.05, 0.01]


def _default_deviation_weights() -> dict[str, float]:
    return {
        SemanticDeviation.LOW.value: 0.8,
        SemanticDeviation.MEDIUM.value: 0.5,
        SemanticDeviation.HIGH.value: 0.2,
    }


def _default_type_multipliers() -> dict[str, float]:
    return {
        QueryType.INFORMATIONAL.value: 0.9,
        QueryType.NAVIGATIONAL.value: 0.7,
        QueryType.COMMERCIAL.value: 1.2,
        QueryType.TRANSACTIONAL.value: 1.3,
        QueryType.COMPARISON.value: 1.1,
        QueryType.RESEARCH.value: 0.8,
    }


class AdoptionParameters(BaseModel):
    """How likely a simulated user is to take an autocomplete suggestion."""

    model_config = ConfigDict(frozen=True)

    overall_adoption_rate: float = Field(default=0.65, ge=0.0, le=1.0)
    position_weights: list[float] = Field(default_factory=_default_position_weights)
    semantic_deviation_weights: dict[str, float] = Field(default_factory=_default_deviation_weights)
    query_type_multipliers: dict[str, float] = Field(default_factory=_default_type_multipliers)

    @field_validator("position_weights")
    @classmethod
    def _check_position_weights(cls, v: list[float]) -> list[float]:
        if not v:
            raise ValueError("position_weights must not be empty")
        if any(w < 0 for w in v):
            raise ValueError("position_weights must be non-negative")
        return v

    def position_weight(self, rank: int) -> float:
        """Weight for 0-indexed ``rank``; ranks past the table reuse the last weight."""
        if rank < len(self.position_weights):
            return self.position_weights[rank]
        return self.position_weights[-1]

    def deviation_weight(self, deviation: SemanticDeviation | str) -> float:
        return self.semantic_deviation_weights.get(SemanticDeviation(deviation).value, 0.0)

    def type_multiplier(self, intent_type: str) -> float:
        return self.query_type_multipliers.get(intent_type, 1.0)


class AdoptionCandidate(BaseModel):
    """A suggestion labelled with intent and deviation relative to the current query."""

    query: str
    rank: int = Field(default=0, ge=0)
    intent_type: str | None = None
    semantic_deviation: SemanticDeviation | None = None


class AdoptionDecision(BaseModel):
    """The candidate a simulated user adopted, and how likely that pick was."""

    candidate: AdoptionCandidate
    weight: float
    probability: float = Field(ge=0.0, le=1.0, description="Share of the weight mass, given that an adoption happened")

    @property
    def rank(self) -> int:
        return self.candidate.rank


def _default_deviation_distribution() -> dict[str, float]:
    return {d.value: 0.0 for d in SemanticDeviation}


class BehaviorMetrics(BaseModel):
    """Autocomplete adoption behavior, simulated or measured."""

    adoption_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    position_preference: list[float] = Field(default_factory=lambda: [0.0] * POSITION_SLOTS)
    semantic_deviation_distribution: dict[str, float] = Field(default_factory=_default_deviation_distribution)
    query_type_influence: dict[str, float] = Field(default_factory=dict)


class AdoptionScore(BaseModel):
    """Similarity between simulated and real behavior, each component in [0, 1]."""

    overall_adoption_similarity: float = Field(ge=0.0, le=1.0)
    position_preference_similarity: float = Field(ge=0.0, le=1.0)
    semantic_deviation_similarity: float = Field(ge=0.0, le=1.0)
    query_type_influence_similarity: float = Field(ge=0.0, le=1.0)
    overall_similarity: float = Field(ge=0.0, le=1.0)


class AutocompleteSession(BaseModel):
    """One observed real-world autocomplete interaction."""

    query: str
    suggestions_shown: list[str] = Field(default_factory=list)
    next_query: str = ""
    suggestion_adopted: bool = False
    adopted_position: int | None = Field(default=None, ge=0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class IntentTransition(BaseModel):
    """One observed move between queries, with intent labels when known."""

    from_query: str
    to_query: str
    from_intent: str | None = None
    to_intent: str | None = None


class RealJourneyData(BaseModel):
    """A search journey recorded from a real user."""

    queries: list[str] = Field(default_factory=list)
    refinement_patterns: list[str] = Field(default_factory=list)
    intent_transitions: list[IntentTransition] = Field(default_factory=list)


class JourneyEvaluationMetrics(BaseModel):
    """How closely one simulated journey matches a real one, each part in [0, 1]."""

    pattern_similarity: float = Field(default=0.0, ge=0.0, le=1.0)
    intent_transition_accuracy: float = Field(default=0.0, ge=0.0, le=1.0)
    query_relevance: float = Field(default=0.0, ge=0.0, le=1.0)
    overall_score: float = Field(default=0.0, ge=0.0, le=1.0)


class JourneyBatchEvaluation(BaseModel):
    individual_scores: list[JourneyEvaluationMetrics] = Field(default_factory=list)
    average_score: JourneyEvaluationMetrics = Field(default_factory=JourneyEvaluationMetrics)
