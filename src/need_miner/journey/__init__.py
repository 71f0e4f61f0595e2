# need_miner/journey/__init__.py
"""
User-journey simulation and autocomplete adoption.

A JourneySimulator replays an LLM-drafted search journey and lets an
AdoptionModel decide when the simulated user takes an autocomplete
suggestion; a FidelityEvaluator checks the resulting behavior against real
autocomplete sessions, and a JourneyEvaluator scores single journeys against
ones recorded from real users.
"""

from .adoption import AdoptionModel
from .fidelity import FidelityEvaluator, FidelityWeights, distribution_similarity, position_similarity
from .journey_evaluator import JourneyEvaluator, JourneyWeights
from .models import (
    AdoptionCandidate,
    AdoptionDecision,
    AdoptionParameters,
    AdoptionScore,
    AutocompleteSession,
    BehaviorMetrics,
    DecisionPoint,
    IntentChange,
    IntentTransition,
    JourneyBatchEvaluation,
    JourneyBatchSummary,
    JourneyEvaluationMetrics,
    JourneyStep,
    JourneySummary,
    RealJourneyData,
    SuggestedBy,
    UserJourney,
)
from .simulator import (
    JourneySimulator,
    RefinementPattern,
    autocomplete_influence,
    decision_points,
    refinement_patterns,
    summarize_journeys,
)

__all__ = [
    "AdoptionCandidate",
    "AdoptionDecision",
    "AdoptionModel",
    "AdoptionParameters",
    "AdoptionScore",
    "AutocompleteSession",
    "BehaviorMetrics",
    "DecisionPoint",
    "FidelityEvaluator",
    "FidelityWeights",
    "IntentChange",
    "IntentTransition",
    "JourneyBatchEvaluation",
    "JourneyBatchSummary",
    "JourneyEvaluationMetrics",
    "JourneyEvaluator",
    "JourneySimulator",
    "JourneyStep",
    "JourneySummary",
    "JourneyWeights",
    "RealJourneyData",
    "RefinementPattern",
    "SuggestedBy",
    "UserJourney",
    "autocomplete_influence",
    "decision_points",
    "distribution_similarity",
    "position_similarity",
    "refinement_patterns",
    "summarize_journeys",
]
