# need_miner/discovery/__init__.py
"""
Iterative keyword discovery.

A ConvergenceController repeatedly plans a query, collects autocomplete
suggestions and scores the new keywords until the decaying acceptance
threshold is met or the iteration budget runs out.
"""

from .convergence import ConvergenceController, discover_batch
from .models import (
    DEFAULT_EVALUATION_WEIGHTS,
    ConvergencePolicy,
    ConvergenceState,
    DiscoveryResult,
    DynamicThreshold,
    EvaluationDimension,
    EvaluationResult,
    Iteration,
    IterationData,
    QueryPlan,
    Suggestion,
    SuggestionProvider,
    coerce_suggestions,
)
from .planner import FALLBACK_VARIANTS, QueryPlanner, fallback_query, keyword_sample
from .scorer import EvaluationScorer, heuristic_score, weighted_overall

__all__ = [
    "ConvergenceController",
    "ConvergencePolicy",
    "ConvergenceState",
    "DEFAULT_EVALUATION_WEIGHTS",
    "DiscoveryResult",
    "DynamicThreshold",
    "EvaluationDimension",
    "EvaluationResult",
    "EvaluationScorer",
    "FALLBACK_VARIANTS",
    "Iteration",
    "IterationData",
    "QueryPlan",
    "QueryPlanner",
    "Suggestion",
    "SuggestionProvider",
    "coerce_suggestions",
    "discover_batch",
    "fallback_query",
    "heuristic_score",
    "keyword_sample",
    "weighted_overall",
]
