# need_miner/journey/adoption.py
"""
Adoption Model - decides whether a simulated user takes an autocomplete
suggestion, and which one.

Two draws per decision:

1. adopt at all?   with probability ``overall_adoption_rate``
2. which one?      weighted draw, weight(c) = position(rank) * deviation(c) * type(c)

Rank is the 0-indexed position in the candidate list. Candidates that do not
carry an intent type or semantic deviation get them from the text
heuristics, relative to the current query.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence

from need_miner.discovery.models import Suggestion
from need_miner.journey.models import AdoptionCandidate, AdoptionDecision, AdoptionParameters
from need_miner.text import SemanticDeviation, classify_query_type, classify_semantic_deviation

logger = logging.getLogger(__name__)

CandidateLike = AdoptionCandidate | Suggestion | str


class AdoptionModel:
    """
    Weighted, seedable adoption decisions.

    Examples:
        ```python
        model = AdoptionModel(rng=random.Random(7))
        decision = model.adopt("standing desk", ["standing desk for small spaces", "standing desk review"])
        if decision is not None:
            decision.candidate.query, decision.rank
        ```
    """

    def __init__(
        self,
        params: AdoptionParameters | None = None,
        rng: random.Random | None = None,
        logger: logging.Logger | None = None,
    ):
        self.params = params or AdoptionParameters()
        self.rng = rng or random.Random()
        self._log = logger or logging.getLogger(__name__)

    def weight(
        self,
        rank: int,
        intent_type: str,
        deviation: SemanticDeviation | str,
        params: AdoptionParameters | None = None,
    ) -> float:
        p = params or self.params
        return p.position_weight(rank) * p.deviation_weight(deviation) * p.type_multiplier(intent_type)

    @staticmethod
    def label(current_query: str, candidate: CandidateLike, rank: int) -> AdoptionCandidate:
        """Fill in intent type and semantic deviation for ``candidate``."""
        if isinstance(candidate, AdoptionCandidate):
            query = candidate.query
            intent = candidate.intent_type
            deviation = candidate.semantic_deviation
        else:
            query = candidate.query if isinstance(candidate, Suggestion) else str(candidate)
            intent, deviation = None, None
        return AdoptionCandidate(
            query=query,
            rank=rank,
            intent_type=intent or classify_query_type(query),
            semantic_deviation=deviation or classify_semantic_deviation(current_query, query),
        )

    def score_candidates(
        self,
        current_query: str,
        candidates: Sequence[CandidateLike],
        params: AdoptionParameters | None = None,
    ) -> list[tuple[AdoptionCandidate, float]]:
        scored = []
        for rank, raw in enumerate(candidates):
            candidate = self.label(current_query, raw, rank)
            scored.append(
                (candidate, self.weight(rank, candidate.intent_type, candidate.semantic_deviation, params))
            )
        return scored

    def adopt(
        self,
        current_query: str,
        candidates: Sequence[CandidateLike],
        params: AdoptionParameters | None = None,
    ) -> AdoptionDecision | None:
        """
        Decide whether one of ``candidates`` is adopted.

        Returns:
            The adopted candidate with its weight and conditional probability,
            or None when the list is empty, the adoption draw fails or every
            weight is zero.
        """
        p = params or self.params
        if not candidates:
            return None
        if self.rng.random() >= p.overall_adoption_rate:
            return None

        scored = self.score_candidates(current_query, candidates, p)
        total = sum(w for _, w in scored)
        if total <= 0:
            self._log.debug(f"All {len(scored)} candidates for '{current_query}' have zero weight")
            return None

        point = self.rng.random() * total
        cumulative = 0.0
        chosen, chosen_weight = scored[-1]
        for candidate, w in scored:
            cumulative += w
            if point < cumulative:
                chosen, chosen_weight = candidate, w
                break

        self._log.debug(f"Adopted '{chosen.query}' at rank {chosen.rank} for '{current_query}'")
        return AdoptionDecision(candidate=chosen, weight=chosen_weight, probability=min(1.0, chosen_weight / total))
