# need_miner/journey/simulator.py
"""
Journey Simulator - walks a simulated user through a search session.

An LLM drafts the journey the user would take on their own. The simulator
then replays it step by step, and at every step shows the user the
autocomplete suggestions for the current query. The AdoptionModel decides
whether the user takes one of them instead of the drafted next query.

The walk stops once a step's satisfaction exceeds ``satisfaction_bound``,
the draft runs out, or ``max_steps`` steps exist.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Sequence
from enum import Enum
from typing import Any

from need_miner.discovery.models import Suggestion, SuggestionProvider, coerce_suggestions
from need_miner.exceptions import NeedMinerError, PermanentError
from need_miner.journey.adoption import AdoptionModel
from need_miner.journey.models import (
    DecisionPoint,
    IntentChange,
    JourneyBatchSummary,
    JourneyStep,
    JourneySummary,
    SuggestedBy,
    UserJourney,
)
from need_miner.llm.gateway import CallOptions, LLMGateway, is_degraded
from need_miner.prompts import JOURNEY_SYSTEM_PROMPT, build_journey_prompt
from need_miner.text import COMMERCIAL_PATTERN, QUESTION_WORDS_PATTERN, QueryType, tokenize

logger = logging.getLogger(__name__)

ADOPTION_NOTE = " (influenced by autocomplete suggestion)"


class RefinementPattern(str, Enum):
    """How a query was reworded between two consecutive steps."""

    ADDING_SPECIFICITY = "adding_specificity"
    REPHRASING = "rephrasing"
    SIMPLIFYING = "simplifying"
    ADDING_QUESTION_WORDS = "adding_question_words"
    ADDING_COMMERCIAL_INTENT = "adding_commercial_intent"


# ----------------------------------------------------------------------
# Draft parsing
# ----------------------------------------------------------------------


def _as_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value if v]
    if isinstance(value, str) and value.strip():
        return [value.strip()]
    return []


def _as_satisfaction(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if score != score:  # NaN
        return 0.0
    # Some models answer on a 0-10 scale
    if score > 1.0:
        score /= 10
    return max(0.0, min(1.0, score))


def parse_draft_step(raw: Any) -> JourneyStep | None:
    """One drafted step, or None when it has no usable query."""
    if not isinstance(raw, dict):
        return None
    query = raw.get("query")
    if not isinstance(query, str) or not query.strip():
        return None
    intent = raw.get("intentType") or raw.get("intent_type") or QueryType.INFORMATIONAL.value
    return JourneyStep(
        query=query.strip(),
        intent_type=str(intent).lower(),
        satisfaction=_as_satisfaction(raw.get("satisfaction")),
        next_candidates=_as_list(raw.get("nextQueries") or raw.get("next_queries")),
        expected_results=_as_list(raw.get("expectedResults") or raw.get("expected_results")),
        user_action=str(raw.get("userAction") or raw.get("user_action") or ""),
        reasoning=str(raw.get("reasoning") or ""),
    )


# ----------------------------------------------------------------------
# Journey analysis
# ----------------------------------------------------------------------


def decision_points(steps: Sequence[JourneyStep]) -> list[DecisionPoint]:
    points = []
    for index in range(1, len(steps)):
        previous, current = steps[index - 1], steps[index]
        if current.query == previous.query:
            continue
        shift = current.intent_type != previous.intent_type
        points.append(
            DecisionPoint(
                step=index,
                from_query=previous.query,
                to_query=current.query,
                reason=current.reasoning,
                intent_shift=shift,
                intent_change=IntentChange(from_intent=previous.intent_type, to_intent=current.intent_type)
                if shift
                else None,
            )
        )
    return points


def refinement_patterns(steps: Sequence[JourneyStep]) -> list[str]:
    """Distinct ways the user reworded the query, in order of first appearance."""
    found: dict[RefinementPattern, None] = {}
    for previous, current in zip(steps, steps[1:]):
        before, after = previous.query.lower(), current.query.lower()
        if len(after) > len(before) and before in after:
            found[RefinementPattern.ADDING_SPECIFICITY] = None
        elif before not in after and len(tokenize(after)) == len(tokenize(before)):
            found[RefinementPattern.REPHRASING] = None
        elif len(after) < len(before):
            found[RefinementPattern.SIMPLIFYING] = None

        if QUESTION_WORDS_PATTERN.search(after) and not QUESTION_WORDS_PATTERN.search(before):
            found[RefinementPattern.ADDING_QUESTION_WORDS] = None
        if COMMERCIAL_PATTERN.search(after) and not COMMERCIAL_PATTERN.search(before):
            found[RefinementPattern.ADDING_COMMERCIAL_INTENT] = None
    return [pattern.value for pattern in found]


def autocomplete_influence(steps: Sequence[JourneyStep]) -> float:
    """Share of step transitions that came from an adopted suggestion."""
    if len(steps) < 2:
        return 0.0
    return sum(1 for step in steps[1:] if step.adopted) / (len(steps) - 1)


def summarize(steps: Sequence[JourneyStep]) -> JourneySummary:
    points = decision_points(steps)
    intents = Counter(step.intent_type for step in steps)
    return JourneySummary(
        total_steps=len(steps),
        intent_shifts=sum(1 for p in points if p.intent_shift),
        refinement_patterns=refinement_patterns(steps),
        main_intent=intents.most_common(1)[0][0] if intents else QueryType.INFORMATIONAL.value,
        autocomplete_influence=autocomplete_influence(steps),
    )


def summarize_journeys(journeys: Sequence[UserJourney], top: int = 3) -> JourneyBatchSummary:
    """Patterns shared across several journeys."""
    if not journeys:
        return JourneyBatchSummary()

    patterns: Counter[str] = Counter()
    intents: Counter[str] = Counter()
    for journey in journeys:
        patterns.update(journey.summary.refinement_patterns)
        intents.update(step.intent_type for step in journey.steps)

    return JourneyBatchSummary(
        total_journeys=len(journeys),
        average_steps=sum(len(j.steps) for j in journeys) / len(journeys),
        pattern_counts=dict(patterns),
        common_intents=[name for name, _ in intents.most_common(top)],
        common_refinements=[name for name, _ in patterns.most_common(top)],
    )


# ----------------------------------------------------------------------
# Simulator
# ----------------------------------------------------------------------


class JourneySimulator:
    """
    Simulates autocomplete-influenced search journeys.

    Examples:
        ```python
        simulator = JourneySimulator(gateway, provider, AdoptionModel(rng=random.Random(1)))
        journey = await simulator.simulate("standing desk")
        journey.summary.autocomplete_influence   # share of adopted transitions
        ```
    """

    def __init__(
        self,
        gateway: LLMGateway | None = None,
        provider: SuggestionProvider | None = None,
        adoption: AdoptionModel | None = None,
        max_steps: int = 5,
        satisfaction_bound: float = 0.9,
        logger: logging.Logger | None = None,
    ):
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self.gateway = gateway
        self.provider = provider
        self._log = logger or logging.getLogger(__name__)
        self.adoption = adoption or AdoptionModel(logger=self._log)
        self.max_steps = max_steps
        self.satisfaction_bound = satisfaction_bound

    def _default_draft(self, initial_query: str) -> list[JourneyStep]:
        return [JourneyStep(query=initial_query, intent_type=QueryType.INFORMATIONAL.value)]

    async def draft(self, initial_query: str) -> list[JourneyStep]:
        """The journey the user would take without autocomplete."""
        if self.gateway is None:
            return self._default_draft(initial_query)

        result = await self.gateway.analyze(
            build_journey_prompt(initial_query, self.max_steps),
            "journey_simulation",
            CallOptions(system_prompt=JOURNEY_SYSTEM_PROMPT, strict_format=True),
        )
        if is_degraded(result) or not isinstance(result, dict):
            self._log.warning(f"Journey draft for '{initial_query}' degraded, using a one-step journey")
            return self._default_draft(initial_query)

        raw_steps = result.get("steps")
        if not isinstance(raw_steps, list):
            raw_steps = []
        steps = [step for step in map(parse_draft_step, raw_steps) if step is not None]
        if not steps:
            self._log.warning(f"Journey draft for '{initial_query}' had no usable steps, using a one-step journey")
            return self._default_draft(initial_query)
        return steps[: self.max_steps]

    async def _suggestions(self, query: str) -> list[Suggestion]:
        if self.provider is None:
            return []
        try:
            return coerce_suggestions(await self.provider.get_suggestions(query))
        except PermanentError:
            raise
        except Exception as e:
            self._log.warning(f"Suggestion fetch failed for '{query}': {e}")
            return []

    async def simulate(self, initial_query: str) -> UserJourney:
        draft = await self.draft(initial_query)
        first = draft[0]
        steps = [first.model_copy(update={"suggested_by": SuggestedBy.LLM_ONLY, "original_query": first.query})]

        for drafted in draft[1:]:
            current = steps[-1]
            if len(steps) >= self.max_steps or current.satisfaction > self.satisfaction_bound:
                break

            suggestions = await self._suggestions(current.query)
            current.suggestions_shown = suggestions
            decision = self.adoption.adopt(current.query, suggestions) if suggestions else None

            if decision is None:
                steps.append(
                    drafted.model_copy(update={"suggested_by": SuggestedBy.LLM_ONLY, "original_query": drafted.query})
                )
                continue

            self._log.debug(f"Step {len(steps)}: adopted '{decision.candidate.query}' instead of '{drafted.query}'")
            steps.append(
                drafted.model_copy(
                    update={
                        "query": decision.candidate.query,
                        "suggested_by": SuggestedBy.AUTOCOMPLETE,
                        "original_query": drafted.query,
                        "position": decision.rank,
                        "semantic_deviation": decision.candidate.semantic_deviation,
                        "reasoning": drafted.reasoning + ADOPTION_NOTE,
                    }
                )
            )

        journey = UserJourney(
            initial_query=initial_query,
            steps=steps,
            decision_points=decision_points(steps),
            final_query=steps[-1].query,
            summary=summarize(steps),
        )
        self._log.info(
            f"Journey for '{initial_query}': {len(steps)} steps, "
            f"autocomplete influence {journey.summary.autocomplete_influence:.2f}"
        )
        return journey

    async def simulate_many(self, queries: Sequence[str], concurrency_limit: int = 3) -> dict[str, UserJourney]:
        """
        Simulate several journeys concurrently; each journey's steps stay
        sequential. A query whose simulation fails is logged and left out.
        """
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")
        semaphore = asyncio.Semaphore(concurrency_limit)

        async def _run(query: str) -> UserJourney | None:
            async with semaphore:
                try:
                    return await self.simulate(query)
                except NeedMinerError as e:
                    self._log.error(f"Journey simulation for '{query}' failed: {e}")
                    return None

        results = await asyncio.gather(*(_run(q) for q in queries))
        return {q: journey for q, journey in zip(queries, results, strict=True) if journey is not None}
