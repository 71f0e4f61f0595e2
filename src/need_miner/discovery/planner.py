# need_miner/discovery/planner.py
"""
Query Planner - chooses the query for the next discovery iteration.

The LLM sees a diverse sample of what has been found so far plus the
weakest dimensions of the last evaluation, and recommends new queries. When
the LLM is unavailable, degraded, or only repeats old queries, the planner
falls back to appending a fixed modifier to the seed keyword.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence

from need_miner.discovery.models import ConvergencePolicy, EvaluationResult, QueryPlan
from need_miner.discovery.scorer import EvaluationScorer
from need_miner.llm.gateway import CallOptions, LLMGateway, is_degraded
from need_miner.prompts import PLANNER_SYSTEM_PROMPT, build_plan_prompt
from need_miner.text import COMMERCIAL_INDICATORS

logger = logging.getLogger(__name__)

FALLBACK_VARIANTS = ("how", "best", "tutorial", "problems", "compare")
SAMPLE_SIZE = 20


def _string_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip()]


def fallback_query(seed_keyword: str, iteration: int) -> str:
    return f"{seed_keyword} {FALLBACK_VARIANTS[iteration % len(FALLBACK_VARIANTS)]}"


def keyword_sample(keywords: Sequence[str], size: int = SAMPLE_SIZE, rng: random.Random | None = None) -> list[str]:
    """
    Diverse sample of up to ``size`` keywords.

    A quarter are the longest keywords, a quarter contain commercial
    indicators, the rest are drawn at random.
    """
    rng = rng or random.Random()
    pool = list(dict.fromkeys(keywords))
    size = min(size, len(pool))
    if size == 0:
        return []

    quarter = size // 4
    sample = sorted(pool, key=len, reverse=True)[:quarter]

    chosen = set(sample)
    commercial = [kw for kw in pool if kw not in chosen and any(i in kw.lower() for i in COMMERCIAL_INDICATORS)]
    sample.extend(commercial[:quarter])

    chosen = set(sample)
    remaining = [kw for kw in pool if kw not in chosen]
    sample.extend(rng.sample(remaining, min(size - len(sample), len(remaining))))
    return sample


class QueryPlanner:
    """Plans the next iteration's query, with an LLM when one is configured."""

    def __init__(
        self,
        gateway: LLMGateway | None = None,
        rng: random.Random | None = None,
        logger: logging.Logger | None = None,
    ):
        self.gateway = gateway
        self.rng = rng or random.Random()
        self._log = logger or logging.getLogger(__name__)

    async def plan(
        self,
        seed_keyword: str,
        iteration: int,
        discovered: Sequence[str],
        previous_queries: Sequence[str] = (),
        last_evaluation: EvaluationResult | None = None,
        policy: ConvergencePolicy | None = None,
    ) -> QueryPlan:
        if self.gateway is None:
            return QueryPlan(query=fallback_query(seed_keyword, iteration))

        weakest: list[str] = []
        if last_evaluation is not None:
            weights = policy.weights if policy is not None else ConvergencePolicy().weights
            weakest = EvaluationScorer.weakest_dimensions(last_evaluation.dimensions, weights)

        prompt = build_plan_prompt(
            seed_keyword,
            iteration,
            keyword_sample(discovered, rng=self.rng),
            len(discovered),
            weakest,
            previous_queries,
        )
        result = await self.gateway.analyze(
            prompt,
            "plan_next_iteration",
            CallOptions(system_prompt=PLANNER_SYSTEM_PROMPT, strict_format=True),
        )

        if is_degraded(result) or not isinstance(result, dict):
            self._log.warning(f"Planning for iteration {iteration} degraded, using fallback query")
            return QueryPlan(query=fallback_query(seed_keyword, iteration))

        recommended = _string_list(result.get("recommendedQueries") or result.get("recommended_queries"))
        used = {q.lower() for q in previous_queries}
        fresh = [q for q in recommended if q.lower() not in used]
        if not fresh:
            self._log.info(f"No new recommended query for iteration {iteration}, using fallback query")
            query, source = fallback_query(seed_keyword, iteration), "fallback"
        else:
            query, source = fresh[0], "llm"

        return QueryPlan(
            query=query,
            source=source,
            gaps=_string_list(result.get("gaps")),
            patterns=_string_list(result.get("patterns")),
            target_goals=_string_list(result.get("targetGoals") or result.get("target_goals")),
            recommended_queries=recommended,
        )
