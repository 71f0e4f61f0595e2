# need_miner/discovery/convergence.py
"""
Convergence Controller - the iterative discovery loop.

State machine:

    ITERATING -> CONVERGED   threshold met after the forced minimum
              -> EXHAUSTED   max_iterations spent without meeting it
              -> CANCELLED   cancel event set or deadline passed

Per iteration i (1-indexed): plan a query, fetch suggestions, dedupe them
against everything seen so far, score the new ones, then decide:

    continue while i < min_forced_iterations
               or (i < max_iterations and overall / 10 < threshold(i))

The threshold decays from ``initial`` toward ``final`` so early rounds
favor breadth and later rounds accept incremental depth. Iterations run
strictly in sequence because each one depends on the accumulated keyword
set. Cancellation is checked between iterations, never mid-iteration.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime

from need_miner.discovery.models import (
    ConvergencePolicy,
    ConvergenceState,
    DiscoveryResult,
    EvaluationResult,
    Iteration,
    IterationData,
    SuggestionProvider,
    coerce_suggestions,
)
from need_miner.discovery.planner import QueryPlanner
from need_miner.discovery.scorer import EvaluationScorer
from need_miner.exceptions import NeedMinerError, PermanentError

logger = logging.getLogger(__name__)


class ConvergenceController:
    """
    Drives discovery for one seed keyword until it converges, exhausts its
    budget or is cancelled.

    Examples:
        ```python
        controller = ConvergenceController(provider, EvaluationScorer(gateway), QueryPlanner(gateway))
        result = await controller.discover("standing desk")
        result.state            # ConvergenceState.CONVERGED
        len(result.iterations)  # between min_forced_iterations and max_iterations
        ```
    """

    def __init__(
        self,
        provider: SuggestionProvider,
        scorer: EvaluationScorer | None = None,
        planner: QueryPlanner | None = None,
        policy: ConvergencePolicy | None = None,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.provider = provider
        self._log = logger or logging.getLogger(__name__)
        self.scorer = scorer or EvaluationScorer(logger=self._log)
        self.planner = planner or QueryPlanner(logger=self._log)
        self.policy = policy or ConvergencePolicy()
        self._clock = clock or (lambda: datetime.now(UTC))

        self.state = ConvergenceState.ITERATING
        self.history: list[Iteration] = []

    def effective_threshold(self, iteration: int) -> float:
        return self.policy.effective_threshold(iteration)

    def should_continue(self, iteration: int, overall_score: float) -> bool:
        return self.policy.should_continue(iteration, overall_score)

    def _cancel_reason(self, cancel_event: asyncio.Event | None, deadline: datetime | None) -> str | None:
        if cancel_event is not None and cancel_event.is_set():
            return "cancelled by caller"
        if deadline is not None and self._clock() >= deadline:
            return "deadline reached"
        return None

    async def _fetch(self, query: str) -> tuple[list[str], str | None]:
        """Suggestions for ``query`` as plain strings; failures yield an empty list."""
        try:
            raw = await self.provider.get_suggestions(query)
        except PermanentError:
            raise
        except Exception as e:
            self._log.warning(f"Suggestion fetch failed for '{query}': {e}")
            return [], str(e)
        return [s.query for s in coerce_suggestions(raw)], None

    async def _evaluate(self, data: IterationData, threshold: float) -> EvaluationResult:
        try:
            return await self.scorer.score(data, self.policy, threshold)
        except PermanentError:
            raise
        except NeedMinerError as e:
            self._log.warning(f"Evaluation of iteration {data.iteration_number} failed, scoring heuristically: {e}")
            return self.scorer.score_heuristic(data, self.policy, threshold)

    async def run_iteration(self, seed_keyword: str, number: int, query: str, seen: dict[str, None]) -> Iteration:
        """Fetch, dedupe and score one round. ``seen`` is updated in place."""
        suggestions, error = await self._fetch(query)
        new_keywords = [kw for kw in dict.fromkeys(suggestions) if kw not in seen]
        previous = list(seen)
        for kw in new_keywords:
            seen[kw] = None

        threshold = self.effective_threshold(number)
        data = IterationData(
            seed_keyword=seed_keyword,
            query=query,
            iteration_number=number,
            new_keywords=new_keywords,
            previous_keywords=previous,
        )
        evaluation = await self._evaluate(data, threshold)

        return Iteration(
            number=number,
            query=query,
            discoveries=suggestions,
            new_keywords=new_keywords,
            new_count=len(new_keywords),
            evaluation=evaluation,
            satisfaction_score=evaluation.overall_score / 10,
            threshold=threshold,
            error=error,
        )

    async def discover(
        self,
        keyword: str,
        cancel_event: asyncio.Event | None = None,
        deadline: datetime | None = None,
    ) -> DiscoveryResult:
        """
        Run the discovery loop for ``keyword``.

        Args:
            keyword: Seed keyword.
            cancel_event: Set it to stop the run before the next iteration.
            deadline: Wall-clock time after which no new iteration starts.

        Returns:
            The finished DiscoveryResult; ``state`` tells how it ended.
        """
        self.state = ConvergenceState.ITERATING
        self.history = []
        seen: dict[str, None] = {}
        completion_reason = ""

        self._log.info(f"Starting discovery for '{keyword}' (max {self.policy.max_iterations} iterations)")

        seed_suggestions, _ = await self._fetch(keyword)
        for kw in seed_suggestions:
            seen.setdefault(kw, None)
        seed_keywords = list(seen)
        self._log.debug(f"Seed query returned {len(seed_keywords)} keywords")

        last_evaluation: EvaluationResult | None = None
        for number in range(1, self.policy.max_iterations + 1):
            reason = self._cancel_reason(cancel_event, deadline)
            if reason is not None:
                self.state = ConvergenceState.CANCELLED
                completion_reason = reason
                self._log.info(f"Discovery for '{keyword}' stopped before iteration {number}: {reason}")
                break

            plan = await self.planner.plan(
                keyword,
                number,
                list(seen),
                previous_queries=[keyword, *(it.query for it in self.history)],
                last_evaluation=last_evaluation,
                policy=self.policy,
            )
            iteration = await self.run_iteration(keyword, number, plan.query, seen)
            self.history.append(iteration)
            last_evaluation = iteration.evaluation

            self._log.info(
                f"Iteration {number} '{plan.query}': {iteration.new_count} new, "
                f"score {iteration.evaluation.overall_score:.2f}/10, threshold {iteration.threshold:.2f}"
            )

            if self.should_continue(number, iteration.evaluation.overall_score):
                continue

            if iteration.satisfaction_score >= iteration.threshold:
                self.state = ConvergenceState.CONVERGED
                completion_reason = "satisfaction threshold met"
            else:
                self.state = ConvergenceState.EXHAUSTED
                completion_reason = "maximum iterations reached"
            break

        if self.state is ConvergenceState.EXHAUSTED:
            self._log.warning(
                f"Discovery for '{keyword}' exhausted {len(self.history)} iterations without meeting the threshold"
            )
        else:
            self._log.info(f"Discovery for '{keyword}' finished: {self.state.value} ({completion_reason})")

        return DiscoveryResult(
            keyword=keyword,
            state=self.state,
            iterations=list(self.history),
            seed_keywords=seed_keywords,
            all_keywords=list(seen),
            completion_reason=completion_reason,
        )


async def discover_batch(
    keywords: Sequence[str],
    factory: Callable[[], ConvergenceController],
    concurrency_limit: int = 3,
    cancel_event: asyncio.Event | None = None,
    deadline: datetime | None = None,
) -> dict[str, DiscoveryResult]:
    """
    Discover several independent keywords concurrently.

    Each keyword gets its own controller from ``factory`` and runs its
    iterations sequentially; at most ``concurrency_limit`` keywords are in
    flight. A keyword that fails outright is logged and left out of the
    result.
    """
    if concurrency_limit < 1:
        raise ValueError("concurrency_limit must be at least 1")
    semaphore = asyncio.Semaphore(concurrency_limit)

    async def _run(keyword: str) -> DiscoveryResult | None:
        async with semaphore:
            try:
                return await factory().discover(keyword, cancel_event=cancel_event, deadline=deadline)
            except NeedMinerError as e:
                logger.error(f"Discovery for '{keyword}' failed: {e}")
                return None

    results = await asyncio.gather(*(_run(kw) for kw in keywords))
    return {kw: result for kw, result in zip(keywords, results, strict=True) if result is not None}
