# examples/discover_demo.py
"""
🔎 OFFLINE DISCOVERY DEMO

Runs keyword discovery and one simulated search journey end to end without
a browser or an API key: suggestions come from a small scripted provider and
the journey draft from a scripted transport.

Run:
    python examples/discover_demo.py
"""

import asyncio
import json
import logging
import random
import re

from need_miner import ConvergenceController, ConvergencePolicy, JourneyEvaluator, JourneySimulator, LLMGateway
from need_miner.discovery import Suggestion
from need_miner.journey import AdoptionModel, IntentTransition, RealJourneyData
from need_miner.llm.transports import TransportKind

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

MODIFIERS = [
    "price", "review", "for small spaces", "vs sitting desk", "how to choose",
    "under 300", "best brands", "electric", "for home office", "with drawers",
]  # fmt: skip


class ScriptedSuggestions:
    """Autocomplete stand-in: the query plus a rotating set of modifiers."""

    def __init__(self, per_query: int = 6):
        self.per_query = per_query
        self.calls = 0

    async def get_suggestions(self, query: str) -> list[Suggestion]:
        offset = self.calls % len(MODIFIERS)
        self.calls += 1
        picked = (MODIFIERS[offset:] + MODIFIERS[:offset])[: self.per_query]
        return [Suggestion(query=f"{query} {word}", position=i) for i, word in enumerate(picked)]


class DraftTransport:
    """Answers every journey prompt with a three-step draft."""

    kind = TransportKind.OPENAI_COMPATIBLE
    _QUERY_RE = re.compile(r'starting from this query: "([^"]+)"')

    async def send(self, messages, request):
        match = self._QUERY_RE.search(messages[-1]["content"])
        query = match.group(1) if match else "standing desk"
        return json.dumps(
            {
                "steps": [
                    {"query": query, "intentType": "informational", "satisfaction": 0.3},
                    {"query": f"{query} price", "intentType": "commercial", "satisfaction": 0.5},
                    {"query": f"buy {query}", "intentType": "transactional", "satisfaction": 0.95},
                ]
            }
        )


async def discover(provider):
    print("🔁 Discovering keywords for 'standing desk'...")
    policy = ConvergencePolicy(max_iterations=4, min_forced_iterations=2, min_new_per_iteration=3)
    result = await ConvergenceController(provider, policy=policy).discover("standing desk")

    print(f"✅ {result.state.value} after {len(result.iterations)} iterations: {result.completion_reason}")
    for iteration in result.iterations:
        print(
            f"   #{iteration.number} '{iteration.query}': {iteration.new_count} new, "
            f"satisfaction {iteration.satisfaction_score:.2f} / threshold {iteration.threshold:.2f}"
        )
    print(f"   {result.total_keywords} keywords in total")


async def simulate(provider):
    print("\n🧭 Simulating a search journey...")
    gateway = LLMGateway(DraftTransport())
    simulator = JourneySimulator(gateway, provider, AdoptionModel(rng=random.Random(7)))
    journey = await simulator.simulate("standing desk")

    for step in journey.steps:
        source = step.suggested_by.value if step.suggested_by else "draft"
        print(f"   {step.query!r} ({step.intent_type}, {source})")
    print(f"   refinement patterns: {', '.join(journey.summary.refinement_patterns) or 'none'}")

    real = RealJourneyData(
        queries=["standing desk", "standing desk price", "buy standing desk"],
        refinement_patterns=["adding_specificity", "adding_commercial_intent"],
        intent_transitions=[
            IntentTransition(from_query="standing desk", to_query="standing desk price"),
            IntentTransition(from_query="standing desk price", to_query="buy standing desk"),
        ],
    )
    metrics = JourneyEvaluator().evaluate(journey, real)
    print(
        f"📊 match with a recorded journey: {metrics.overall_score:.2f} "
        f"(patterns {metrics.pattern_similarity:.2f}, transitions {metrics.intent_transition_accuracy:.2f}, "
        f"relevance {metrics.query_relevance:.2f})"
    )


async def main():
    provider = ScriptedSuggestions()
    await discover(provider)
    await simulate(provider)


if __name__ == "__main__":
    asyncio.run(main())
