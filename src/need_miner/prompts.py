# need_miner/prompts.py
"""
Prompt templates for the LLM sub-analyses.

Every prompt asks for a single JSON object so the gateway can run it with
``strict_format=True``; the field names listed here are the ones the
callers read back.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

EVALUATOR_SYSTEM_PROMPT = (
    "You are a keyword analyst who evaluates keyword quality, diversity and commercial value. "
    "Answer with a single JSON object."
)

PLANNER_SYSTEM_PROMPT = (
    "You are a keyword discovery strategist who plans optimal queries to find valuable and diverse keywords. "
    "Answer with a single JSON object."
)

JOURNEY_SYSTEM_PROMPT = (
    "You simulate how a real person refines their search queries step by step. "
    "Answer with a single JSON object."
)

DIMENSION_DESCRIPTIONS: dict[str, str] = {
    "relevance": "How closely related the keywords are to the original topic",
    "long_tail_value": "The specificity and long-tail character of the keywords",
    "commercial_value": "Presence of purchase intent or conversion potential",
    "diversity": "Coverage of different angles, intents and subtopics",
    "novelty": "Uniqueness compared to previously discovered keywords",
    "search_volume_potential": "Estimated search volume and user demand",
    "goal_achievement": "How well this iteration met its stated goals",
    "domain_coverage": "How many different industries or topic domains the keywords explore",
    "repetition_penalty": "How repetitive the keywords are; high means many near-duplicates",
}


def _bullet_list(items: Sequence[str], limit: int) -> str:
    return "\n".join(f"- {item}" for item in list(items)[:limit]) or "- (none)"


def build_dimension_prompt(
    dimension: str,
    seed_keyword: str,
    new_keywords: Sequence[str],
    previous_keywords: Sequence[str],
    goals: Sequence[str],
) -> str:
    """Prompt that scores one evaluation dimension on a 0-10 scale."""
    description = DIMENSION_DESCRIPTIONS.get(dimension, dimension.replace("_", " "))
    return f"""Evaluate the keywords discovered in the current iteration on ONE dimension.

Dimension: {dimension}
Meaning: {description}

Original keyword: {seed_keyword}
Iteration goals: {", ".join(goals) or "find commercially valuable long-tail keywords"}
Number of new keywords: {len(new_keywords)}

New keywords (sample):
{_bullet_list(new_keywords, 20)}

Previously discovered keywords (sample):
{_bullet_list(previous_keywords, 10)}

Return a JSON object:
{{"score": <number 0-10>, "reason": "<one sentence>", "suggestions": ["<how to improve this dimension>"]}}"""


def build_plan_prompt(
    seed_keyword: str,
    iteration: int,
    keyword_sample: Sequence[str],
    total_keywords: int,
    weakest_dimensions: Sequence[str],
    previous_queries: Sequence[str],
) -> str:
    """Prompt that plans the next discovery query."""
    return f"""Plan the next iteration query to maximize keyword diversity and value.

Original keyword: {seed_keyword}
Iteration number: {iteration}
Keywords collected so far: {total_keywords}
Dimensions that need improvement: {", ".join(weakest_dimensions) or "none identified"}
Queries already used: {json.dumps(list(previous_queries), ensure_ascii=False)}

Keyword sample:
{_bullet_list(keyword_sample, 20)}

Return a JSON object with:
- "gaps": keyword gaps you see (array of strings)
- "patterns": patterns in the current keywords (array of strings)
- "targetGoals": goals for the next round (array of strings)
- "recommendedQueries": 3-5 new search queries, best first (array of strings)"""


def build_journey_prompt(initial_query: str, max_steps: int) -> str:
    """Prompt that drafts a user search journey."""
    return f"""Simulate how a user would search starting from this query: "{initial_query}"

Describe up to {max_steps} search steps. For each step give the query, the user's intent type
(informational, navigational, commercial, transactional, comparison or research), their
satisfaction with the results (0-1), the next queries they might consider, what results they
expected and what they did next.

Return a JSON object:
{{"steps": [{{"query": "...", "intentType": "...", "satisfaction": 0.5,
  "nextQueries": ["..."], "expectedResults": "...", "userAction": "...", "reasoning": "..."}}],
 "mainPainPoints": ["..."], "unmetNeeds": ["..."]}}"""
