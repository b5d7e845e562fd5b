from __future__ import annotations

import asyncio
from datetime import date

from loguru import logger

from company_scout.agents.base import BaseAgent
from company_scout.models.schemas import QueryPlan
from company_scout.services.prompt_store import render_prompt


def fallback_queries(criteria: str) -> list[str]:
    """Deterministic query set used when the model gives no usable plan."""
    base = " ".join(criteria.split())
    return [
        base,
        f"{base} companies",
        f"site:crunchbase.com {base}",
        f"{base} startups funding",
        f"{base} market leaders",
    ]


class QueryPlanner(BaseAgent):
    """Turn a research brief into a diverse set of web search queries."""

    name = "query_planner"

    async def plan(self, criteria: str, *, cancel_event: asyncio.Event | None = None) -> list[str]:
        plan = await self.call_structured(
            system=render_prompt("query_planner.system_prompt", today=date.today().isoformat()),
            prompt=render_prompt("query_planner.user_prompt", criteria=criteria),
            tool_name="submit_search_queries",
            tool_description="Submit the web search queries to run for this research brief.",
            output_model=QueryPlan,
            max_tokens=1024,
            cancel_event=cancel_event,
        )
        if plan is None:
            logger.warning("Query planning fell back to template queries")
            return fallback_queries(criteria)
        return list(plan.queries)
