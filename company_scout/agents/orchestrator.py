from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable

from loguru import logger

from company_scout.agents.extraction_agent import CandidateExtractor
from company_scout.agents.query_planner import QueryPlanner
from company_scout.agents.verification_agent import VerificationEngine
from company_scout.config import settings
from company_scout.errors import ConfigurationError
from company_scout.models.events import ScoutStage
from company_scout.models.scout import ScoutResult
from company_scout.services import logger as log_service
from company_scout.services import streaming
from company_scout.services.cancellation import raise_if_cancelled
from company_scout.services.ranking import build_scout_result, rank_companies
from company_scout.services.search_executor import SearchOrchestrator
from company_scout.services.streaming import NULL_REPORTER, ProgressReporter
from company_scout.tools.exa_search import ExaSearchClient


class ScoutOrchestrator:
    """Runs the full company-discovery pipeline.

    Flow:
      1. Plan 7-10 search queries from the criteria (template fallback)
      2. Fan the queries out to the search provider with staggered starts
      3. Extract candidate companies from the combined corpus
      4. Verify candidates: one targeted search each, then batched scoring
      5. Deduplicate, rank and cap into accepted and rejected lists

    Progress for every stage goes to the reporter; without one the run is the same.
    """

    def __init__(
        self,
        search_client: ExaSearchClient | None = None,
        client: Any = None,
        *,
        reporter: ProgressReporter | None = None,
        stagger_ms: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.search_client = search_client
        self.client = client
        self.reporter = reporter or NULL_REPORTER
        self.search = SearchOrchestrator(search_client, stagger_ms=stagger_ms, sleep=sleep)
        self.planner = QueryPlanner(client=client)
        self.extractor = CandidateExtractor(client=client)
        self.verifier = VerificationEngine(self.search, client=client)

    def check_credentials(self) -> None:
        """Injected clients carry their own credentials; only defaults need settings."""
        missing = []
        if self.search_client is None and not settings.exa_api_key.strip():
            missing.append("EXA_API_KEY")
        if self.client is None and not settings.openrouter_api_key.strip():
            missing.append("OPENROUTER_API_KEY")
        if missing:
            raise ConfigurationError(f"Missing required credentials: {', '.join(missing)}")

    async def scout_companies(
        self,
        criteria: str,
        max_results: int = 20,
        min_relevance_score: int = 5,
        *,
        reporter: ProgressReporter | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ScoutResult:
        reporter = reporter or self.reporter
        try:
            return await self._run(criteria, max_results, min_relevance_score, reporter, cancel_event)
        except Exception as exc:
            reporter.emit(streaming.error(str(exc)))
            raise

    async def _run(
        self,
        criteria: str,
        max_results: int,
        min_relevance_score: int,
        reporter: ProgressReporter,
        cancel_event: asyncio.Event | None,
    ) -> ScoutResult:
        self.check_credentials()
        started = time.monotonic()
        criteria = " ".join(criteria.split())
        logger.info(f"Scouting companies for: {criteria[:120]}")

        raise_if_cancelled(cancel_event, "planning")
        reporter.emit(streaming.planning_started(criteria))
        queries = await self.planner.plan(criteria, cancel_event=cancel_event)
        reporter.emit(streaming.plan_created(queries))

        raise_if_cancelled(cancel_event, "search")
        per_query = await self.search.run_many(
            queries,
            stage=ScoutStage.SEARCH,
            reporter=reporter,
            cancel_event=cancel_event,
        )
        raise_if_cancelled(cancel_event, "search")
        results = [result for batch in per_query for result in batch]

        reporter.emit(streaming.extraction_started(len(results)))
        candidates = await self.extractor.extract(criteria, results, cancel_event=cancel_event)
        reporter.emit(streaming.candidates_extracted([candidate.name for candidate in candidates]))

        outcome = await self.verifier.verify(
            criteria,
            candidates,
            min_relevance_score,
            reporter=reporter,
            cancel_event=cancel_event,
        )
        raise_if_cancelled(cancel_event, "ranking")

        ranked = rank_companies(
            [*outcome.verified, *outcome.rejected],
            max_results=max_results,
            min_relevance_score=min_relevance_score,
        )
        reporter.emit(streaming.ranking_completed(len(ranked.accepted), len(ranked.rejected)))

        result = build_scout_result(
            ranked,
            search_queries=queries,
            verification_queries=outcome.queries_run,
        )
        log_service.log_event(
            "scout_complete",
            f"{result.in_scope_count} in scope, {result.out_of_scope_count} out of scope",
            search_results=len(results),
            candidates=len(candidates),
            queries_run=result.queries_run,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        reporter.emit(streaming.scout_complete(result.to_dict()))
        return result
