from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from loguru import logger

from company_scout.config import settings
from company_scout.models.events import ScoutStage
from company_scout.models.scout import SearchResult
from company_scout.services import streaming
from company_scout.services.cancellation import is_cancelled, sleep_unless_cancelled
from company_scout.services.streaming import NULL_REPORTER, ProgressReporter
from company_scout.tools import exa_search


class SearchOrchestrator:
    """Fan a list of queries out to the search client with staggered starts.

    Query i is issued `i * stagger_ms` after the batch starts. That smooths
    bursts against the provider but does not cap how many requests overlap.
    """

    def __init__(
        self,
        search_client: exa_search.ExaSearchClient | None = None,
        *,
        stagger_ms: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._search_client = search_client
        self.stagger_ms = settings.search_stagger_ms if stagger_ms is None else stagger_ms
        self._sleep = sleep

    @property
    def search_client(self) -> exa_search.ExaSearchClient:
        return self._search_client or exa_search.client()

    async def run_many(
        self,
        queries: list[str],
        session_token: str | None = None,
        *,
        num_results: int | None = None,
        stage: ScoutStage = ScoutStage.SEARCH,
        report_every: int = 1,
        reporter: ProgressReporter = NULL_REPORTER,
        cancel_event: asyncio.Event | None = None,
    ) -> list[list[SearchResult]]:
        """Run every query; output[i] holds the results of queries[i]."""
        total = len(queries)
        completed = 0
        every = max(report_every, 1)
        client = self.search_client

        async def run_one(index: int, query: str) -> list[SearchResult]:
            nonlocal completed
            delay = index * self.stagger_ms / 1000
            if await sleep_unless_cancelled(delay, cancel_event, sleep=self._sleep):
                return []
            if is_cancelled(cancel_event):
                return []
            try:
                results = await client.search(
                    query,
                    session_token,
                    num_results,
                    cancel_event=cancel_event,
                )
            except Exception as exc:
                logger.warning(f"Search failed for {query[:80]!r}: {exc}")
                results = []
            completed += 1
            if completed % every == 0 or completed == total:
                reporter.emit(
                    streaming.search_progress(
                        stage,
                        completed=completed,
                        total=total,
                        query=query,
                        results_count=len(results),
                    )
                )
            return results

        return list(
            await asyncio.gather(*(run_one(index, query) for index, query in enumerate(queries)))
        )
