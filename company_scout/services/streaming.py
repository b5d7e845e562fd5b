from __future__ import annotations

import asyncio
from typing import Any, Callable

from loguru import logger

from company_scout.models.events import ProgressEvent, ScoutStage


class ProgressReporter:
    """Sink for pipeline progress events.

    The base class drops everything, so a pipeline without a listener runs the
    exact same code path as one with a listener attached.
    """

    def emit(self, event: ProgressEvent) -> None:
        return None


class CallbackProgressReporter(ProgressReporter):
    """Forward events to a plain callable; callback errors are logged, not raised."""

    def __init__(self, callback: Callable[[ProgressEvent], Any]):
        self._callback = callback

    def emit(self, event: ProgressEvent) -> None:
        try:
            self._callback(event)
        except Exception:
            logger.opt(exception=True).warning(f"Progress callback failed for stage {event.stage.value}")


class QueueProgressReporter(ProgressReporter):
    """Write events to an asyncio queue that a consumer (e.g. an SSE route) drains."""

    def __init__(self, queue: asyncio.Queue | None = None):
        self.queue: asyncio.Queue = queue or asyncio.Queue()

    def emit(self, event: ProgressEvent) -> None:
        self.queue.put_nowait(event)


NULL_REPORTER = ProgressReporter()


def planning_started(criteria: str) -> ProgressEvent:
    return ProgressEvent(
        stage=ScoutStage.PLANNING,
        message="Generating search queries",
        data={"criteria": criteria[:200]},
    )


def plan_created(queries: list[str]) -> ProgressEvent:
    return ProgressEvent(
        stage=ScoutStage.PLANNING,
        message=f"Generated {len(queries)} search queries",
        data={"queries": list(queries)},
    )


def search_progress(
    stage: ScoutStage,
    *,
    completed: int,
    total: int,
    query: str,
    results_count: int,
) -> ProgressEvent:
    return ProgressEvent(
        stage=stage,
        message=f"Searched {completed}/{total}: {query[:80]}",
        progress=(completed, total),
        data={"query": query, "results_count": results_count},
    )


def extraction_started(results_count: int) -> ProgressEvent:
    return ProgressEvent(
        stage=ScoutStage.EXTRACT,
        message=f"Extracting candidate companies from {results_count} search results",
        data={"results_count": results_count},
    )


def candidates_extracted(names: list[str]) -> ProgressEvent:
    return ProgressEvent(
        stage=ScoutStage.EXTRACT,
        message=f"Found {len(names)} candidate companies",
        data={"count": len(names), "candidates": names[:50]},
    )


def verification_started(candidate_count: int, batch_count: int) -> ProgressEvent:
    return ProgressEvent(
        stage=ScoutStage.VERIFY_SEARCH,
        message=f"Verifying {candidate_count} candidates in {batch_count} batches",
        data={"candidates": candidate_count, "batches": batch_count},
    )


def verification_batch_completed(
    *,
    completed_batches: int,
    total_batches: int,
    verified_total: int,
    rejected_total: int,
    recent: list[str],
    fallback: bool,
) -> ProgressEvent:
    return ProgressEvent(
        stage=ScoutStage.VERIFY_SCORE,
        message=(
            f"Scored batch {completed_batches}/{total_batches}: "
            f"{verified_total} verified, {rejected_total} rejected"
        ),
        progress=(completed_batches, total_batches),
        data={
            "verified": verified_total,
            "rejected": rejected_total,
            "recent": recent,
            "fallback": fallback,
        },
    )


def ranking_completed(in_scope: int, out_of_scope: int) -> ProgressEvent:
    return ProgressEvent(
        stage=ScoutStage.RANK,
        message=f"Ranked {in_scope} accepted and {out_of_scope} rejected companies",
        data={"in_scope": in_scope, "out_of_scope": out_of_scope},
    )


def scout_complete(result: dict[str, Any]) -> ProgressEvent:
    return ProgressEvent(
        stage=ScoutStage.COMPLETE,
        message=f"Scout complete: {result.get('inScopeCount', 0)} companies in scope",
        data=result,
    )


def error(message: str) -> ProgressEvent:
    return ProgressEvent(stage=ScoutStage.ERROR, message=message)
