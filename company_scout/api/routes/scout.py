from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from sse_starlette.sse import EventSourceResponse

from company_scout.agents.orchestrator import ScoutOrchestrator
from company_scout.errors import ConfigurationError, ScoutError
from company_scout.models.events import ScoutStage
from company_scout.models.schemas import ScoutRequest
from company_scout.services import logger as log_service
from company_scout.services.streaming import QueueProgressReporter

router = APIRouter(prefix="/api/scout", tags=["scout"])

TERMINAL_STAGES = (ScoutStage.COMPLETE, ScoutStage.ERROR)


def get_orchestrator() -> ScoutOrchestrator:
    return ScoutOrchestrator()


def _log_run_outcome(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        log_service.log_event(
            event_type="stream_error",
            message="Scout stream run ended with an error",
            error=str(exc),
        )


@router.post("")
async def run_scout(request: ScoutRequest, orchestrator: ScoutOrchestrator = Depends(get_orchestrator)):
    """Run the whole pipeline and return the ScoutResult once it is done."""
    try:
        result = await orchestrator.scout_companies(
            request.criteria,
            request.max_results,
            request.min_relevance_score,
        )
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ScoutError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Scout request failed")
        raise HTTPException(status_code=500, detail="Scout run failed unexpectedly.") from exc
    return result.to_dict()


@router.post("/stream")
async def stream_scout(request: ScoutRequest, orchestrator: ScoutOrchestrator = Depends(get_orchestrator)):
    """SSE endpoint that streams pipeline progress, ending with `complete` or `error`."""
    reporter = QueueProgressReporter()
    cancel_event = asyncio.Event()

    async def event_generator():
        log_service.log_event(
            event_type="scout_started",
            message="Scout stream started",
            criteria=request.criteria[:100],
            max_results=request.max_results,
        )
        task = asyncio.create_task(
            orchestrator.scout_companies(
                request.criteria,
                request.max_results,
                request.min_relevance_score,
                reporter=reporter,
                cancel_event=cancel_event,
            )
        )
        task.add_done_callback(_log_run_outcome)
        try:
            while True:
                event = await reporter.queue.get()
                yield {"event": event.stage.value, "data": json.dumps(event.to_dict())}
                if event.stage in TERMINAL_STAGES:
                    break
        finally:
            # Client went away or the run finished; either way stop issuing calls.
            cancel_event.set()
            if not task.done():
                task.cancel()

    return EventSourceResponse(event_generator())
