from __future__ import annotations

import asyncio
import re
from unittest.mock import AsyncMock, MagicMock

import pytest

from company_scout.agents.verification_agent import (
    VerificationEngine,
    build_verification_query,
    keywords_for,
    match_results,
)
from company_scout.llm_client import MessageResponse, ToolUseBlock, Usage
from company_scout.models.events import ScoutStage
from company_scout.models.scout import CandidateCompany, SearchResult, VerificationResult
from company_scout.services.search_executor import SearchOrchestrator
from company_scout.services.streaming import CallbackProgressReporter

CRITERIA = "DTC telehealth companies offering GLP-1 medications; telehealth weight loss medications"


def _tool_response(payload: dict) -> MessageResponse:
    return MessageResponse(
        content=[ToolUseBlock(type="tool_use", id="call_1", name="submit_verifications", input=payload)],
        usage=Usage(input_tokens=100, output_tokens=40),
    )


def _candidate(n: int, score: int = 7, name: str | None = None) -> CandidateCompany:
    return CandidateCompany(
        id=f"cand-{n}",
        name=name or f"Company {n}",
        website=f"https://company{n}.com",
        domain=f"company{n}.com",
        reason=f"Reason {n}",
        initial_score=score,
        sources=[f"https://source.example.com/{n}"],
    )


class FakeSearchClient:
    def __init__(self):
        self.queries: list[str] = []

    async def search(self, query, session_token=None, num_results=None, *, cancel_event=None):
        self.queries.append(query)
        slug = re.sub(r"\W+", "-", query.lower()).strip("-")
        return [SearchResult(title=query, url=f"https://evidence.example.com/{slug}", text="evidence")]


def _engine(client, search_client=None, **kwargs) -> VerificationEngine:
    orchestrator = SearchOrchestrator(search_client or FakeSearchClient(), stagger_ms=0)
    return VerificationEngine(orchestrator, model="strong-model", client=client, **kwargs)


def _ids_in_prompt(kwargs) -> list[str]:
    return re.findall(r"^\[(cand-\d+)\]", kwargs["messages"][0]["content"], re.MULTILINE)


class TestKeywords:
    def test_top_three_by_frequency(self):
        assert keywords_for(CRITERIA) == ["telehealth", "medications", "offering"]

    def test_ties_keep_first_occurrence_order(self):
        assert keywords_for("fintech lending platforms for small business") == [
            "fintech",
            "lending",
            "platforms",
        ]

    def test_query_quotes_name(self):
        assert build_verification_query("Hims & Hers", ["glp-1", "telehealth"]) == '"Hims & Hers" glp-1 telehealth'


class TestMatchResults:
    def _result(self, candidate_id, name):
        return VerificationResult(
            candidate_id=candidate_id,
            company_name=name,
            url_confirmed=True,
            matches_scope=True,
            scope_evidence="",
            adjusted_score=8,
            description="",
        )

    def test_matches_by_id_then_by_name(self):
        batch = [_candidate(1), _candidate(2, name="Ro")]
        results = [self._result("cand-1", "Wrong Name"), self._result(None, "RO")]

        matched = match_results(batch, results)

        assert matched["cand-1"].company_name == "Wrong Name"
        assert matched["cand-2"].company_name == "RO"

    def test_unknown_id_falls_back_to_name(self):
        batch = [_candidate(1, name="Noom")]

        matched = match_results(batch, [self._result("cand-99", "noom")])

        assert "cand-1" in matched

    def test_no_positional_matching(self):
        batch = [_candidate(1)]

        assert match_results(batch, [self._result(None, "Someone Else")]) == {}


@pytest.mark.asyncio
async def test_verify_uses_model_scores_and_corrections():
    client = MagicMock()
    client.messages.create = AsyncMock(
        return_value=_tool_response(
            {
                "results": [
                    {"candidateId": "cand-1", "companyName": "Company 1", "urlConfirmed": True,
                     "matchesScope": True, "scopeEvidence": "Sells GLP-1 online", "adjustedScore": 9,
                     "description": "Telehealth provider."},
                    {"candidateId": "cand-2", "companyName": "Company 2", "urlConfirmed": False,
                     "correctUrl": "www.realcompany2.io", "matchesScope": False,
                     "scopeEvidence": "Generic pharmacy", "adjustedScore": 3, "description": "Pharmacy."},
                ]
            }
        )
    )
    search_client = FakeSearchClient()
    engine = _engine(client, search_client)

    outcome = await engine.verify(CRITERIA, [_candidate(1), _candidate(2)], 5)

    assert outcome.queries_run == 2
    assert search_client.queries[0] == '"Company 1" telehealth medications offering'
    assert [c.name for c in outcome.verified] == ["Company 1"]
    accepted = outcome.verified[0]
    assert accepted.verified is True
    assert accepted.relevance_score == 9
    assert accepted.reason == "Sells GLP-1 online"
    assert accepted.description == "Telehealth provider."
    assert "https://source.example.com/1" in accepted.sources
    assert any(url.startswith("https://evidence.example.com/") for url in accepted.sources)

    rejected = outcome.rejected[0]
    assert rejected.status == "Rejected"
    assert rejected.verified is False
    assert rejected.website == "https://www.realcompany2.io"
    assert rejected.domain == "realcompany2.io"


@pytest.mark.asyncio
async def test_failed_batch_falls_back_to_initial_scores():
    client = MagicMock()
    client.messages.create = AsyncMock(side_effect=RuntimeError("invalid json"))
    engine = _engine(client)
    candidates = [_candidate(1, 9), _candidate(2, 6), _candidate(3, 3)]

    outcome = await engine.verify(CRITERIA, candidates, 5)

    assert sorted(c.relevance_score for c in outcome.verified) == [6, 9]
    assert [c.relevance_score for c in outcome.rejected] == [3]
    assert all(c.verified is False for c in outcome.verified + outcome.rejected)
    assert outcome.rejected[0].reason == "Reason 3"


@pytest.mark.asyncio
async def test_candidate_missing_from_response_uses_fallback():
    client = MagicMock()
    client.messages.create = AsyncMock(
        return_value=_tool_response(
            {
                "results": [
                    {"candidateId": "cand-1", "companyName": "Company 1", "urlConfirmed": True,
                     "matchesScope": True, "adjustedScore": 8},
                ]
            }
        )
    )
    engine = _engine(client)

    outcome = await engine.verify(CRITERIA, [_candidate(1), _candidate(2, 4)], 5)

    assert [(c.name, c.verified) for c in outcome.verified] == [("Company 1", True)]
    assert [(c.name, c.relevance_score, c.verified) for c in outcome.rejected] == [("Company 2", 4, False)]


@pytest.mark.asyncio
async def test_scoring_never_exceeds_three_batches_in_flight():
    in_flight = 0
    max_in_flight = 0
    batch_sizes: list[int] = []

    async def scorer(**kwargs):
        nonlocal in_flight, max_in_flight
        ids = _ids_in_prompt(kwargs)
        batch_sizes.append(len(ids))
        in_flight += 1
        max_in_flight = max(max_in_flight, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return _tool_response(
            {
                "results": [
                    {"candidateId": cid, "companyName": cid, "urlConfirmed": True,
                     "matchesScope": True, "adjustedScore": 7}
                    for cid in ids
                ]
            }
        )

    client = MagicMock()
    client.messages.create = AsyncMock(side_effect=scorer)
    engine = _engine(client, batch_size=8, max_concurrent_batches=3)

    outcome = await engine.verify(CRITERIA, [_candidate(n) for n in range(1, 25)], 5)

    assert batch_sizes == [8, 8, 8]
    assert max_in_flight <= 3
    assert len(outcome.verified) == 24


@pytest.mark.asyncio
async def test_more_batches_than_slots_are_serialized():
    in_flight = 0
    max_in_flight = 0

    async def scorer(**kwargs):
        nonlocal in_flight, max_in_flight
        in_flight += 1
        max_in_flight = max(max_in_flight, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        raise RuntimeError("force fallback")

    client = MagicMock()
    client.messages.create = AsyncMock(side_effect=scorer)
    engine = _engine(client, batch_size=2, max_concurrent_batches=3)

    outcome = await engine.verify(CRITERIA, [_candidate(n) for n in range(1, 13)], 5)

    assert client.messages.create.await_count == 6
    assert max_in_flight == 3
    assert len(outcome.verified) == 12


@pytest.mark.asyncio
async def test_progress_events_for_search_and_batches():
    client = MagicMock()
    client.messages.create = AsyncMock(side_effect=RuntimeError("fallback"))
    engine = _engine(client, batch_size=4, progress_every=5)
    events = []

    await engine.verify(
        CRITERIA,
        [_candidate(n) for n in range(1, 8)],
        5,
        reporter=CallbackProgressReporter(events.append),
    )

    search_events = [e for e in events if e.stage == ScoutStage.VERIFY_SEARCH and e.progress]
    score_events = [e for e in events if e.stage == ScoutStage.VERIFY_SCORE]
    assert [e.progress for e in search_events] == [(5, 7), (7, 7)]
    assert [e.progress for e in score_events] == [(1, 2), (2, 2)]
    assert score_events[-1].data["verified"] == 7
    assert all(e.data["fallback"] for e in score_events)


@pytest.mark.asyncio
async def test_no_candidates_means_no_calls():
    client = MagicMock()
    client.messages.create = AsyncMock()
    search_client = FakeSearchClient()
    engine = _engine(client, search_client)

    outcome = await engine.verify(CRITERIA, [], 5)

    assert outcome.verified == [] and outcome.rejected == [] and outcome.queries_run == 0
    assert search_client.queries == []
    client.messages.create.assert_not_awaited()
