from __future__ import annotations

import asyncio
import re
from collections import Counter
from typing import Any

from loguru import logger

from company_scout.agents.base import BaseAgent
from company_scout.config import settings
from company_scout.llm_client import get_strong_model
from company_scout.models.events import ScoutStage
from company_scout.models.schemas import VerificationBatch, VerifiedCandidate
from company_scout.models.scout import (
    CandidateCompany,
    Company,
    SearchResult,
    VerificationOutcome,
    VerificationResult,
    clamp_score,
)
from company_scout.services import streaming
from company_scout.services.cancellation import raise_if_cancelled
from company_scout.services.prompt_store import render_prompt
from company_scout.services.search_executor import SearchOrchestrator
from company_scout.services.streaming import NULL_REPORTER, ProgressReporter
from company_scout.tools import web_utils

STOPWORDS = frozenset(
    {
        "about", "after", "also", "among", "and", "any", "are", "based", "been", "being",
        "both", "but", "can", "companies", "company", "could", "does", "each", "find",
        "firms", "from", "have", "into", "like", "list", "look", "looking", "more", "most",
        "must", "only", "other", "over", "should", "some", "such", "than", "that", "their",
        "them", "then", "there", "these", "they", "this", "those", "through", "under",
        "using", "very", "want", "were", "what", "when", "where", "which", "while", "with",
        "within", "without", "would", "your",
    }
)

TOKEN_RE = re.compile(r"[a-z0-9][a-z0-9\-]*")


def keywords_for(criteria: str, limit: int = 3) -> list[str]:
    """Most frequent content words of the criteria; ties keep first-occurrence order."""
    words = [
        token
        for token in TOKEN_RE.findall(criteria.lower())
        if len(token) > 3 and token not in STOPWORDS
    ]
    return [word for word, _ in Counter(words).most_common(limit)]


def build_verification_query(name: str, keywords: list[str]) -> str:
    return " ".join([f'"{name}"', *keywords])


def to_verification_result(item: VerifiedCandidate) -> VerificationResult:
    return VerificationResult(
        candidate_id=(item.candidate_id or "").strip() or None,
        company_name=item.company_name.strip(),
        url_confirmed=item.url_confirmed,
        matches_scope=item.matches_scope,
        scope_evidence=item.scope_evidence.strip(),
        adjusted_score=clamp_score(item.adjusted_score),
        description=item.description.strip(),
        correct_url=(item.correct_url or "").strip() or None,
    )


def match_results(
    batch: list[CandidateCompany],
    results: list[VerificationResult],
) -> dict[str, VerificationResult]:
    """Map candidate id -> result, by echoed id first, then by case-insensitive name."""
    batch_ids = {candidate.id for candidate in batch}
    by_id: dict[str, VerificationResult] = {}
    by_name: dict[str, VerificationResult] = {}
    for result in results:
        if result.candidate_id in batch_ids:
            by_id.setdefault(result.candidate_id, result)
        elif result.company_name:
            by_name.setdefault(result.company_name.lower(), result)

    matched: dict[str, VerificationResult] = {}
    for candidate in batch:
        result = by_id.get(candidate.id) or by_name.get(candidate.name.lower())
        if result is not None:
            matched[candidate.id] = result
    return matched


def _merge_sources(candidate_sources: list[str], hits: list[SearchResult]) -> list[str]:
    merged = list(candidate_sources)
    for hit in hits:
        if hit.url and hit.url not in merged:
            merged.append(hit.url)
    return merged


def fallback_company(
    candidate: CandidateCompany,
    hits: list[SearchResult],
    min_relevance_score: int,
) -> Company:
    """Unverified company built from the extraction-time score and reason."""
    return Company.build(
        name=candidate.name,
        website=candidate.website,
        domain=candidate.domain,
        description=candidate.reason,
        score=candidate.initial_score,
        min_relevance_score=min_relevance_score,
        reason=candidate.reason,
        sources=_merge_sources(candidate.sources, hits),
        mentions=len(candidate.sources),
        verified=False,
    )


def fallback_companies(
    batch: list[CandidateCompany],
    evidence: dict[str, list[SearchResult]],
    min_relevance_score: int,
) -> list[Company]:
    return [
        fallback_company(candidate, evidence.get(candidate.id, []), min_relevance_score)
        for candidate in batch
    ]


def verified_company(
    candidate: CandidateCompany,
    result: VerificationResult,
    hits: list[SearchResult],
    min_relevance_score: int,
) -> Company:
    website, domain = candidate.website, candidate.domain
    if not result.url_confirmed and result.correct_url:
        corrected = web_utils.normalize_website(result.correct_url)
        corrected_domain = web_utils.normalize_domain(corrected)
        if "." in corrected_domain:
            website, domain = corrected, corrected_domain

    return Company.build(
        name=candidate.name,
        website=website,
        domain=domain,
        description=result.description or candidate.reason,
        score=result.adjusted_score,
        min_relevance_score=min_relevance_score,
        reason=result.scope_evidence or candidate.reason,
        sources=_merge_sources(candidate.sources, hits),
        mentions=len(candidate.sources),
        verified=result.url_confirmed and result.matches_scope,
    )


def render_candidates(
    batch: list[CandidateCompany],
    evidence: dict[str, list[SearchResult]],
    *,
    snippet_chars: int = 300,
) -> str:
    blocks = []
    for candidate in batch:
        lines = [
            f"[{candidate.id}] {candidate.name}",
            f"Website: {candidate.website}",
            f"Initial score: {candidate.initial_score}",
            f"Reason: {candidate.reason or 'n/a'}",
            "Verification search results:",
        ]
        hits = evidence.get(candidate.id, [])
        if not hits:
            lines.append("- none found")
        for hit in hits:
            lines.append(f"- {hit.title} ({hit.url}): {hit.snippet(snippet_chars)}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


class VerificationEngine(BaseAgent):
    """Second pass over extracted candidates: targeted search, then batched scoring.

    Each candidate gets one `"<name>" kw1 kw2 kw3` search. Candidates are then
    scored in fixed-size batches by the strong model, with at most
    `max_concurrent_batches` scoring calls in flight. A batch whose call fails
    falls back to the extraction-time scores for all of its candidates.
    """

    name = "verification"

    def __init__(
        self,
        search_orchestrator: SearchOrchestrator | None = None,
        model: str | None = None,
        client: Any = None,
        *,
        batch_size: int | None = None,
        max_concurrent_batches: int | None = None,
        results_per_candidate: int | None = None,
        progress_every: int | None = None,
    ):
        super().__init__(model=model, client=client)
        self.search_orchestrator = search_orchestrator or SearchOrchestrator()
        self.batch_size = max(batch_size or settings.verification_batch_size, 1)
        self.max_concurrent_batches = max(
            max_concurrent_batches or settings.verification_max_concurrent_batches, 1
        )
        self.results_per_candidate = results_per_candidate or settings.verification_results_per_candidate
        self.progress_every = progress_every or settings.verification_progress_every

    def default_model(self) -> str:
        return get_strong_model()

    async def _score_batch(
        self,
        criteria: str,
        batch: list[CandidateCompany],
        evidence: dict[str, list[SearchResult]],
        min_relevance_score: int,
        cancel_event: asyncio.Event | None = None,
    ) -> tuple[list[Company], bool]:
        """Score one batch; the flag is True when the whole batch used the fallback."""
        response = await self.call_structured(
            system=render_prompt("verification.system_prompt"),
            prompt=render_prompt(
                "verification.user_prompt",
                criteria=criteria,
                candidates=render_candidates(batch, evidence),
            ),
            tool_name="submit_verifications",
            tool_description="Submit one verification result per candidate company.",
            output_model=VerificationBatch,
            max_tokens=4096,
            cancel_event=cancel_event,
        )
        if response is None:
            logger.warning(f"Verification batch of {len(batch)} fell back to initial scores")
            return fallback_companies(batch, evidence, min_relevance_score), True

        matched = match_results(batch, [to_verification_result(item) for item in response.results])
        companies: list[Company] = []
        for candidate in batch:
            hits = evidence.get(candidate.id, [])
            result = matched.get(candidate.id)
            if result is None:
                logger.info(f"No verification returned for {candidate.name}; using initial score")
                companies.append(fallback_company(candidate, hits, min_relevance_score))
            else:
                companies.append(verified_company(candidate, result, hits, min_relevance_score))
        return companies, False

    async def verify(
        self,
        criteria: str,
        candidates: list[CandidateCompany],
        min_relevance_score: int,
        *,
        session_token: str | None = None,
        reporter: ProgressReporter = NULL_REPORTER,
        cancel_event: asyncio.Event | None = None,
    ) -> VerificationOutcome:
        if not candidates:
            return VerificationOutcome()

        keywords = keywords_for(criteria)
        queries = [build_verification_query(candidate.name, keywords) for candidate in candidates]
        batches = [
            candidates[start : start + self.batch_size]
            for start in range(0, len(candidates), self.batch_size)
        ]
        reporter.emit(streaming.verification_started(len(candidates), len(batches)))

        hits_per_candidate = await self.search_orchestrator.run_many(
            queries,
            session_token,
            num_results=self.results_per_candidate,
            stage=ScoutStage.VERIFY_SEARCH,
            report_every=self.progress_every,
            reporter=reporter,
            cancel_event=cancel_event,
        )
        raise_if_cancelled(cancel_event, "verification search")
        evidence = {candidate.id: hits for candidate, hits in zip(candidates, hits_per_candidate)}

        outcome = VerificationOutcome(queries_run=len(queries))
        semaphore = asyncio.Semaphore(self.max_concurrent_batches)
        completed = 0

        async def run_batch(batch: list[CandidateCompany]) -> None:
            nonlocal completed
            async with semaphore:
                raise_if_cancelled(cancel_event, "verification scoring")
                companies, used_fallback = await self._score_batch(
                    criteria, batch, evidence, min_relevance_score, cancel_event
                )
            completed += 1
            for company in companies:
                (outcome.verified if company.accepted else outcome.rejected).append(company)
            reporter.emit(
                streaming.verification_batch_completed(
                    completed_batches=completed,
                    total_batches=len(batches),
                    verified_total=len(outcome.verified),
                    rejected_total=len(outcome.rejected),
                    recent=[company.name for company in companies if company.accepted],
                    fallback=used_fallback,
                )
            )

        await asyncio.gather(*(run_batch(batch) for batch in batches))
        return outcome
