from __future__ import annotations

import asyncio

from loguru import logger

from company_scout.agents.base import BaseAgent
from company_scout.config import settings
from company_scout.models.schemas import ExtractedCandidate, ExtractedCandidates
from company_scout.models.scout import CandidateCompany, SearchResult, clamp_score
from company_scout.services.prompt_store import render_prompt
from company_scout.tools import web_utils

MAX_FILLED_SOURCES = 3


def render_corpus(results: list[SearchResult], *, snippet_chars: int = 500) -> str:
    blocks = []
    for index, result in enumerate(results, start=1):
        lines = [f"[{index}] {result.title or 'Untitled'}", f"URL: {result.url or 'n/a'}"]
        snippet = result.snippet(snippet_chars)
        if snippet:
            lines.append(snippet)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def fill_sources(name: str, domain: str, results: list[SearchResult], limit: int = MAX_FILLED_SOURCES) -> list[str]:
    """Corpus URLs that sit on the company's domain or whose title names it."""
    lowered_name = name.lower()
    sources: list[str] = []
    for result in results:
        if not result.url or result.url in sources:
            continue
        if domain in result.url.lower() or (lowered_name and lowered_name in result.title.lower()):
            sources.append(result.url)
        if len(sources) >= limit:
            break
    return sources


def _clean_sources(sources: list[str]) -> list[str]:
    cleaned: list[str] = []
    for source in sources:
        value = source.strip()
        if web_utils.is_valid_url(value) and value not in cleaned:
            cleaned.append(value)
    return cleaned


def to_candidates(extracted: list[ExtractedCandidate], results: list[SearchResult]) -> list[CandidateCompany]:
    """Normalize, deduplicate by domain (first seen wins) and number the candidates."""
    candidates: list[CandidateCompany] = []
    seen_domains: set[str] = set()
    for item in extracted:
        name = " ".join(item.name.split())
        website = web_utils.normalize_website(item.website)
        domain = web_utils.normalize_domain(website)
        if not name or "." not in domain:
            continue
        if domain in seen_domains:
            continue
        seen_domains.add(domain)
        candidates.append(
            CandidateCompany(
                id=f"cand-{len(candidates) + 1}",
                name=name,
                website=website,
                domain=domain,
                reason=item.reason.strip(),
                initial_score=clamp_score(item.initial_score),
                sources=_clean_sources(item.sources) or fill_sources(name, domain, results),
            )
        )
    return candidates


class CandidateExtractor(BaseAgent):
    """Pull every plausibly matching company out of the search corpus in one call."""

    name = "extraction"

    def __init__(self, model: str | None = None, client=None, *, max_results: int | None = None):
        super().__init__(model=model, client=client)
        self.max_results = settings.extraction_max_results if max_results is None else max_results

    async def extract(
        self,
        criteria: str,
        results: list[SearchResult],
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> list[CandidateCompany]:
        corpus = results[: self.max_results]
        if not corpus:
            return []

        extracted = await self.call_structured(
            system=render_prompt("extraction.system_prompt"),
            prompt=render_prompt("extraction.user_prompt", criteria=criteria, results=render_corpus(corpus)),
            tool_name="submit_candidates",
            tool_description="Submit every company from the search results that may match the criteria.",
            output_model=ExtractedCandidates,
            max_tokens=8192,
            cancel_event=cancel_event,
        )
        if extracted is None:
            logger.warning("Candidate extraction failed; continuing with no candidates")
            return []

        candidates = to_candidates(extracted.companies, corpus)
        logger.info(
            f"Extracted {len(candidates)} candidates "
            f"({len(extracted.companies)} returned by model) from {len(corpus)} results"
        )
        return candidates
