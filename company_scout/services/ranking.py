from __future__ import annotations

from dataclasses import dataclass, field

from company_scout.config import settings
from company_scout.models.scout import Company, ScoutResult


@dataclass(slots=True)
class RankedCompanies:
    accepted: list[Company] = field(default_factory=list)
    rejected: list[Company] = field(default_factory=list)


def _merge(kept: Company, other: Company) -> Company:
    for source in other.sources:
        if source not in kept.sources:
            kept.sources.append(source)
    kept.mentions += other.mentions
    return kept


def dedupe_by_domain(companies: list[Company]) -> list[Company]:
    """One company per domain: the higher score wins, sources are unioned, mentions summed."""
    by_domain: dict[str, Company] = {}
    for company in companies:
        key = company.domain or company.name.lower()
        existing = by_domain.get(key)
        if existing is None:
            by_domain[key] = company
        elif company.relevance_score > existing.relevance_score:
            by_domain[key] = _merge(company, existing)
        else:
            _merge(existing, company)
    return list(by_domain.values())


def rank_companies(
    companies: list[Company],
    *,
    max_results: int,
    min_relevance_score: int,
    rejected_cap: int | None = None,
) -> RankedCompanies:
    cap = settings.rejected_cap if rejected_cap is None else rejected_cap
    unique = dedupe_by_domain(companies)
    accepted = [company for company in unique if company.relevance_score >= min_relevance_score]
    rejected = [company for company in unique if company.relevance_score < min_relevance_score]
    accepted.sort(key=lambda company: company.relevance_score, reverse=True)
    rejected.sort(key=lambda company: company.relevance_score, reverse=True)
    return RankedCompanies(accepted=accepted[:max_results], rejected=rejected[:cap])


def build_scout_result(
    ranked: RankedCompanies,
    *,
    search_queries: list[str],
    verification_queries: int,
) -> ScoutResult:
    sources: set[str] = set()
    for company in (*ranked.accepted, *ranked.rejected):
        sources.update(company.sources)
    return ScoutResult(
        companies=[*ranked.accepted, *ranked.rejected],
        in_scope_count=len(ranked.accepted),
        out_of_scope_count=len(ranked.rejected),
        queries_run=len(search_queries) + verification_queries,
        total_sources_processed=len(sources),
        search_queries=list(search_queries),
    )
