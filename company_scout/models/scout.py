from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from company_scout.tools import web_utils


class RelevanceLevel(StrEnum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class CompanyStatus(StrEnum):
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"


def relevance_level_for(score: int) -> RelevanceLevel:
    if score >= 7:
        return RelevanceLevel.HIGH
    if score >= 5:
        return RelevanceLevel.MEDIUM
    return RelevanceLevel.LOW


def clamp_score(value: Any, default: int = 1) -> int:
    """Coerce a model-provided score into the 1-10 range."""
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        score = default
    return max(1, min(10, score))


@dataclass(slots=True)
class SearchResult:
    title: str
    url: str
    text: str | None = None
    highlights: list[str] = field(default_factory=list)
    published_date: str | None = None

    def snippet(self, max_chars: int = 500) -> str:
        return web_utils.clean_content(self.text or " ".join(self.highlights), max_length=max_chars)


@dataclass(slots=True)
class CandidateCompany:
    id: str
    name: str
    website: str
    domain: str
    reason: str
    initial_score: int
    sources: list[str] = field(default_factory=list)


@dataclass(slots=True)
class VerificationResult:
    candidate_id: str | None
    company_name: str
    url_confirmed: bool
    matches_scope: bool
    scope_evidence: str
    adjusted_score: int
    description: str
    correct_url: str | None = None


@dataclass(slots=True)
class Company:
    name: str
    website: str
    domain: str
    description: str
    relevance_score: int
    relevance_level: RelevanceLevel
    status: CompanyStatus
    reason: str
    sources: list[str] = field(default_factory=list)
    mentions: int = 1
    verified: bool = False

    @classmethod
    def build(
        cls,
        *,
        name: str,
        website: str,
        domain: str,
        description: str,
        score: int,
        min_relevance_score: int,
        reason: str,
        sources: list[str],
        mentions: int,
        verified: bool,
    ) -> "Company":
        """Derive level and status from the score so they never disagree."""
        return cls(
            name=name,
            website=website,
            domain=domain,
            description=description,
            relevance_score=score,
            relevance_level=relevance_level_for(score),
            status=(
                CompanyStatus.ACCEPTED
                if score >= min_relevance_score
                else CompanyStatus.REJECTED
            ),
            reason=reason,
            sources=sources,
            mentions=max(mentions, 1),
            verified=verified,
        )

    @property
    def accepted(self) -> bool:
        return self.status == CompanyStatus.ACCEPTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "website": self.website,
            "domain": self.domain,
            "description": self.description,
            "relevanceScore": self.relevance_score,
            "relevanceLevel": self.relevance_level.value,
            "status": self.status.value,
            "reason": self.reason,
            "sources": list(self.sources),
            "mentions": self.mentions,
            "verified": self.verified,
        }


@dataclass(slots=True)
class VerificationOutcome:
    verified: list[Company] = field(default_factory=list)
    rejected: list[Company] = field(default_factory=list)
    queries_run: int = 0


@dataclass(slots=True)
class ScoutResult:
    companies: list[Company] = field(default_factory=list)
    in_scope_count: int = 0
    out_of_scope_count: int = 0
    queries_run: int = 0
    total_sources_processed: int = 0
    search_queries: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "companies": [company.to_dict() for company in self.companies],
            "inScopeCount": self.in_scope_count,
            "outOfScopeCount": self.out_of_scope_count,
            "queriesRun": self.queries_run,
            "totalSourcesProcessed": self.total_sources_processed,
            "searchQueries": list(self.search_queries),
        }
