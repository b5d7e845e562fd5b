from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Requests ---


class ScoutRequest(BaseModel):
    """Input of the scout_companies tool and the HTTP endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    criteria: str = Field(
        min_length=10,
        max_length=1000,
        description="Description of companies to find. Include example companies if known.",
    )
    max_results: int = Field(
        default=20,
        ge=5,
        le=50,
        alias="maxResults",
        description="Maximum number of verified companies to return (default: 20)",
    )
    min_relevance_score: int = Field(
        default=5,
        ge=1,
        le=10,
        alias="minRelevanceScore",
        description="Minimum relevance score to include (1-10, default: 5)",
    )

    @field_validator("criteria", mode="before")
    @classmethod
    def _strip_criteria(cls, value: Any) -> Any:
        # Collapse first so the length bounds apply to what the pipeline sees.
        if isinstance(value, str):
            return " ".join(value.split())
        return value


class SheetExportRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200, description="Sheet title")
    companies: list[dict[str, Any]] = Field(
        description="Company records as returned by scout_companies"
    )


# --- Structured model outputs ---


class QueryPlan(BaseModel):
    queries: list[str] = Field(
        min_length=5,
        max_length=12,
        description="Diverse web search queries for finding matching companies",
    )

    @field_validator("queries")
    @classmethod
    def _clean_queries(cls, values: list[str]) -> list[str]:
        cleaned = [" ".join(value.split()) for value in values]
        if any(not value for value in cleaned):
            raise ValueError("queries must not be blank")
        return cleaned


class ExtractedCandidate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1, description="Company name")
    website: str = Field(default="", description="Company website URL (main domain, not an article)")
    reason: str = Field(default="", description="Why this company may match the criteria")
    initial_score: float = Field(
        alias="initialScore", ge=1, le=10, description="Initial relevance score 1-10"
    )
    sources: list[str] = Field(default_factory=list, description="Source URLs mentioning the company")


class ExtractedCandidates(BaseModel):
    companies: list[ExtractedCandidate] = Field(default_factory=list)


class VerifiedCandidate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    candidate_id: str | None = Field(
        default=None, alias="candidateId", description="The id given for this candidate"
    )
    company_name: str = Field(alias="companyName", description="Company name being verified")
    url_confirmed: bool = Field(alias="urlConfirmed", description="Whether the website URL is correct")
    correct_url: str | None = Field(
        default=None, alias="correctUrl", description="Corrected URL if different"
    )
    matches_scope: bool = Field(
        alias="matchesScope", description="Whether the company actually matches the criteria"
    )
    scope_evidence: str = Field(
        default="", alias="scopeEvidence", description="Evidence supporting or refuting the scope match"
    )
    adjusted_score: float = Field(
        alias="adjustedScore", ge=1, le=10, description="Adjusted relevance score after verification"
    )
    description: str = Field(default="", description="Verified description of the company")


class VerificationBatch(BaseModel):
    results: list[VerifiedCandidate] = Field(default_factory=list)
