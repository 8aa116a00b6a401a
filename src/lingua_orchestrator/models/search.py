"""Pydantic models for the search endpoint."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from lingua_orchestrator.services.orchestrator import RankedEntry


class SearchRequest(BaseModel):
    """Request body for POST /api/v1/search."""

    query: str = Field(..., min_length=1, description="Free-text intent to match")
    top_k: int | None = Field(
        default=None, ge=1, description="Maximum number of results (server default if null)"
    )
    kind: Literal["agent", "workflow"] | None = Field(
        default=None, description="Restrict results to agents or workflows"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"query": "translate my lecture recording", "top_k": 3, "kind": None},
            ]
        }
    )


class SearchResult(BaseModel):
    """One ranked catalog entry."""

    name: str = Field(..., description="Catalog entry name")
    kind: str = Field(..., description="'agent' or 'workflow'")
    description: str = Field(default="", description="Entry description")
    score: float = Field(..., description="Similarity score, higher is better")
    method: str = Field(..., description="'semantic' or 'keyword'")

    @classmethod
    def from_entry(cls, entry: RankedEntry) -> "SearchResult":
        return cls(
            name=entry.name,
            kind=entry.kind,
            description=entry.descriptor.description,
            score=entry.score,
            method=entry.method,
        )


class SearchResponse(BaseModel):
    """Response body for POST /api/v1/search."""

    query: str = Field(..., description="The query that was ranked")
    results: list[SearchResult] = Field(..., description="Results, best first")
