"""Pydantic models for API request and response schemas.

This package contains all Pydantic models used for validating and
serializing API requests and responses across all endpoints.
"""

from lingua_orchestrator.models.catalog import (
    AgentDetail,
    AgentListResponse,
    CatalogErrorItem,
    CatalogErrorsResponse,
    WorkflowDetail,
    WorkflowListResponse,
)
from lingua_orchestrator.models.health import HealthResponse
from lingua_orchestrator.models.runs import (
    DoneEvent,
    ErrorEvent,
    RunEvent,
    RunRequest,
    RunResponse,
)
from lingua_orchestrator.models.search import SearchRequest, SearchResponse, SearchResult

__all__ = [
    "AgentDetail",
    "AgentListResponse",
    "CatalogErrorItem",
    "CatalogErrorsResponse",
    "DoneEvent",
    "ErrorEvent",
    "HealthResponse",
    "RunEvent",
    "RunRequest",
    "RunResponse",
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
    "WorkflowDetail",
    "WorkflowListResponse",
]
