"""Search router ranking catalog entries against free-text intent."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from lingua_orchestrator.dependencies import get_orchestrator
from lingua_orchestrator.models.search import SearchRequest, SearchResponse, SearchResult
from lingua_orchestrator.services import OrchestratorService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["search"])


@router.post("/search", response_model=SearchResponse)
async def search_catalog(
    request_body: SearchRequest,
    orchestrator: OrchestratorService = Depends(get_orchestrator),
) -> SearchResponse:
    """Rank agents and workflows by similarity to the query.

    Falls back to keyword matching when the embedding provider is down.

    Args:
        request_body: Query, result count and optional kind filter
        orchestrator: The orchestrator (injected)

    Returns:
        SearchResponse: Ranked results, best first

    Raises:
        HTTPException: 502 if ranking fails for a reason other than the provider
    """
    try:
        ranked = await orchestrator.find(
            request_body.query, top_k=request_body.top_k, kind=request_body.kind
        )
    except Exception as e:
        logger.error(f"Search failed for {request_body.query!r}: {e}")
        raise HTTPException(
            status_code=502,
            detail={
                "error": {
                    "code": "search_error",
                    "message": f"Failed to rank catalog: {str(e)}",
                    "details": {},
                }
            },
        )

    logger.info(f"Search {request_body.query!r} returned {len(ranked)} results")
    return SearchResponse(
        query=request_body.query,
        results=[SearchResult.from_entry(entry) for entry in ranked],
    )
