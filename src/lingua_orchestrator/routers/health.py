"""Health check endpoint router."""

import logging

from fastapi import APIRouter, Request

from lingua_orchestrator.models.health import HealthResponse
from lingua_orchestrator.ollama import OllamaClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint.

    Returns the current health status, version and catalog size. Also checks
    connectivity to the Ollama embedding provider when semantic search is on.

    Args:
        request: The FastAPI request object.

    Returns:
        HealthResponse: Health status and version information.
    """
    ollama_connected = None
    ollama_host = None
    agents = workflows = 0
    semantic = request.app.state.settings.semantic_search_enabled

    if hasattr(request.app.state, "orchestrator"):
        catalog = request.app.state.orchestrator.catalog
        agents, workflows = len(catalog.agents), len(catalog.workflows)

    if semantic and hasattr(request.app.state, "ollama_client"):
        ollama_client: OllamaClient = request.app.state.ollama_client
        ollama_host = ollama_client.host

        try:
            ollama_connected = await ollama_client.check_connection()
            logger.debug(f"Ollama connectivity check: {ollama_connected}")
        except Exception as e:
            logger.warning(f"Ollama connectivity check failed: {e}")
            ollama_connected = False

    return HealthResponse(
        status="ok",
        version="0.1.0",
        ollama_connected=ollama_connected,
        ollama_host=ollama_host,
        agents=agents,
        workflows=workflows,
        semantic_search_enabled=semantic,
    )
