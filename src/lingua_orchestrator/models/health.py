"""Health check response model."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response model for the health check endpoint.

    Attributes:
        status: Health status indicator ("ok" or "error").
        version: The version of lingua-orchestrator.
        ollama_connected: Whether the embedding provider answered, if checked.
        ollama_host: The embedding provider URL.
        agents: Number of agents in the session catalog.
        workflows: Number of workflows in the session catalog.
        semantic_search_enabled: Whether ranking uses embeddings.
    """

    status: str = Field(..., description="Health status of the service")
    version: str = Field(..., description="Version of lingua-orchestrator")
    ollama_connected: bool | None = Field(
        default=None,
        description="Whether the Ollama embedding provider is reachable",
    )
    ollama_host: str | None = Field(default=None, description="Ollama host URL")
    agents: int = Field(default=0, description="Number of discovered agents")
    workflows: int = Field(default=0, description="Number of discovered workflows")
    semantic_search_enabled: bool = Field(
        default=True, description="Whether ranking uses embeddings"
    )
