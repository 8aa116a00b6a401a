"""Dependency injection providers for FastAPI endpoints.

This module provides FastAPI dependency functions that are used across
multiple routers to inject common dependencies like settings and services.
"""

from functools import lru_cache

from fastapi import HTTPException, Request

from lingua_orchestrator.config import OrchestratorSettings
from lingua_orchestrator.services import OrchestratorService


@lru_cache
def get_settings() -> OrchestratorSettings:
    """Get the application settings instance.

    This function is cached so that the same settings instance is reused
    across all requests. Settings are loaded from environment variables
    with the LINGUA_ prefix.

    Returns:
        OrchestratorSettings: The application configuration settings.
    """
    return OrchestratorSettings()


def get_orchestrator(request: Request) -> OrchestratorService:
    """Get the session's OrchestratorService from app state.

    The orchestrator and its catalog are created once in the lifespan, so
    every request sees the same immutable catalog.

    Args:
        request: The FastAPI request object.

    Returns:
        OrchestratorService: The orchestrator of this server session.

    Raises:
        HTTPException: If the orchestrator is not initialized (503 Service Unavailable).
    """
    if not hasattr(request.app.state, "orchestrator"):
        raise HTTPException(
            status_code=503,
            detail={
                "error": {
                    "code": "orchestrator_unavailable",
                    "message": "Orchestrator not initialized",
                    "details": {},
                }
            },
        )
    return request.app.state.orchestrator
