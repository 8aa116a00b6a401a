"""FastAPI routers for API endpoints.

This package contains all route handlers organized by resource type.
Each router module defines endpoints for a specific domain (health, catalog, search, runs).
"""

from lingua_orchestrator.routers import catalog, health, runs, search

__all__ = [
    "catalog",
    "health",
    "runs",
    "search",
]
