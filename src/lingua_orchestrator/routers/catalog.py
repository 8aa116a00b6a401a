"""Catalog router for listing discovered agents and workflows.

The catalog is discovered once at startup; these endpoints only read it.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from lingua_orchestrator.dependencies import get_orchestrator
from lingua_orchestrator.models.catalog import (
    AgentDetail,
    AgentListResponse,
    CatalogErrorItem,
    CatalogErrorsResponse,
    WorkflowDetail,
    WorkflowListResponse,
)
from lingua_orchestrator.services import OrchestratorService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["catalog"])


def _not_found(kind: str, name: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={
            "error": {
                "code": f"{kind}_not_found",
                "message": f"{kind.capitalize()} '{name}' not found",
                "details": {"name": name},
            }
        },
    )


@router.get("/agents", response_model=AgentListResponse)
async def list_agents(
    orchestrator: OrchestratorService = Depends(get_orchestrator),
) -> AgentListResponse:
    """List every discovered agent, sorted by name."""
    agents = [AgentDetail.from_descriptor(a) for a in orchestrator.catalog.agents]
    logger.debug(f"Listed {len(agents)} agents")
    return AgentListResponse(agents=agents)


@router.get("/agents/{name}", response_model=AgentDetail)
async def get_agent(
    name: str,
    orchestrator: OrchestratorService = Depends(get_orchestrator),
) -> AgentDetail:
    """Get one agent by name.

    Raises:
        HTTPException: 404 if the agent is not in the catalog.
    """
    agent = orchestrator.catalog.get_agent(name)
    if agent is None:
        raise _not_found("agent", name)
    return AgentDetail.from_descriptor(agent)


@router.get("/workflows", response_model=WorkflowListResponse)
async def list_workflows(
    orchestrator: OrchestratorService = Depends(get_orchestrator),
) -> WorkflowListResponse:
    """List every discovered workflow, sorted by name."""
    workflows = [WorkflowDetail.from_descriptor(w) for w in orchestrator.catalog.workflows]
    logger.debug(f"Listed {len(workflows)} workflows")
    return WorkflowListResponse(workflows=workflows)


@router.get("/workflows/{name}", response_model=WorkflowDetail)
async def get_workflow(
    name: str,
    orchestrator: OrchestratorService = Depends(get_orchestrator),
) -> WorkflowDetail:
    """Get one workflow by name.

    Raises:
        HTTPException: 404 if the workflow is not in the catalog.
    """
    workflow = orchestrator.catalog.get_workflow(name)
    if workflow is None:
        raise _not_found("workflow", name)
    return WorkflowDetail.from_descriptor(workflow)


@router.get("/catalog/errors", response_model=CatalogErrorsResponse)
async def list_catalog_errors(
    orchestrator: OrchestratorService = Depends(get_orchestrator),
) -> CatalogErrorsResponse:
    """List manifests that were skipped during discovery, with reasons."""
    return CatalogErrorsResponse(
        errors=[CatalogErrorItem.from_error(e) for e in orchestrator.catalog.errors]
    )
