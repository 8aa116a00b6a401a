"""Pydantic models for catalog API responses.

This module contains the response schemas for the /api/v1/agents,
/api/v1/workflows and /api/v1/catalog endpoints.
"""

from pydantic import BaseModel, Field

from lingua_orchestrator.catalog.types import AgentDescriptor, WorkflowDescriptor
from lingua_orchestrator.errors import DiscoveryError


class AgentDetail(BaseModel):
    """A discovered agent.

    Attributes:
        name: Unique agent name
        description: What the agent does
        executable: Program the agent runs
        working_directory: Directory the process starts in
        arguments: Command-line arguments with {placeholders}
        keywords: Search keywords
        category: Display category
        capabilities: Capability interfaces the agent serves
        placeholders: Placeholder names the agent uses
    """

    name: str = Field(..., description="Unique agent name")
    description: str = Field(default="", description="What the agent does")
    executable: str = Field(..., description="Program the agent runs")
    working_directory: str = Field(..., description="Directory the process starts in")
    arguments: list[str] = Field(default_factory=list, description="Command-line arguments")
    keywords: list[str] = Field(default_factory=list, description="Search keywords")
    category: str = Field(default="", description="Display category")
    capabilities: list[str] = Field(
        default_factory=list, description="Capability interfaces (e.g. ['translate'])"
    )
    placeholders: list[str] = Field(
        default_factory=list, description="Placeholder names used by the agent"
    )

    @classmethod
    def from_descriptor(cls, agent: AgentDescriptor) -> "AgentDetail":
        return cls(
            name=agent.name,
            description=agent.description,
            executable=agent.executable_path,
            working_directory=str(agent.working_directory),
            arguments=list(agent.arguments),
            keywords=sorted(agent.keywords),
            category=agent.category,
            capabilities=sorted(agent.capabilities),
            placeholders=agent.placeholders(),
        )


class AgentListResponse(BaseModel):
    """Response model for listing agents."""

    agents: list[AgentDetail] = Field(..., description="Discovered agents")


class WorkflowDetail(BaseModel):
    """A discovered workflow.

    Attributes:
        name: Unique workflow name
        description: What the workflow achieves
        steps: Agent names in execution order
        output_mappings: Step name -> placeholders it produces
        inputs: Placeholders the caller must supply
        keywords: Search keywords
        category: Display category
    """

    name: str = Field(..., description="Unique workflow name")
    description: str = Field(default="", description="What the workflow achieves")
    steps: list[str] = Field(..., description="Agent names in execution order")
    output_mappings: dict[str, list[str]] = Field(
        default_factory=dict, description="Step name -> placeholders it produces"
    )
    inputs: list[str] = Field(default_factory=list, description="Required caller inputs")
    keywords: list[str] = Field(default_factory=list, description="Search keywords")
    category: str = Field(default="", description="Display category")

    @classmethod
    def from_descriptor(cls, workflow: WorkflowDescriptor) -> "WorkflowDetail":
        return cls(
            name=workflow.name,
            description=workflow.description,
            steps=[step.name for step in workflow.steps],
            output_mappings={
                step: list(names) for step, names in workflow.output_mappings.items()
            },
            inputs=list(workflow.inputs),
            keywords=sorted(workflow.keywords),
            category=workflow.category,
        )


class WorkflowListResponse(BaseModel):
    """Response model for listing workflows."""

    workflows: list[WorkflowDetail] = Field(..., description="Discovered workflows")


class CatalogErrorItem(BaseModel):
    """A manifest skipped during discovery."""

    path: str = Field(..., description="Manifest that failed")
    reason: str = Field(..., description="Why it was skipped")

    @classmethod
    def from_error(cls, error: DiscoveryError) -> "CatalogErrorItem":
        return cls(path=str(error.path), reason=error.reason)


class CatalogErrorsResponse(BaseModel):
    """Response model for listing discovery errors."""

    errors: list[CatalogErrorItem] = Field(..., description="Skipped manifests")
