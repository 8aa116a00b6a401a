"""Data types for the agent/workflow catalog.

Descriptors are created once by discovery and are read-only for the rest of
the session, so they are frozen dataclasses holding immutable collections.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from lingua_orchestrator.errors import DiscoveryError

PLACEHOLDER_PATTERN = re.compile(r"\{([A-Za-z0-9_.\-]+)\}")

# Placeholders the engine always resolves from the run context
RESERVED_PLACEHOLDERS = frozenset(
    {"output_dir", "run_id", "target_language", "source_language"}
)

CAPABILITIES = frozenset(
    {"transcribe", "translate", "extract_text", "summarize", "generate_diagram"}
)


def find_placeholders(value: str) -> list[str]:
    """Return the placeholder names referenced in a string, in order."""
    return PLACEHOLDER_PATTERN.findall(value)


def _frozen_mapping(value: Mapping[str, str] | None) -> Mapping[str, str]:
    return MappingProxyType(dict(value or {}))


@dataclass(frozen=True)
class AgentDescriptor:
    """An independently runnable agent program.

    Attributes:
        name: Unique catalog key
        description: What the agent does (localized when available)
        executable_path: Program to launch
        working_directory: Directory the process starts in
        environment: Extra environment variables for the process
        arguments: Command-line arguments, may contain {placeholders}
        keywords: Search keywords
        category: Display category (e.g. "Language")
        capabilities: Capability names the agent implements
        manifest_path: Manifest the descriptor was read from
    """

    name: str
    description: str
    executable_path: str
    working_directory: Path
    environment: Mapping[str, str] = field(default_factory=dict)
    arguments: tuple[str, ...] = ()
    keywords: frozenset[str] = frozenset()
    category: str = ""
    capabilities: frozenset[str] = frozenset()
    manifest_path: Path | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "environment", _frozen_mapping(self.environment))
        object.__setattr__(self, "arguments", tuple(self.arguments))
        object.__setattr__(self, "keywords", frozenset(self.keywords))
        object.__setattr__(self, "capabilities", frozenset(self.capabilities))

    def __hash__(self) -> int:
        return hash(("agent", self.name))

    @property
    def kind(self) -> str:
        return "agent"

    def placeholders(self) -> list[str]:
        """All placeholder names used in arguments and environment values."""
        names: list[str] = []
        for value in (*self.arguments, *self.environment.values()):
            for name in find_placeholders(value):
                if name not in names:
                    names.append(name)
        return names

    def descriptive_text(self) -> str:
        """Text used to embed this agent for semantic search."""
        return _descriptive_text(self.name, self.description, self.keywords, self.category)


@dataclass(frozen=True)
class WorkflowDescriptor:
    """An ordered composition of agents with declared data dependencies.

    Attributes:
        name: Unique catalog key
        description: What the workflow achieves
        steps: Agents in declared execution order
        output_mappings: Producing step name -> placeholder names it satisfies
        inputs: Placeholder names the caller supplies at run time
        keywords: Search keywords
        category: Display category
        manifest_path: Manifest the descriptor was read from
    """

    name: str
    description: str
    steps: tuple[AgentDescriptor, ...]
    output_mappings: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    inputs: tuple[str, ...] = ()
    keywords: frozenset[str] = frozenset()
    category: str = ""
    manifest_path: Path | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(
            self,
            "output_mappings",
            MappingProxyType(
                {step: tuple(names) for step, names in self.output_mappings.items()}
            ),
        )
        object.__setattr__(self, "inputs", tuple(self.inputs))
        object.__setattr__(self, "keywords", frozenset(self.keywords))

    def __hash__(self) -> int:
        return hash(("workflow", self.name))

    @property
    def kind(self) -> str:
        return "workflow"

    def produced_by(self, step: AgentDescriptor) -> tuple[str, ...]:
        """Placeholder names the given step produces."""
        return self.output_mappings.get(step.name, ())

    def unsatisfied_placeholders(self) -> list[tuple[int, str]]:
        """Find placeholders no earlier step, input, or context value provides.

        Returns:
            List of (1-based step index, placeholder name) pairs
        """
        available = set(RESERVED_PLACEHOLDERS) | set(self.inputs)
        missing: list[tuple[int, str]] = []
        for index, step in enumerate(self.steps, start=1):
            own = set(self.produced_by(step))
            for name in step.placeholders():
                if name not in available and name not in own:
                    missing.append((index, name))
            available |= own
        return missing

    def descriptive_text(self) -> str:
        """Text used to embed this workflow for semantic search."""
        text = _descriptive_text(self.name, self.description, self.keywords, self.category)
        steps = ", ".join(step.name for step in self.steps)
        return f"{text} Steps: {steps}."

    @classmethod
    def single(cls, agent: AgentDescriptor) -> "WorkflowDescriptor":
        """Wrap one agent as a one-step workflow.

        Every placeholder the agent uses that the run context does not
        provide becomes a required caller input.
        """
        return cls(
            name=agent.name,
            description=agent.description,
            steps=(agent,),
            inputs=tuple(
                name for name in agent.placeholders() if name not in RESERVED_PLACEHOLDERS
            ),
            keywords=agent.keywords,
            category=agent.category,
            manifest_path=agent.manifest_path,
        )


Descriptor = AgentDescriptor | WorkflowDescriptor


def _descriptive_text(
    name: str, description: str, keywords: frozenset[str], category: str
) -> str:
    parts = [f"{name}."]
    if description:
        parts.append(description.rstrip(".") + ".")
    if keywords:
        parts.append("Keywords: " + ", ".join(sorted(keywords)) + ".")
    if category:
        parts.append(f"Category: {category}.")
    return " ".join(parts)


@dataclass(frozen=True)
class LanguageContext:
    """Languages a session or run works in."""

    target_language: str = "en"
    source_language: str = ""


@dataclass(frozen=True)
class Catalog:
    """The discovered agents and workflows of one session."""

    agents: tuple[AgentDescriptor, ...] = ()
    workflows: tuple[WorkflowDescriptor, ...] = ()
    errors: tuple[DiscoveryError, ...] = ()

    def entries(self, kind: str | None = None) -> list[Descriptor]:
        """All descriptors, workflows first, optionally filtered by kind."""
        entries: list[Descriptor] = []
        if kind in (None, "workflow"):
            entries.extend(self.workflows)
        if kind in (None, "agent"):
            entries.extend(self.agents)
        return entries

    def get_agent(self, name: str) -> AgentDescriptor | None:
        return next((agent for agent in self.agents if agent.name == name), None)

    def get_workflow(self, name: str) -> WorkflowDescriptor | None:
        return next((wf for wf in self.workflows if wf.name == name), None)

    def get(self, name: str, kind: str | None = None) -> Descriptor | None:
        """Look up a descriptor by name; workflows win over agents on a clash."""
        for entry in self.entries(kind):
            if entry.name == name:
                return entry
        return None
