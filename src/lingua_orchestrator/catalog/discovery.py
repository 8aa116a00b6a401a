"""Catalog discovery from a filesystem root.

The catalog root has the layout:

    <root>/agents/<agent-dir>/agent.json
    <root>/workflows/<workflow>.json

Each manifest that cannot be read or validated is skipped and recorded as a
DiscoveryError; discovery of the remaining manifests always continues.
"""

import json
import logging
from pathlib import Path
from typing import Any

from lingua_orchestrator.catalog.types import (
    CAPABILITIES,
    AgentDescriptor,
    Catalog,
    LanguageContext,
    WorkflowDescriptor,
)
from lingua_orchestrator.errors import DiscoveryError

logger = logging.getLogger(__name__)

AGENT_MANIFEST_NAME = "agent.json"
AGENTS_SUBDIR = "agents"
WORKFLOWS_SUBDIR = "workflows"


class ManifestError(ValueError):
    """Raised while parsing a single manifest; converted to a DiscoveryError."""


def _require_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ManifestError(f"'{key}' must be a non-empty string")
    return value.strip()


def _optional_str(data: dict[str, Any], key: str, default: str = "") -> str:
    value = data.get(key, default)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ManifestError(f"'{key}' must be a string")
    return value


def _str_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ManifestError(f"'{key}' must be a list of strings")
    return value


def _str_map(data: dict[str, Any], key: str) -> dict[str, str]:
    value = data.get(key, {})
    if not isinstance(value, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise ManifestError(f"'{key}' must be an object of string values")
    return value


def _localized_description(data: dict[str, Any], language: LanguageContext) -> str:
    """Pick the manifest description for the target language, if provided."""
    descriptions = _str_map(data, "descriptions")
    if language.target_language in descriptions:
        return descriptions[language.target_language]
    return _optional_str(data, "description")


def _read_manifest(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ManifestError(f"invalid JSON: {e}")
    except (OSError, UnicodeDecodeError) as e:
        raise ManifestError(f"unreadable manifest: {e}")

    if not isinstance(data, dict):
        raise ManifestError("manifest must contain a JSON object")
    return data


class CatalogDiscoveryService:
    """Builds the in-memory catalog from manifests under a root directory.

    The service only reads from the filesystem. Errors from the most recent
    scan are kept in `errors`.

    Attributes:
        root: Catalog root directory
        errors: DiscoveryErrors recorded by the last discover_* call
    """

    def __init__(self, root: Path):
        """Initialize the discovery service.

        Args:
            root: Catalog root containing agents/ and workflows/
        """
        self.root = root
        self.errors: list[DiscoveryError] = []

    @property
    def agents_dir(self) -> Path:
        return self.root / AGENTS_SUBDIR

    @property
    def workflows_dir(self) -> Path:
        return self.root / WORKFLOWS_SUBDIR

    def discover(self, language: LanguageContext) -> Catalog:
        """Discover agents and workflows in one pass.

        Args:
            language: Language context used for localization and defaults

        Returns:
            Catalog with agents, workflows and every recorded DiscoveryError
        """
        agents = self.discover_agents(language.target_language, language.source_language)
        agent_errors = list(self.errors)
        workflows = self.discover_workflows(
            agents, language.target_language, language.source_language
        )
        errors = agent_errors + self.errors
        self.errors = errors

        logger.info(
            f"Discovered {len(agents)} agents and {len(workflows)} workflows "
            f"({len(errors)} manifests skipped) under {self.root}"
        )
        return Catalog(agents=tuple(agents), workflows=tuple(workflows), errors=tuple(errors))

    def discover_agents(
        self, target_language: str = "en", source_language: str = ""
    ) -> list[AgentDescriptor]:
        """Scan agent manifests.

        Args:
            target_language: Language agents should produce output in
            source_language: Language of the input material ("" for auto-detect)

        Returns:
            Agent descriptors sorted by name
        """
        self.errors = []
        language = LanguageContext(target_language, source_language)
        agents: dict[str, AgentDescriptor] = {}

        if not self.agents_dir.is_dir():
            logger.warning(f"Agents directory not found: {self.agents_dir}")
            return []

        for agent_dir in sorted(p for p in self.agents_dir.iterdir() if p.is_dir()):
            manifest_path = agent_dir / AGENT_MANIFEST_NAME
            if not manifest_path.exists():
                logger.debug(f"Skipping {agent_dir}: no {AGENT_MANIFEST_NAME}")
                continue

            try:
                agent = self._parse_agent(manifest_path, language)
                if agent.name in agents:
                    raise ManifestError(f"duplicate agent name '{agent.name}'")
            except ManifestError as e:
                self._record(manifest_path, str(e))
                continue

            agents[agent.name] = agent
            logger.debug(f"Discovered agent: {agent.name}")

        return sorted(agents.values(), key=lambda a: a.name)

    def discover_workflows(
        self,
        agents: list[AgentDescriptor],
        target_language: str = "en",
        source_language: str = "",
    ) -> list[WorkflowDescriptor]:
        """Scan workflow manifests and resolve their steps against agents.

        Args:
            agents: Agents discovered in the same session
            target_language: Language used to localize descriptions
            source_language: Language of the input material

        Returns:
            Workflow descriptors sorted by name
        """
        self.errors = []
        language = LanguageContext(target_language, source_language)
        by_name = {agent.name: agent for agent in agents}
        workflows: dict[str, WorkflowDescriptor] = {}

        if not self.workflows_dir.is_dir():
            logger.debug(f"No workflows directory at {self.workflows_dir}")
            return []

        for manifest_path in sorted(self.workflows_dir.glob("*.json")):
            try:
                workflow = self._parse_workflow(manifest_path, by_name, language)
                if workflow.name in workflows:
                    raise ManifestError(f"duplicate workflow name '{workflow.name}'")
            except ManifestError as e:
                self._record(manifest_path, str(e))
                continue

            workflows[workflow.name] = workflow
            logger.debug(
                f"Discovered workflow: {workflow.name} ({len(workflow.steps)} steps)"
            )

        return sorted(workflows.values(), key=lambda w: w.name)

    def _record(self, path: Path, reason: str) -> None:
        error = DiscoveryError(path, reason)
        self.errors.append(error)
        logger.warning(f"Skipped manifest {path}: {reason}")

    def _parse_agent(self, path: Path, language: LanguageContext) -> AgentDescriptor:
        data = _read_manifest(path)

        name = _require_str(data, "name")
        executable = _require_str(data, "executable")

        working_directory = path.parent
        relative_dir = _optional_str(data, "working_directory")
        if relative_dir:
            working_directory = (path.parent / relative_dir).resolve()

        environment = dict(_str_map(data, "environment"))
        environment.setdefault("AGENT_TARGET_LANGUAGE", language.target_language)
        if language.source_language:
            environment.setdefault("AGENT_SOURCE_LANGUAGE", language.source_language)

        capabilities = set(_str_list(data, "capabilities"))
        unknown = capabilities - CAPABILITIES
        if unknown:
            raise ManifestError(f"unknown capabilities: {', '.join(sorted(unknown))}")

        return AgentDescriptor(
            name=name,
            description=_localized_description(data, language),
            executable_path=executable,
            working_directory=working_directory,
            environment=environment,
            arguments=tuple(_str_list(data, "arguments")),
            keywords=frozenset(k.lower() for k in _str_list(data, "keywords")),
            category=_optional_str(data, "category"),
            capabilities=frozenset(capabilities),
            manifest_path=path,
        )

    def _parse_workflow(
        self,
        path: Path,
        agents: dict[str, AgentDescriptor],
        language: LanguageContext,
    ) -> WorkflowDescriptor:
        data = _read_manifest(path)

        name = _require_str(data, "name")
        if name in agents:
            raise ManifestError(f"workflow name '{name}' clashes with an agent name")
        step_names = _str_list(data, "steps")
        if not step_names:
            raise ManifestError("'steps' must list at least one agent")

        steps: list[AgentDescriptor] = []
        for step_name in step_names:
            if step_name not in agents:
                raise ManifestError(f"unknown agent '{step_name}' in steps")
            steps.append(agents[step_name])

        raw_mappings = data.get("output_mappings", {})
        if not isinstance(raw_mappings, dict):
            raise ManifestError("'output_mappings' must be an object")
        output_mappings: dict[str, tuple[str, ...]] = {}
        for producer, names in raw_mappings.items():
            if producer not in step_names:
                raise ManifestError(f"output mapping for '{producer}' which is not a step")
            if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
                raise ManifestError(f"output mapping for '{producer}' must be a list of strings")
            output_mappings[producer] = tuple(names)

        workflow = WorkflowDescriptor(
            name=name,
            description=_localized_description(data, language),
            steps=tuple(steps),
            output_mappings=output_mappings,
            inputs=tuple(_str_list(data, "inputs")),
            keywords=frozenset(k.lower() for k in _str_list(data, "keywords")),
            category=_optional_str(data, "category"),
            manifest_path=path,
        )

        missing = workflow.unsatisfied_placeholders()
        if missing:
            details = ", ".join(f"step {index} needs {{{name}}}" for index, name in missing)
            raise ManifestError(f"unsatisfied placeholders: {details}")

        return workflow
