"""Step planning: dependencies, stages, output paths and placeholder scopes."""

import re
from pathlib import Path

from lingua_orchestrator.catalog.types import PLACEHOLDER_PATTERN, WorkflowDescriptor


class PlaceholderError(ValueError):
    """A placeholder has no value in the step's scope."""


def slugify(name: str) -> str:
    """Turn a display name into a filesystem-friendly slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "run"


def env_key(placeholder: str) -> str:
    """Environment variable carrying a placeholder's value."""
    return "AGENT_" + re.sub(r"[^A-Z0-9]+", "_", placeholder.upper()).strip("_")


def substitute(value: str, scope: dict[str, str]) -> str:
    """Replace every {placeholder} in value with its scope entry.

    Raises:
        PlaceholderError: If a placeholder is not in scope
    """

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        if name not in scope:
            raise PlaceholderError(f"unresolved placeholder {{{name}}}")
        return scope[name]

    return PLACEHOLDER_PATTERN.sub(_replace, value)


def step_dir_name(index: int, step_name: str) -> str:
    return f"{index:02d}-{slugify(step_name)}"


def produced_paths(workflow: WorkflowDescriptor, run_dir: Path) -> dict[int, dict[str, Path]]:
    """Map each 1-based step index to the output files it is expected to write."""
    paths: dict[int, dict[str, Path]] = {}
    for index, step in enumerate(workflow.steps, start=1):
        step_dir = run_dir / step_dir_name(index, step.name)
        paths[index] = {name: step_dir / name for name in workflow.produced_by(step)}
    return paths


def step_dependencies(workflow: WorkflowDescriptor) -> dict[int, set[int]]:
    """Find, for every step, the earlier steps whose outputs it consumes."""
    producer_of: dict[str, int] = {}
    dependencies: dict[int, set[int]] = {}
    for index, step in enumerate(workflow.steps, start=1):
        own = set(workflow.produced_by(step))
        dependencies[index] = {
            producer_of[name]
            for name in step.placeholders()
            if name in producer_of and name not in own
        }
        for name in own:
            producer_of[name] = index
    return dependencies


def build_stages(workflow: WorkflowDescriptor, concurrent: bool) -> list[list[int]]:
    """Group steps into consecutive stages that may run concurrently.

    A step joins the current stage only when concurrency is enabled and it
    consumes nothing produced inside that stage; otherwise it opens a new
    stage. Stages keep the declared step order.
    """
    dependencies = step_dependencies(workflow)
    stages: list[list[int]] = []
    for index in range(1, len(workflow.steps) + 1):
        if concurrent and stages and not (dependencies[index] & set(stages[-1])):
            stages[-1].append(index)
        else:
            stages.append([index])
    return stages


def step_scope(
    workflow: WorkflowDescriptor,
    index: int,
    paths: dict[int, dict[str, Path]],
    base: dict[str, str],
) -> dict[str, str]:
    """Placeholder values visible to a step.

    The scope holds the base values (context placeholders and caller inputs),
    every output produced by an earlier step (the latest producer wins) and
    the step's own output paths.
    """
    scope = dict(base)
    for earlier in range(1, index + 1):
        for name, path in paths[earlier].items():
            scope[name] = str(path)
    return scope
