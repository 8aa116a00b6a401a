"""Data types for workflow execution.

Each step follows the state machine

    PENDING -> RUNNING -> SUCCEEDED | FAILED | TIMED_OUT | CANCELLED
    PENDING -> NOT_RUN

and terminal states are final.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from lingua_orchestrator.errors import StepFailure, WorkflowAborted


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class StepStatus(str, Enum):
    """Lifecycle state of one workflow step."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    NOT_RUN = "not_run"

    @property
    def is_terminal(self) -> bool:
        return self not in (StepStatus.PENDING, StepStatus.RUNNING)

    @property
    def is_failure(self) -> bool:
        return self in (StepStatus.FAILED, StepStatus.TIMED_OUT)


_ALLOWED_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PENDING: frozenset({StepStatus.RUNNING, StepStatus.NOT_RUN}),
    StepStatus.RUNNING: frozenset(
        {
            StepStatus.SUCCEEDED,
            StepStatus.FAILED,
            StepStatus.TIMED_OUT,
            StepStatus.CANCELLED,
        }
    ),
}


@dataclass
class StepOutcome:
    """Observed state and result of one step."""

    index: int
    name: str
    status: StepStatus = StepStatus.PENDING
    exit_code: int | None = None
    diagnostic: str = ""
    output_dir: str | None = None
    artifacts: list[str] = field(default_factory=list)
    started_at: str | None = None
    finished_at: str | None = None

    def transition(self, status: StepStatus, diagnostic: str | None = None) -> None:
        """Move the step to a new state.

        Raises:
            ValueError: If the transition is not allowed from the current state
        """
        allowed = _ALLOWED_TRANSITIONS.get(self.status, frozenset())
        if status not in allowed:
            raise ValueError(
                f"Step {self.index} ({self.name}) cannot move from "
                f"{self.status.value} to {status.value}"
            )

        self.status = status
        if diagnostic is not None:
            self.diagnostic = diagnostic
        if status is StepStatus.RUNNING:
            self.started_at = utc_now()
        elif status is not StepStatus.NOT_RUN:
            self.finished_at = utc_now()

    def to_failure(self) -> StepFailure:
        return StepFailure(
            step_index=self.index,
            step_name=self.name,
            status=self.status.value,
            diagnostic=self.diagnostic,
            exit_code=self.exit_code,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "name": self.name,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "diagnostic": self.diagnostic,
            "output_dir": self.output_dir,
            "artifacts": list(self.artifacts),
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


@dataclass(frozen=True)
class ExecutionContext:
    """Per-invocation values threaded through an execution.

    Attributes:
        target_language: Overrides the agents' target language when set
        source_language: Overrides the agents' source language when set
        inputs: Caller-supplied placeholder values
        output_dir: Explicit run directory; a fresh namespace is created when None
        step_timeout: Per-step timeout in seconds; engine default when None
    """

    target_language: str | None = None
    source_language: str | None = None
    inputs: Mapping[str, str] = field(default_factory=dict)
    output_dir: Path | None = None
    step_timeout: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "inputs", MappingProxyType(dict(self.inputs)))

    def with_output_dir(self, output_dir: Path | None) -> "ExecutionContext":
        return replace(self, output_dir=output_dir, inputs=dict(self.inputs))


@dataclass
class ExecutionResult:
    """Structured outcome of one workflow or agent invocation."""

    name: str
    kind: str
    run_id: str
    output_dir: str
    steps: list[StepOutcome]
    artifacts: list[str] = field(default_factory=list)
    failed_step: int | None = None
    error: StepFailure | None = None
    cancelled: bool = False
    started_at: str = field(default_factory=utc_now)
    finished_at: str | None = None

    @property
    def succeeded(self) -> bool:
        return (
            not self.cancelled
            and self.error is None
            and all(step.status is StepStatus.SUCCEEDED for step in self.steps)
        )

    @property
    def status(self) -> str:
        if self.succeeded:
            return "succeeded"
        if self.error is not None:
            return "failed"
        if self.cancelled:
            return "cancelled"
        return "incomplete"

    def step(self, index: int) -> StepOutcome:
        """Return the outcome of the 1-based step index."""
        return self.steps[index - 1]

    def raise_for_failure(self) -> None:
        """Raise WorkflowAborted if a step failed or timed out."""
        if self.error is not None:
            raise WorkflowAborted(self.name, self.error) from self.error

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "run_id": self.run_id,
            "status": self.status,
            "output_dir": self.output_dir,
            "steps": [step.to_dict() for step in self.steps],
            "artifacts": list(self.artifacts),
            "failed_step": self.failed_step,
            "error": self.error.to_dict() if self.error else None,
            "cancelled": self.cancelled,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


@dataclass
class ExecutionEvent:
    """Progress notification emitted while a workflow runs."""

    event: str
    run_id: str
    workflow: str
    step_index: int | None = None
    step_name: str | None = None
    status: str | None = None
    detail: str = ""
    timestamp: str = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "run_id": self.run_id,
            "workflow": self.workflow,
            "step_index": self.step_index,
            "step_name": self.step_name,
            "status": self.status,
            "detail": self.detail,
            "timestamp": self.timestamp,
        }
