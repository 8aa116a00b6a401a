"""Exception taxonomy for lingua-orchestrator.

Every error raised by the orchestration core derives from OrchestratorError so
that hosts can catch the whole family in one place. The individual classes map
to the failure domains of the system:

- DiscoveryError: one manifest could not be turned into a descriptor
- EmbeddingProviderError: the embedding provider was unreachable or returned nothing
- RetryExhaustedError: the retry budget was spent on transient failures
- VectorStoreError: the embedding store could not be read or written
- StepFailure: one agent process failed or timed out
- WorkflowAborted: a StepFailure stopped its workflow
- ConfigurationError: start-up configuration is unusable
"""

from pathlib import Path
from typing import Any


class OrchestratorError(Exception):
    """Base class for all lingua-orchestrator errors."""


class ConfigurationError(OrchestratorError):
    """Raised at start-up when settings cannot support execution."""


class DiscoveryError(OrchestratorError):
    """A manifest that was skipped during discovery.

    Discovery records these instead of raising them, so a single broken
    manifest never hides the rest of the catalog.

    Attributes:
        path: The manifest file (or directory) that failed
        reason: Human readable cause
    """

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class EmbeddingProviderError(OrchestratorError):
    """The embedding provider failed to return a usable vector.

    Attributes:
        status_code: HTTP status reported by the provider, if any
        retry_after: Seconds the provider asked us to wait, if any
        transient: Whether repeating the call may succeed. None means
            "unknown" and leaves the decision to the retry predicates.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
        transient: bool | None = None,
    ) -> None:
        self.status_code = status_code
        self.retry_after = retry_after
        self.transient = transient
        super().__init__(message)


class RetryExhaustedError(OrchestratorError):
    """Raised once every allowed attempt of an operation has failed.

    Attributes:
        last_error: The error raised by the final attempt
        attempts: Total number of attempts made
    """

    def __init__(self, last_error: BaseException, attempts: int) -> None:
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(f"Operation failed after {attempts} attempts: {last_error}")


class VectorStoreError(OrchestratorError):
    """Reading from or writing to the vector store failed."""


class StepFailure(OrchestratorError):
    """A workflow step ended in FAILED or TIMED_OUT.

    Attributes:
        step_index: 1-based position of the step in its workflow
        step_name: Name of the agent run by the step
        status: Terminal status value of the step ("failed" or "timed_out")
        exit_code: Process exit code, when the process exited on its own
        diagnostic: Short description of the cause
    """

    def __init__(
        self,
        step_index: int,
        step_name: str,
        status: str,
        diagnostic: str,
        exit_code: int | None = None,
    ) -> None:
        self.step_index = step_index
        self.step_name = step_name
        self.status = status
        self.exit_code = exit_code
        self.diagnostic = diagnostic
        super().__init__(
            f"Step {step_index} ({step_name}) {status.replace('_', ' ')}: {diagnostic}"
        )

    @property
    def timed_out(self) -> bool:
        return self.status == "timed_out"

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_index": self.step_index,
            "step_name": self.step_name,
            "status": self.status,
            "exit_code": self.exit_code,
            "diagnostic": self.diagnostic,
        }


class WorkflowAborted(OrchestratorError):
    """A workflow stopped at its first failing step.

    Attributes:
        workflow_name: The aborted workflow (or agent) name
        failure: The StepFailure that caused the abort
    """

    def __init__(self, workflow_name: str, failure: StepFailure) -> None:
        self.workflow_name = workflow_name
        self.failure = failure
        super().__init__(f"Workflow '{workflow_name}' aborted: {failure}")
