"""Pydantic models for run API requests, responses and SSE events.

This module defines the schemas for POST /api/v1/runs and the event
payloads streamed by POST /api/v1/runs/stream.
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RunRequest(BaseModel):
    """Request body for the run endpoints.

    Exactly one of workflow, agent or intent selects what runs. An explicit
    workflow or agent name wins over an intent.
    """

    workflow: str | None = Field(default=None, description="Workflow name to run")
    agent: str | None = Field(default=None, description="Agent name to run")
    intent: str | None = Field(
        default=None, description="Free-text intent, resolved to the best match"
    )
    target_language: str | None = Field(
        default=None, description="Language to produce output in (server default if null)"
    )
    source_language: str | None = Field(
        default=None, description="Language of the input material"
    )
    inputs: dict[str, str] = Field(
        default_factory=dict, description="Values for the workflow's input placeholders"
    )
    step_timeout: float | None = Field(
        default=None, gt=0, description="Per-step timeout in seconds"
    )
    retries: int = Field(
        default=0, ge=0, le=10, description="Restarts allowed after a timed-out step"
    )

    @model_validator(mode="after")
    def _check_target(self) -> "RunRequest":
        if not (self.workflow or self.agent or self.intent):
            raise ValueError("One of 'workflow', 'agent' or 'intent' is required")
        if self.workflow and self.agent:
            raise ValueError("Specify either 'workflow' or 'agent', not both")
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "workflow": "Lecture Translation",
                    "target_language": "de",
                    "inputs": {"audio_file": "/data/lecture.mp3"},
                },
                {"intent": "summarize this pdf", "inputs": {"document": "/data/a.pdf"}},
            ]
        }
    )


class StepResponse(BaseModel):
    """Outcome of one step."""

    index: int = Field(..., description="1-based step position")
    name: str = Field(..., description="Agent run by the step")
    status: str = Field(..., description="Terminal step status")
    exit_code: int | None = Field(default=None, description="Process exit code")
    diagnostic: str = Field(default="", description="Failure cause, if any")
    output_dir: str | None = Field(default=None, description="Step output directory")
    artifacts: list[str] = Field(default_factory=list, description="Files the step produced")
    started_at: str | None = Field(default=None, description="ISO 8601 start time")
    finished_at: str | None = Field(default=None, description="ISO 8601 end time")


class StepFailureResponse(BaseModel):
    """The step failure that aborted a run."""

    step_index: int
    step_name: str
    status: str
    exit_code: int | None = None
    diagnostic: str = ""


class RunResponse(BaseModel):
    """Structured outcome of a run."""

    name: str = Field(..., description="Workflow or agent that ran")
    kind: str = Field(..., description="'workflow' or 'agent'")
    run_id: str = Field(..., description="Run identifier")
    status: str = Field(..., description="succeeded, failed or cancelled")
    output_dir: str = Field(..., description="Run output directory")
    steps: list[StepResponse] = Field(..., description="Per-step outcomes")
    artifacts: list[str] = Field(default_factory=list, description="Files produced")
    failed_step: int | None = Field(default=None, description="First failing step")
    error: StepFailureResponse | None = Field(default=None, description="Abort cause")
    cancelled: bool = Field(default=False, description="Whether the run was cancelled")
    started_at: str = Field(..., description="ISO 8601 start time")
    finished_at: str | None = Field(default=None, description="ISO 8601 end time")


# SSE event payloads


class RunEvent(BaseModel):
    """Payload of run_started, step_started, step_finished, artifact and run_finished."""

    run_id: str
    workflow: str
    step_index: int | None = None
    step_name: str | None = None
    status: str | None = None
    detail: str = ""
    timestamp: str


class ErrorEvent(BaseModel):
    """Event emitted when a run cannot be carried out."""

    code: str = Field(description="Error code")
    message: str = Field(description="Human-readable error message")
    details: dict = Field(default_factory=dict, description="Additional error details")


class DoneEvent(BaseModel):
    """Final event of every run stream."""

    run_id: str | None = Field(default=None, description="Run identifier")
    status: str = Field(description="Final run status")
    failed_step: int | None = Field(default=None, description="First failing step")
    artifacts: list[str] = Field(default_factory=list, description="Files produced")
