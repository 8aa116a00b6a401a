"""Execution engine for workflows of external agent processes."""

from lingua_orchestrator.execution.engine import ExecutionEngine, generate_run_id
from lingua_orchestrator.execution.plan import build_stages, slugify
from lingua_orchestrator.execution.types import (
    ExecutionContext,
    ExecutionEvent,
    ExecutionResult,
    StepOutcome,
    StepStatus,
)

__all__ = [
    "ExecutionContext",
    "ExecutionEngine",
    "ExecutionEvent",
    "ExecutionResult",
    "StepOutcome",
    "StepStatus",
    "build_stages",
    "generate_run_id",
    "slugify",
]
