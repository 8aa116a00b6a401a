"""Run API endpoints.

This module provides endpoints for running workflows and agents, either
waiting for the full result or streaming progress via SSE.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sse_starlette.sse import EventSourceResponse

from lingua_orchestrator.catalog.types import AgentDescriptor, Descriptor, WorkflowDescriptor
from lingua_orchestrator.dependencies import get_orchestrator
from lingua_orchestrator.execution.types import ExecutionContext
from lingua_orchestrator.models.runs import (
    DoneEvent,
    ErrorEvent,
    RunEvent,
    RunRequest,
    RunResponse,
)
from lingua_orchestrator.services import OrchestratorService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/runs", tags=["runs"])

# How often the stream checks for client disconnects while no event arrives
EVENT_POLL_SECONDS = 0.25


def _error(status_code: int, code: str, message: str, details: dict | None = None) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"error": {"code": code, "message": message, "details": details or {}}},
    )


def _build_context(request_body: RunRequest) -> ExecutionContext:
    return ExecutionContext(
        target_language=request_body.target_language,
        source_language=request_body.source_language,
        inputs=request_body.inputs,
        step_timeout=request_body.step_timeout,
    )


async def _resolve(orchestrator: OrchestratorService, request_body: RunRequest) -> Descriptor:
    """Resolve the request to a descriptor and check its inputs.

    Raises:
        HTTPException: 404 for unknown names or no match, 400 for missing inputs
    """
    if request_body.workflow:
        selection, kind = request_body.workflow, "workflow"
    elif request_body.agent:
        selection, kind = request_body.agent, "agent"
    else:
        selection, kind = None, None

    try:
        descriptor = await orchestrator.resolve(
            intent=request_body.intent, selection=selection, kind=kind
        )
    except KeyError:
        raise _error(
            404,
            f"{kind}_not_found",
            f"{(kind or 'entry').capitalize()} '{selection}' not found",
            {"name": selection},
        )
    except LookupError as e:
        raise _error(404, "no_match", str(e), {"intent": request_body.intent})

    workflow = (
        WorkflowDescriptor.single(descriptor)
        if isinstance(descriptor, AgentDescriptor)
        else descriptor
    )
    missing = sorted(name for name in workflow.inputs if name not in request_body.inputs)
    if missing:
        raise _error(
            400,
            "missing_inputs",
            f"Missing inputs for '{descriptor.name}': {', '.join(missing)}",
            {"missing": missing},
        )
    return descriptor


@router.post("", response_model=RunResponse)
async def run(
    request_body: RunRequest,
    orchestrator: OrchestratorService = Depends(get_orchestrator),
) -> RunResponse:
    """Run a workflow or agent and return its result.

    A failed step does not make the request fail: the response carries the
    per-step outcomes, failed_step and error.

    Args:
        request_body: What to run and with which context
        orchestrator: Injected orchestrator

    Returns:
        RunResponse with the structured execution result

    Raises:
        HTTPException: 404 if nothing matches, 400 if inputs are missing
    """
    descriptor = await _resolve(orchestrator, request_body)
    logger.info(f"Running {descriptor.kind} '{descriptor.name}'")

    result = await orchestrator.run(
        selection=descriptor.name,
        kind=descriptor.kind,
        context=_build_context(request_body),
        retries=request_body.retries,
    )
    return RunResponse(**result.to_dict())


@router.post("/stream")
async def run_streaming(
    request_body: RunRequest,
    request: Request,
    orchestrator: OrchestratorService = Depends(get_orchestrator),
) -> EventSourceResponse:
    """Run a workflow or agent, streaming progress via Server-Sent Events (SSE).

    If the client disconnects, the run is cancelled and its processes are
    terminated.

    Args:
        request_body: What to run and with which context
        request: FastAPI request object
        orchestrator: Injected orchestrator

    Returns:
        EventSourceResponse with SSE events

    SSE Events:
        - run_started: The run directory was created
        - step_started: A step's process is being launched
        - step_finished: A step reached a terminal state
        - artifact: A step produced an output file
        - run_finished: The run reached its final state (once per attempt)
        - error: The run could not be carried out
        - done: Stream is complete

    Raises:
        HTTPException: 404 if nothing matches, 400 if inputs are missing
    """
    descriptor = await _resolve(orchestrator, request_body)
    logger.info(f"Starting streaming run of {descriptor.kind} '{descriptor.name}'")

    async def event_generator():
        """Generate SSE events from the engine's progress queue."""
        events: asyncio.Queue = asyncio.Queue()
        cancel_event = asyncio.Event()
        run_task = asyncio.create_task(
            orchestrator.run(
                selection=descriptor.name,
                kind=descriptor.kind,
                context=_build_context(request_body),
                cancel_event=cancel_event,
                events=events,
                retries=request_body.retries,
            )
        )

        try:
            while not (run_task.done() and events.empty()):
                if await request.is_disconnected():
                    logger.warning(f"Client disconnected during run of '{descriptor.name}'")
                    cancel_event.set()
                    break

                try:
                    event = await asyncio.wait_for(events.get(), timeout=EVENT_POLL_SECONDS)
                except asyncio.TimeoutError:
                    continue

                payload = event.to_dict()
                name = payload.pop("event")
                yield {"event": name, "data": RunEvent(**payload).model_dump_json()}

            if cancel_event.is_set():
                return

            try:
                result = await run_task
            except Exception as e:
                logger.error(f"Run of '{descriptor.name}' failed: {e}")
                error_event = ErrorEvent(
                    code="run_error",
                    message=f"Failed to run '{descriptor.name}': {str(e)}",
                    details={"name": descriptor.name},
                )
                yield {"event": "error", "data": error_event.model_dump_json()}
                yield {
                    "event": "done",
                    "data": DoneEvent(status="error").model_dump_json(),
                }
                return

            done_event = DoneEvent(
                run_id=result.run_id,
                status=result.status,
                failed_step=result.failed_step,
                artifacts=result.artifacts,
            )
            yield {"event": "done", "data": done_event.model_dump_json()}

        finally:
            if not run_task.done():
                cancel_event.set()
            await asyncio.gather(run_task, return_exceptions=True)

    return EventSourceResponse(event_generator())
