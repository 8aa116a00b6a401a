"""Execution engine running workflows as external agent processes.

Steps run in declared order, grouped into stages (see plan.build_stages).
Every step gets its own output directory inside the run directory, its
stdout and stderr are captured to log files, and the first step that fails
or times out aborts the workflow.
"""

import asyncio
import logging
import os
import uuid
from pathlib import Path
from typing import Mapping

from lingua_orchestrator.catalog.types import AgentDescriptor, WorkflowDescriptor
from lingua_orchestrator.execution.plan import (
    PlaceholderError,
    build_stages,
    env_key,
    produced_paths,
    slugify,
    step_dir_name,
    step_scope,
    substitute,
)
from lingua_orchestrator.execution.types import (
    ExecutionContext,
    ExecutionEvent,
    ExecutionResult,
    StepOutcome,
    StepStatus,
    utc_now,
)

logger = logging.getLogger(__name__)

STDOUT_LOG = "stdout.log"
STDERR_LOG = "stderr.log"
DIAGNOSTIC_TAIL_CHARS = 2000

# Outcome of waiting on a process
_EXITED = "exited"
_TIMED_OUT = "timed_out"
_STOPPED = "stopped"


def generate_run_id() -> str:
    """Generate a short unique run identifier."""
    return uuid.uuid4().hex[:10]


def _stderr_tail(path: Path) -> str:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""
    return text.strip()[-DIAGNOSTIC_TAIL_CHARS:]


class _RunState:
    """Mutable bookkeeping for one invocation."""

    def __init__(
        self,
        workflow: WorkflowDescriptor,
        result: ExecutionResult,
        run_dir: Path,
        context: ExecutionContext,
        cancel_event: asyncio.Event,
        events: asyncio.Queue | None,
    ) -> None:
        self.workflow = workflow
        self.result = result
        self.run_dir = run_dir
        self.context = context
        self.cancel_event = cancel_event
        self.events = events
        self.paths = produced_paths(workflow, run_dir)

    def emit(self, event: str, outcome: StepOutcome | None = None, detail: str = "") -> None:
        if self.events is None:
            return
        self.events.put_nowait(
            ExecutionEvent(
                event=event,
                run_id=self.result.run_id,
                workflow=self.result.name,
                step_index=outcome.index if outcome else None,
                step_name=outcome.name if outcome else None,
                status=outcome.status.value if outcome else self.result.status,
                detail=detail,
            )
        )

    def record_failure(self, outcome: StepOutcome) -> None:
        if self.result.error is None:
            self.result.failed_step = outcome.index
            self.result.error = outcome.to_failure()


class ExecutionEngine:
    """Runs workflows and agents as child processes.

    Attributes:
        output_root: Directory under which per-invocation run directories are created
        step_timeout: Default per-step timeout in seconds
        termination_grace: Seconds a timed-out process gets to exit before it is killed
        concurrent_steps: Whether independent consecutive steps may run concurrently
        base_environment: Environment inherited by every process (os.environ when None)
    """

    def __init__(
        self,
        output_root: Path,
        step_timeout: float = 600.0,
        termination_grace: float = 5.0,
        concurrent_steps: bool = False,
        base_environment: Mapping[str, str] | None = None,
    ) -> None:
        self.output_root = output_root
        self.step_timeout = step_timeout
        self.termination_grace = termination_grace
        self.concurrent_steps = concurrent_steps
        self.base_environment = base_environment

    async def execute_agent(
        self,
        agent: AgentDescriptor,
        context: ExecutionContext | None = None,
        cancel_event: asyncio.Event | None = None,
        events: asyncio.Queue | None = None,
    ) -> ExecutionResult:
        """Run a single agent as a one-step workflow."""
        result = await self.execute_workflow(
            WorkflowDescriptor.single(agent), context, cancel_event, events
        )
        result.kind = "agent"
        return result

    async def execute_workflow(
        self,
        workflow: WorkflowDescriptor,
        context: ExecutionContext | None = None,
        cancel_event: asyncio.Event | None = None,
        events: asyncio.Queue | None = None,
    ) -> ExecutionResult:
        """Run every step of a workflow.

        Args:
            workflow: Workflow to run
            context: Per-invocation languages, inputs and output directory
            cancel_event: Terminates in-flight processes and skips the rest once set
            events: Optional queue receiving ExecutionEvents as the run progresses

        Returns:
            ExecutionResult describing every step. A failed step does not raise;
            use ExecutionResult.raise_for_failure() for exception semantics.

        Raises:
            ValueError: If a declared workflow input is missing from the context
            asyncio.CancelledError: If the awaiting task itself is cancelled
        """
        context = context or ExecutionContext()
        missing = [name for name in workflow.inputs if name not in context.inputs]
        if missing:
            raise ValueError(
                f"Missing inputs for '{workflow.name}': {', '.join(sorted(missing))}"
            )

        run_id = generate_run_id()
        run_dir = context.output_dir or (
            self.output_root / f"{slugify(workflow.name)}-{run_id}"
        )
        run_dir.mkdir(parents=True, exist_ok=True)

        result = ExecutionResult(
            name=workflow.name,
            kind="workflow",
            run_id=run_id,
            output_dir=str(run_dir),
            steps=[
                StepOutcome(index=index, name=step.name)
                for index, step in enumerate(workflow.steps, start=1)
            ],
        )
        state = _RunState(
            workflow, result, run_dir, context, cancel_event or asyncio.Event(), events
        )

        logger.info(f"Starting run {run_id} of '{workflow.name}' in {run_dir}")
        state.emit("run_started", detail=str(run_dir))

        try:
            for stage in build_stages(workflow, self.concurrent_steps):
                if state.cancel_event.is_set() or result.error is not None:
                    break
                await self._run_stage(state, stage)
        except asyncio.CancelledError:
            result.cancelled = True
            self._finish(state)
            raise

        if state.cancel_event.is_set() and result.error is None:
            result.cancelled = True
        self._finish(state)
        return result

    def _finish(self, state: _RunState) -> None:
        result = state.result
        for outcome in result.steps:
            if outcome.status is StepStatus.PENDING:
                outcome.transition(StepStatus.NOT_RUN)
            elif outcome.status is StepStatus.RUNNING:
                # cancelled before its process could be awaited
                outcome.transition(StepStatus.CANCELLED, "run cancelled")
        result.artifacts = [path for outcome in result.steps for path in outcome.artifacts]
        result.finished_at = utc_now()

        if result.error is not None:
            logger.error(f"Run {result.run_id} of '{result.name}' aborted: {result.error}")
        else:
            logger.info(f"Run {result.run_id} of '{result.name}' finished: {result.status}")
        state.emit("run_finished", detail=result.status)

    async def _run_stage(self, state: _RunState, stage: list[int]) -> None:
        if len(stage) == 1:
            await self._run_step(state, stage[0], ())
            return

        abort = asyncio.Event()
        tasks = [
            asyncio.create_task(self._run_step(state, index, (abort,))) for index in stage
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _run_step(
        self, state: _RunState, index: int, abort_events: tuple[asyncio.Event, ...]
    ) -> None:
        step = state.workflow.steps[index - 1]
        outcome = state.result.steps[index - 1]
        step_dir = state.run_dir / step_dir_name(index, step.name)
        step_dir.mkdir(parents=True, exist_ok=True)
        outcome.output_dir = str(step_dir)

        outcome.transition(StepStatus.RUNNING)
        state.emit("step_started", outcome)
        logger.info(f"Run {state.result.run_id}: step {index} ({step.name}) started")

        try:
            argv, env = self._prepare(state, index, step, step_dir)
        except PlaceholderError as e:
            self._fail(state, outcome, StepStatus.FAILED, str(e), abort_events)
            return

        if not step.working_directory.is_dir():
            self._fail(
                state,
                outcome,
                StepStatus.FAILED,
                f"working directory not found: {step.working_directory}",
                abort_events,
            )
            return

        stop_events = (state.cancel_event, *abort_events)
        timeout = state.context.step_timeout or self.step_timeout

        with open(step_dir / STDOUT_LOG, "wb") as stdout, open(
            step_dir / STDERR_LOG, "wb"
        ) as stderr:
            try:
                process = await asyncio.create_subprocess_exec(
                    *argv,
                    cwd=str(step.working_directory),
                    env=env,
                    stdout=stdout,
                    stderr=stderr,
                )
            except (OSError, ValueError) as e:
                # ValueError: embedded null byte in argv or env
                self._fail(
                    state, outcome, StepStatus.FAILED, f"failed to launch: {e}", abort_events
                )
                return

            try:
                how = await self._wait(process, timeout, stop_events)
            except asyncio.CancelledError:
                outcome.exit_code = process.returncode
                outcome.transition(StepStatus.CANCELLED, "run cancelled")
                state.emit("step_finished", outcome)
                raise

        outcome.exit_code = process.returncode

        if how == _TIMED_OUT:
            self._fail(
                state,
                outcome,
                StepStatus.TIMED_OUT,
                f"exceeded timeout of {timeout:g}s",
                abort_events,
            )
        elif how == _STOPPED:
            reason = "run cancelled" if state.cancel_event.is_set() else "sibling step failed"
            outcome.transition(StepStatus.CANCELLED, reason)
            logger.info(f"Run {state.result.run_id}: step {index} ({step.name}) {reason}")
            state.emit("step_finished", outcome, detail=reason)
        elif process.returncode != 0:
            diagnostic = _stderr_tail(step_dir / STDERR_LOG) or (
                f"exited with code {process.returncode}"
            )
            self._fail(state, outcome, StepStatus.FAILED, diagnostic, abort_events)
        else:
            outcome.transition(StepStatus.SUCCEEDED)
            logger.info(f"Run {state.result.run_id}: step {index} ({step.name}) succeeded")
            state.emit("step_finished", outcome)
            self._collect_artifacts(state, index, outcome)

    def _prepare(
        self, state: _RunState, index: int, step: AgentDescriptor, step_dir: Path
    ) -> tuple[list[str], dict[str, str]]:
        context = state.context
        target = context.target_language or step.environment.get("AGENT_TARGET_LANGUAGE", "")
        source = context.source_language or step.environment.get("AGENT_SOURCE_LANGUAGE", "")

        base = {
            "output_dir": str(step_dir),
            "run_id": state.result.run_id,
            "target_language": target,
            "source_language": source,
            **context.inputs,
        }
        scope = step_scope(state.workflow, index, state.paths, base)

        env = dict(os.environ if self.base_environment is None else self.base_environment)
        env.update({key: substitute(value, scope) for key, value in step.environment.items()})
        for name, value in scope.items():
            if name in ("target_language", "source_language") and not value:
                continue
            env[env_key(name)] = value

        argv = [step.executable_path] + [substitute(arg, scope) for arg in step.arguments]
        return argv, env

    async def _wait(
        self,
        process: asyncio.subprocess.Process,
        timeout: float,
        stop_events: tuple[asyncio.Event, ...],
    ) -> str:
        """Wait for the process to exit, time out or be stopped by an event."""
        wait_task = asyncio.ensure_future(process.wait())
        stop_tasks = [asyncio.ensure_future(event.wait()) for event in stop_events]
        try:
            done, _ = await asyncio.wait(
                {wait_task, *stop_tasks}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            await self._terminate(process, grace=0)
            raise
        finally:
            for task in stop_tasks:
                task.cancel()
            if not wait_task.done():
                wait_task.cancel()

        if wait_task in done:
            return _EXITED
        if not done:
            await self._terminate(process, grace=self.termination_grace)
            return _TIMED_OUT
        await self._terminate(process, grace=0)
        return _STOPPED

    async def _terminate(self, process: asyncio.subprocess.Process, grace: float) -> None:
        """Stop a process, killing it if it outlives the grace period."""
        if process.returncode is not None:
            return
        try:
            if grace > 0:
                process.terminate()
                try:
                    await asyncio.wait_for(process.wait(), timeout=grace)
                    return
                except asyncio.TimeoutError:
                    logger.warning(f"Process {process.pid} ignored SIGTERM, killing it")
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()

    def _fail(
        self,
        state: _RunState,
        outcome: StepOutcome,
        status: StepStatus,
        diagnostic: str,
        abort_events: tuple[asyncio.Event, ...],
    ) -> None:
        outcome.transition(status, diagnostic)
        state.record_failure(outcome)
        for event in abort_events:
            event.set()
        logger.error(
            f"Run {state.result.run_id}: step {outcome.index} ({outcome.name}) "
            f"{status.value}: {diagnostic}"
        )
        state.emit("step_finished", outcome, detail=diagnostic)

    def _collect_artifacts(self, state: _RunState, index: int, outcome: StepOutcome) -> None:
        for name, path in state.paths[index].items():
            if path.exists():
                outcome.artifacts.append(str(path))
                state.emit("artifact", outcome, detail=str(path))
            else:
                logger.warning(
                    f"Run {state.result.run_id}: step {index} ({outcome.name}) "
                    f"did not produce '{name}' at {path}"
                )
