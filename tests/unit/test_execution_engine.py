"""Unit tests for the execution engine.

Agents are short Python programs run with the current interpreter.
"""

import asyncio
import json
import sys
from pathlib import Path

import pytest

from lingua_orchestrator.catalog.types import AgentDescriptor, WorkflowDescriptor
from lingua_orchestrator.errors import StepFailure, WorkflowAborted
from lingua_orchestrator.execution import (
    ExecutionContext,
    ExecutionEngine,
    StepOutcome,
    StepStatus,
)

WRITE = "import sys, pathlib; pathlib.Path(sys.argv[1]).write_text(sys.argv[2])"
COPY_UPPER = (
    "import sys, pathlib; "
    "pathlib.Path(sys.argv[2]).write_text(pathlib.Path(sys.argv[1]).read_text().upper())"
)
DUMP_ENV = (
    "import os, sys, json, pathlib; "
    "pathlib.Path(sys.argv[1]).write_text(json.dumps("
    "{k: v for k, v in os.environ.items() if k.startswith('AGENT_')}))"
)
FAIL = "import sys; sys.stderr.write('translation model missing'); sys.exit(3)"
SLEEP = "import time; time.sleep(30)"


@pytest.fixture
def engine(tmp_path):
    return ExecutionEngine(
        output_root=tmp_path / "runs", step_timeout=30.0, termination_grace=1.0
    )


@pytest.fixture
def make_agent(tmp_path):
    def _make(name: str, code: str, *args: str, environment=None) -> AgentDescriptor:
        return AgentDescriptor(
            name=name,
            description=f"{name} agent",
            executable_path=sys.executable,
            working_directory=tmp_path,
            environment=environment or {},
            arguments=("-c", code, *args),
        )

    return _make


@pytest.fixture
def notes_workflow(make_agent):
    """Two steps: write {notes}, then upper-case it into {summary}."""
    writer = make_agent("Note Writer", WRITE, "{notes}", "notes about {topic}")
    summarizer = make_agent("Summarizer", COPY_UPPER, "{notes}", "{summary}")
    return WorkflowDescriptor(
        name="Study Notes",
        description="Write and summarize notes",
        steps=(writer, summarizer),
        output_mappings={"Note Writer": ("notes",), "Summarizer": ("summary",)},
        inputs=("topic",),
    )


def _drain(queue: asyncio.Queue) -> list:
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


@pytest.mark.asyncio
async def test_successful_workflow_passes_outputs_between_steps(engine, notes_workflow, tmp_path):
    result = await engine.execute_workflow(
        notes_workflow, ExecutionContext(inputs={"topic": "verbs"})
    )

    assert result.succeeded
    assert result.status == "succeeded"
    assert [s.status for s in result.steps] == [StepStatus.SUCCEEDED, StepStatus.SUCCEEDED]
    assert result.failed_step is None
    assert result.error is None

    run_dir = Path(result.output_dir)
    assert run_dir.parent == tmp_path / "runs"
    assert run_dir.name == f"study-notes-{result.run_id}"

    notes, summary = (Path(p) for p in result.artifacts)
    assert notes == run_dir / "01-note-writer" / "notes"
    assert summary == run_dir / "02-summarizer" / "summary"
    assert summary.read_text() == "NOTES ABOUT VERBS"

    step_dir = Path(result.step(1).output_dir)
    assert (step_dir / "stdout.log").exists()
    assert (step_dir / "stderr.log").exists()
    assert result.step(1).exit_code == 0


@pytest.mark.asyncio
async def test_environment_carries_context_and_placeholders(engine, make_agent):
    agent = make_agent(
        "Env Dump", DUMP_ENV, "{report}", environment={"MODEL": "{topic}-model"}
    )
    workflow = WorkflowDescriptor(
        name="Env",
        description="",
        steps=(agent,),
        output_mappings={"Env Dump": ("report",)},
        inputs=("topic",),
    )
    context = ExecutionContext(
        target_language="de", source_language="fr", inputs={"topic": "grammar"}
    )

    result = await engine.execute_workflow(workflow, context)

    assert result.succeeded
    env = json.loads(Path(result.artifacts[0]).read_text())
    assert env["AGENT_OUTPUT_DIR"] == result.step(1).output_dir
    assert env["AGENT_RUN_ID"] == result.run_id
    assert env["AGENT_TARGET_LANGUAGE"] == "de"
    assert env["AGENT_SOURCE_LANGUAGE"] == "fr"
    assert env["AGENT_TOPIC"] == "grammar"
    assert env["AGENT_REPORT"] == result.artifacts[0]


@pytest.mark.asyncio
async def test_descriptor_language_used_when_context_has_none(engine, make_agent):
    agent = make_agent(
        "Env Dump", DUMP_ENV, "{report}", environment={"AGENT_TARGET_LANGUAGE": "ja"}
    )
    workflow = WorkflowDescriptor(
        name="Env", description="", steps=(agent,), output_mappings={"Env Dump": ("report",)}
    )

    result = await engine.execute_workflow(workflow)

    env = json.loads(Path(result.artifacts[0]).read_text())
    assert env["AGENT_TARGET_LANGUAGE"] == "ja"
    assert "AGENT_SOURCE_LANGUAGE" not in env


@pytest.mark.asyncio
async def test_failing_step_aborts_remaining_steps(engine, make_agent, tmp_path):
    first = make_agent("First", WRITE, "{a}", "ok")
    broken = make_agent("Broken", FAIL)
    last = make_agent("Last", WRITE, "{b}", "never")
    workflow = WorkflowDescriptor(
        name="Three Steps",
        description="",
        steps=(first, broken, last),
        output_mappings={"First": ("a",), "Last": ("b",)},
    )

    result = await engine.execute_workflow(workflow)

    assert not result.succeeded
    assert result.status == "failed"
    assert [s.status for s in result.steps] == [
        StepStatus.SUCCEEDED,
        StepStatus.FAILED,
        StepStatus.NOT_RUN,
    ]
    assert result.failed_step == 2
    assert isinstance(result.error, StepFailure)
    assert result.error.exit_code == 3
    assert "translation model missing" in result.error.diagnostic
    assert not (Path(result.output_dir) / "03-last").exists()
    assert len(result.artifacts) == 1

    with pytest.raises(WorkflowAborted) as exc_info:
        result.raise_for_failure()
    assert exc_info.value.failure is result.error
    assert exc_info.value.__cause__ is result.error


@pytest.mark.asyncio
async def test_exit_code_reported_when_stderr_is_empty(engine, make_agent):
    agent = make_agent("Quiet", "import sys; sys.exit(5)")

    result = await engine.execute_agent(agent)

    assert result.step(1).status is StepStatus.FAILED
    assert result.error.diagnostic == "exited with code 5"


@pytest.mark.asyncio
async def test_step_timeout_terminates_process(engine, make_agent):
    sleeper = make_agent("Sleeper", SLEEP)
    after = make_agent("After", WRITE, "{x}", "never")
    workflow = WorkflowDescriptor(
        name="Slow", description="", steps=(sleeper, after), output_mappings={"After": ("x",)}
    )

    result = await asyncio.wait_for(
        engine.execute_workflow(workflow, ExecutionContext(step_timeout=0.5)), timeout=10
    )

    assert result.step(1).status is StepStatus.TIMED_OUT
    assert result.step(2).status is StepStatus.NOT_RUN
    assert result.error.timed_out
    assert result.failed_step == 1


@pytest.mark.asyncio
async def test_launch_error_marks_step_failed(engine, tmp_path):
    agent = AgentDescriptor(
        name="Ghost",
        description="",
        executable_path=str(tmp_path / "does-not-exist"),
        working_directory=tmp_path,
    )

    result = await engine.execute_agent(agent)

    assert result.kind == "agent"
    assert result.step(1).status is StepStatus.FAILED
    assert "failed to launch" in result.error.diagnostic


@pytest.mark.asyncio
async def test_null_byte_in_input_fails_step(engine, notes_workflow):
    result = await engine.execute_workflow(
        notes_workflow, ExecutionContext(inputs={"topic": "verbs\x00"})
    )

    assert result.status == "failed"
    assert result.failed_step == 1
    assert result.step(1).status is StepStatus.FAILED
    assert "failed to launch" in result.error.diagnostic
    assert result.step(2).status is StepStatus.NOT_RUN


@pytest.mark.asyncio
async def test_missing_working_directory_marks_step_failed(engine, tmp_path):
    agent = AgentDescriptor(
        name="Lost",
        description="",
        executable_path=sys.executable,
        working_directory=tmp_path / "gone",
        arguments=("-c", "pass"),
    )

    result = await engine.execute_agent(agent)

    assert result.step(1).status is StepStatus.FAILED
    assert "working directory not found" in result.error.diagnostic


@pytest.mark.asyncio
async def test_missing_inputs_raise_before_running(engine, notes_workflow, tmp_path):
    with pytest.raises(ValueError, match="topic"):
        await engine.execute_workflow(notes_workflow)

    assert not (tmp_path / "runs").exists()


@pytest.mark.asyncio
async def test_agent_placeholders_become_required_inputs(engine, make_agent):
    agent = make_agent("Writer", WRITE, "{target}", "{text}")

    with pytest.raises(ValueError, match="target, text"):
        await engine.execute_agent(agent)


@pytest.mark.asyncio
async def test_missing_output_file_is_not_an_artifact(engine, make_agent):
    agent = make_agent("Lazy", "pass", "{result}")
    workflow = WorkflowDescriptor(
        name="Lazy", description="", steps=(agent,), output_mappings={"Lazy": ("result",)}
    )

    result = await engine.execute_workflow(workflow)

    assert result.succeeded
    assert result.artifacts == []


@pytest.mark.asyncio
async def test_explicit_output_dir_is_used(engine, notes_workflow, tmp_path):
    target = tmp_path / "custom"

    result = await engine.execute_workflow(
        notes_workflow, ExecutionContext(inputs={"topic": "t"}, output_dir=target)
    )

    assert result.output_dir == str(target)
    assert all(path.startswith(str(target)) for path in result.artifacts)


@pytest.mark.asyncio
async def test_cancel_event_stops_running_step(engine, make_agent):
    sleeper = make_agent("Sleeper", SLEEP)
    after = make_agent("After", "pass")
    workflow = WorkflowDescriptor(name="Cancel Me", description="", steps=(sleeper, after))
    cancel_event = asyncio.Event()
    asyncio.get_running_loop().call_later(0.5, cancel_event.set)

    result = await asyncio.wait_for(
        engine.execute_workflow(workflow, cancel_event=cancel_event), timeout=10
    )

    assert result.cancelled
    assert result.status == "cancelled"
    assert result.error is None
    assert result.step(1).status is StepStatus.CANCELLED
    assert result.step(2).status is StepStatus.NOT_RUN


@pytest.mark.asyncio
async def test_task_cancellation_terminates_processes(engine, make_agent):
    workflow = WorkflowDescriptor(
        name="Cancelled Task", description="", steps=(make_agent("Sleeper", SLEEP),)
    )
    events: asyncio.Queue = asyncio.Queue()

    task = asyncio.create_task(engine.execute_workflow(workflow, events=events))
    await asyncio.sleep(0.5)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(task, timeout=10)

    finished = [e for e in _drain(events) if e.event == "step_finished"]
    assert finished[0].status == "cancelled"


@pytest.mark.asyncio
async def test_progress_events(engine, notes_workflow):
    events: asyncio.Queue = asyncio.Queue()

    result = await engine.execute_workflow(
        notes_workflow, ExecutionContext(inputs={"topic": "x"}), events=events
    )

    kinds = [e.event for e in _drain(events)]
    assert kinds == [
        "run_started",
        "step_started",
        "step_finished",
        "artifact",
        "step_started",
        "step_finished",
        "artifact",
        "run_finished",
    ]
    assert result.succeeded


@pytest.mark.asyncio
async def test_concurrent_workflows_are_isolated(engine, notes_workflow):
    results = await asyncio.gather(
        *(
            engine.execute_workflow(notes_workflow, ExecutionContext(inputs={"topic": t}))
            for t in ["nouns", "verbs", "tenses"]
        )
    )

    assert len({r.output_dir for r in results}) == 3
    summaries = [Path(r.artifacts[-1]).read_text() for r in results]
    assert summaries == ["NOTES ABOUT NOUNS", "NOTES ABOUT VERBS", "NOTES ABOUT TENSES"]


class TestConcurrentSteps:
    """Independent steps share a stage when concurrent_steps is on."""

    @pytest.fixture
    def concurrent_engine(self, tmp_path):
        return ExecutionEngine(
            output_root=tmp_path / "runs",
            step_timeout=30.0,
            termination_grace=1.0,
            concurrent_steps=True,
        )

    @pytest.mark.asyncio
    async def test_independent_steps_all_succeed(self, concurrent_engine, make_agent):
        workflow = WorkflowDescriptor(
            name="Parallel",
            description="",
            steps=(
                make_agent("A", WRITE, "{a}", "alpha"),
                make_agent("B", WRITE, "{b}", "beta"),
            ),
            output_mappings={"A": ("a",), "B": ("b",)},
        )

        result = await concurrent_engine.execute_workflow(workflow)

        assert result.succeeded
        assert [Path(p).read_text() for p in result.artifacts] == ["alpha", "beta"]

    @pytest.mark.asyncio
    async def test_failure_cancels_running_sibling(self, concurrent_engine, make_agent):
        workflow = WorkflowDescriptor(
            name="Parallel Fail",
            description="",
            steps=(
                make_agent("Sleeper", SLEEP),
                make_agent("Broken", FAIL),
                make_agent("Later", "pass", "{a}"),
            ),
            output_mappings={"Broken": ("a",)},
        )

        result = await asyncio.wait_for(
            concurrent_engine.execute_workflow(workflow), timeout=10
        )

        assert result.step(1).status is StepStatus.CANCELLED
        assert result.step(1).diagnostic == "sibling step failed"
        assert result.step(2).status is StepStatus.FAILED
        assert result.step(3).status is StepStatus.NOT_RUN
        assert result.failed_step == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_cancels_running_sibling(
        self, concurrent_engine, make_agent, monkeypatch
    ):
        def _explode(state, index, outcome):
            raise RuntimeError("artifact scan failed")

        monkeypatch.setattr(concurrent_engine, "_collect_artifacts", _explode)
        workflow = WorkflowDescriptor(
            name="Parallel Error",
            description="",
            steps=(make_agent("Quick", WRITE, "{a}", "alpha"), make_agent("Sleeper", SLEEP)),
            output_mappings={"Quick": ("a",)},
        )
        events = asyncio.Queue()

        with pytest.raises(RuntimeError, match="artifact scan failed"):
            await asyncio.wait_for(
                concurrent_engine.execute_workflow(workflow, events=events), timeout=10
            )

        finished = [e for e in _drain(events) if e.event == "step_finished"]
        assert [(e.step_name, e.status) for e in finished] == [
            ("Quick", "succeeded"),
            ("Sleeper", "cancelled"),
        ]


class TestStepStateMachine:
    def test_allowed_transitions(self):
        outcome = StepOutcome(index=1, name="A")
        outcome.transition(StepStatus.RUNNING)
        outcome.transition(StepStatus.SUCCEEDED)

        assert outcome.started_at is not None
        assert outcome.finished_at is not None
        assert outcome.status.is_terminal

    def test_pending_to_not_run(self):
        outcome = StepOutcome(index=1, name="A")
        outcome.transition(StepStatus.NOT_RUN)

        assert outcome.status is StepStatus.NOT_RUN

    @pytest.mark.parametrize(
        "path",
        [
            [StepStatus.SUCCEEDED],
            [StepStatus.RUNNING, StepStatus.NOT_RUN],
            [StepStatus.RUNNING, StepStatus.FAILED, StepStatus.SUCCEEDED],
            [StepStatus.NOT_RUN, StepStatus.RUNNING],
        ],
    )
    def test_illegal_transitions_raise(self, path):
        outcome = StepOutcome(index=1, name="A")
        for status in path[:-1]:
            outcome.transition(status)

        with pytest.raises(ValueError):
            outcome.transition(path[-1])
