"""Typed capability interfaces served by catalog agents.

Agents declare capabilities in their manifests. A ProcessCapabilityAdapter
runs such an agent with two placeholders:

    {input}   path of a file holding the input
    {output}  path the agent must write its result to

and returns the text of the output file.
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Protocol, runtime_checkable

from lingua_orchestrator.catalog.types import AgentDescriptor, WorkflowDescriptor
from lingua_orchestrator.errors import OrchestratorError
from lingua_orchestrator.execution.engine import ExecutionEngine, generate_run_id
from lingua_orchestrator.execution.plan import slugify
from lingua_orchestrator.execution.types import ExecutionContext

logger = logging.getLogger(__name__)

INPUT_PLACEHOLDER = "input"
OUTPUT_PLACEHOLDER = "output"


@runtime_checkable
class Transcriber(Protocol):
    async def transcribe(self, path: Path, context: ExecutionContext | None = None) -> str: ...


@runtime_checkable
class Translator(Protocol):
    async def translate(self, text: str, context: ExecutionContext | None = None) -> str: ...


@runtime_checkable
class TextExtractor(Protocol):
    async def extract_text(
        self, image_path: Path, context: ExecutionContext | None = None
    ) -> str: ...


@runtime_checkable
class Summarizer(Protocol):
    async def summarize(self, text: str, context: ExecutionContext | None = None) -> str: ...


@runtime_checkable
class DiagramGenerator(Protocol):
    async def generate_diagram(
        self, text: str, context: ExecutionContext | None = None
    ) -> str: ...


# Protocol -> capability name declared in agent manifests
CAPABILITY_NAMES: dict[type, str] = {
    Transcriber: "transcribe",
    Translator: "translate",
    TextExtractor: "extract_text",
    Summarizer: "summarize",
    DiagramGenerator: "generate_diagram",
}


class ProcessCapabilityAdapter:
    """Serves every capability interface by running one agent process.

    Attributes:
        agent: Agent that implements the capability
        engine: Engine used to run the agent
    """

    def __init__(self, agent: AgentDescriptor, engine: ExecutionEngine) -> None:
        self.agent = agent
        self.engine = engine

    async def transcribe(self, path: Path, context: ExecutionContext | None = None) -> str:
        return await self._invoke("transcribe", context, input_path=path)

    async def translate(self, text: str, context: ExecutionContext | None = None) -> str:
        return await self._invoke("translate", context, text=text)

    async def extract_text(
        self, image_path: Path, context: ExecutionContext | None = None
    ) -> str:
        return await self._invoke("extract_text", context, input_path=image_path)

    async def summarize(self, text: str, context: ExecutionContext | None = None) -> str:
        return await self._invoke("summarize", context, text=text)

    async def generate_diagram(
        self, text: str, context: ExecutionContext | None = None
    ) -> str:
        return await self._invoke("generate_diagram", context, text=text)

    def _workflow(self) -> WorkflowDescriptor:
        return WorkflowDescriptor(
            name=self.agent.name,
            description=self.agent.description,
            steps=(self.agent,),
            output_mappings={self.agent.name: (OUTPUT_PLACEHOLDER,)},
            inputs=(INPUT_PLACEHOLDER,),
        )

    async def _invoke(
        self,
        capability: str,
        context: ExecutionContext | None,
        text: str | None = None,
        input_path: Path | None = None,
    ) -> str:
        """Run the agent on one input and return the text it wrote.

        Raises:
            WorkflowAborted: The agent failed or timed out
            OrchestratorError: The agent was cancelled or wrote no output
        """
        context = context or ExecutionContext()
        run_dir = context.output_dir or (
            self.engine.output_root / f"{slugify(self.agent.name)}-{generate_run_id()}"
        )
        run_dir.mkdir(parents=True, exist_ok=True)

        if input_path is None:
            input_path = run_dir / "input.txt"
            input_path.write_text(text or "", encoding="utf-8")

        inputs = {**context.inputs, INPUT_PLACEHOLDER: str(input_path)}
        run_context = replace(context, output_dir=run_dir, inputs=inputs)

        logger.info(f"Running '{self.agent.name}' for capability '{capability}'")
        result = await self.engine.execute_workflow(self._workflow(), run_context)
        result.raise_for_failure()
        if not result.succeeded:
            raise OrchestratorError(f"'{self.agent.name}' did not complete: {result.status}")
        if not result.artifacts:
            raise OrchestratorError(
                f"'{self.agent.name}' produced no output for capability '{capability}'"
            )

        return Path(result.artifacts[0]).read_text(encoding="utf-8")
