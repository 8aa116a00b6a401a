"""Orchestrator service tying discovery, ranking and execution together.

One OrchestratorService serves a session: the catalog is discovered once by
load_catalog() and then used unchanged by find(), resolve() and run().
"""

import asyncio
import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Sequence

from lingua_orchestrator.catalog.discovery import CatalogDiscoveryService
from lingua_orchestrator.catalog.types import (
    AgentDescriptor,
    Catalog,
    Descriptor,
    LanguageContext,
)
from lingua_orchestrator.embeddings.index import EmbeddingIndex
from lingua_orchestrator.errors import (
    EmbeddingProviderError,
    RetryExhaustedError,
    VectorStoreError,
    WorkflowAborted,
)
from lingua_orchestrator.execution.engine import ExecutionEngine
from lingua_orchestrator.execution.types import (
    ExecutionContext,
    ExecutionResult,
)
from lingua_orchestrator.resilience.retry import RetryPolicy
from lingua_orchestrator.services.capabilities import (
    CAPABILITY_NAMES,
    ProcessCapabilityAdapter,
)

logger = logging.getLogger(__name__)

SEMANTIC = "semantic"
KEYWORD = "keyword"

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


@dataclass(frozen=True)
class RankedEntry:
    """A catalog entry matched against a query."""

    descriptor: Descriptor
    score: float
    method: str

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def kind(self) -> str:
        return self.descriptor.kind


@dataclass(frozen=True)
class RunRequest:
    """One invocation for OrchestratorService.run_many()."""

    intent: str | None = None
    selection: str | None = None
    kind: str | None = None
    context: ExecutionContext | None = None
    retries: int = 0


def _tokens(text: str) -> set[str]:
    return set(_TOKEN_PATTERN.findall(text.lower()))


def keyword_rank(
    query: str, entries: Sequence[Descriptor], top_k: int
) -> list[tuple[Descriptor, float]]:
    """Rank entries by the share of query tokens found in their text.

    Name tokens, keywords and description tokens all count. Entries with no
    overlap are dropped; ties keep catalog order.
    """
    query_tokens = _tokens(query)
    if not query_tokens or top_k <= 0:
        return []

    scored: list[tuple[Descriptor, float]] = []
    for entry in entries:
        entry_tokens = _tokens(entry.name) | _tokens(entry.description)
        for keyword in entry.keywords:
            entry_tokens |= _tokens(keyword)
        overlap = len(query_tokens & entry_tokens)
        if overlap:
            scored.append((entry, overlap / len(query_tokens)))

    scored.sort(key=lambda item: item[1], reverse=True)
    return scored[:top_k]


class OrchestratorService:
    """Session façade over discovery, the embedding index and the engine.

    Attributes:
        discovery: Catalog discovery service
        index: Embedding index used for semantic ranking
        engine: Execution engine
        retry_policy: Policy used when a run asks for retries
        top_k: Default number of ranked results
        semantic_search_enabled: Use embeddings for ranking; keyword ranking otherwise
        catalog: Catalog of the session (empty until load_catalog())
    """

    def __init__(
        self,
        discovery: CatalogDiscoveryService,
        index: EmbeddingIndex | None,
        engine: ExecutionEngine,
        retry_policy: RetryPolicy | None = None,
        top_k: int = 3,
        semantic_search_enabled: bool = True,
    ) -> None:
        self.discovery = discovery
        self.index = index
        self.engine = engine
        self.retry_policy = retry_policy or RetryPolicy()
        self.top_k = top_k
        self.semantic_search_enabled = semantic_search_enabled
        self.catalog = Catalog()

    def load_catalog(self, language: LanguageContext | None = None) -> Catalog:
        """Discover the catalog for this session."""
        self.catalog = self.discovery.discover(language or LanguageContext())
        return self.catalog

    async def find(
        self,
        query: str,
        top_k: int | None = None,
        kind: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[RankedEntry]:
        """Rank catalog entries against a free-text query.

        Semantic ranking is used when enabled. If the embedding provider or
        the vector store fails, ranking falls back to keyword matching.

        Args:
            query: Free-text intent
            top_k: Maximum number of results (service default when None)
            kind: Restrict to "agent" or "workflow"
            cancel_event: Cancels in-flight ranking once set

        Returns:
            Ranked entries, best first
        """
        top_k = self.top_k if top_k is None else top_k
        entries = self.catalog.entries(kind)
        if not entries or top_k <= 0:
            return []

        if self.semantic_search_enabled and self.index is not None:
            try:
                ranked = await self.index.rank(query, entries, top_k, cancel_event=cancel_event)
            except (EmbeddingProviderError, RetryExhaustedError, VectorStoreError) as e:
                logger.warning(f"Semantic search failed, falling back to keywords: {e}")
            else:
                by_name = {entry.name: entry for entry in entries}
                return [
                    RankedEntry(by_name[name], score, SEMANTIC)
                    for name, score in ranked
                    if name in by_name
                ]

        return [
            RankedEntry(entry, score, KEYWORD)
            for entry, score in keyword_rank(query, entries, top_k)
        ]

    async def resolve(
        self,
        intent: str | None = None,
        selection: str | None = None,
        kind: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Descriptor:
        """Pick the descriptor to run.

        An explicit selection wins over the intent.

        Raises:
            KeyError: If the selection is not in the catalog
            LookupError: If nothing matches the intent
            ValueError: If neither intent nor selection is given
        """
        if selection:
            descriptor = self.catalog.get(selection, kind)
            if descriptor is None:
                raise KeyError(selection)
            return descriptor

        if not intent:
            raise ValueError("Either an intent or a selection is required")

        ranked = await self.find(intent, top_k=1, kind=kind, cancel_event=cancel_event)
        if not ranked:
            raise LookupError(f"No catalog entry matches '{intent}'")
        logger.info(
            f"Resolved intent {intent!r} to {ranked[0].kind} '{ranked[0].name}' "
            f"({ranked[0].method}, score {ranked[0].score:.3f})"
        )
        return ranked[0].descriptor

    async def execute(
        self,
        descriptor: Descriptor,
        context: ExecutionContext | None = None,
        cancel_event: asyncio.Event | None = None,
        events: asyncio.Queue | None = None,
    ) -> ExecutionResult:
        """Run a resolved descriptor once."""
        if isinstance(descriptor, AgentDescriptor):
            return await self.engine.execute_agent(descriptor, context, cancel_event, events)
        return await self.engine.execute_workflow(descriptor, context, cancel_event, events)

    async def run(
        self,
        intent: str | None = None,
        selection: str | None = None,
        context: ExecutionContext | None = None,
        cancel_event: asyncio.Event | None = None,
        events: asyncio.Queue | None = None,
        retries: int = 0,
        kind: str | None = None,
    ) -> ExecutionResult:
        """Resolve and run a workflow or agent.

        With retries > 0 a run that aborts on a timed-out step is started
        again, up to retries more times, each attempt in its own output
        directory. Other failures are returned as they are.

        Returns:
            ExecutionResult of the last attempt
        """
        descriptor = await self.resolve(intent, selection, kind, cancel_event)
        context = context or ExecutionContext()
        if retries <= 0:
            return await self.execute(descriptor, context, cancel_event, events)

        attempts: list[ExecutionResult] = []

        async def _attempt() -> ExecutionResult:
            attempt_context = context
            if context.output_dir is not None and attempts:
                attempt_context = context.with_output_dir(
                    context.output_dir / f"attempt-{len(attempts) + 1}"
                )
            result = await self.execute(descriptor, attempt_context, cancel_event, events)
            attempts.append(result)
            result.raise_for_failure()
            return result

        def _timed_out(error: BaseException) -> bool:
            return isinstance(error, WorkflowAborted) and error.failure.timed_out

        policy = replace(self.retry_policy, max_retries=retries)
        try:
            return await policy.run(
                _attempt,
                retry_predicate=_timed_out,
                cancel_event=cancel_event,
                operation_name=f"run of '{descriptor.name}'",
            )
        except (WorkflowAborted, RetryExhaustedError):
            return attempts[-1]

    async def run_many(self, requests: Sequence[RunRequest]) -> list[ExecutionResult]:
        """Run several invocations concurrently.

        Every invocation gets its own output directory. Results are returned
        in request order.
        """
        tasks = [
            asyncio.create_task(
                self.run(
                    intent=request.intent,
                    selection=request.selection,
                    context=request.context,
                    retries=request.retries,
                    kind=request.kind,
                )
            )
            for request in requests
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    def capability(self, protocol: type) -> ProcessCapabilityAdapter:
        """Return an adapter for the first agent implementing a capability.

        Args:
            protocol: One of the capability protocols, e.g. Translator

        Raises:
            ValueError: If protocol is not a capability interface
            LookupError: If no agent declares the capability
        """
        capability = CAPABILITY_NAMES.get(protocol)
        if capability is None:
            raise ValueError(f"{protocol!r} is not a capability interface")

        for agent in self.catalog.agents:
            if capability in agent.capabilities:
                return ProcessCapabilityAdapter(agent, self.engine)
        raise LookupError(f"No agent provides the '{capability}' capability")

    def summary(self) -> dict[str, Any]:
        return {
            "agents": len(self.catalog.agents),
            "workflows": len(self.catalog.workflows),
            "errors": len(self.catalog.errors),
            "semantic_search_enabled": self.semantic_search_enabled,
        }
