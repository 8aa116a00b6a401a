"""Orchestrator service and capability adapters."""

from lingua_orchestrator.services.capabilities import (
    DiagramGenerator,
    ProcessCapabilityAdapter,
    Summarizer,
    TextExtractor,
    Transcriber,
    Translator,
)
from lingua_orchestrator.services.orchestrator import (
    OrchestratorService,
    RankedEntry,
    RunRequest,
    keyword_rank,
)

__all__ = [
    "DiagramGenerator",
    "OrchestratorService",
    "ProcessCapabilityAdapter",
    "RankedEntry",
    "RunRequest",
    "Summarizer",
    "TextExtractor",
    "Transcriber",
    "Translator",
    "keyword_rank",
]
