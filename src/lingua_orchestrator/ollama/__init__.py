"""Ollama client wrapper used as the embedding provider.

This package provides an async client wrapper for communicating with the
Ollama API. All Ollama interactions are async.
"""

from lingua_orchestrator.ollama.client import OllamaClient
from lingua_orchestrator.ollama.types import ModelInfo

__all__ = ["OllamaClient", "ModelInfo"]
