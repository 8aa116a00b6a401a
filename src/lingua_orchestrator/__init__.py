"""lingua-orchestrator: Discovery, ranking and execution of language-learning agents.

This package discovers agents and workflows from a catalog directory, ranks
them against free-text intent with Ollama embeddings, and runs them as
external processes behind a REST API and SSE streaming interface.
"""

from lingua_orchestrator.app import create_app

__version__ = "0.1.0"

__all__ = ["create_app", "__version__"]
