"""Metadata of the Ollama embedding model, read at start-up to check that the
configured model exists and produces embeddings.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class ModelInfo:
    """Information about an Ollama model.

    Attributes:
        name: Full model name (e.g., "nomic-embed-text:latest")
        format: Model format (e.g., "gguf")
        family: Model family (e.g., "nomic-bert")
        parameter_size: Human-readable parameter count (e.g., "137M")
        capabilities: List of model capabilities (e.g., ["embedding"])
        embedding_length: Vector length produced by the model, if reported
    """

    name: str
    format: str
    family: str
    parameter_size: str
    capabilities: list[str]
    embedding_length: int | None = None

    @property
    def supports_embedding(self) -> bool:
        return "embedding" in self.capabilities

    @staticmethod
    def from_ollama_model(model_data: Any, name: str | None = None) -> "ModelInfo":
        """Create a ModelInfo instance from an Ollama show response.

        Args:
            model_data: Raw model data from Ollama API (show response)
            name: Model name used for the lookup (the show response omits it)

        Returns:
            ModelInfo: Parsed model information
        """

        # Helper to get value from either object attribute or dict key
        def get_value(obj: Any, key: str, default: Any = None) -> Any:
            if isinstance(obj, dict):
                return obj.get(key, default)
            if hasattr(obj, key):
                return getattr(obj, key, default)
            return default

        model_name = name or get_value(model_data, "model") or "unknown"

        details = get_value(model_data, "details", {}) or {}
        format_str = get_value(details, "format", "unknown")
        family = get_value(details, "family", "unknown")
        parameter_size = get_value(details, "parameter_size", "unknown")

        capabilities = list(get_value(model_data, "capabilities", []) or [])

        # Embedding length lives under a family-specific key in modelinfo
        modelinfo = get_value(model_data, "modelinfo", {}) or {}
        embedding_length = None
        if isinstance(modelinfo, dict):
            key = f"{family}.embedding_length"
            if key in modelinfo:
                embedding_length = int(modelinfo[key])
            elif "embedding_length" in modelinfo:
                embedding_length = int(modelinfo["embedding_length"])

        return ModelInfo(
            name=model_name,
            format=format_str,
            family=family,
            parameter_size=parameter_size,
            capabilities=capabilities,
            embedding_length=embedding_length,
        )
