"""Async Ollama client wrapper used as the embedding provider.

This module provides an async wrapper around the ollama.AsyncClient for
communicating with the Ollama API. The client is designed to be created once
at startup and reused.
"""

import logging
from typing import Any

import httpx
import ollama

from lingua_orchestrator.errors import EmbeddingProviderError
from lingua_orchestrator.ollama.types import ModelInfo

logger = logging.getLogger(__name__)


class OllamaClient:
    """Async client for interacting with the Ollama API.

    This client wraps ollama.AsyncClient and provides high-level async methods
    for checking connectivity, looking up models and computing embeddings.

    Attributes:
        host: The Ollama server URL (e.g., "http://localhost:11434")
        _client: The underlying ollama.AsyncClient instance
    """

    def __init__(self, host: str, api_key: str | None = None) -> None:
        """Initialize the Ollama client.

        Args:
            host: The Ollama server URL
            api_key: Optional bearer token for hosted Ollama endpoints
        """
        self.host = host
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else None
        self._client = ollama.AsyncClient(host=host, headers=headers)
        logger.info(f"OllamaClient initialized with host: {host}")

    async def check_connection(self) -> bool:
        """Check if the Ollama server is reachable.

        Returns:
            bool: True if connection is successful, False otherwise
        """
        try:
            await self._client.list()
            logger.debug("Ollama connection check: successful")
            return True
        except Exception as e:
            logger.warning(f"Ollama connection check failed: {e}")
            return False

    async def get_model_info(self, model_name: str) -> ModelInfo | None:
        """Get detailed information about a specific model.

        Args:
            model_name: Name of the model to query

        Returns:
            ModelInfo | None: Model information if found, None if not found

        Raises:
            Exception: If the Ollama API request fails (except for 404)
        """
        try:
            show_response = await self._client.show(model_name)
        except ollama.ResponseError as e:
            if e.status_code == 404:
                logger.debug(f"Model not found: {model_name}")
                return None
            logger.error(f"Ollama API error for model {model_name}: {e}")
            raise

        model_info = ModelInfo.from_ollama_model(show_response, name=model_name)
        logger.debug(f"Retrieved info for model: {model_name}")
        return model_info

    async def embed(self, model: str, text: str) -> list[float]:
        """Compute the embedding vector for a piece of text.

        Provider failures are translated into EmbeddingProviderError carrying
        the HTTP status and a transient flag, so retry predicates can decide
        whether to try again.

        Args:
            model: Embedding model name (e.g., "nomic-embed-text")
            text: Text to embed

        Returns:
            list[float]: The embedding vector (may be empty if the provider
            returned nothing; callers decide how to treat that)

        Raises:
            EmbeddingProviderError: If the provider is unreachable or rejects the request
        """
        try:
            response = await self._client.embed(model=model, input=text)
        except ollama.ResponseError as e:
            logger.warning(f"Ollama embed failed with status {e.status_code}: {e.error}")
            raise EmbeddingProviderError(
                f"Embedding request failed: {e.error}",
                status_code=e.status_code,
            ) from e
        except (httpx.TimeoutException, TimeoutError) as e:
            raise EmbeddingProviderError(
                f"Embedding request timed out: {e}", transient=True
            ) from e
        except (httpx.TransportError, ConnectionError) as e:
            raise EmbeddingProviderError(
                f"Embedding provider unreachable at {self.host}: {e}", transient=True
            ) from e

        embeddings = _get_value(response, "embeddings", []) or []
        if not embeddings:
            return []
        return [float(x) for x in embeddings[0]]

    async def close(self) -> None:
        """Close the client and clean up resources.

        ollama.AsyncClient uses httpx internally which handles cleanup.
        """
        logger.debug("OllamaClient closed")


def _get_value(obj: Any, key: str, default: Any = None) -> Any:
    if hasattr(obj, key):
        return getattr(obj, key, default)
    if isinstance(obj, dict):
        return obj.get(key, default)
    return default
