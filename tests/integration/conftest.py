"""Pytest configuration for integration tests.

Integration tests run with semantic search enabled against a mocked Ollama
client, so ranking goes through the real embedding index and vector store.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from lingua_orchestrator.ollama import ModelInfo

# Vocabulary of the keyword-count embedding returned by the mocked client
VOCABULARY = ["audio", "lecture", "translate", "echo", "broken", "speech"]


def keyword_embedding(model: str, text: str) -> list[float]:
    """Embed text as counts of vocabulary words."""
    words = text.lower().replace(".", " ").replace(",", " ").split()
    return [float(words.count(term)) for term in VOCABULARY]


@pytest.fixture
def test_settings(test_settings):
    """Test settings with semantic search turned on."""
    return test_settings.model_copy(update={"semantic_search_enabled": True})


@pytest.fixture(autouse=True)
def mock_ollama_client():
    """Mock OllamaClient for all integration tests.

    This fixture patches the OllamaClient class before the app is created,
    ensuring the lifespan uses our mock instead of creating a real client.
    """
    with patch("lingua_orchestrator.app.OllamaClient") as mock_client_class:
        mock_instance = AsyncMock()
        mock_instance.host = "http://localhost:11434"
        mock_instance.check_connection.return_value = True
        mock_instance.get_model_info.return_value = ModelInfo(
            name="nomic-embed-text",
            format="gguf",
            family="nomic-bert",
            parameter_size="137M",
            capabilities=["embedding"],
            embedding_length=len(VOCABULARY),
        )
        mock_instance.embed.side_effect = keyword_embedding

        # Return the mock instance when OllamaClient is instantiated
        mock_client_class.return_value = mock_instance

        yield mock_instance


def parse_sse(text: str) -> list[dict]:
    """Parse an SSE response body into a list of {"event", "data"} dicts."""
    events = []
    # Normalize line endings and split by double newline
    for chunk in text.replace("\r\n", "\n").strip().split("\n\n"):
        event_type = None
        event_data = None
        for part in chunk.split("\n"):
            if part.startswith("event:"):
                event_type = part.split(":", 1)[1].strip()
            elif part.startswith("data:"):
                event_data = part.split(":", 1)[1].strip()
        if event_type and event_data:
            events.append({"event": event_type, "data": json.loads(event_data)})
    return events


@pytest.fixture
def sse_events():
    """Parser turning an SSE response body into events."""
    return parse_sse
