"""Pytest configuration and shared fixtures for lingua-orchestrator tests.

This module provides common fixtures used across all test modules,
including a sample agent catalog, test app creation and async client setup.

Agents in the sample catalog are tiny Python programs run with the current
interpreter, so the tests exercise real subprocesses.
"""

import json
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from lingua_orchestrator import create_app
from lingua_orchestrator.config import OrchestratorSettings

# Writes argv[2] to the file argv[1]
WRITE_CODE = "import sys, pathlib; pathlib.Path(sys.argv[1]).write_text(sys.argv[2])"

# Reads argv[1], writes "<target language>:<TEXT>" to argv[2]
TRANSLATE_CODE = (
    "import os, sys, pathlib; "
    "text = pathlib.Path(sys.argv[1]).read_text(); "
    "pathlib.Path(sys.argv[2]).write_text("
    "os.environ['AGENT_TARGET_LANGUAGE'] + ':' + text.upper())"
)

# Reads argv[1], writes its upper-cased text to argv[2]
UPPER_CODE = (
    "import sys, pathlib; "
    "pathlib.Path(sys.argv[2]).write_text(pathlib.Path(sys.argv[1]).read_text().upper())"
)

FAIL_CODE = "import sys; sys.stderr.write('boom: model unavailable'); sys.exit(3)"


def write_agent(catalog_dir: Path, dir_name: str, manifest: dict) -> Path:
    """Write an agent manifest to <catalog>/agents/<dir_name>/agent.json."""
    agent_dir = catalog_dir / "agents" / dir_name
    agent_dir.mkdir(parents=True, exist_ok=True)
    path = agent_dir / "agent.json"
    path.write_text(json.dumps(manifest), encoding="utf-8")
    return path


def write_workflow(catalog_dir: Path, file_name: str, manifest: dict) -> Path:
    """Write a workflow manifest to <catalog>/workflows/<file_name>."""
    workflows_dir = catalog_dir / "workflows"
    workflows_dir.mkdir(parents=True, exist_ok=True)
    path = workflows_dir / file_name
    path.write_text(json.dumps(manifest), encoding="utf-8")
    return path


def python_agent(name: str, code: str, *args: str, **fields) -> dict:
    """Build a manifest for an agent running `python -c code args...`."""
    manifest = {
        "name": name,
        "executable": sys.executable,
        "arguments": ["-c", code, *args],
    }
    manifest.update(fields)
    return manifest


def build_sample_catalog(catalog_dir: Path) -> Path:
    """Populate a catalog with a two-step translation workflow and helpers."""
    write_agent(
        catalog_dir,
        "transcriber",
        python_agent(
            "Transcriber",
            WRITE_CODE,
            "{transcript}",
            "transcribed {audio_file}",
            description="Transcribes lecture audio recordings into text",
            descriptions={"de": "Transkribiert Vorlesungsaufnahmen"},
            keywords=["audio", "speech", "transcribe"],
            category="Language",
            capabilities=["transcribe"],
        ),
    )
    write_agent(
        catalog_dir,
        "translator",
        python_agent(
            "Translator",
            TRANSLATE_CODE,
            "{transcript}",
            "{translation}",
            description="Translates text into the target language",
            keywords=["translate", "language"],
            category="Language",
        ),
    )
    write_agent(
        catalog_dir,
        "upper",
        python_agent(
            "Echo Translator",
            UPPER_CODE,
            "{input}",
            "{output}",
            description="Upper-cases text as a stand-in translation",
            keywords=["echo"],
            capabilities=["translate"],
        ),
    )
    write_agent(
        catalog_dir,
        "failer",
        python_agent(
            "Failer",
            FAIL_CODE,
            description="Always fails",
            keywords=["broken"],
        ),
    )
    write_workflow(
        catalog_dir,
        "lecture_translation.json",
        {
            "name": "Lecture Translation",
            "description": "Transcribe a lecture recording and translate the transcript",
            "steps": ["Transcriber", "Translator"],
            "output_mappings": {
                "Transcriber": ["transcript"],
                "Translator": ["translation"],
            },
            "inputs": ["audio_file"],
            "keywords": ["lecture", "translate", "audio"],
            "category": "Language",
        },
    )
    return catalog_dir


@pytest.fixture
def catalog_dir(tmp_path):
    """Create the sample catalog under tmp_path/catalog."""
    return build_sample_catalog(tmp_path / "catalog")


@pytest.fixture
def test_settings(tmp_path, catalog_dir):
    """Create test settings with isolated temporary directories.

    Semantic search is off so that no test talks to a real Ollama server;
    the integration tests turn it on against a mocked client.

    Args:
        tmp_path: Pytest fixture providing a temporary directory.
        catalog_dir: The sample catalog fixture.

    Returns:
        OrchestratorSettings: Settings instance configured for testing.
    """
    return OrchestratorSettings(
        host="127.0.0.1",
        port=8000,
        ollama_host="http://localhost:11434",
        data_dir=str(tmp_path),
        catalog_dir="catalog",
        vector_store_path="embeddings/catalog_embeddings.json",
        runs_dir="runs",
        semantic_search_enabled=False,
        retry_max_retries=1,
        retry_initial_delay=0.01,
        step_timeout_seconds=30.0,
        termination_grace_seconds=1.0,
        log_level="DEBUG",
        cors_origins=["*"],
    )


@pytest.fixture
def test_app(test_settings):
    """Create a FastAPI test application instance.

    Args:
        test_settings: Test settings fixture.

    Returns:
        FastAPI: Configured test application.
    """
    return create_app(settings=test_settings)


@pytest_asyncio.fixture
async def async_client(test_app):
    """Create an async HTTP client for testing FastAPI endpoints.

    Args:
        test_app: Test application fixture.

    Yields:
        AsyncClient: Async HTTP client for making test requests.
    """
    # Trigger the lifespan startup manually for tests
    async with test_app.router.lifespan_context(test_app):
        transport = ASGITransport(app=test_app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


@pytest.fixture
def agent_manifest():
    """Factory building manifests for agents run as `python -c code args...`."""
    return python_agent


@pytest.fixture
def add_agent(catalog_dir):
    """Add an agent manifest to the sample catalog."""

    def _add(dir_name: str, manifest: dict) -> Path:
        return write_agent(catalog_dir, dir_name, manifest)

    return _add


@pytest.fixture
def add_workflow(catalog_dir):
    """Add a workflow manifest to the sample catalog."""

    def _add(file_name: str, manifest: dict) -> Path:
        return write_workflow(catalog_dir, file_name, manifest)

    return _add
