"""Integration tests for the run endpoint."""

import asyncio
from pathlib import Path

import pytest
from httpx import AsyncClient

from lingua_orchestrator.errors import EmbeddingProviderError


@pytest.mark.asyncio
async def test_run_workflow(async_client: AsyncClient, test_settings):
    response = await async_client.post(
        "/api/v1/runs",
        json={
            "workflow": "Lecture Translation",
            "target_language": "de",
            "inputs": {"audio_file": "talk.mp3"},
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "succeeded"
    assert data["kind"] == "workflow"
    assert data["failed_step"] is None
    assert data["error"] is None
    assert [step["status"] for step in data["steps"]] == ["succeeded", "succeeded"]
    assert Path(data["output_dir"]).parent == test_settings.resolved_runs_dir
    assert len(data["artifacts"]) == 2
    assert Path(data["artifacts"][-1]).read_text() == "de:TRANSCRIBED TALK.MP3"


@pytest.mark.asyncio
async def test_run_uses_server_language_by_default(async_client: AsyncClient):
    response = await async_client.post(
        "/api/v1/runs",
        json={"workflow": "Lecture Translation", "inputs": {"audio_file": "a.wav"}},
    )

    artifact = Path(response.json()["artifacts"][-1])
    assert artifact.read_text() == "en:TRANSCRIBED A.WAV"


@pytest.mark.asyncio
async def test_run_failing_agent(async_client: AsyncClient):
    """A failed step is reported in the body, not as an HTTP error."""
    response = await async_client.post("/api/v1/runs", json={"agent": "Failer"})

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "failed"
    assert data["kind"] == "agent"
    assert data["failed_step"] == 1
    assert data["error"]["exit_code"] == 3
    assert "boom: model unavailable" in data["error"]["diagnostic"]
    assert data["steps"][0]["status"] == "failed"


@pytest.mark.asyncio
async def test_run_by_intent(async_client: AsyncClient):
    response = await async_client.post(
        "/api/v1/runs",
        json={"intent": "translate the lecture audio", "inputs": {"audio_file": "x.mp3"}},
    )

    assert response.status_code == 200
    assert response.json()["name"] == "Lecture Translation"


@pytest.mark.asyncio
async def test_intent_without_match(async_client: AsyncClient, mock_ollama_client):
    mock_ollama_client.embed.side_effect = EmbeddingProviderError("down", status_code=400)

    response = await async_client.post("/api/v1/runs", json={"intent": "quantum physics"})

    assert response.status_code == 404
    assert response.json()["detail"]["error"]["code"] == "no_match"


@pytest.mark.asyncio
async def test_run_unknown_workflow(async_client: AsyncClient):
    response = await async_client.post("/api/v1/runs", json={"workflow": "Nope"})

    assert response.status_code == 404
    error = response.json()["detail"]["error"]
    assert error["code"] == "workflow_not_found"
    assert error["details"] == {"name": "Nope"}


@pytest.mark.asyncio
async def test_run_agent_name_as_workflow(async_client: AsyncClient):
    response = await async_client.post("/api/v1/runs", json={"workflow": "Transcriber"})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_run_missing_inputs(async_client: AsyncClient, test_settings):
    response = await async_client.post(
        "/api/v1/runs", json={"workflow": "Lecture Translation"}
    )

    assert response.status_code == 400
    error = response.json()["detail"]["error"]
    assert error["code"] == "missing_inputs"
    assert error["details"]["missing"] == ["audio_file"]
    assert not test_settings.resolved_runs_dir.exists()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {},
        {"inputs": {"a": "b"}},
        {"workflow": "Lecture Translation", "agent": "Failer"},
        {"agent": "Failer", "step_timeout": 0},
        {"agent": "Failer", "retries": 11},
    ],
)
async def test_run_validation(async_client: AsyncClient, body):
    response = await async_client.post("/api/v1/runs", json=body)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_concurrent_runs_get_separate_directories(async_client: AsyncClient):
    responses = await asyncio.gather(
        *(
            async_client.post(
                "/api/v1/runs",
                json={"workflow": "Lecture Translation", "inputs": {"audio_file": name}},
            )
            for name in ["one.mp3", "two.mp3", "three.mp3"]
        )
    )

    data = [r.json() for r in responses]
    assert len({d["output_dir"] for d in data}) == 3
    assert [Path(d["artifacts"][-1]).read_text() for d in data] == [
        "en:TRANSCRIBED ONE.MP3",
        "en:TRANSCRIBED TWO.MP3",
        "en:TRANSCRIBED THREE.MP3",
    ]
