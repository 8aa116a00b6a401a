"""FastAPI application factory and lifespan management.

This module contains the create_app() factory function that creates and configures
the FastAPI application instance, including lifespan management for startup/shutdown
and router registration.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lingua_orchestrator.catalog import CatalogDiscoveryService, LanguageContext
from lingua_orchestrator.config import OrchestratorSettings
from lingua_orchestrator.embeddings import EmbeddingIndex, JsonVectorStore
from lingua_orchestrator.execution import ExecutionEngine
from lingua_orchestrator.ollama import OllamaClient
from lingua_orchestrator.resilience import RetryPolicy
from lingua_orchestrator.routers import catalog, health, runs, search
from lingua_orchestrator.services import OrchestratorService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan context manager for FastAPI application.

    Settings are validated before anything else, so a misconfigured server
    never accepts a run. The Ollama client, vector store, engine and
    orchestrator are then created once and stored in app.state, and the
    catalog is discovered for the session.

    Args:
        app: The FastAPI application instance.

    Yields:
        None: Control is yielded while the app is running.

    Raises:
        ConfigurationError: If the settings cannot support execution.
    """
    settings: OrchestratorSettings = app.state.settings
    settings.validate_startup()

    app.state.ollama_client = OllamaClient(
        host=settings.ollama_host, api_key=settings.ollama_api_key
    )
    logger.info(f"Initialized Ollama client with host: {settings.ollama_host}")

    retry_policy = RetryPolicy.from_settings(settings)
    store = JsonVectorStore(settings.resolved_vector_store_path)
    index = EmbeddingIndex(
        provider=app.state.ollama_client,
        store=store,
        model=settings.embedding_model,
        retry_policy=retry_policy,
    )
    engine = ExecutionEngine(
        output_root=settings.resolved_runs_dir,
        step_timeout=settings.step_timeout_seconds,
        termination_grace=settings.termination_grace_seconds,
        concurrent_steps=settings.concurrent_steps,
    )
    orchestrator = OrchestratorService(
        discovery=CatalogDiscoveryService(settings.resolved_catalog_dir),
        index=index,
        engine=engine,
        retry_policy=retry_policy,
        top_k=settings.search_top_k,
        semantic_search_enabled=settings.semantic_search_enabled,
    )
    orchestrator.load_catalog(
        LanguageContext(settings.target_language, settings.source_language)
    )
    app.state.orchestrator = orchestrator

    if settings.semantic_search_enabled:
        connected = await app.state.ollama_client.check_connection()
        if connected:
            logger.info("Successfully connected to Ollama")
            model_info = await app.state.ollama_client.get_model_info(
                settings.embedding_model
            )
            if model_info is None:
                logger.warning(
                    f"Embedding model '{settings.embedding_model}' not found, "
                    f"search will fall back to keywords until it is pulled"
                )
            elif model_info.capabilities and not model_info.supports_embedding:
                logger.warning(
                    f"Model '{settings.embedding_model}' does not support embeddings "
                    f"(capabilities: {', '.join(model_info.capabilities)}), "
                    f"search will fall back to keywords"
                )
            elif (
                model_info.embedding_length is not None
                and store.dimension is not None
                and model_info.embedding_length != store.dimension
            ):
                logger.warning(
                    f"Embedding model '{settings.embedding_model}' produces "
                    f"{model_info.embedding_length}-dimensional vectors but the vector "
                    f"store holds {store.dimension}-dimensional ones"
                )
        else:
            logger.warning("Could not connect to Ollama - search will fall back to keywords")

    yield

    # Shutdown: Clean up resources
    if hasattr(app.state, "ollama_client"):
        await app.state.ollama_client.close()
        logger.info("Ollama client closed")


def create_app(settings: OrchestratorSettings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional OrchestratorSettings instance. If not provided,
                  settings will be loaded from environment variables.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        from lingua_orchestrator.dependencies import get_settings

        settings = get_settings()

    app = FastAPI(
        title="lingua-orchestrator",
        description="Orchestration server discovering, ranking and running language-learning agents",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store settings in app.state for lifespan access
    app.state.settings = settings

    # Note: FastAPI's type hints for add_middleware are overly strict
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(catalog.router)
    app.include_router(search.router)
    app.include_router(runs.router)

    return app
