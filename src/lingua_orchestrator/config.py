"""Configuration module for lingua-orchestrator using pydantic-settings."""

from pathlib import Path
from urllib.parse import urlparse

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from lingua_orchestrator.errors import ConfigurationError

# Ollama endpoints that require an API key
HOSTED_OLLAMA_HOSTS = {"ollama.com", "www.ollama.com"}


class OrchestratorSettings(BaseSettings):
    """Main configuration settings for lingua-orchestrator.

    All settings can be overridden via environment variables with the LINGUA_ prefix.
    For example, LINGUA_EMBEDDING_MODEL will override the embedding_model setting.
    """

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    # Embedding provider (Ollama)
    ollama_host: str = "http://localhost:11434"
    ollama_api_key: str | None = None
    embedding_model: str = "nomic-embed-text"

    # Data directories (relative to data_dir)
    data_dir: str = "."
    catalog_dir: str = "catalog"
    vector_store_path: str = "embeddings/catalog_embeddings.json"
    runs_dir: str = "runs"

    # Default language context
    target_language: str = "en"
    source_language: str = ""

    # Search
    search_top_k: int = 3
    semantic_search_enabled: bool = True

    # Retry policy for provider calls
    retry_max_retries: int = 3
    retry_initial_delay: float = 1.0

    # Agent execution
    step_timeout_seconds: float = 600.0
    termination_grace_seconds: float = 5.0
    concurrent_steps: bool = False

    # CORS
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="LINGUA_")

    # --- Resolved paths (computed from data_dir + relative dirs) ---

    @property
    def resolved_catalog_dir(self) -> Path:
        """Get the full path to the agent/workflow catalog root."""
        return Path(self.data_dir) / self.catalog_dir

    @property
    def resolved_vector_store_path(self) -> Path:
        """Get the full path to the embedding store file."""
        return Path(self.data_dir) / self.vector_store_path

    @property
    def resolved_runs_dir(self) -> Path:
        """Get the full path to the directory holding run output namespaces."""
        return Path(self.data_dir) / self.runs_dir

    def validate_startup(self) -> None:
        """Check that the settings can support discovery and execution.

        Raises:
            ConfigurationError: Listing every problem found
        """
        problems: list[str] = []

        if not self.resolved_catalog_dir.is_dir():
            problems.append(f"catalog directory not found: {self.resolved_catalog_dir}")

        if self.semantic_search_enabled:
            if not self.embedding_model.strip():
                problems.append("embedding_model must be set when semantic search is enabled")
            hostname = urlparse(self.ollama_host).hostname or ""
            if hostname in HOSTED_OLLAMA_HOSTS and not self.ollama_api_key:
                problems.append(f"ollama_api_key is required for {self.ollama_host}")

        if self.step_timeout_seconds <= 0:
            problems.append("step_timeout_seconds must be positive")
        if self.termination_grace_seconds < 0:
            problems.append("termination_grace_seconds cannot be negative")
        if self.retry_max_retries < 0:
            problems.append("retry_max_retries cannot be negative")
        if self.search_top_k < 1:
            problems.append("search_top_k must be at least 1")

        if problems:
            raise ConfigurationError("Invalid configuration: " + "; ".join(problems))
