"""CLI entry point for lingua-orchestrator.

This module provides the command-line interface for starting the server.
It can be invoked as `lingua-orchestrator` (via the script entry point) or
`python -m lingua_orchestrator`.
"""

import argparse
import logging
import sys

import uvicorn

from lingua_orchestrator import __version__, create_app
from lingua_orchestrator.config import OrchestratorSettings
from lingua_orchestrator.errors import ConfigurationError


def main() -> int:
    """Main entry point for the lingua-orchestrator CLI.

    Parses command-line arguments and starts the uvicorn server with the
    FastAPI application.

    Returns:
        Process exit code
    """
    parser = argparse.ArgumentParser(
        prog="lingua-orchestrator",
        description="Discover, rank and run language-learning agents",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"lingua-orchestrator {__version__}",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind the server to (default: 127.0.0.1, can be set via LINGUA_HOST)",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind the server to (default: 8000, can be set via LINGUA_PORT)",
    )

    parser.add_argument(
        "--ollama-host",
        type=str,
        default=None,
        help="Ollama server URL (default: http://localhost:11434, can be set via LINGUA_OLLAMA_HOST)",
    )

    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Base directory for all data (default: ., can be set via LINGUA_DATA_DIR)",
    )

    parser.add_argument(
        "--catalog-dir",
        type=str,
        default=None,
        help="Catalog root relative to the data dir (default: catalog, can be set via LINGUA_CATALOG_DIR)",
    )

    parser.add_argument(
        "--target-language",
        type=str,
        default=None,
        help="Default output language (default: en, can be set via LINGUA_TARGET_LANGUAGE)",
    )

    parser.add_argument(
        "--no-semantic-search",
        action="store_true",
        help="Rank with keyword matching only, without contacting Ollama",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO, can be set via LINGUA_LOG_LEVEL)",
    )

    args = parser.parse_args()

    # Build settings, CLI args override environment variables
    settings_kwargs = {}
    if args.host is not None:
        settings_kwargs["host"] = args.host
    if args.port is not None:
        settings_kwargs["port"] = args.port
    if args.ollama_host is not None:
        settings_kwargs["ollama_host"] = args.ollama_host
    if args.data_dir is not None:
        settings_kwargs["data_dir"] = args.data_dir
    if args.catalog_dir is not None:
        settings_kwargs["catalog_dir"] = args.catalog_dir
    if args.target_language is not None:
        settings_kwargs["target_language"] = args.target_language
    if args.no_semantic_search:
        settings_kwargs["semantic_search_enabled"] = False
    if args.log_level is not None:
        settings_kwargs["log_level"] = args.log_level

    settings = OrchestratorSettings(**settings_kwargs)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Fail before binding the port when the configuration is unusable
    try:
        settings.validate_startup()
    except ConfigurationError as e:
        print(f"lingua-orchestrator: {e}", file=sys.stderr)
        return 2

    app = create_app(settings=settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
