"""Embedding index and vector store for semantic catalog search."""

from lingua_orchestrator.embeddings.index import (
    EmbeddingIndex,
    EmbeddingProvider,
    cosine_scores,
    cosine_similarity,
)
from lingua_orchestrator.embeddings.store import EmbeddingRecord, JsonVectorStore

__all__ = [
    "EmbeddingIndex",
    "EmbeddingProvider",
    "EmbeddingRecord",
    "JsonVectorStore",
    "cosine_scores",
    "cosine_similarity",
]
