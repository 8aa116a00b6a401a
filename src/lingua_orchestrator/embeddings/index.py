"""Embedding index for ranking catalog entries against free-text intent.

Ranking is a brute-force scan: the candidate vectors are stacked into one
numpy matrix and scored against the query in a single pass. Catalogs are
expected to hold tens to a few hundred entries.
"""

import asyncio
import logging
from typing import Protocol, Sequence

import numpy as np

from lingua_orchestrator.catalog.types import Descriptor
from lingua_orchestrator.embeddings.store import JsonVectorStore
from lingua_orchestrator.errors import EmbeddingProviderError, VectorStoreError
from lingua_orchestrator.resilience.retry import RetryPolicy

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    """Anything that can turn text into a vector."""

    async def embed(self, model: str, text: str) -> list[float]: ...


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors.

    Returns 0.0 when either vector has zero magnitude.

    Raises:
        ValueError: If the vectors differ in length
    """
    if len(a) != len(b):
        raise ValueError(f"Vectors must be of the same length ({len(a)} != {len(b)})")

    vec_a = np.asarray(a, dtype=float)
    vec_b = np.asarray(b, dtype=float)
    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)

    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(vec_a, vec_b) / (norm_a * norm_b))


def cosine_scores(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Cosine similarity of every row of matrix to query.

    Rows (or a query) with zero magnitude score 0.0.
    """
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    scores = np.zeros(len(matrix))
    nonzero = norms > 0
    scores[nonzero] = (matrix[nonzero] @ query) / norms[nonzero]
    return scores


class EmbeddingIndex:
    """Text-to-vector embedding, persistence and similarity search.

    Attributes:
        provider: Embedding provider (an OllamaClient in production)
        store: Vector store holding one record per entity
        model: Embedding model name passed to the provider
        retry_policy: Retry policy applied to provider calls
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        store: JsonVectorStore,
        model: str,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.provider = provider
        self.store = store
        self.model = model
        self.retry_policy = retry_policy or RetryPolicy()

    async def embed(self, text: str, cancel_event: asyncio.Event | None = None) -> list[float]:
        """Embed text through the provider, retrying transient failures.

        Args:
            text: Text to embed
            cancel_event: Stops retrying once set

        Returns:
            The embedding vector

        Raises:
            EmbeddingProviderError: Provider rejected the call or returned no vector
            RetryExhaustedError: Transient failures outlasted the retry budget
        """

        async def _call() -> list[float]:
            vector = await self.provider.embed(self.model, text)
            if not vector:
                raise EmbeddingProviderError(
                    f"Provider returned an empty embedding for model '{self.model}'",
                    transient=False,
                )
            return vector

        return await self.retry_policy.run(
            _call, cancel_event=cancel_event, operation_name="embed"
        )

    async def store_embedding(
        self, entity_id: str, vector: list[float], text: str, name: str | None = None
    ) -> None:
        """Upsert the embedding for an entity. Repeated identical calls are no-ops."""
        await self.store.upsert(entity_id, vector, name or entity_id, text, model=self.model)

    async def retrieve_embedding(self, entity_id: str) -> list[float] | None:
        """Return the stored vector for an entity, or None when absent."""
        record = await self.store.get(entity_id)
        return record.vector if record else None

    async def search_scored(
        self,
        query_vector: Sequence[float],
        top_k: int,
        entity_ids: Sequence[str] | None = None,
    ) -> list[tuple[str, float]]:
        """Rank stored records by cosine similarity to the query.

        Args:
            query_vector: Query embedding
            top_k: Maximum number of results
            entity_ids: Restrict the scan to these ids; their order breaks ties.
                When None every stored record is ranked in store order.

        Returns:
            (entity_id, similarity) pairs, highest similarity first
        """
        if top_k <= 0:
            return []

        dimension = self.store.dimension
        if dimension is not None and len(query_vector) != dimension:
            raise VectorStoreError(
                f"Query vector length {len(query_vector)} does not match "
                f"store dimension {dimension}; was the embedding model changed?"
            )

        if entity_ids is None:
            candidates = [
                (record.entity_id, record.vector) async for record in self.store.scan_all()
            ]
        else:
            vectors = {
                record.entity_id: record.vector async for record in self.store.scan_all()
            }
            candidates = [(eid, vectors[eid]) for eid in entity_ids if eid in vectors]

        if not candidates:
            return []

        ids = [entity_id for entity_id, _ in candidates]
        matrix = np.asarray([vector for _, vector in candidates], dtype=float)
        scores = cosine_scores(matrix, np.asarray(query_vector, dtype=float))

        # stable sort, so equal scores keep catalog order
        order = np.argsort(-scores, kind="stable")[:top_k]
        return [(ids[i], float(scores[i])) for i in order]

    async def search(
        self,
        query_vector: Sequence[float],
        top_k: int,
        entity_ids: Sequence[str] | None = None,
    ) -> list[str]:
        """Return up to top_k entity ids ordered by non-increasing similarity."""
        return [eid for eid, _ in await self.search_scored(query_vector, top_k, entity_ids)]

    async def ensure_embeddings(
        self,
        entities: Sequence[Descriptor],
        cancel_event: asyncio.Event | None = None,
    ) -> int:
        """Embed and store every entity that has no current record.

        An entity is re-embedded when its descriptive text changed since
        its record was stored. Records produced by another embedding model
        are dropped first, since their vectors cannot be compared with
        this model's query vectors.

        Returns:
            Number of embeddings computed
        """
        await self.store.discard_other_models(self.model)

        computed = 0
        for entity in entities:
            text = entity.descriptive_text()
            record = await self.store.get(entity.name)
            if record is not None and record.text == text and record.model == self.model:
                continue

            vector = await self.embed(text, cancel_event=cancel_event)
            if cancel_event is not None and cancel_event.is_set():
                raise asyncio.CancelledError("Ranking cancelled")
            await self.store_embedding(entity.name, vector, text, name=entity.name)
            computed += 1

        if computed:
            logger.info(f"Computed {computed} missing catalog embeddings")
        return computed

    async def rank(
        self,
        query: str,
        entities: Sequence[Descriptor],
        top_k: int,
        cancel_event: asyncio.Event | None = None,
    ) -> list[tuple[str, float]]:
        """Rank catalog entities against a free-text query.

        Network calls already issued when cancel_event is set are allowed to
        finish, but their results are discarded.

        Raises:
            asyncio.CancelledError: If cancel_event is set during ranking
        """
        query_vector = await self.embed(query, cancel_event=cancel_event)
        if cancel_event is not None and cancel_event.is_set():
            raise asyncio.CancelledError("Ranking cancelled")

        await self.ensure_embeddings(entities, cancel_event=cancel_event)
        ranked = await self.search_scored(
            query_vector, top_k, entity_ids=[entity.name for entity in entities]
        )
        logger.debug(f"Ranked {len(entities)} entities for query {query!r}: {ranked}")
        return ranked
