"""Vector store holding one embedding record per catalog entity.

JsonVectorStore keeps records in insertion order and persists them as a JSON
document that is replaced atomically on every write.
Writes are keyed upserts serialised by an asyncio.Lock, so concurrent
identical writes are safe and the last write wins.
"""

import asyncio
import json
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator

from lingua_orchestrator.errors import VectorStoreError

logger = logging.getLogger(__name__)

STORE_FORMAT_VERSION = "1.0"


@dataclass
class EmbeddingRecord:
    """A stored embedding for one catalog entity.

    `model` names the embedding model that produced the vector; vectors of
    different models are not comparable even when their lengths match.
    """

    entity_id: str
    vector: list[float]
    text: str
    name: str = ""
    model: str = ""
    updated_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    )

    def same_content(self, vector: list[float], text: str, name: str, model: str) -> bool:
        return (
            self.vector == vector
            and self.text == text
            and self.name == name
            and self.model == model
        )


class JsonVectorStore:
    """Embedding records persisted in a JSON file.

    When `path` is None the store lives only in memory.

    Attributes:
        path: JSON file backing the store, or None
    """

    def __init__(self, path: Path | None = None):
        """Initialize the store, loading existing records from disk.

        Args:
            path: JSON file to persist to (created on first write)

        Raises:
            VectorStoreError: If an existing store file cannot be read
        """
        self.path = path
        self._records: dict[str, EmbeddingRecord] = {}
        self._dimension: int | None = None
        self._lock = asyncio.Lock()
        self._load()

    @property
    def dimension(self) -> int | None:
        """Vector length shared by every record, or None while empty."""
        return self._dimension

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            records = [EmbeddingRecord(**item) for item in data.get("records", [])]
        except (OSError, ValueError, TypeError, AttributeError) as e:
            raise VectorStoreError(f"Failed to read vector store {self.path}: {e}") from e

        for record in records:
            self._check_dimension(record.vector)
            self._records[record.entity_id] = record

        logger.debug(f"Loaded {len(self._records)} embedding records from {self.path}")

    def _save(self) -> None:
        if self.path is None:
            return

        data: dict[str, Any] = {
            "format_version": STORE_FORMAT_VERSION,
            "dimension": self._dimension,
            "records": [asdict(record) for record in self._records.values()],
        }
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise VectorStoreError(f"Failed to write vector store {self.path}: {e}") from e

    def _check_dimension(self, vector: list[float]) -> None:
        if not vector:
            raise VectorStoreError("Cannot store an empty vector")
        if self._dimension is None:
            self._dimension = len(vector)
        elif len(vector) != self._dimension:
            raise VectorStoreError(
                f"Vector length {len(vector)} does not match store dimension {self._dimension}"
            )

    async def upsert(
        self, entity_id: str, vector: list[float], name: str, text: str, model: str = ""
    ) -> None:
        """Insert or replace the record for an entity.

        Repeating an identical upsert leaves the store unchanged.

        Args:
            entity_id: Catalog entity key
            vector: Embedding vector
            name: Display name of the entity
            text: Descriptive text the vector was computed from
            model: Embedding model that produced the vector

        Raises:
            VectorStoreError: On dimension mismatch or write failure
        """
        vector = [float(x) for x in vector]
        async with self._lock:
            existing = self._records.get(entity_id)
            if existing is not None and existing.same_content(vector, text, name, model):
                logger.debug(f"Embedding for {entity_id} unchanged")
                return

            previous_dimension = self._dimension
            if len(self._records) == 1 and existing is not None:
                # Replacing the only record may change the dimension
                self._dimension = None
            try:
                self._check_dimension(vector)
            except VectorStoreError:
                self._dimension = previous_dimension
                raise

            self._records[entity_id] = EmbeddingRecord(
                entity_id=entity_id, vector=vector, text=text, name=name, model=model
            )
            self._save()
            logger.debug(f"Stored embedding for {entity_id}")

    async def get(self, entity_id: str) -> EmbeddingRecord | None:
        """Return the record for an entity, or None when absent."""
        return self._records.get(entity_id)

    async def scan_all(self) -> AsyncIterator[EmbeddingRecord]:
        """Yield every record in insertion order."""
        for record in list(self._records.values()):
            yield record

    async def count(self) -> int:
        return len(self._records)

    async def discard_other_models(self, model: str) -> int:
        """Drop every record produced by a model other than `model`.

        The store dimension is reset once no record is left, so a model
        with a different vector length can take over.

        Returns:
            Number of records dropped
        """
        async with self._lock:
            stale = [eid for eid, record in self._records.items() if record.model != model]
            if not stale:
                return 0

            for entity_id in stale:
                del self._records[entity_id]
            if not self._records:
                self._dimension = None
            self._save()
            logger.info(f"Dropped {len(stale)} embedding records not produced by {model}")
            return len(stale)
