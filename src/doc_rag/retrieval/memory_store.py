"""In-process implementation of the vector-index abstraction.

Useful for local development (``VECTOR_BACKEND=memory``) and tests.
Similarity is cosine similarity computed in pure Python.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Sequence

from doc_rag.errors import CollectionExistsError, CollectionNotFoundError
from doc_rag.ingestion.models import Chunk
from doc_rag.retrieval.base import VectorIndexBase
from doc_rag.retrieval.models import Citation, CollectionInfo, RetrievalResult

logger = logging.getLogger(__name__)


@dataclass
class _Collection:
    embedding_model: str
    embedding_dim: int
    ready: bool = False
    chunks: dict[str, Chunk] = field(default_factory=dict)

    def info(self, collection_id: str) -> CollectionInfo:
        return CollectionInfo(
            collection_id=collection_id,
            embedding_model=self.embedding_model,
            embedding_dim=self.embedding_dim,
            chunk_count=len(self.chunks),
            ready=self.ready,
        )


class InMemoryVectorIndex(VectorIndexBase):
    """Thread-safe dictionary-backed vector index."""

    def __init__(self) -> None:
        self._collections: dict[str, _Collection] = {}
        self._lock = threading.Lock()

    # -- VectorIndexBase overrides --------------------------------------------

    def upsert(self, collection_id: str, chunks: Sequence[Chunk], *, embedding_model: str) -> None:
        dim = self.validate_chunks(collection_id, chunks)
        collection = _Collection(embedding_model=embedding_model, embedding_dim=dim)
        for chunk in chunks:
            collection.chunks[chunk.chunk_id] = chunk.model_copy()
        collection.ready = True
        with self._lock:
            existing = self._collections.get(collection_id)
            if existing is not None and existing.ready:
                raise CollectionExistsError(f"Collection {collection_id!r} has already been ingested")
            self._collections[collection_id] = collection
        logger.info("Upserted %d vector(s) into %s", len(chunks), collection_id)

    def query(self, collection_id: str, query_embedding: list[float], *, k: int) -> list[RetrievalResult]:
        with self._lock:
            collection = self._ready_collection(collection_id)
            chunks = list(collection.chunks.values())

        results = [
            RetrievalResult(
                content=chunk.text,
                citation=Citation(
                    chunk_id=chunk.chunk_id,
                    collection_id=collection_id,
                    page=chunk.page,
                    ordinal=chunk.ordinal,
                    score=_cosine(query_embedding, chunk.embedding or []),
                ),
            )
            for chunk in chunks
        ]
        return self.rank(results, k)

    def describe(self, collection_id: str) -> CollectionInfo:
        with self._lock:
            return self._ready_collection(collection_id).info(collection_id)

    def delete_collection(self, collection_id: str) -> None:
        with self._lock:
            self._collections.pop(collection_id, None)

    def health_check(self) -> bool:
        return True

    # -- internals ------------------------------------------------------------

    def _ready_collection(self, collection_id: str) -> _Collection:
        collection = self._collections.get(collection_id)
        if collection is None or not collection.ready:
            raise CollectionNotFoundError(f"Collection {collection_id!r} has no completed ingestion")
        return collection


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0
