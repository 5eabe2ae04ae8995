"""Abstract base class for vector-index backends.

Adding a new backend (Qdrant, Pinecone, …) only requires subclassing
:class:`VectorIndexBase` and implementing the abstract methods.  The
ingestion and chat layers are backend-agnostic.

Collection contract
-------------------
* One :meth:`VectorIndexBase.upsert` call writes a whole collection, so a
  collection holds vectors from exactly one embedding-model version and
  one vector dimension.
* The collection is marked *ready* only after every chunk is written.
  Until then :meth:`VectorIndexBase.query` and
  :meth:`VectorIndexBase.describe` treat it as missing.
* A ready collection is immutable: a further upsert raises
  :class:`~doc_rag.errors.CollectionExistsError` and leaves it untouched.
  A collection left behind by an interrupted write (not ready) is
  discarded and rebuilt.
* Query results are ordered by descending score, ties broken by
  ascending chunk ordinal, so an unchanged collection always answers the
  same query identically.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from doc_rag.errors import ConfigurationError, InvalidInputError
from doc_rag.ingestion.models import Chunk
from doc_rag.retrieval.models import CollectionInfo, RetrievalResult


class VectorIndexBase(ABC):
    """Backend-agnostic vector-index interface."""

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def upsert(self, collection_id: str, chunks: Sequence[Chunk], *, embedding_model: str) -> None:
        """Write *chunks* as the complete contents of *collection_id*.

        Every chunk must carry an embedding.

        Raises
        ------
        CollectionExistsError
            *collection_id* is already ready; nothing is written.
        IndexUnavailableError
            The backend cannot be written to.  The collection is left
            not ready, and therefore invisible to retrieval.
        """
        ...

    @abstractmethod
    def query(self, collection_id: str, query_embedding: list[float], *, k: int) -> list[RetrievalResult]:
        """Return the top-*k* chunks of a ready collection.

        Raises :class:`~doc_rag.errors.CollectionNotFoundError` when the
        collection does not exist or is not ready.
        """
        ...

    @abstractmethod
    def describe(self, collection_id: str) -> CollectionInfo:
        """Return the descriptor of a ready collection.

        Raises :class:`~doc_rag.errors.CollectionNotFoundError` when the
        collection does not exist or is not ready.
        """
        ...

    @abstractmethod
    def delete_collection(self, collection_id: str) -> None:
        """Remove *collection_id* and all its vectors.  Missing is a no-op."""
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...

    # -- shared helpers -------------------------------------------------------

    @staticmethod
    def validate_chunks(collection_id: str, chunks: Sequence[Chunk]) -> int:
        """Check *chunks* before a write and return their vector dimension."""
        if not chunks:
            raise InvalidInputError("Cannot upsert an empty chunk list")
        dims: set[int] = set()
        for chunk in chunks:
            if chunk.collection_id != collection_id:
                raise InvalidInputError(
                    f"Chunk {chunk.chunk_id} does not belong to collection {collection_id!r}"
                )
            if not chunk.embedding:
                raise InvalidInputError(f"Chunk {chunk.chunk_id} has no embedding")
            dims.add(len(chunk.embedding))
        if len(dims) > 1:
            raise ConfigurationError(
                f"Mixed vector dimensions {sorted(dims)} for collection {collection_id!r}"
            )
        return dims.pop()

    @staticmethod
    def rank(results: list[RetrievalResult], k: int) -> list[RetrievalResult]:
        """Order by descending score, then ascending ordinal, and keep *k*."""
        ordered = sorted(results, key=lambda r: (-r.citation.score, r.citation.ordinal))
        return ordered[:k]
