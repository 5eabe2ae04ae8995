"""Embedding adapter — text → fixed-dimension vectors.

Wraps any LangChain :class:`~langchain_core.embeddings.Embeddings`
implementation behind a small interface that

* batches inputs,
* tags every vector with the model version that produced it,
* enforces one vector dimension per model version, and
* translates provider failures into :class:`EmbeddingUnavailableError`.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Sequence

from doc_rag.config import settings
from doc_rag.errors import ConfigurationError, EmbeddingUnavailableError

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)


class Embedder:
    """Batching, model-versioned wrapper around a LangChain embedding model.

    Parameters
    ----------
    embeddings:
        The underlying LangChain embedding implementation.
    model_version:
        Identifier recorded on every collection this embedder writes.
        Queries must be embedded with the same version.
    batch_size:
        Maximum number of texts sent per provider call.
    """

    def __init__(self, embeddings: Embeddings, model_version: str, *, batch_size: int = 64) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._embeddings = embeddings
        self.model_version = model_version
        self.batch_size = batch_size
        self._dimension: int | None = None
        self._lock = threading.Lock()

    @property
    def dimension(self) -> int | None:
        """Vector dimension, known after the first successful call."""
        return self._dimension

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts*, returning one vector per text in the same order.

        A failure in any batch fails the whole call; no partial result is
        returned.
        """
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = list(texts[start : start + self.batch_size])
            try:
                batch_vectors = self._embeddings.embed_documents(batch)
            except Exception as exc:
                raise EmbeddingUnavailableError(
                    f"Embedding model {self.model_version!r} failed: {exc}"
                ) from exc
            if len(batch_vectors) != len(batch):
                raise EmbeddingUnavailableError(
                    f"Embedding model {self.model_version!r} returned {len(batch_vectors)} "
                    f"vector(s) for {len(batch)} text(s)"
                )
            vectors.extend(self._check([list(map(float, v)) for v in batch_vectors]))
            logger.debug("  embedded %d / %d", len(vectors), len(texts))
        return vectors

    def embed_query(self, text: str) -> list[float]:
        """Embed a single query string."""
        try:
            vector = self._embeddings.embed_query(text)
        except Exception as exc:
            raise EmbeddingUnavailableError(
                f"Embedding model {self.model_version!r} failed: {exc}"
            ) from exc
        return self._check([list(map(float, vector))])[0]

    def _check(self, vectors: list[list[float]]) -> list[list[float]]:
        with self._lock:
            for vector in vectors:
                if not vector:
                    raise EmbeddingUnavailableError(
                        f"Embedding model {self.model_version!r} returned an empty vector"
                    )
                if self._dimension is None:
                    self._dimension = len(vector)
                elif len(vector) != self._dimension:
                    raise ConfigurationError(
                        f"Embedding model {self.model_version!r} produced a {len(vector)}-d vector; "
                        f"expected {self._dimension}-d"
                    )
        return vectors


def get_embedding_function(provider: str | None = None, model: str | None = None) -> Embeddings:
    """Return the configured LangChain embedding function."""
    provider = provider or settings.embedding_provider
    model = model or settings.embedding_model

    if provider == "huggingface":
        from langchain_community.embeddings import HuggingFaceEmbeddings

        return HuggingFaceEmbeddings(model_name=model, encode_kwargs={"normalize_embeddings": True})
    if provider == "openai":
        from langchain_openai import OpenAIEmbeddings

        return OpenAIEmbeddings(model=model, api_key=settings.openai_api_key or None)
    raise ConfigurationError(f"Unknown embedding provider: {provider!r}")


def build_embedder() -> Embedder:
    """Create an :class:`Embedder` from the global settings."""
    model_version = f"{settings.embedding_provider}:{settings.embedding_model}"
    logger.info("Using embedding model %s", model_version)
    return Embedder(
        get_embedding_function(),
        model_version,
        batch_size=settings.embedding_batch_size,
    )
