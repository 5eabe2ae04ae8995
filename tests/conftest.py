"""Shared pytest configuration and fixtures."""

from __future__ import annotations

from typing import Callable

import pytest
from langchain_core.embeddings import Embeddings

from doc_rag.ingestion.embedder import Embedder
from doc_rag.retrieval.memory_store import InMemoryVectorIndex


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


class KeywordEmbeddings(Embeddings):
    """Deterministic embeddings: one dimension per vocabulary word.

    A text's vector counts how often each word occurs, so similarity is
    predictable in tests.  The trailing constant keeps vectors non-zero.
    """

    VOCAB = ("warranty", "battery", "screen", "price", "shipping", "returns")

    def __init__(self) -> None:
        self.document_batches: list[list[str]] = []
        self.queries: list[str] = []

    def _vector(self, text: str) -> list[float]:
        lower = text.lower()
        return [float(lower.count(word)) for word in self.VOCAB] + [0.1]

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.document_batches.append(list(texts))
        return [self._vector(t) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        self.queries.append(text)
        return self._vector(text)


@pytest.fixture()
def keyword_embeddings() -> KeywordEmbeddings:
    return KeywordEmbeddings()


@pytest.fixture()
def make_embedder() -> Callable[..., Embedder]:
    def _make(
        embeddings: Embeddings | None = None,
        model_version: str = "test:keyword",
        batch_size: int = 8,
    ) -> Embedder:
        return Embedder(embeddings or KeywordEmbeddings(), model_version, batch_size=batch_size)

    return _make


@pytest.fixture()
def embedder(keyword_embeddings: KeywordEmbeddings) -> Embedder:
    return Embedder(keyword_embeddings, "test:keyword", batch_size=8)


@pytest.fixture()
def index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex()


@pytest.fixture()
def chroma_client():
    """In-process Chroma client; collections persist for the whole session."""
    chromadb = pytest.importorskip("chromadb")
    return chromadb.EphemeralClient()


@pytest.fixture()
def chroma_index(chroma_client):
    from doc_rag.retrieval.chroma_store import ChromaVectorIndex

    return ChromaVectorIndex(client=chroma_client, upsert_batch_size=2)
