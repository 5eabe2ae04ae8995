"""
Retrieval — per-document vector collections and similarity search.

This module wraps the vector store behind a clean interface so that the
ingestion and chat layers never need to know which DB is backing
retrieval.

Public surface
--------------
- :class:`VectorIndexBase` — abstract backend (subclass for Qdrant, etc.).
- :class:`ChromaVectorIndex` — default Chroma backend.
- :class:`InMemoryVectorIndex` — in-process backend for development / tests.
- :class:`Citation`, :class:`CollectionInfo`, :class:`RetrievalResult` — data models.
"""

from doc_rag.retrieval.base import VectorIndexBase
from doc_rag.retrieval.memory_store import InMemoryVectorIndex
from doc_rag.retrieval.models import Citation, CollectionInfo, RetrievalResult

__all__ = [
    "ChromaVectorIndex",
    "Citation",
    "CollectionInfo",
    "InMemoryVectorIndex",
    "RetrievalResult",
    "VectorIndexBase",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorIndex to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorIndex":
        from doc_rag.retrieval.chroma_store import ChromaVectorIndex

        return ChromaVectorIndex
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
