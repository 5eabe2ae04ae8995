"""Wiring of settings → adapters → services.

Each provider is cached so the whole process shares one job table, one
embedding model and one vector-index client.  Tests replace them through
``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from doc_rag.chat.orchestrator import RetrievalOrchestrator
from doc_rag.config import settings
from doc_rag.ingestion.embedder import Embedder, build_embedder
from doc_rag.ingestion.jobs import JobManager
from doc_rag.retrieval.base import VectorIndexBase

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_embedder() -> Embedder:
    return build_embedder()


@lru_cache(maxsize=1)
def get_vector_index() -> VectorIndexBase:
    if settings.vector_backend == "memory":
        from doc_rag.retrieval.memory_store import InMemoryVectorIndex

        logger.info("Using in-memory vector index")
        return InMemoryVectorIndex()

    from doc_rag.retrieval.chroma_store import ChromaVectorIndex

    logger.info("Using Chroma at %s:%d", settings.chroma_host, settings.chroma_port)
    return ChromaVectorIndex(host=settings.chroma_host, port=settings.chroma_port)


@lru_cache(maxsize=1)
def get_job_manager() -> JobManager:
    return JobManager(get_embedder(), get_vector_index())


@lru_cache(maxsize=1)
def get_orchestrator() -> RetrievalOrchestrator:
    return RetrievalOrchestrator(get_embedder(), get_vector_index())
