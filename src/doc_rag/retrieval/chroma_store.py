"""Chroma implementation of the vector-index abstraction.

One Chroma collection per ingested document.  The collection metadata
records the embedding model, vector dimension, chunk count and a
``ready`` flag that is only set once every batch has been written.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

import chromadb
from chromadb.errors import NotFoundError

from doc_rag.config import settings
from doc_rag.errors import (
    CollectionExistsError,
    CollectionNotFoundError,
    DocRagError,
    IndexUnavailableError,
)
from doc_rag.ingestion.models import Chunk
from doc_rag.retrieval.base import VectorIndexBase
from doc_rag.retrieval.models import Citation, CollectionInfo, RetrievalResult

logger = logging.getLogger(__name__)


def _collection_metadata(embedding_model: str, dim: int, chunk_count: int, *, ready: bool) -> dict[str, Any]:
    # Chroma metadata values must be flat str/int/float/bool.
    return {
        "embedding_model": embedding_model,
        "embedding_dim": dim,
        "chunk_count": chunk_count,
        "ready": ready,
    }


def _chunk_metadata(chunk: Chunk) -> dict[str, Any]:
    return {
        "collection_id": chunk.collection_id,
        "page": chunk.page,
        "ordinal": chunk.ordinal,
        "start": chunk.start,
        "overlap": chunk.overlap,
    }


class ChromaVectorIndex(VectorIndexBase):
    """Chroma-backed vector index.

    Parameters
    ----------
    client:
        A ready Chroma client.  When *None*, an ``HttpClient`` is created
        from *host* / *port*.
    host:
        Chroma server hostname.
    port:
        Chroma server port.
    upsert_batch_size:
        Max records per upsert call.
    """

    def __init__(
        self,
        client: Any = None,
        *,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
        upsert_batch_size: int = 5000,
    ) -> None:
        if client is None:
            client = chromadb.HttpClient(host=host, port=port)
        self._client = client
        self.upsert_batch_size = upsert_batch_size

    # -- VectorIndexBase overrides --------------------------------------------

    def upsert(self, collection_id: str, chunks: Sequence[Chunk], *, embedding_model: str) -> None:
        dim = self.validate_chunks(collection_id, chunks)
        try:
            collection = self._create(collection_id, embedding_model, dim)
            batches = 0
            for start in range(0, len(chunks), self.upsert_batch_size):
                batch = chunks[start : start + self.upsert_batch_size]
                collection.upsert(
                    ids=[c.chunk_id for c in batch],
                    embeddings=[c.embedding for c in batch],
                    documents=[c.text for c in batch],
                    metadatas=[_chunk_metadata(c) for c in batch],
                )
                batches += 1
                logger.debug("  upserted batch %d (%d-%d)", batches, start, start + len(batch))

            collection.modify(
                metadata=_collection_metadata(embedding_model, dim, collection.count(), ready=True)
            )
        except DocRagError:
            raise
        except Exception as exc:
            raise IndexUnavailableError(f"Could not write collection {collection_id!r}: {exc}") from exc
        logger.info("Indexed %d vectors → collection '%s' (%d batches)", len(chunks), collection_id, batches)

    def query(self, collection_id: str, query_embedding: list[float], *, k: int) -> list[RetrievalResult]:
        collection, info = self._ready(collection_id)
        try:
            results = collection.query(
                query_embeddings=[query_embedding],
                n_results=max(1, min(k, info.chunk_count)),
                include=["documents", "metadatas", "distances"],
            )
        except Exception as exc:
            raise IndexUnavailableError(f"Could not query collection {collection_id!r}: {exc}") from exc

        hits: list[RetrievalResult] = []
        ids = (results.get("ids") or [[]])[0]
        docs = (results.get("documents") or [[]])[0]
        metas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        for chunk_id, content, meta, dist in zip(ids, docs, metas, distances):
            meta = meta or {}
            # Chroma returns L2 distances; convert to a 0-1 similarity score.
            hits.append(
                RetrievalResult(
                    content=content or "",
                    citation=Citation(
                        chunk_id=chunk_id,
                        collection_id=collection_id,
                        page=int(meta.get("page", 0)),
                        ordinal=int(meta.get("ordinal", 0)),
                        score=1.0 / (1.0 + float(dist)),
                    ),
                )
            )
        return self.rank(hits, k)

    def describe(self, collection_id: str) -> CollectionInfo:
        return self._ready(collection_id)[1]

    def delete_collection(self, collection_id: str) -> None:
        try:
            if self._find(collection_id) is None:
                return
            self._client.delete_collection(collection_id)
        except Exception as exc:
            raise IndexUnavailableError(f"Could not delete collection {collection_id!r}: {exc}") from exc
        logger.info("Deleted collection '%s'", collection_id)

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False

    # -- internals ------------------------------------------------------------

    def _create(self, collection_id: str, embedding_model: str, dim: int) -> Any:
        existing = self._find(collection_id)
        if existing is not None:
            if self._info(collection_id, existing.metadata).ready:
                raise CollectionExistsError(f"Collection {collection_id!r} has already been ingested")
            logger.warning("Discarding incomplete collection '%s' left by an interrupted write", collection_id)
            self._client.delete_collection(collection_id)
        try:
            return self._client.create_collection(
                name=collection_id,
                metadata=_collection_metadata(embedding_model, dim, 0, ready=False),
                embedding_function=None,
            )
        except Exception:
            if self._find(collection_id) is not None:
                raise CollectionExistsError(
                    f"Collection {collection_id!r} is being written by another process"
                ) from None
            raise

    def _find(self, collection_id: str) -> Any:
        try:
            return self._client.get_collection(collection_id, embedding_function=None)
        except (NotFoundError, ValueError):
            # Older Chroma releases raise ValueError for a missing collection.
            return None

    def _ready(self, collection_id: str) -> tuple[Any, CollectionInfo]:
        try:
            collection = self._find(collection_id)
        except Exception as exc:
            raise IndexUnavailableError(f"Could not reach collection {collection_id!r}: {exc}") from exc
        if collection is None:
            raise CollectionNotFoundError(f"Collection {collection_id!r} has no completed ingestion")
        info = self._info(collection_id, collection.metadata)
        if not info.ready:
            raise CollectionNotFoundError(f"Collection {collection_id!r} has no completed ingestion")
        return collection, info

    @staticmethod
    def _info(collection_id: str, metadata: dict[str, Any] | None) -> CollectionInfo:
        metadata = metadata or {}
        return CollectionInfo(
            collection_id=collection_id,
            embedding_model=str(metadata.get("embedding_model", "")),
            embedding_dim=int(metadata.get("embedding_dim", 0)),
            chunk_count=int(metadata.get("chunk_count", 0)),
            ready=bool(metadata.get("ready", False)),
        )
