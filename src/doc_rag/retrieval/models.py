"""Domain models for collections, retrieval results and citation tracking."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class CollectionInfo(BaseModel):
    """Descriptor of one document's vector collection.

    Attributes
    ----------
    collection_id:
        Name of the collection in the vector index.
    embedding_model:
        Model version that produced every vector in the collection.
    embedding_dim:
        Dimension shared by every vector in the collection.
    chunk_count:
        Number of chunks stored.
    ready:
        ``True`` once every chunk of the ingestion has been written.
        Collections that are not ready are invisible to retrieval.
    """

    model_config = ConfigDict(frozen=True)

    collection_id: str
    embedding_model: str
    embedding_dim: int
    chunk_count: int = 0
    ready: bool = False


class Citation(BaseModel):
    """Provenance record linking a retrieved chunk back to its source page.

    Attributes
    ----------
    chunk_id:
        The vector-index id of the chunk.
    collection_id:
        Collection the chunk was retrieved from.
    page:
        Page number of the chunk's first character.
    ordinal:
        Position of the chunk within the source document.
    score:
        Similarity score returned by the index (higher = more similar).
    """

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    collection_id: str
    page: int
    ordinal: int
    score: float

    def short_ref(self) -> str:
        """Return a compact ``[p.<page>§<ordinal>]`` reference string."""
        return f"[p.{self.page}§{self.ordinal}]"


class RetrievalResult(BaseModel):
    """A single retrieved passage together with its citation."""

    model_config = ConfigDict(frozen=True)

    content: str
    citation: Citation

    def __str__(self) -> str:  # noqa: D105
        return f"{self.citation.short_ref()} {self.content[:120]}…"
