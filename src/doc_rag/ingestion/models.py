"""Domain models for ingestion — pages, chunks and job records."""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from doc_rag.errors import ErrorKind

# Collection ids double as vector-store collection names.
COLLECTION_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{1,61}[A-Za-z0-9]$")


class PageText(BaseModel):
    """One page of decoded source text.

    Attributes
    ----------
    page_number:
        1-based page number within the source document.
    text:
        Extracted text for that page (may be empty for image-only pages).
    """

    page_number: int = Field(ge=1)
    text: str = ""


class Chunk(BaseModel):
    """A contiguous span of the concatenated document text.

    Attributes
    ----------
    collection_id:
        Collection the chunk belongs to.
    ordinal:
        Position of the chunk within the document, contiguous from 0.
    page:
        Page number of the chunk's first character.
    start:
        Character offset of the chunk within the concatenated text.
    overlap:
        Number of leading characters shared with the previous chunk
        (always 0 for ordinal 0).
    text:
        The raw chunk text.
    embedding:
        Vector attached once embedding completes.
    """

    collection_id: str
    ordinal: int = Field(ge=0)
    page: int
    start: int = Field(ge=0)
    overlap: int = Field(default=0, ge=0)
    text: str
    embedding: list[float] | None = None

    @property
    def chunk_id(self) -> str:
        return f"{self.collection_id}:{self.ordinal}"

    @property
    def end(self) -> int:
        return self.start + len(self.text)


class JobState(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class JobResult(BaseModel):
    """Summary of a successful ingestion."""

    model_config = ConfigDict(frozen=True)

    collection_id: str
    chunk_count: int
    page_count: int
    embedding_model: str


class JobError(BaseModel):
    """Classified failure attached to a ``failed`` job."""

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str


class IngestionJob(BaseModel):
    """Point-in-time snapshot of an ingestion job.

    Snapshots are immutable; the :class:`~doc_rag.ingestion.jobs.JobManager`
    is the only component that creates new ones as the job moves through
    its lifecycle (``queued`` → ``processing`` → ``completed`` | ``failed``).
    """

    model_config = ConfigDict(frozen=True)

    job_id: str
    collection_id: str
    state: JobState
    submitted_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    result: JobResult | None = None
    error: JobError | None = None
