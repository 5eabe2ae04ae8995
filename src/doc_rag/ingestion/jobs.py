"""Ingestion job manager — background parse → chunk → embed → index runs.

Job lifecycle::

    queued ──► processing ──► completed
                         └──► failed

* :meth:`JobManager.submit` validates its input, records a ``queued`` job
  and hands the work to a thread pool; it never waits for the pipeline.
* At most one non-terminal job may exist per collection id.  The check and
  the insert happen under a single lock so two submissions can never race
  on the same collection.
* A collection whose job has ``completed`` is immutable; after a
  ``failed`` job the caller may submit again.  Completion is checked
  against the vector index as well as this process's table, since a
  persistent index outlives the manager.
* A job is recorded and scheduled in one step: if the pool refuses the
  work, nothing is recorded and the collection stays free.
* Each record has its own lock.  Worker threads touch the shared table
  only at state transitions, never while parsing, embedding or indexing.
* A failed job never leaves a partially written collection behind: the
  vector index only exposes a collection once every chunk is written, and
  a failed write is followed by an explicit delete.  A write the index
  refuses because the collection is already complete deletes nothing.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable
from uuid import uuid4

from doc_rag.config import settings
from doc_rag.errors import (
    CollectionExistsError,
    CollectionNotFoundError,
    DocRagError,
    ErrorKind,
    InvalidInputError,
    NotFoundError,
)
from doc_rag.ingestion.chunker import chunk_pages
from doc_rag.ingestion.loader import PDF_CONTENT_TYPE, SUPPORTED_CONTENT_TYPES, parse_document
from doc_rag.ingestion.models import (
    COLLECTION_ID_PATTERN,
    Chunk,
    IngestionJob,
    JobError,
    JobResult,
    JobState,
    PageText,
)

if TYPE_CHECKING:
    from doc_rag.ingestion.embedder import Embedder
    from doc_rag.retrieval.base import VectorIndexBase

logger = logging.getLogger(__name__)

Parser = Callable[[bytes, str], list[PageText]]


def new_collection_id() -> str:
    """Return a fresh collection id, independent of any file name."""
    return f"doc-{uuid4().hex}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _JobRecord:
    """Mutable job record; every access goes through :attr:`lock`."""

    job_id: str
    collection_id: str
    submitted_at: datetime
    state: JobState = JobState.QUEUED
    started_at: datetime | None = None
    completed_at: datetime | None = None
    result: JobResult | None = None
    error: JobError | None = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    done: threading.Event = field(default_factory=threading.Event, repr=False)

    def snapshot(self) -> IngestionJob:
        return IngestionJob(
            job_id=self.job_id,
            collection_id=self.collection_id,
            state=self.state,
            submitted_at=self.submitted_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            result=self.result,
            error=self.error,
        )


class JobManager:
    """Owns the ingestion job table and the worker pool.

    Parameters
    ----------
    embedder:
        Embedding adapter used for every chunk.
    index:
        Vector index that receives one collection per document.
    parser:
        Decoder from ``(bytes, content_type)`` to pages.
    chunk_size / chunk_overlap / boundary_window:
        Chunker parameters (see :func:`~doc_rag.ingestion.chunker.split_text`).
    max_workers:
        Number of ingestion jobs that may run concurrently.
    """

    def __init__(
        self,
        embedder: Embedder,
        index: VectorIndexBase,
        *,
        parser: Parser = parse_document,
        chunk_size: int = settings.chunk_size,
        chunk_overlap: int = settings.chunk_overlap,
        boundary_window: int = settings.chunk_boundary_window,
        max_workers: int = settings.ingestion_workers,
    ) -> None:
        if not 0 <= chunk_overlap < chunk_size:
            raise ValueError(
                f"chunk_overlap ({chunk_overlap}) must be >= 0 and < chunk_size ({chunk_size})"
            )
        self._embedder = embedder
        self._index = index
        self._parser = parser
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.boundary_window = boundary_window

        self._jobs: dict[str, _JobRecord] = {}
        self._active: dict[str, str] = {}  # collection id → non-terminal job id
        self._completed: set[str] = set()
        self._table_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ingest")
        self._closed = False

    # -- public API -----------------------------------------------------------

    def submit(
        self,
        data: bytes,
        collection_id: str | None = None,
        *,
        content_type: str = PDF_CONTENT_TYPE,
    ) -> str:
        """Queue *data* for ingestion into *collection_id* and return the job id.

        When *collection_id* is ``None`` a fresh one is generated; read it
        back from :meth:`status`.

        Raises
        ------
        InvalidInputError
            Empty document, unsupported content type, empty or malformed
            collection id, or a collection that is already being ingested
            or has already completed.
        """
        if not data:
            raise InvalidInputError("Document is empty")
        if content_type not in SUPPORTED_CONTENT_TYPES:
            raise InvalidInputError(f"Unsupported content type: {content_type!r}")
        if collection_id is None:
            collection_id = new_collection_id()
        if not collection_id:
            raise InvalidInputError("Collection id is required")
        if not COLLECTION_ID_PATTERN.match(collection_id):
            raise InvalidInputError(
                f"Invalid collection id {collection_id!r}: use 3-63 letters, digits, '.', '_' or '-', "
                "starting and ending with a letter or digit"
            )

        # Completed collections outlive this process in a persistent index.
        if self._is_ingested(collection_id):
            raise CollectionExistsError(f"Collection {collection_id!r} has already been ingested")

        record = _JobRecord(job_id=uuid4().hex, collection_id=collection_id, submitted_at=_utcnow())
        with self._table_lock:
            if self._closed:
                raise RuntimeError("JobManager has been shut down")
            running = self._active.get(collection_id)
            if running is not None:
                raise InvalidInputError(
                    f"Collection {collection_id!r} already has ingestion job {running} in progress"
                )
            if collection_id in self._completed:
                raise CollectionExistsError(f"Collection {collection_id!r} has already been ingested")
            self._jobs[record.job_id] = record
            self._active[collection_id] = record.job_id
            try:
                self._executor.submit(self._run, record, data, content_type)
            except RuntimeError:
                del self._jobs[record.job_id]
                del self._active[collection_id]
                raise

        logger.info(
            "Submitted job %s for collection %s (%d bytes, %s)",
            record.job_id,
            collection_id,
            len(data),
            content_type,
        )
        return record.job_id

    def status(self, job_id: str) -> IngestionJob:
        """Return a point-in-time snapshot of *job_id*.

        Raises :class:`~doc_rag.errors.NotFoundError` for unknown ids.
        """
        record = self._get(job_id)
        with record.lock:
            return record.snapshot()

    def wait(self, job_id: str, timeout: float | None = None) -> IngestionJob:
        """Block until *job_id* is terminal and return its final snapshot.

        Raises :class:`TimeoutError` if *timeout* elapses first.
        """
        record = self._get(job_id)
        if not record.done.wait(timeout):
            raise TimeoutError(f"Job {job_id} did not finish within {timeout}s")
        return self.status(job_id)

    def list_jobs(self) -> list[IngestionJob]:
        """Snapshots of every known job, oldest first."""
        with self._table_lock:
            records = list(self._jobs.values())
        snapshots = []
        for record in records:
            with record.lock:
                snapshots.append(record.snapshot())
        return sorted(snapshots, key=lambda job: job.submitted_at)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting jobs and release the worker pool."""
        with self._table_lock:
            self._closed = True
        # Outside the lock: running jobs take it to finish.
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> JobManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown(wait=True)

    # -- pipeline -------------------------------------------------------------

    def _run(self, record: _JobRecord, data: bytes, content_type: str) -> None:
        """Execute one job on a worker thread.  Never raises."""
        collection_id = record.collection_id
        self._start(record)
        logger.info("Job %s started (collection %s)", record.job_id, collection_id)

        stage = ErrorKind.PARSE_ERROR
        try:
            pages = self._parser(data, content_type)
            chunks = chunk_pages(
                pages,
                collection_id,
                chunk_size=self.chunk_size,
                chunk_overlap=self.chunk_overlap,
                boundary_window=self.boundary_window,
            )
            logger.info("Job %s: %d page(s) → %d chunk(s)", record.job_id, len(pages), len(chunks))

            if chunks:
                stage = ErrorKind.EMBEDDING_UNAVAILABLE
                vectors = self._embedder.embed([chunk.text for chunk in chunks])
                for chunk, vector in zip(chunks, vectors):
                    chunk.embedding = vector

                stage = ErrorKind.INDEX_UNAVAILABLE
                self._write(collection_id, chunks)
        except DocRagError as exc:
            self._finish(record, error=JobError(kind=exc.kind, message=exc.message))
            return
        except Exception as exc:
            logger.exception("Job %s crashed during %s", record.job_id, stage.value)
            self._finish(record, error=JobError(kind=stage, message=str(exc) or type(exc).__name__))
            return

        self._finish(
            record,
            result=JobResult(
                collection_id=collection_id,
                chunk_count=len(chunks),
                page_count=len(pages),
                embedding_model=self._embedder.model_version,
            ),
        )

    def _is_ingested(self, collection_id: str) -> bool:
        try:
            self._index.describe(collection_id)
        except CollectionNotFoundError:
            return False
        return True

    def _write(self, collection_id: str, chunks: list[Chunk]) -> None:
        try:
            self._index.upsert(collection_id, chunks, embedding_model=self._embedder.model_version)
        except CollectionExistsError:
            # The index refused before writing; the collection belongs to another job.
            raise
        except Exception:
            self._cleanup(collection_id)
            raise

    def _cleanup(self, collection_id: str) -> None:
        logger.warning("Removing partially written collection %s", collection_id)
        try:
            self._index.delete_collection(collection_id)
        except Exception:
            # The collection was never marked ready, so it stays invisible to retrieval.
            logger.error("Cleanup of collection %s failed", collection_id, exc_info=True)

    # -- state transitions ----------------------------------------------------

    def _get(self, job_id: str) -> _JobRecord:
        with self._table_lock:
            record = self._jobs.get(job_id)
        if record is None:
            raise NotFoundError(f"Unknown job id {job_id!r}")
        return record

    def _start(self, record: _JobRecord) -> None:
        with record.lock:
            if record.state is not JobState.QUEUED:
                raise RuntimeError(f"Job {record.job_id} cannot start from state {record.state.value}")
            record.state = JobState.PROCESSING
            record.started_at = _utcnow()

    def _finish(
        self,
        record: _JobRecord,
        *,
        result: JobResult | None = None,
        error: JobError | None = None,
    ) -> None:
        state = JobState.FAILED if error is not None else JobState.COMPLETED
        with self._table_lock:
            with record.lock:
                if record.state.is_terminal:
                    raise RuntimeError(f"Job {record.job_id} is already {record.state.value}")
                record.state = state
                record.completed_at = _utcnow()
                record.result = result
                record.error = error
            self._active.pop(record.collection_id, None)
            if state is JobState.COMPLETED:
                self._completed.add(record.collection_id)
        record.done.set()

        if error is not None:
            logger.warning("Job %s failed [%s]: %s", record.job_id, error.kind.value, error.message)
        else:
            logger.info("Job %s completed: %d chunk(s) in %s", record.job_id, result.chunk_count, record.collection_id)
