"""Unit tests for the ingestion job manager.

Everything runs in-process: the in-memory vector index, keyword-count
embeddings and, where a job must be held in ``processing``, an embedding
fake gated on a :class:`threading.Event`.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from uuid import uuid4

import pytest
from langchain_core.embeddings import Embeddings

from doc_rag.errors import (
    CollectionExistsError,
    CollectionNotFoundError,
    ErrorKind,
    IndexUnavailableError,
    InvalidInputError,
    NotFoundError,
)
from doc_rag.ingestion.embedder import Embedder
from doc_rag.ingestion.jobs import JobManager, new_collection_id
from doc_rag.ingestion.models import JobState
from doc_rag.retrieval.memory_store import InMemoryVectorIndex

TEXT = ("The warranty lasts two years. " * 10 + "\f" + "The battery lasts ten hours. " * 10).encode()
TEXT_TYPE = "text/plain"


# ── Fakes ──────────────────────────────────────────────────────────────


class GateEmbeddings(Embeddings):
    """Blocks every embedding call until :attr:`release` is set."""

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.entered.set()
        self.release.wait(5)
        return [[1.0, float(len(t))] for t in texts]

    def embed_query(self, text: str) -> list[float]:
        return [1.0, float(len(text))]


class FailingEmbeddings(Embeddings):
    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        raise ConnectionError("embedding service unreachable")

    def embed_query(self, text: str) -> list[float]:
        raise ConnectionError("embedding service unreachable")


class FlakyIndex(InMemoryVectorIndex):
    """Writes the chunks, then fails as if the connection dropped mid-write."""

    def __init__(self) -> None:
        super().__init__()
        self.deleted: list[str] = []

    def upsert(self, collection_id, chunks, *, embedding_model):
        super().upsert(collection_id, chunks, embedding_model=embedding_model)
        raise IndexUnavailableError("connection reset during upsert")

    def delete_collection(self, collection_id: str) -> None:
        self.deleted.append(collection_id)
        super().delete_collection(collection_id)


class LateIndex(InMemoryVectorIndex):
    """Hides collections from ``describe`` while :attr:`hidden` is set.

    Stands in for another process completing the collection between the
    submit check and the write.
    """

    def __init__(self) -> None:
        super().__init__()
        self.hidden = True
        self.deleted: list[str] = []

    def describe(self, collection_id: str):
        if self.hidden:
            raise CollectionNotFoundError(f"Collection {collection_id!r} has no completed ingestion")
        return super().describe(collection_id)

    def delete_collection(self, collection_id: str) -> None:
        self.deleted.append(collection_id)
        super().delete_collection(collection_id)


# ── Fixtures ───────────────────────────────────────────────────────────


@pytest.fixture()
def manager(embedder: Embedder, index: InMemoryVectorIndex):
    jm = JobManager(embedder, index, chunk_size=100, chunk_overlap=20, boundary_window=0, max_workers=2)
    yield jm
    jm.shutdown()


@pytest.fixture()
def gate() -> GateEmbeddings:
    g = GateEmbeddings()
    yield g
    g.release.set()


@pytest.fixture()
def gated_manager(gate: GateEmbeddings, index: InMemoryVectorIndex):
    jm = JobManager(Embedder(gate, "test:gate"), index, chunk_size=100, chunk_overlap=20, max_workers=1)
    yield jm
    gate.release.set()
    jm.shutdown()


# ═══════════════════════════════════════════════════════════════════════
# Happy path
# ═══════════════════════════════════════════════════════════════════════


class TestSuccessfulIngestion:
    def test_job_completes_with_chunk_count(self, manager: JobManager, index: InMemoryVectorIndex) -> None:
        job_id = manager.submit(TEXT, "doc-manual", content_type=TEXT_TYPE)
        job = manager.wait(job_id, timeout=5)

        assert job.state is JobState.COMPLETED
        assert job.error is None
        assert job.result is not None
        assert job.result.collection_id == "doc-manual"
        assert job.result.page_count == 2
        assert job.result.chunk_count > 1
        assert job.result.embedding_model == "test:keyword"
        assert job.started_at is not None and job.completed_at is not None
        assert index.describe("doc-manual").chunk_count == job.result.chunk_count

    def test_status_of_terminal_job_is_stable(self, manager: JobManager) -> None:
        job_id = manager.submit(TEXT, "doc-stable", content_type=TEXT_TYPE)
        final = manager.wait(job_id, timeout=5)

        polls = [manager.status(job_id) for _ in range(5)]
        assert all(p == final for p in polls)

    def test_collection_id_is_generated_when_omitted(self, manager: JobManager) -> None:
        job_id = manager.submit(TEXT, content_type=TEXT_TYPE)
        job = manager.wait(job_id, timeout=5)
        assert job.collection_id.startswith("doc-")
        assert job.result.collection_id == job.collection_id

    def test_generated_collection_ids_are_unique(self) -> None:
        assert len({new_collection_id() for _ in range(100)}) == 100

    def test_empty_document_completes_with_zero_chunks(self, manager: JobManager) -> None:
        job_id = manager.submit(b"\f\f", "doc-blank", content_type=TEXT_TYPE)
        job = manager.wait(job_id, timeout=5)
        assert job.state is JobState.COMPLETED
        assert job.result.chunk_count == 0

    def test_list_jobs(self, manager: JobManager) -> None:
        first = manager.submit(TEXT, "doc-one", content_type=TEXT_TYPE)
        second = manager.submit(TEXT, "doc-two", content_type=TEXT_TYPE)
        manager.wait(first, timeout=5)
        manager.wait(second, timeout=5)
        assert {j.job_id for j in manager.list_jobs()} == {first, second}


# ═══════════════════════════════════════════════════════════════════════
# Submission rules
# ═══════════════════════════════════════════════════════════════════════


class TestSubmission:
    def test_duplicate_while_running_is_rejected(self, gated_manager: JobManager, gate: GateEmbeddings) -> None:
        job_id = gated_manager.submit(TEXT, "doc-busy", content_type=TEXT_TYPE)
        assert gate.entered.wait(5)
        assert gated_manager.status(job_id).state is JobState.PROCESSING

        with pytest.raises(InvalidInputError, match="in progress"):
            gated_manager.submit(TEXT, "doc-busy", content_type=TEXT_TYPE)

        gate.release.set()
        assert gated_manager.wait(job_id, timeout=5).state is JobState.COMPLETED

    def test_second_job_waits_in_queue(self, gated_manager: JobManager, gate: GateEmbeddings) -> None:
        first = gated_manager.submit(TEXT, "doc-first", content_type=TEXT_TYPE)
        assert gate.entered.wait(5)
        second = gated_manager.submit(TEXT, "doc-second", content_type=TEXT_TYPE)

        assert gated_manager.status(second).state is JobState.QUEUED
        assert gated_manager.status(second).started_at is None

        gate.release.set()
        assert gated_manager.wait(first, timeout=5).state is JobState.COMPLETED
        assert gated_manager.wait(second, timeout=5).state is JobState.COMPLETED

    def test_concurrent_submissions_for_one_collection(self, gated_manager: JobManager, gate: GateEmbeddings) -> None:
        """Exactly one of many racing submissions is accepted."""

        def attempt(_: int) -> str | None:
            try:
                return gated_manager.submit(TEXT, "doc-race", content_type=TEXT_TYPE)
            except InvalidInputError:
                return None

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(attempt, range(16)))

        accepted = [o for o in outcomes if o is not None]
        assert len(accepted) == 1
        gate.release.set()
        assert gated_manager.wait(accepted[0], timeout=5).state is JobState.COMPLETED

    def test_completed_collection_is_immutable(self, manager: JobManager) -> None:
        manager.wait(manager.submit(TEXT, "doc-done", content_type=TEXT_TYPE), timeout=5)
        with pytest.raises(InvalidInputError, match="already been ingested"):
            manager.submit(TEXT, "doc-done", content_type=TEXT_TYPE)

    def test_failed_collection_can_be_resubmitted(self, manager: JobManager) -> None:
        failed = manager.wait(manager.submit(b"\xff\xfe", "doc-retry", content_type=TEXT_TYPE), timeout=5)
        assert failed.state is JobState.FAILED

        retried = manager.wait(manager.submit(TEXT, "doc-retry", content_type=TEXT_TYPE), timeout=5)
        assert retried.state is JobState.COMPLETED

    @pytest.mark.parametrize("collection_id", ["", "a", "bad name", "-leading", "trailing-", "x" * 64])
    def test_invalid_collection_ids(self, manager: JobManager, collection_id: str) -> None:
        with pytest.raises(InvalidInputError):
            manager.submit(TEXT, collection_id, content_type=TEXT_TYPE)

    def test_empty_document_bytes_rejected(self, manager: JobManager) -> None:
        with pytest.raises(InvalidInputError):
            manager.submit(b"", "doc-nothing", content_type=TEXT_TYPE)

    def test_unsupported_content_type_rejected(self, manager: JobManager) -> None:
        with pytest.raises(InvalidInputError):
            manager.submit(b"\x89PNG", "doc-image", content_type="image/png")

    def test_unknown_job_id(self, manager: JobManager) -> None:
        with pytest.raises(NotFoundError):
            manager.status("nope")
        with pytest.raises(NotFoundError):
            manager.wait("nope", timeout=0.1)

    def test_submit_after_shutdown(self, embedder: Embedder, index: InMemoryVectorIndex) -> None:
        jm = JobManager(embedder, index)
        jm.shutdown()
        with pytest.raises(RuntimeError):
            jm.submit(TEXT, "doc-late", content_type=TEXT_TYPE)

    def test_overlap_must_be_below_chunk_size(self, embedder: Embedder, index: InMemoryVectorIndex) -> None:
        with pytest.raises(ValueError):
            JobManager(embedder, index, chunk_size=100, chunk_overlap=100)


# ═══════════════════════════════════════════════════════════════════════
# Failures
# ═══════════════════════════════════════════════════════════════════════


class TestFailures:
    def test_parse_error(self, manager: JobManager) -> None:
        job = manager.wait(manager.submit(b"%PDF-garbage", "doc-badpdf"), timeout=5)
        assert job.state is JobState.FAILED
        assert job.error.kind is ErrorKind.PARSE_ERROR
        assert job.result is None
        assert job.error.message

    def test_unexpected_parser_crash_is_classified(self, embedder: Embedder, index: InMemoryVectorIndex) -> None:
        def exploding_parser(data: bytes, content_type: str):
            raise RuntimeError("boom")

        with JobManager(embedder, index, parser=exploding_parser) as jm:
            job = jm.wait(jm.submit(TEXT, "doc-crash", content_type=TEXT_TYPE), timeout=5)
        assert job.state is JobState.FAILED
        assert job.error.kind is ErrorKind.PARSE_ERROR
        assert "boom" in job.error.message

    def test_embedding_failure_leaves_no_collection(self, index: InMemoryVectorIndex) -> None:
        with JobManager(Embedder(FailingEmbeddings(), "test:down"), index) as jm:
            job = jm.wait(jm.submit(TEXT, "doc-noembed", content_type=TEXT_TYPE), timeout=5)

        assert job.state is JobState.FAILED
        assert job.error.kind is ErrorKind.EMBEDDING_UNAVAILABLE
        assert "unreachable" in job.error.message
        with pytest.raises(CollectionNotFoundError):
            index.describe("doc-noembed")

    def test_index_failure_cleans_up_partial_collection(self, embedder: Embedder) -> None:
        flaky = FlakyIndex()
        with JobManager(embedder, flaky, chunk_size=100, chunk_overlap=20) as jm:
            job = jm.wait(jm.submit(TEXT, "doc-flaky", content_type=TEXT_TYPE), timeout=5)

        assert job.state is JobState.FAILED
        assert job.error.kind is ErrorKind.INDEX_UNAVAILABLE
        assert flaky.deleted == ["doc-flaky"]
        with pytest.raises(CollectionNotFoundError):
            flaky.describe("doc-flaky")

    def test_failed_job_status_is_stable(self, manager: JobManager) -> None:
        job_id = manager.submit(b"\xff", "doc-badtext", content_type=TEXT_TYPE)
        final = manager.wait(job_id, timeout=5)
        assert [manager.status(job_id) for _ in range(3)] == [final] * 3


# ═══════════════════════════════════════════════════════════════════════
# Completed collections across managers
# ═══════════════════════════════════════════════════════════════════════


class TestCompletedCollections:
    def test_restarted_manager_rejects_completed_collection(self, embedder: Embedder, chroma_index) -> None:
        collection_id = f"doc-{uuid4().hex}"
        with JobManager(embedder, chroma_index, chunk_size=100, chunk_overlap=20) as first:
            job = first.wait(first.submit(TEXT, collection_id, content_type=TEXT_TYPE), timeout=30)
        assert job.state is JobState.COMPLETED

        # A new manager on the same store starts with an empty job table.
        with JobManager(embedder, chroma_index, chunk_size=100, chunk_overlap=20) as restarted:
            with pytest.raises(CollectionExistsError):
                restarted.submit(TEXT, collection_id, content_type=TEXT_TYPE)
            assert restarted.list_jobs() == []

        info = chroma_index.describe(collection_id)
        assert info.ready is True
        assert info.chunk_count == job.result.chunk_count

    def test_write_refused_by_index_deletes_nothing(self, embedder: Embedder) -> None:
        late = LateIndex()
        with JobManager(embedder, late, chunk_size=100, chunk_overlap=20) as first:
            first.wait(first.submit(TEXT, "doc-keep", content_type=TEXT_TYPE), timeout=5)
        late.hidden = True
        kept = late.query("doc-keep", embedder.embed_query("warranty"), k=10)

        with JobManager(embedder, late, chunk_size=50, chunk_overlap=10) as second:
            job = second.wait(second.submit(TEXT, "doc-keep", content_type=TEXT_TYPE), timeout=5)

        assert job.state is JobState.FAILED
        assert job.error.kind is ErrorKind.INVALID_INPUT
        assert late.deleted == []
        late.hidden = False
        assert late.query("doc-keep", embedder.embed_query("warranty"), k=10) == kept


# ═══════════════════════════════════════════════════════════════════════
# Scheduling and shutdown
# ═══════════════════════════════════════════════════════════════════════


class TestScheduling:
    def test_refused_scheduling_records_nothing(self, manager: JobManager) -> None:
        manager._executor.shutdown()
        with pytest.raises(RuntimeError):
            manager.submit(TEXT, "doc-stuck", content_type=TEXT_TYPE)
        assert manager.list_jobs() == []

        # The collection is still free once a pool is available again.
        manager._executor = ThreadPoolExecutor(max_workers=1)
        job = manager.wait(manager.submit(TEXT, "doc-stuck", content_type=TEXT_TYPE), timeout=5)
        assert job.state is JobState.COMPLETED

    def test_every_accepted_job_finishes_despite_shutdown(self, embedder: Embedder, index: InMemoryVectorIndex) -> None:
        jm = JobManager(embedder, index, chunk_size=100, chunk_overlap=20, max_workers=2)
        accepted: list[str] = []

        def attempt(i: int) -> None:
            try:
                accepted.append(jm.submit(TEXT, f"doc-race-{i}", content_type=TEXT_TYPE))
            except RuntimeError:
                pass

        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [pool.submit(attempt, i) for i in range(20)]
            jm.shutdown(wait=True)
            for future in futures:
                future.result()

        assert len(jm.list_jobs()) == len(accepted)
        for job_id in accepted:
            assert jm.wait(job_id, timeout=5).state is JobState.COMPLETED
