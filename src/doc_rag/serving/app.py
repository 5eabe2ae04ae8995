"""FastAPI application exposing document ingestion and chat as a REST API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from doc_rag import __version__
from doc_rag.chat.models import ChatAnswer, ConversationTurn
from doc_rag.chat.orchestrator import RetrievalOrchestrator
from doc_rag.config import settings
from doc_rag.errors import DocRagError, ErrorKind, InvalidInputError
from doc_rag.ingestion.jobs import JobManager
from doc_rag.ingestion.loader import SUPPORTED_CONTENT_TYPES
from doc_rag.ingestion.models import IngestionJob, JobState
from doc_rag.retrieval.base import VectorIndexBase
from doc_rag.serving.dependencies import get_job_manager, get_orchestrator, get_vector_index

logger = logging.getLogger(__name__)

_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.COLLECTION_NOT_FOUND: 404,
    ErrorKind.PARSE_ERROR: 422,
    ErrorKind.EMBEDDING_UNAVAILABLE: 503,
    ErrorKind.GENERATION_UNAVAILABLE: 503,
    ErrorKind.INDEX_UNAVAILABLE: 503,
    ErrorKind.CONFIGURATION_ERROR: 500,
}


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    if get_job_manager.cache_info().currsize:
        get_job_manager().shutdown(wait=False)


app = FastAPI(
    title="Document RAG Chat API",
    version=__version__,
    description="Upload a document, poll its ingestion job, then chat with it.",
    lifespan=lifespan,
)


# ── Request / Response schemas ────────────────────────────────────────
class UploadResponse(BaseModel):
    """Handle for a freshly submitted ingestion job."""

    job_id: str
    collection_id: str
    state: JobState


class ChatRequest(BaseModel):
    """A conversation about one collection; the last message is the question."""

    collection_id: str
    messages: list[ConversationTurn]


# ── Error handling ────────────────────────────────────────────────────
@app.exception_handler(DocRagError)
async def doc_rag_error_handler(request: Request, exc: DocRagError) -> JSONResponse:
    status_code = _STATUS_CODES.get(exc.kind, 500)
    if status_code >= 500:
        logger.error("%s %s failed [%s]: %s", request.method, request.url.path, exc.kind.value, exc.message)
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@app.get("/health/ready")
def ready(index: VectorIndexBase = Depends(get_vector_index)) -> dict[str, str]:
    """Readiness probe — checks the vector index."""
    if not index.health_check():
        raise HTTPException(status_code=503, detail="Vector index unavailable")
    return {"status": "ok"}


@app.post("/api/upload", status_code=202, response_model=UploadResponse)
async def upload(
    file: UploadFile = File(...),
    collection_id: str | None = Form(default=None),
    jobs: JobManager = Depends(get_job_manager),
) -> UploadResponse:
    """Accept a document and schedule its ingestion."""
    content_type = (file.content_type or "").split(";")[0].strip().lower()
    if content_type not in SUPPORTED_CONTENT_TYPES:
        raise InvalidInputError(
            f"Unsupported file type {content_type or 'unknown'!r}; "
            f"expected one of {sorted(SUPPORTED_CONTENT_TYPES)}"
        )

    data = await file.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds the {settings.max_upload_bytes} byte upload limit",
        )

    logger.info("File uploaded: %s (%d bytes)", file.filename, len(data))
    job_id = jobs.submit(data, collection_id, content_type=content_type)
    job = jobs.status(job_id)
    return UploadResponse(job_id=job.job_id, collection_id=job.collection_id, state=job.state)


@app.get("/api/jobs/{job_id}", response_model=IngestionJob)
def job_status(job_id: str, jobs: JobManager = Depends(get_job_manager)) -> IngestionJob:
    """Poll an ingestion job."""
    return jobs.status(job_id)


@app.post("/api/chat", response_model=ChatAnswer)
def chat(
    request: ChatRequest,
    orchestrator: RetrievalOrchestrator = Depends(get_orchestrator),
) -> ChatAnswer:
    """Answer the last message of the conversation from the collection."""
    return orchestrator.answer(request.messages, request.collection_id)


def main() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
