"""
Serving — FastAPI application exposing ingestion and document chat.

Routes are thin: they validate HTTP-level concerns (content type, upload
size) and delegate to the job manager and the retrieval orchestrator.
"""
