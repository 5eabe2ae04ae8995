"""
Ingestion — parsing, chunking, embedding and indexing of uploaded documents.

Work is driven by :class:`~doc_rag.ingestion.jobs.JobManager`, which runs
every submitted document through the pipeline on a background worker and
exposes the job's state for polling.
"""
