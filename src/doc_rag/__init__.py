"""
doc_rag — chat with a single uploaded document.

Documents are ingested in the background (parse → chunk → embed → index)
by the :mod:`doc_rag.ingestion` job manager, and questions are answered by
the :mod:`doc_rag.chat` orchestrator using retrieval over the document's
own vector collection.
"""

__version__ = "0.1.0"
