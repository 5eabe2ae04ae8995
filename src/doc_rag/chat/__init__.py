"""
Chat — retrieval-augmented answers grounded in one document's collection.

Public API
----------
- :class:`RetrievalOrchestrator` — embed the question, retrieve, prompt, answer.
- :class:`ConversationTurn`, :class:`ChatAnswer` — request / response models.
"""

from doc_rag.chat.models import ChatAnswer, ConversationTurn
from doc_rag.chat.orchestrator import RetrievalOrchestrator, cited_pages

__all__ = [
    "ChatAnswer",
    "ConversationTurn",
    "RetrievalOrchestrator",
    "cited_pages",
]
