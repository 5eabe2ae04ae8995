"""Retrieval orchestrator — grounded answers over one document collection.

Usage::

    from doc_rag.chat import ConversationTurn, RetrievalOrchestrator

    orchestrator = RetrievalOrchestrator(embedder, index)
    answer = orchestrator.answer(
        [ConversationTurn(role="user", content="What is the warranty period?")],
        collection_id,
    )
    print(answer.answer, answer.cited_pages)

Only the final user turn is embedded for retrieval; earlier turns are
passed to the model as dialogue history.  Concurrent calls are safe: the
only shared state is the chat model, created once under a lock on first
use when none is injected.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Sequence

from doc_rag.chat.models import ChatAnswer, ConversationTurn
from doc_rag.chat.prompts import build_chat_prompt
from doc_rag.config import settings
from doc_rag.errors import ConfigurationError, GenerationUnavailableError, InvalidInputError

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

    from doc_rag.ingestion.embedder import Embedder
    from doc_rag.retrieval.base import VectorIndexBase
    from doc_rag.retrieval.models import RetrievalResult

logger = logging.getLogger(__name__)


def cited_pages(results: Sequence[RetrievalResult]) -> list[int]:
    """Distinct pages represented among *results*, ascending."""
    return sorted({r.citation.page for r in results})


class RetrievalOrchestrator:
    """Embed the question, retrieve the top-*k* chunks, and generate an answer.

    Parameters
    ----------
    embedder:
        Must be the same model version the collection was ingested with.
    index:
        Vector index holding the document collections.
    llm:
        Chat model.  When *None*, :func:`~doc_rag.chat.llm.get_llm` is
        called once, on first use.
    top_k:
        Number of chunks placed in the context.
    """

    def __init__(
        self,
        embedder: Embedder,
        index: VectorIndexBase,
        llm: BaseChatModel | None = None,
        *,
        top_k: int = settings.retrieval_top_k,
    ) -> None:
        if top_k <= 0:
            raise ValueError(f"top_k must be positive, got {top_k}")
        self._embedder = embedder
        self._index = index
        self._llm = llm
        self._llm_lock = threading.Lock()
        self.top_k = top_k

    def answer(self, conversation: Sequence[ConversationTurn], collection_id: str) -> ChatAnswer:
        """Answer the final user turn of *conversation* from *collection_id*.

        Raises
        ------
        InvalidInputError
            Empty conversation, final turn not from the user, blank
            question, or a turn tagged with a different collection.
        CollectionNotFoundError
            No completed ingestion for *collection_id*.
        ConfigurationError
            The collection was built with a different embedding model.
        EmbeddingUnavailableError / GenerationUnavailableError
            The external capability failed.
        """
        question = self._validate(conversation, collection_id)

        info = self._index.describe(collection_id)
        if info.embedding_model != self._embedder.model_version:
            raise ConfigurationError(
                f"Collection {collection_id!r} was embedded with {info.embedding_model!r} "
                f"but queries use {self._embedder.model_version!r}"
            )

        query_vector = self._embedder.embed_query(question)
        if len(query_vector) != info.embedding_dim:
            raise ConfigurationError(
                f"Query vector has {len(query_vector)} dimensions; collection {collection_id!r} "
                f"holds {info.embedding_dim}-d vectors"
            )

        results = self._index.query(collection_id, query_vector, k=self.top_k)
        logger.info("Retrieved %d chunk(s) from %s", len(results), collection_id)

        text = self._generate(build_chat_prompt(results, conversation))
        return ChatAnswer(
            answer=text,
            cited_pages=cited_pages(results),
            retrieved_count=len(results),
            citations=[r.citation for r in results],
        )

    # -- internals ------------------------------------------------------------

    @staticmethod
    def _validate(conversation: Sequence[ConversationTurn], collection_id: str) -> str:
        if not collection_id:
            raise InvalidInputError("Collection id is required")
        if not conversation:
            raise InvalidInputError("Conversation must contain at least one message")
        last = conversation[-1]
        if last.role != "user":
            raise InvalidInputError("Conversation must end with a user message")
        if not last.content.strip():
            raise InvalidInputError("The final user message is empty")
        for turn in conversation:
            if turn.collection_id is not None and turn.collection_id != collection_id:
                raise InvalidInputError(
                    f"Message refers to collection {turn.collection_id!r}, not {collection_id!r}"
                )
        return last.content

    def _chat_model(self) -> BaseChatModel:
        with self._llm_lock:
            if self._llm is None:
                from doc_rag.chat.llm import get_llm

                self._llm = get_llm()
            return self._llm

    def _generate(self, messages: list[Any]) -> str:
        try:
            response = self._chat_model().invoke(messages)
        except Exception as exc:
            logger.warning("Chat model call failed", exc_info=True)
            raise GenerationUnavailableError(f"Chat model failed: {exc}") from exc

        content = response.content
        if isinstance(content, str):
            return content
        # Some providers return a list of content blocks.
        return "".join(
            block if isinstance(block, str) else str(block.get("text", ""))
            for block in content
        )
