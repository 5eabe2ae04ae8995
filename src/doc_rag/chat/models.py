"""Request / response models for document chat."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from doc_rag.retrieval.models import Citation


class ConversationTurn(BaseModel):
    """One message of a conversation.

    Attributes
    ----------
    role:
        ``"user"`` or ``"assistant"``.
    content:
        The message text.
    collection_id:
        Collection the turn refers to.  Optional; when present it must
        match the collection the conversation is answered against.
    """

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str
    collection_id: str | None = None


class ChatAnswer(BaseModel):
    """Generated answer plus provenance.

    Attributes
    ----------
    answer:
        Text returned by the chat model.
    cited_pages:
        Distinct pages of the retrieved chunks, ascending.
    retrieved_count:
        Number of chunks placed in the context.
    citations:
        One citation per retrieved chunk, in context order.
    """

    model_config = ConfigDict(frozen=True)

    answer: str
    cited_pages: list[int] = Field(default_factory=list)
    retrieved_count: int = 0
    citations: list[Citation] = Field(default_factory=list)
