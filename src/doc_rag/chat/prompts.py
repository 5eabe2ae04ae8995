"""Prompt templates for document chat.

The system instruction and the context block live here so they are easy
to audit and version independently of the orchestration logic.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

    from doc_rag.chat.models import ConversationTurn
    from doc_rag.retrieval.models import RetrievalResult

OUT_OF_SCOPE_REPLY = "I can only help with information from this document."

SYSTEM_PROMPT = f"""\
You are a document assistant. You answer questions about a single uploaded
document using ONLY the context passages below, each tagged with the page
it comes from.

Rules:
1. Answer only from the provided context. Do not use outside knowledge.
2. Cite the page of every fact you use, e.g. "According to page 4, ...".
   When the answer spans several pages, cite all of them.
3. If the context does not contain the answer, say so and point the user
   to the most relevant pages instead of guessing.
4. If the request is unrelated to the document, reply:
   "{OUT_OF_SCOPE_REPLY}"
5. Be precise and concise.
"""

NO_CONTEXT = "(no passages were retrieved)"


def format_context(results: Sequence[RetrievalResult]) -> str:
    """Render retrieved chunks as a numbered, page-annotated context block.

    Chunks keep the order they were returned in (descending similarity).
    """
    if not results:
        return NO_CONTEXT
    parts: list[str] = []
    for i, result in enumerate(results, 1):
        parts.append(f"[{i}] Page {result.citation.page}\n{result.content}")
    return "\n\n---\n\n".join(parts)


def build_system_message(results: Sequence[RetrievalResult]) -> SystemMessage:
    """System instruction with the assembled context appended."""
    return SystemMessage(content=f"{SYSTEM_PROMPT}\nContext:\n{format_context(results)}")


def build_chat_prompt(
    results: Sequence[RetrievalResult],
    conversation: Sequence[ConversationTurn],
) -> list[BaseMessage]:
    """Assemble the messages for the generation call.

    Parameters
    ----------
    results:
        Retrieved chunks, in index order.
    conversation:
        The full dialogue history, ending with the user's question.

    Returns
    -------
    list[BaseMessage]
        System message (instruction + context) followed by every turn.
    """
    messages: list[BaseMessage] = [build_system_message(results)]
    for turn in conversation:
        if turn.role == "user":
            messages.append(HumanMessage(content=turn.content))
        else:
            messages.append(AIMessage(content=turn.content))
    return messages
