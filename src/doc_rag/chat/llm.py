"""Chat model used to phrase answers from retrieved document passages.

The orchestrator needs one chat-completion call per question, so any
OpenAI-style endpoint works.  ``LLM_MODEL_NAME`` picks the model;
``LLM_BASE_URL`` redirects the client to a self-hosted server (vLLM,
Ollama, LM Studio) that speaks the same API.  ``LLM_TIMEOUT`` and
``LLM_MAX_RETRIES`` bound how long a chat request may hang before the
caller sees ``GenerationUnavailable``.
"""

from __future__ import annotations

import logging

from langchain_openai import ChatOpenAI

from doc_rag.config import settings

logger = logging.getLogger(__name__)

# Self-hosted servers ignore the key, but the client refuses an empty one.
_PLACEHOLDER_KEY = "EMPTY"


def get_llm(temperature: float | None = None) -> ChatOpenAI:
    """Build the chat model from settings.

    Parameters
    ----------
    temperature:
        Overrides ``settings.llm_temperature``.  Answers are meant to
        stick to the document, so the default is ``0.0``.
    """
    base_url = settings.llm_base_url or None
    api_key = settings.openai_api_key or (_PLACEHOLDER_KEY if base_url else None)
    logger.info("Chat model %s via %s", settings.llm_model_name, base_url or "OpenAI")
    return ChatOpenAI(
        model=settings.llm_model_name,
        temperature=settings.llm_temperature if temperature is None else temperature,
        base_url=base_url,
        api_key=api_key,
        timeout=settings.llm_timeout,
        max_retries=settings.llm_max_retries,
    )
