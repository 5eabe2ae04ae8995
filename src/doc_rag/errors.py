"""Classified errors shared by every layer.

Each failure the core can produce belongs to exactly one
:class:`ErrorKind`.  Adapters translate library / transport exceptions
into one of the subclasses below at their boundary, so callers never have
to know which vector store or model provider is behind them.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Failure categories surfaced to callers and stored on failed jobs."""

    INVALID_INPUT = "InvalidInput"
    PARSE_ERROR = "ParseError"
    EMBEDDING_UNAVAILABLE = "EmbeddingUnavailable"
    GENERATION_UNAVAILABLE = "GenerationUnavailable"
    INDEX_UNAVAILABLE = "IndexUnavailable"
    COLLECTION_NOT_FOUND = "CollectionNotFound"
    NOT_FOUND = "NotFound"
    CONFIGURATION_ERROR = "ConfigurationError"


class DocRagError(Exception):
    """Base class for all classified errors.

    Parameters
    ----------
    message:
        Human-readable explanation, suitable for direct display.
    """

    kind: ErrorKind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message}


class InvalidInputError(DocRagError):
    """Malformed or missing required fields."""

    kind = ErrorKind.INVALID_INPUT


class CollectionExistsError(InvalidInputError):
    """The collection already holds a completed ingestion and is immutable."""


class ParseError(DocRagError):
    """Source bytes could not be decoded into text."""

    kind = ErrorKind.PARSE_ERROR


class EmbeddingUnavailableError(DocRagError):
    """The embedding capability failed (transport, auth, rate limit, …)."""

    kind = ErrorKind.EMBEDDING_UNAVAILABLE


class GenerationUnavailableError(DocRagError):
    """The chat model failed to produce an answer."""

    kind = ErrorKind.GENERATION_UNAVAILABLE


class IndexUnavailableError(DocRagError):
    """The vector index could not be reached or rejected a write."""

    kind = ErrorKind.INDEX_UNAVAILABLE


class CollectionNotFoundError(DocRagError):
    """No completed ingestion exists for the requested collection."""

    kind = ErrorKind.COLLECTION_NOT_FOUND


class NotFoundError(DocRagError):
    """Unknown job id."""

    kind = ErrorKind.NOT_FOUND


class ConfigurationError(DocRagError):
    """Deployment bug, e.g. an embedding-model mismatch for a collection."""

    kind = ErrorKind.CONFIGURATION_ERROR
