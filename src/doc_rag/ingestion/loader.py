"""Document decoding — raw upload bytes to paginated text."""

from __future__ import annotations

import logging

from langchain_community.document_loaders.parsers.pdf import PyPDFParser
from langchain_core.documents.base import Blob

from doc_rag.errors import InvalidInputError, ParseError
from doc_rag.ingestion.models import PageText

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
TEXT_CONTENT_TYPE = "text/plain"
SUPPORTED_CONTENT_TYPES = frozenset({PDF_CONTENT_TYPE, TEXT_CONTENT_TYPE})


def parse_document(data: bytes, content_type: str = PDF_CONTENT_TYPE) -> list[PageText]:
    """Decode *data* into an ordered list of pages.

    Parameters
    ----------
    data:
        The uploaded file contents.
    content_type:
        MIME type of *data*; one of :data:`SUPPORTED_CONTENT_TYPES`.

    Raises
    ------
    ParseError
        When the bytes cannot be decoded.
    InvalidInputError
        When *content_type* is not supported.
    """
    if content_type == PDF_CONTENT_TYPE:
        return parse_pdf(data)
    if content_type == TEXT_CONTENT_TYPE:
        return parse_text(data)
    raise InvalidInputError(f"Unsupported content type: {content_type!r}")


def parse_pdf(data: bytes) -> list[PageText]:
    """Extract page texts from a PDF using pypdf."""
    try:
        documents = list(PyPDFParser().lazy_parse(Blob.from_data(data, mime_type=PDF_CONTENT_TYPE)))
    except Exception as exc:
        raise ParseError(f"Could not read PDF: {exc}") from exc

    pages: list[PageText] = []
    for index, doc in enumerate(documents):
        # pypdf reports 0-based page indices.
        page_index = doc.metadata.get("page", index)
        pages.append(PageText(page_number=int(page_index) + 1, text=doc.page_content or ""))
    logger.info("Parsed PDF: %d page(s), %d bytes", len(pages), len(data))
    return pages


def parse_text(data: bytes) -> list[PageText]:
    """Decode UTF-8 text; form-feed characters separate pages."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(f"Text upload is not valid UTF-8: {exc}") from exc
    return [PageText(page_number=i, text=page) for i, page in enumerate(text.split("\f"), 1)]
