"""Full document text retrieval.

Indexed chunks are the primary source: joined in order they reproduce
the extracted text (with the chunker's overlap).  Documents without
usable chunks fall back to the text stored on the record.
"""

from __future__ import annotations

import structlog

from notemind.interfaces.document_store import IDocumentStore
from notemind.models.artifacts import DocumentText
from notemind.services.chunk_reader import DocumentChunkReader
from notemind.utils.errors import ValidationError
from notemind.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

_MIN_INDEX_TEXT_CHARS = 10


class DocumentTextService:
    """Returns a document's text from the index or the stored record."""

    def __init__(self, document_store: IDocumentStore, chunk_reader: DocumentChunkReader) -> None:
        self._store = document_store
        self._chunks = chunk_reader

    async def get_text(self, document_id: str, user_id: str, limit_chars: int | None = None) -> DocumentText:
        document = await self._store.get_document(user_id, document_id)
        if document is None:
            raise ValidationError(message=f"Document not found: {document_id}")

        chunk_count = await self._chunks.chunk_count(document) or 0
        text = ""
        source = "none"
        if chunk_count:
            text = "\n\n".join(await self._chunks.ordered_chunks(document))
            source = "index"

        if len(text) < _MIN_INDEX_TEXT_CHARS:
            text = document.content.raw or document.content.processed or document.summary or ""
            source = "store" if text else "none"

        total = len(text)
        if limit_chars is not None and limit_chars > 0:
            text = text[:limit_chars]

        logger.info("document_text_read", document_id=document_id, source=source, chars=total)
        return DocumentText(
            text=text,
            source=source,
            chunk_count=chunk_count,
            truncated=len(text) < total,
        )
