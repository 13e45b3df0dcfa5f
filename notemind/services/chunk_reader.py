"""Reads a document's chunks back from the vector index in order."""

from __future__ import annotations

import structlog

from notemind.interfaces.vector_index_provider import IVectorIndexProvider
from notemind.models.document import Document
from notemind.services.ingestion.chunker import make_chunk_id
from notemind.utils.errors import VectorIndexError
from notemind.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)


class DocumentChunkReader:
    """Resolves how many chunks a document has and fetches them by id.

    The persisted ``Document.chunk_count`` is authoritative.  Documents
    indexed before it was recorded fall back to a metadata scan of the
    index for the highest ``chunk_index``.
    """

    def __init__(self, vector_index: IVectorIndexProvider) -> None:
        self._index = vector_index

    async def chunk_count(self, document: Document) -> int | None:
        if document.chunk_count:
            return document.chunk_count
        try:
            highest = await self._index.max_chunk_index(document.document_id, document.user_id)
        except VectorIndexError as exc:
            logger.warning("chunk_count_scan_failed", document_id=document.document_id, error=str(exc))
            return None
        return None if highest is None else highest + 1

    async def ordered_chunks(
        self,
        document: Document,
        max_chunks: int | None = None,
        default_count: int | None = None,
    ) -> list[str]:
        """Return chunk texts in ascending index order.

        ``default_count`` is assumed when the chunk count cannot be
        resolved; with no default an unresolvable document yields [].
        """
        count = await self.chunk_count(document) or default_count
        if not count:
            return []
        if max_chunks is not None:
            count = min(count, max_chunks)

        ids = [make_chunk_id(document.document_id, index) for index in range(count)]
        matches = await self._index.fetch_by_ids(ids, document.user_id)
        matches.sort(key=lambda match: match.metadata.chunk_index)
        return [match.metadata.chunk for match in matches if match.metadata.chunk]
