"""Ingestion coordinator: one document from stored bytes to indexed chunks.

Flow for a single document::

    precondition check -> acquire processing lock (atomic) -> download
    -> extract -> size cap -> [chunk -> embed -> upsert -> yield]* -> complete

Exactly-once processing rests entirely on
:meth:`IDocumentStore.acquire_processing_lock`.  The write-event source
delivers at least once, so several coordinators may be invoked for the
same document; only the one whose transaction flips the status to
``processing`` continues.

Chunks are pulled lazily from the chunker and handled strictly in
ascending order, one at a time.  A chunk whose embedding or upsert fails
is logged and skipped; anything else that goes wrong marks the whole run
``failed`` and releases the lock.  Progress is persisted every
``progress_every`` chunks and never reaches 100 before the loop ends.

A run that dies without reaching a terminal status leaves its lock behind.
Nothing here reclaims it; ``processing_lock.at`` is persisted so an
external supervisor can.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import structlog

from notemind.interfaces.blob_store import IBlobStore
from notemind.interfaces.document_store import IDocumentStore
from notemind.interfaces.embedding_provider import IEmbeddingProvider
from notemind.interfaces.text_extractor import ITextExtractor
from notemind.interfaces.vector_index_provider import IVectorIndexProvider
from notemind.models.document import (
    Document,
    DocumentContent,
    DocumentType,
    DocumentWriteEvent,
    IngestionResult,
    ProcessingStatus,
)
from notemind.models.rag import MAX_METADATA_TEXT_CHARS, ChunkMetadata, VectorRecord
from notemind.services.ingestion.chunker import TextChunker, make_chunk_id
from notemind.utils.errors import (
    EmbeddingFailure,
    IngestionError,
    StorageError,
    ValidationError,
    VectorIndexError,
)
from notemind.utils.logging import log_context

logger = structlog.get_logger(logger_name=__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestionCoordinator:
    """Drives documents through download, extraction, chunking and indexing.

    Parameters
    ----------
    document_store:
        Source of document records and holder of the processing lock.
    blob_store:
        Where the uploaded source files live.
    extractors:
        Text extractor per document type.
    embedding_provider / vector_index:
        Where chunk vectors come from and go to.
    chunker:
        Word-window chunker (300 words, 20 overlap by default).
    max_chars:
        Extracted text beyond this many characters is dropped and the
        document is flagged ``truncated``.
    min_text_length:
        Extracted text shorter than this fails the run.
    raw_content_chars:
        Size of the raw-text copy stored on the completed document.
    progress_every:
        Persist progress after every N chunks.
    chunk_delay:
        Pause after each chunk; bounds the call rate and lets other tasks run.
    ingestible_types:
        Document types the write trigger and :meth:`ingest` accept.
    clock:
        Returns "now"; injectable for tests.
    """

    def __init__(
        self,
        document_store: IDocumentStore,
        blob_store: IBlobStore,
        extractors: dict[DocumentType, ITextExtractor],
        embedding_provider: IEmbeddingProvider,
        vector_index: IVectorIndexProvider,
        chunker: TextChunker | None = None,
        max_chars: int = 2_500_000,
        min_text_length: int = 10,
        raw_content_chars: int = 1_000_000,
        progress_every: int = 25,
        chunk_delay: float = 0.04,
        ingestible_types: frozenset[DocumentType] = frozenset({DocumentType.PDF}),
        clock: Clock | None = None,
    ) -> None:
        self._store = document_store
        self._blobs = blob_store
        self._extractors = extractors
        self._embedding = embedding_provider
        self._index = vector_index
        self._chunker = chunker or TextChunker()
        self._max_chars = max_chars
        self._min_text_length = min_text_length
        self._raw_content_chars = raw_content_chars
        self._progress_every = max(1, progress_every)
        self._chunk_delay = chunk_delay
        self._ingestible_types = ingestible_types
        self._clock = clock or _utcnow

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def handle_document_write(self, event: DocumentWriteEvent) -> IngestionResult | None:
        """React to a document-record write.

        Only creations and writes that newly attach (or change) a storage
        path start ingestion; every other write returns None untouched.
        """
        if event.after is None:
            return None

        after_path = self._storage_path_of(event.after)
        if event.before is not None:
            before_path = self._storage_path_of(event.before)
            if not after_path or after_path == before_path:
                return None

        with log_context(user_id=event.user_id, document_id=event.document_id, event_id=event.event_id):
            logger.info("document_write_trigger", created=event.before is None)
            return await self.ingest(event.user_id, event.document_id, event_id=event.event_id)

    async def ingest(self, user_id: str, document_id: str, event_id: str | None = None) -> IngestionResult:
        """Run ingestion for one document if its preconditions hold.

        Never raises for run-level failures: they are persisted on the
        document (``status=failed``) and reported in the result.
        """
        document = await self._store.get_document(user_id, document_id)
        if document is None:
            return self._skipped(document_id, "document_not_found")

        reason = self._skip_reason(document)
        if reason is not None:
            return self._skipped(document_id, reason)

        token = event_id or uuid.uuid4().hex
        acquired = await self._store.acquire_processing_lock(user_id, document_id, token, self._clock())
        if not acquired:
            return self._skipped(document_id, "lock_not_acquired")

        log = logger.bind(user_id=user_id, document_id=document_id, lock=token)
        log.info("ingestion_started", type=document.type.value)
        try:
            return await self._process(document, log)
        except Exception as exc:
            message = exc.message if hasattr(exc, "message") else str(exc)
            log.error("ingestion_failed", error=message, error_type=type(exc).__name__)
            await self._mark_failed(user_id, document_id, message)
            return IngestionResult(document_id=document_id, status="failed", reason=message)

    async def reindex(self, user_id: str, document_id: str) -> IngestionResult:
        """Drop a document's vectors, reset its status and ingest it again."""
        document = await self._store.get_document(user_id, document_id)
        if document is None:
            raise ValidationError(message=f"Document not found: {document_id}")
        if document.processing_status == ProcessingStatus.PROCESSING:
            raise ValidationError(message=f"Document is being processed: {document_id}")

        await self._index.delete_by_document(document_id, user_id)
        await self._store.update_document(
            user_id,
            document_id,
            {
                "processing_status": ProcessingStatus.UPLOADING,
                "processing_progress": 0,
                "processing_lock": None,
                "processing_error": None,
                "chunk_count": None,
            },
        )
        logger.info("document_reindex_requested", user_id=user_id, document_id=document_id)
        return await self.ingest(user_id, document_id)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _process(self, document: Document, log: Any) -> IngestionResult:
        user_id, document_id = document.user_id, document.document_id

        text = await self._load_text(document)
        truncated = len(text) > self._max_chars
        if truncated:
            log.warning("ingestion_text_truncated", original_chars=len(text), max_chars=self._max_chars)
            text = text[: self._max_chars]
        total_chars = len(text)

        indexed = 0
        failed = 0
        positions = 0
        processed_chars = 0
        for index, chunk in enumerate(self._chunker.chunk(text)):
            positions = index + 1
            try:
                await self._index_chunk(document, index, chunk)
                indexed += 1
            except (EmbeddingFailure, VectorIndexError) as exc:
                failed += 1
                log.warning("ingestion_chunk_failed", chunk_index=index, error=str(exc)[:300])

            processed_chars = min(total_chars, processed_chars + len(chunk))
            if positions % self._progress_every == 0:
                progress = min(99, round(processed_chars / total_chars * 100))
                await self._store.update_document(user_id, document_id, {"processing_progress": progress})
                log.debug("ingestion_progress", chunks=positions, progress=progress)

            await asyncio.sleep(self._chunk_delay)

        if indexed == 0:
            raise IngestionError(message=f"None of {positions} chunks could be indexed")

        processed_note = f"Indexed {indexed} chunks" + (" (truncated)" if truncated else "")
        await self._store.update_document(
            user_id,
            document_id,
            {
                "processing_status": ProcessingStatus.COMPLETED,
                "processing_progress": 100,
                "processing_lock": None,
                "processing_error": None,
                "processing_completed_at": self._clock(),
                "chunk_count": positions,
                "character_count": total_chars,
                "truncated": truncated,
                "content": DocumentContent(raw=text[: self._raw_content_chars], processed=processed_note),
            },
        )
        log.info(
            "ingestion_complete",
            chunks=indexed,
            failed_chunks=failed,
            characters=total_chars,
            truncated=truncated,
        )
        return IngestionResult(
            document_id=document_id,
            status="completed",
            chunk_count=indexed,
            failed_chunks=failed,
            character_count=total_chars,
            truncated=truncated,
        )

    async def _load_text(self, document: Document) -> str:
        path = document.metadata.storage_path
        if not path:
            raise IngestionError(message="Document has no storage path")

        try:
            data = await self._blobs.download(path)
        except StorageError as exc:
            raise IngestionError(message=f"Download failed: {exc.message}") from exc

        extractor = self._extractors.get(document.type)
        if extractor is None:
            raise IngestionError(message=f"No extractor for document type {document.type.value}")

        text = await asyncio.to_thread(extractor.extract, data)
        if len(text.strip()) < self._min_text_length:
            raise IngestionError(message="No meaningful text extracted from document")
        return text

    async def _index_chunk(self, document: Document, index: int, chunk: str) -> None:
        vectors = await self._embedding.embed([chunk])
        record = VectorRecord(
            id=make_chunk_id(document.document_id, index),
            embedding=vectors[0],
            metadata=ChunkMetadata(
                user_id=document.user_id,
                document_id=document.document_id,
                chunk_index=index,
                chunk=chunk[:MAX_METADATA_TEXT_CHARS],
                title=document.title,
                file_name=document.metadata.file_name or "",
                timestamp=self._clock().isoformat(),
            ),
        )
        await self._index.upsert([record])

    async def _mark_failed(self, user_id: str, document_id: str, message: str) -> None:
        try:
            await self._store.update_document(
                user_id,
                document_id,
                {
                    "processing_status": ProcessingStatus.FAILED,
                    "processing_error": message[:1000],
                    "processing_failed_at": self._clock(),
                    "processing_lock": None,
                },
            )
        except StorageError as exc:
            logger.error("ingestion_failure_not_persisted", document_id=document_id, error=str(exc))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _skip_reason(self, document: Document) -> str | None:
        if document.type not in self._ingestible_types:
            return f"unsupported_type:{document.type.value}"
        if not document.metadata.storage_path:
            return "missing_storage_path"
        if document.is_terminal_or_running:
            return f"already_{document.processing_status.value}"
        return None

    @staticmethod
    def _skipped(document_id: str, reason: str) -> IngestionResult:
        logger.info("ingestion_skipped", document_id=document_id, reason=reason)
        return IngestionResult(document_id=document_id, status="skipped", reason=reason)

    @staticmethod
    def _storage_path_of(snapshot: dict[str, Any]) -> str | None:
        metadata = snapshot.get("metadata") or {}
        return metadata.get("storage_path")
