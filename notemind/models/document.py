"""Document data models.

A :class:`Document` is the tenant-scoped record a user's upload creates.
The ingestion coordinator moves it through ``uploading -> processing ->
completed | failed``; retrieval, summarization and topic classification
read it afterwards.

Updates are applied as partial field patches through
:class:`~notemind.interfaces.document_store.IDocumentStore`, so the models
here are frozen snapshots of whatever the store returned.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ProcessingStatus(str, Enum):  # noqa: UP042
    """Lifecycle of a document's ingestion."""

    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DocumentType(str, Enum):  # noqa: UP042
    """Source kinds a document can have.  Only PDFs are auto-ingested."""

    PDF = "pdf"
    DOCX = "docx"
    TEXT = "text"
    PPTX = "pptx"
    NOTE = "note"


class ProcessingLock(BaseModel):
    """Lock token written by the run that won lock acquisition."""

    model_config = ConfigDict(frozen=True)

    event: str = Field(description="Unique token of the ingestion attempt holding the lock.")
    at: datetime = Field(description="When the lock was acquired.")


class DocumentMetadata(BaseModel):
    """Where the source bytes live and how to describe them."""

    model_config = ConfigDict(frozen=True)

    storage_path: str | None = Field(default=None, description="Blob-store path of the source file.")
    file_name: str | None = None
    mime_type: str | None = None
    vector_store_id: str | None = Field(
        default=None,
        description="External (OpenAI) vector store holding this document, if any.",
    )


class DocumentContent(BaseModel):
    """Stored text content.  ``raw`` is a capped copy of the extracted text."""

    model_config = ConfigDict(frozen=True)

    raw: str | None = None
    processed: str | None = None


class Document(BaseModel):
    """A user's document record."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    document_id: str
    type: DocumentType = DocumentType.PDF
    title: str = ""
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    content: DocumentContent = Field(default_factory=DocumentContent)
    summary: str | None = None
    tags: list[str] = Field(default_factory=list)

    processing_status: ProcessingStatus = ProcessingStatus.UPLOADING
    processing_progress: int = Field(default=0, ge=0, le=100)
    processing_lock: ProcessingLock | None = None
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    processing_failed_at: datetime | None = None
    processing_error: str | None = None

    chunk_count: int | None = Field(
        default=None,
        ge=0,
        description="Number of chunk positions written to the vector index (highest index + 1).",
    )
    character_count: int | None = None
    truncated: bool = False

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_terminal_or_running(self) -> bool:
        """True when a new ingestion run must not start."""
        return self.processing_status in (
            ProcessingStatus.PROCESSING,
            ProcessingStatus.COMPLETED,
        )


class DocumentWriteEvent(BaseModel):
    """A document-record write notification.

    ``before`` is None when the document was just created; ``after`` is
    None when it was deleted.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    document_id: str
    event_id: str | None = None
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None


class IngestionResult(BaseModel):
    """Outcome of one ingestion attempt."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    status: str = Field(description='"completed", "failed", or "skipped".')
    chunk_count: int = 0
    failed_chunks: int = 0
    character_count: int = 0
    truncated: bool = False
    reason: str | None = Field(default=None, description="Why the run was skipped or failed.")
