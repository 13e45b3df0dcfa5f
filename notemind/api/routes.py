"""FastAPI routes for notemind.

Service dependencies are resolved from ``app.state`` (populated at
startup by ``main._build_all``) through ``Annotated[..., Depends(...)]``
aliases.

Route map
---------

    Endpoint                                   Method  Description
    /api/v1/chats                              POST    Create an empty chat
    /api/v1/chats/messages                     POST    Send a chat turn (answer streams into the store)
    /api/v1/query                              POST    Single-shot question over documents
    /api/v1/evaluations/long-answer            POST    Grade a free-text answer
    /api/v1/documents/upload                   POST    Upload a file, create its record, ingest
    /api/v1/documents/{id}/summary             POST    Generate (or fetch cached) summary
    /api/v1/documents/{id}/flashcards          POST    Generate (or fetch cached) flashcards
    /api/v1/documents/{id}/quiz                POST    Generate (or fetch cached) quiz
    /api/v1/documents/{id}/mindmap             POST    Generate (or fetch cached) mind map
    /api/v1/documents/{id}/podcast             POST    Generate (or fetch cached) podcast audio
    /api/v1/documents/{id}/text                POST    Full document text
    /api/v1/documents/{id}/classify            POST    Tag the document with topics
    /api/v1/documents/{id}/reindex             POST    Drop vectors and ingest again
    /api/v1/users/resolve                      POST    Look a user up by email
    /api/v1/events/document-written            POST    Document write event (ingestion trigger)
    /api/v1/health                             GET     Health check + provider status
    /files/{path}                              GET     Token-checked blob download

Callable endpoints always answer 200 with a ``CallableResponse``;
failures come back as ``success=false``.
"""

from __future__ import annotations

import mimetypes
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Form, Header, HTTPException, Query, Request, UploadFile
from fastapi.responses import Response

from notemind.api.schemas import (
    CallableResponse,
    CreateChatRequest,
    DocumentTextRequest,
    DocumentUploadResponse,
    ErrorResponse,
    EvaluateLongAnswerRequest,
    GenerateFlashcardsRequest,
    GenerateMindMapRequest,
    GeneratePodcastRequest,
    GenerateQuizRequest,
    GenerateSummaryRequest,
    HealthResponse,
    QueryDocumentsRequest,
    ResolveUserRequest,
    SendChatMessageRequest,
    UserScopedRequest,
)
from notemind.interfaces.blob_store import IBlobStore
from notemind.interfaces.document_store import IDocumentStore
from notemind.models.chat import ChatTurnRequest
from notemind.models.document import (
    Document,
    DocumentMetadata,
    DocumentType,
    DocumentWriteEvent,
    ProcessingStatus,
)
from notemind.services.answer_generator import AnswerGenerator, PreparedTurn
from notemind.services.document_text_service import DocumentTextService
from notemind.services.ingestion.coordinator import IngestionCoordinator
from notemind.services.podcast_service import TOKEN_METADATA_KEY, PodcastService
from notemind.services.query_service import QueryService
from notemind.services.study_materials import StudyMaterialService
from notemind.services.summarizer import Summarizer
from notemind.services.topic_classifier import TopicClassifier, should_reclassify
from notemind.utils.errors import NotemindError, StorageError, ValidationError
from notemind.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")
files_router = APIRouter()

_MAX_UPLOAD_BYTES = 50 * 1024 * 1024
_UPLOAD_CHUNK_SIZE = 64 * 1024

_EXTENSION_TYPES = {
    ".pdf": DocumentType.PDF,
    ".docx": DocumentType.DOCX,
    ".pptx": DocumentType.PPTX,
    ".txt": DocumentType.TEXT,
    ".md": DocumentType.TEXT,
}


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _get_document_store(request: Request) -> IDocumentStore:
    return request.app.state.document_store


def _get_blob_store(request: Request) -> IBlobStore:
    return request.app.state.blob_store


def _get_coordinator(request: Request) -> IngestionCoordinator:
    return request.app.state.ingestion_coordinator


def _get_answer_generator(request: Request) -> AnswerGenerator:
    return request.app.state.answer_generator


def _get_query_service(request: Request) -> QueryService:
    return request.app.state.query_service


def _get_summarizer(request: Request) -> Summarizer:
    return request.app.state.summarizer


def _get_study_materials(request: Request) -> StudyMaterialService:
    return request.app.state.study_materials


def _get_podcast_service(request: Request) -> PodcastService:
    return request.app.state.podcast_service


def _get_document_text_service(request: Request) -> DocumentTextService:
    return request.app.state.document_text_service


def _get_topic_classifier(request: Request) -> TopicClassifier:
    return request.app.state.topic_classifier


DocumentStoreDep = Annotated[IDocumentStore, Depends(_get_document_store)]
BlobStoreDep = Annotated[IBlobStore, Depends(_get_blob_store)]
CoordinatorDep = Annotated[IngestionCoordinator, Depends(_get_coordinator)]
AnswerGeneratorDep = Annotated[AnswerGenerator, Depends(_get_answer_generator)]
QueryServiceDep = Annotated[QueryService, Depends(_get_query_service)]
SummarizerDep = Annotated[Summarizer, Depends(_get_summarizer)]
StudyMaterialsDep = Annotated[StudyMaterialService, Depends(_get_study_materials)]
PodcastServiceDep = Annotated[PodcastService, Depends(_get_podcast_service)]
DocumentTextDep = Annotated[DocumentTextService, Depends(_get_document_text_service)]
TopicClassifierDep = Annotated[TopicClassifier, Depends(_get_topic_classifier)]
CallerIdDep = Annotated[str | None, Header(alias="X-User-Id")]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_caller(caller_id: str | None, user_id: str) -> None:
    """Reject requests whose header identity disagrees with the body."""
    if caller_id is not None and caller_id != user_id:
        raise ValidationError(message="Authenticated user mismatch")


async def _call(operation: str, fn: Callable[[], Awaitable[Any]]) -> CallableResponse:
    """Run a callable body and wrap its outcome in the response envelope."""
    try:
        data = await fn()
    except NotemindError as exc:
        _logger.warning("callable_failed", operation=operation, error_type=type(exc).__name__, error=str(exc))
        return CallableResponse(success=False, error=exc.message)
    except Exception as exc:
        _logger.exception("callable_crashed", operation=operation, error_type=type(exc).__name__)
        return CallableResponse(success=False, error=str(exc) or "Unknown error")
    return CallableResponse(success=True, data=data)


def detect_document_type(file_name: str, content_type: str | None) -> DocumentType:
    suffix = PurePosixPath(file_name).suffix.lower()
    if suffix in _EXTENSION_TYPES:
        return _EXTENSION_TYPES[suffix]
    guessed = mimetypes.guess_extension(content_type or "") or ""
    if guessed in _EXTENSION_TYPES:
        return _EXTENSION_TYPES[guessed]
    raise ValidationError(message=f"Unsupported file type: {file_name}")


async def _run_document_write(
    coordinator: IngestionCoordinator,
    classifier: TopicClassifier,
    event: DocumentWriteEvent,
) -> None:
    """Background half of a document write: ingest, then tag."""
    try:
        result = await coordinator.handle_document_write(event)
        completed = result is not None and result.status == "completed"
        if event.after is not None and (completed or should_reclassify(event.before, event.after)):
            await classifier.classify_and_tag(event.user_id, event.document_id)
    except NotemindError as exc:
        _logger.error(
            "document_write_processing_failed",
            user_id=event.user_id,
            document_id=event.document_id,
            error=str(exc),
        )


async def _run_chat_generation(generator: AnswerGenerator, turn: PreparedTurn) -> None:
    try:
        await generator.generate(turn)
    except NotemindError as exc:
        _logger.error("chat_generation_aborted", chat_id=turn.chat_id, error=str(exc))


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


@router.post("/chats", response_model=CallableResponse, summary="Create a chat")
async def create_chat(
    body: CreateChatRequest,
    generator: AnswerGeneratorDep,
    caller_id: CallerIdDep = None,
) -> CallableResponse:
    async def run() -> dict[str, Any]:
        _check_caller(caller_id, body.user_id)
        chat = await generator.create_chat(body.user_id, body.title, body.context_doc_ids, body.language)
        return {"chat_id": chat.chat_id, "title": chat.title}

    return await _call("create_chat", run)


@router.post("/chats/messages", response_model=CallableResponse, summary="Send a chat message")
async def send_chat_message(
    body: SendChatMessageRequest,
    background_tasks: BackgroundTasks,
    generator: AnswerGeneratorDep,
    caller_id: CallerIdDep = None,
) -> CallableResponse:
    """Persist the user turn now; the answer streams into the store afterwards."""

    async def run() -> dict[str, Any]:
        _check_caller(caller_id, body.user_id)
        turn = await generator.prepare_turn(ChatTurnRequest(**body.model_dump()))
        background_tasks.add_task(_run_chat_generation, generator, turn)
        return {"chat_id": turn.chat_id, "message_id": turn.message_id}

    return await _call("send_chat_message", run)


# ---------------------------------------------------------------------------
# Query & study material
# ---------------------------------------------------------------------------


@router.post("/query", response_model=CallableResponse, summary="Answer a question from documents")
async def query_documents(
    body: QueryDocumentsRequest,
    query_service: QueryServiceDep,
    caller_id: CallerIdDep = None,
) -> CallableResponse:
    async def run() -> dict[str, Any]:
        _check_caller(caller_id, body.user_id)
        answer = await query_service.query_documents(body.question, body.user_id, body.document_id, body.top_k)
        return answer.model_dump()

    return await _call("query_documents", run)


@router.post("/documents/{document_id}/summary", response_model=CallableResponse, summary="Generate a summary")
async def generate_summary(
    document_id: str,
    body: GenerateSummaryRequest,
    summarizer: SummarizerDep,
    caller_id: CallerIdDep = None,
) -> CallableResponse:
    async def run() -> dict[str, Any]:
        _check_caller(caller_id, body.user_id)
        result = await summarizer.summarize(document_id, body.user_id, body.max_length, body.force)
        return result.model_dump()

    return await _call("generate_summary", run)


@router.post("/documents/{document_id}/flashcards", response_model=CallableResponse, summary="Generate flashcards")
async def generate_flashcards(
    document_id: str,
    body: GenerateFlashcardsRequest,
    study_materials: StudyMaterialsDep,
    caller_id: CallerIdDep = None,
) -> CallableResponse:
    async def run() -> dict[str, Any]:
        _check_caller(caller_id, body.user_id)
        cards = await study_materials.generate_flashcards(document_id, body.user_id, body.count, body.force)
        return {"flashcards": [card.model_dump() for card in cards]}

    return await _call("generate_flashcards", run)


@router.post("/documents/{document_id}/quiz", response_model=CallableResponse, summary="Generate a quiz")
async def generate_quiz(
    document_id: str,
    body: GenerateQuizRequest,
    study_materials: StudyMaterialsDep,
    caller_id: CallerIdDep = None,
) -> CallableResponse:
    async def run() -> dict[str, Any]:
        _check_caller(caller_id, body.user_id)
        questions = await study_materials.generate_quiz(
            document_id, body.user_id, body.count, body.difficulty, body.force
        )
        return {"quiz": [question.model_dump() for question in questions]}

    return await _call("generate_quiz", run)


@router.post("/documents/{document_id}/mindmap", response_model=CallableResponse, summary="Generate a mind map")
async def generate_mind_map(
    document_id: str,
    body: GenerateMindMapRequest,
    study_materials: StudyMaterialsDep,
    caller_id: CallerIdDep = None,
) -> CallableResponse:
    async def run() -> dict[str, Any]:
        _check_caller(caller_id, body.user_id)
        result = await study_materials.generate_mind_map(document_id, body.user_id, body.language, body.force)
        return result.model_dump()

    return await _call("generate_mind_map", run)


@router.post("/evaluations/long-answer", response_model=CallableResponse, summary="Grade a long answer")
async def evaluate_long_answer(
    body: EvaluateLongAnswerRequest,
    study_materials: StudyMaterialsDep,
    caller_id: CallerIdDep = None,
) -> CallableResponse:
    async def run() -> dict[str, Any]:
        _check_caller(caller_id, body.user_id)
        evaluation = await study_materials.evaluate_long_answer(
            body.user_answer, body.reference_answer, body.min_length
        )
        return evaluation.model_dump()

    return await _call("evaluate_long_answer", run)


@router.post("/documents/{document_id}/podcast", response_model=CallableResponse, summary="Generate podcast audio")
async def generate_podcast(
    document_id: str,
    body: GeneratePodcastRequest,
    podcast_service: PodcastServiceDep,
    caller_id: CallerIdDep = None,
) -> CallableResponse:
    async def run() -> dict[str, Any]:
        _check_caller(caller_id, body.user_id)
        result = await podcast_service.generate(document_id, body.user_id, body.voice, body.force)
        return result.model_dump()

    return await _call("generate_podcast", run)


@router.post("/documents/{document_id}/text", response_model=CallableResponse, summary="Get document text")
async def get_document_text(
    document_id: str,
    body: DocumentTextRequest,
    text_service: DocumentTextDep,
    caller_id: CallerIdDep = None,
) -> CallableResponse:
    async def run() -> dict[str, Any]:
        _check_caller(caller_id, body.user_id)
        result = await text_service.get_text(document_id, body.user_id, body.limit_chars)
        return result.model_dump()

    return await _call("get_document_text", run)


@router.post("/documents/{document_id}/classify", response_model=CallableResponse, summary="Tag with topics")
async def classify_document(
    document_id: str,
    body: UserScopedRequest,
    classifier: TopicClassifierDep,
    caller_id: CallerIdDep = None,
) -> CallableResponse:
    async def run() -> dict[str, Any]:
        _check_caller(caller_id, body.user_id)
        return {"tags": await classifier.classify_and_tag(body.user_id, document_id)}

    return await _call("classify_document", run)


@router.post("/documents/{document_id}/reindex", response_model=CallableResponse, summary="Re-ingest a document")
async def reindex_document(
    document_id: str,
    body: UserScopedRequest,
    coordinator: CoordinatorDep,
    caller_id: CallerIdDep = None,
) -> CallableResponse:
    async def run() -> dict[str, Any]:
        _check_caller(caller_id, body.user_id)
        result = await coordinator.reindex(body.user_id, document_id)
        return result.model_dump()

    return await _call("reindex_document", run)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.post("/users/resolve", response_model=CallableResponse, summary="Resolve a user by email")
async def resolve_user_by_email(
    body: ResolveUserRequest,
    store: DocumentStoreDep,
    caller_id: CallerIdDep = None,
) -> CallableResponse:
    async def run() -> dict[str, Any] | None:
        if not caller_id:
            raise ValidationError(message="Authentication required")
        profile = await store.find_user_by_email(body.email.strip().lower())
        if profile is None:
            return None
        return {
            "user_id": profile.user_id,
            "display_name": profile.display_name or "",
            "photo_url": profile.photo_url or "",
        }

    return await _call("resolve_user_by_email", run)


# ---------------------------------------------------------------------------
# Documents & ingestion
# ---------------------------------------------------------------------------


@router.post(
    "/documents/upload",
    response_model=DocumentUploadResponse,
    responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}},
    summary="Upload a document and start ingestion",
)
async def upload_document(
    background_tasks: BackgroundTasks,
    store: DocumentStoreDep,
    blobs: BlobStoreDep,
    coordinator: CoordinatorDep,
    classifier: TopicClassifierDep,
    file: UploadFile,
    user_id: Annotated[str, Form(min_length=1)],
    title: Annotated[str, Form()] = "",
    caller_id: CallerIdDep = None,
) -> DocumentUploadResponse:
    """Store the file, create its document record and emit the write event."""
    _check_caller(caller_id, user_id)
    file_name = PurePosixPath(file.filename or "upload").name
    doc_type = detect_document_type(file_name, file.content_type)

    # Read in chunks so an oversized upload is rejected early.
    buffer = bytearray()
    while chunk := await file.read(_UPLOAD_CHUNK_SIZE):
        buffer.extend(chunk)
        if len(buffer) > _MAX_UPLOAD_BYTES:
            raise HTTPException(status_code=413, detail="File exceeds 50 MB limit")
    if not buffer:
        raise ValidationError(message="Uploaded file is empty")

    document_id = uuid.uuid4().hex
    storage_path = f"documents/{user_id}/{document_id}/{file_name}"
    content_type = file.content_type or "application/octet-stream"
    await blobs.upload(storage_path, bytes(buffer), content_type)

    now = datetime.now(timezone.utc)
    document = Document(
        user_id=user_id,
        document_id=document_id,
        type=doc_type,
        title=title.strip() or PurePosixPath(file_name).stem,
        metadata=DocumentMetadata(storage_path=storage_path, file_name=file_name, mime_type=content_type),
        tags=["uploaded"],
        created_at=now,
        updated_at=now,
    )
    await store.put_document(document)
    _logger.info("document_uploaded", user_id=user_id, document_id=document_id, type=doc_type.value, bytes=len(buffer))

    event = DocumentWriteEvent(
        user_id=user_id,
        document_id=document_id,
        event_id=uuid.uuid4().hex,
        before=None,
        after=document.model_dump(mode="json"),
    )
    background_tasks.add_task(_run_document_write, coordinator, classifier, event)
    return DocumentUploadResponse(
        document_id=document_id,
        storage_path=storage_path,
        type=doc_type.value,
        status=ProcessingStatus.UPLOADING.value,
    )


@router.post("/events/document-written", response_model=CallableResponse, summary="Document write event")
async def document_written(
    event: DocumentWriteEvent,
    background_tasks: BackgroundTasks,
    coordinator: CoordinatorDep,
    classifier: TopicClassifierDep,
) -> CallableResponse:
    """Accept a write event; ingestion and tagging run after the response."""
    background_tasks.add_task(_run_document_write, coordinator, classifier, event)
    return CallableResponse(success=True, data={"accepted": True, "event_id": event.event_id})


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = dict(getattr(request.app.state, "provider_registry", {}))
    critical_ok = providers.get("llm", False) and providers.get("embedding", False)
    return HealthResponse(
        status="healthy" if critical_ok else "degraded",
        version=getattr(request.app.state, "version", "0.1.0"),
        providers=providers,
    )


# ---------------------------------------------------------------------------
# Blob downloads
# ---------------------------------------------------------------------------


@files_router.get("/files/{path:path}", summary="Download a stored file")
async def download_file(path: str, blobs: BlobStoreDep, token: Annotated[str, Query()] = "") -> Response:
    """Serve a blob when the request carries its download token."""
    try:
        metadata = await blobs.get_metadata(path)
    except StorageError:
        raise HTTPException(status_code=404, detail="Not found") from None
    if not token or metadata.get(TOKEN_METADATA_KEY) != token:
        raise HTTPException(status_code=403, detail="Invalid download token")
    data = await blobs.download(path)
    return Response(content=data, media_type=metadata.get("contentType", "application/octet-stream"))
