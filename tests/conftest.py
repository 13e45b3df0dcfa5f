"""Shared pytest fixtures for the notemind test suite.

The in-memory fakes below implement the provider interfaces closely
enough that services can be exercised end to end without OpenAI,
ChromaDB or SQLite.
"""

from __future__ import annotations

import asyncio
import hashlib
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from notemind.interfaces.blob_store import IBlobStore
from notemind.interfaces.document_store import IDocumentStore, apply_patch
from notemind.interfaces.embedding_provider import IEmbeddingProvider
from notemind.interfaces.llm_provider import ILLMProvider
from notemind.interfaces.vector_index_provider import IVectorIndexProvider
from notemind.models.artifacts import AIArtifact
from notemind.models.chat import Chat, ChatMessage
from notemind.models.document import (
    Document,
    DocumentMetadata,
    DocumentType,
    ProcessingLock,
    ProcessingStatus,
)
from notemind.models.llm import ChatCompletionResult, LLMMessage, ResponsesResult, SpeechResult
from notemind.models.rag import ChunkMetadata, VectorMatch, VectorRecord
from notemind.models.user import UserProfile
from notemind.utils.errors import EmbeddingFailure, LLMError, StorageError
from notemind.utils.similarity import cosine_similarity

FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


# ---------------------------------------------------------------------------
# Embeddings
# ---------------------------------------------------------------------------

_EMBEDDING_DIM = 64


def _hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Generate a deterministic fixed-length vector by hashing *text*.

    Uses SHA-256 to hash the text, centres each byte on zero and
    normalises to unit length.  Same text always produces the same vector.
    """
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    raw = digest
    while len(raw) < dim:
        raw += hashlib.sha256(raw).digest()
    values = [float(b) - 127.5 for b in raw[:dim]]
    magnitude = max(sum(v * v for v in values) ** 0.5, 1e-10)
    return [v / magnitude for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests.

    ``fail_on`` makes any text containing one of its substrings raise
    :class:`EmbeddingFailure`.
    """

    def __init__(self, fail_on: tuple[str, ...] = (), fail_all: bool = False) -> None:
        self.fail_on = fail_on
        self.fail_all = fail_all
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail_all or any(marker in text for marker in self.fail_on for text in texts):
            raise EmbeddingFailure("mock embedding failure", provider_name="mock")
        return [_hash_to_vector(t) for t in texts]

    async def embed_query(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return _EMBEDDING_DIM

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Vector index
# ---------------------------------------------------------------------------


class InMemoryVectorIndex(IVectorIndexProvider):
    """Dict-backed vector index with the same tenant predicate as ChromaDB."""

    def __init__(self) -> None:
        self.records: dict[str, VectorRecord] = {}
        self.queries: list[dict[str, Any]] = []

    async def upsert(self, records: list[VectorRecord]) -> int:
        for record in records:
            self.records[record.id] = record
        return len(records)

    async def query(
        self,
        vector: list[float],
        top_k: int,
        user_id: str,
        document_id: str | None = None,
    ) -> list[VectorMatch]:
        self.queries.append({"top_k": top_k, "user_id": user_id, "document_id": document_id})
        scored = [
            VectorMatch(id=r.id, score=cosine_similarity(vector, r.embedding), metadata=r.metadata)
            for r in self.records.values()
            if r.metadata.user_id == user_id and (document_id is None or r.metadata.document_id == document_id)
        ]
        scored.sort(key=lambda m: m.score, reverse=True)
        return scored[:top_k]

    async def fetch_by_ids(self, ids: list[str], user_id: str) -> list[VectorMatch]:
        wanted = set(ids)
        return [
            VectorMatch(id=r.id, score=0.0, metadata=r.metadata)
            for r in reversed(list(self.records.values()))
            if r.id in wanted and r.metadata.user_id == user_id
        ]

    async def delete_by_document(self, document_id: str, user_id: str) -> None:
        for key in [
            k
            for k, r in self.records.items()
            if r.metadata.document_id == document_id and r.metadata.user_id == user_id
        ]:
            del self.records[key]

    async def max_chunk_index(self, document_id: str, user_id: str) -> int | None:
        indexes = [
            r.metadata.chunk_index
            for r in self.records.values()
            if r.metadata.document_id == document_id and r.metadata.user_id == user_id
        ]
        return max(indexes) if indexes else None

    def get_provider_name(self) -> str:
        return "memory-index"

    def is_available(self) -> bool:
        return True

    def ids_for(self, document_id: str) -> list[str]:
        return sorted(
            (r.id for r in self.records.values() if r.metadata.document_id == document_id),
            key=lambda rid: int(rid.rsplit("_", 1)[1]),
        )


# ---------------------------------------------------------------------------
# Document store
# ---------------------------------------------------------------------------


class InMemoryDocumentStore(IDocumentStore):
    """Dict-backed document store.  The processing lock is guarded by an asyncio.Lock."""

    def __init__(self) -> None:
        self.documents: dict[tuple[str, str], Document] = {}
        self.chats: dict[tuple[str, str], Chat] = {}
        self.messages: dict[tuple[str, str], list[ChatMessage]] = {}
        self.artifacts: dict[tuple[str, str, str], AIArtifact] = {}
        self.users: dict[str, UserProfile] = {}
        self.document_updates: list[dict[str, Any]] = []
        self.message_updates: list[dict[str, Any]] = []
        self._lock = asyncio.Lock()

    async def get_document(self, user_id: str, document_id: str) -> Document | None:
        return self.documents.get((user_id, document_id))

    async def put_document(self, document: Document) -> None:
        self.documents[(document.user_id, document.document_id)] = document

    async def update_document(self, user_id: str, document_id: str, fields: dict[str, Any]) -> Document:
        current = self.documents.get((user_id, document_id))
        if current is None:
            raise StorageError(f"Document not found: {document_id}", provider_name="memory")
        updated = apply_patch(current, fields)
        self.documents[(user_id, document_id)] = updated
        self.document_updates.append(dict(fields))
        return updated

    async def acquire_processing_lock(
        self,
        user_id: str,
        document_id: str,
        token: str,
        now: datetime,
    ) -> bool:
        async with self._lock:
            current = self.documents.get((user_id, document_id))
            if current is None or current.is_terminal_or_running:
                return False
            # Yield inside the critical section so racing callers really interleave.
            await asyncio.sleep(0)
            self.documents[(user_id, document_id)] = apply_patch(
                current,
                {
                    "processing_status": ProcessingStatus.PROCESSING,
                    "processing_lock": ProcessingLock(event=token, at=now),
                    "processing_started_at": now,
                },
            )
            return True

    async def create_chat(self, chat: Chat) -> None:
        self.chats[(chat.user_id, chat.chat_id)] = chat
        self.messages.setdefault((chat.user_id, chat.chat_id), [])

    async def get_chat(self, user_id: str, chat_id: str) -> Chat | None:
        return self.chats.get((user_id, chat_id))

    async def update_chat(self, user_id: str, chat_id: str, fields: dict[str, Any]) -> Chat:
        current = self.chats.get((user_id, chat_id))
        if current is None:
            raise StorageError(f"Chat not found: {chat_id}", provider_name="memory")
        updated = apply_patch(current, fields)
        self.chats[(user_id, chat_id)] = updated
        return updated

    async def add_message(self, user_id: str, message: ChatMessage) -> None:
        self.messages.setdefault((user_id, message.chat_id), []).append(message)

    async def update_message(
        self,
        user_id: str,
        chat_id: str,
        message_id: str,
        fields: dict[str, Any],
    ) -> ChatMessage:
        history = self.messages.get((user_id, chat_id), [])
        for position, message in enumerate(history):
            if message.message_id == message_id:
                updated = apply_patch(message, fields)
                history[position] = updated
                self.message_updates.append(dict(fields))
                return updated
        raise StorageError(f"Message not found: {message_id}", provider_name="memory")

    async def get_last_message(self, user_id: str, chat_id: str) -> ChatMessage | None:
        history = self.messages.get((user_id, chat_id), [])
        return history[-1] if history else None

    async def list_messages(self, user_id: str, chat_id: str, limit: int = 20) -> list[ChatMessage]:
        return list(self.messages.get((user_id, chat_id), []))[-limit:]

    async def get_artifact(self, user_id: str, document_id: str, kind: str) -> AIArtifact | None:
        return self.artifacts.get((user_id, document_id, kind))

    async def put_artifact(self, artifact: AIArtifact) -> None:
        self.artifacts[(artifact.user_id, artifact.document_id, artifact.kind)] = artifact

    async def put_user(self, profile: UserProfile) -> None:
        self.users[profile.user_id] = profile

    async def find_user_by_email(self, email: str) -> UserProfile | None:
        wanted = email.strip().lower()
        return next((u for u in self.users.values() if u.email.lower() == wanted), None)

    def get_provider_name(self) -> str:
        return "memory-store"


# ---------------------------------------------------------------------------
# Blob store
# ---------------------------------------------------------------------------


class InMemoryBlobStore(IBlobStore):
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.metadata: dict[str, dict[str, str]] = {}

    async def download(self, path: str) -> bytes:
        if path not in self.objects:
            raise StorageError(f"Object not found: {path}", provider_name="memory")
        return self.objects[path]

    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> None:
        self.objects[path] = data
        self.content_types[path] = content_type
        self.metadata[path] = {"contentType": content_type, **(metadata or {})}

    async def exists(self, path: str) -> bool:
        return path in self.objects

    async def get_metadata(self, path: str) -> dict[str, str]:
        if path not in self.objects:
            raise StorageError(f"Object not found: {path}", provider_name="memory")
        return dict(self.metadata.get(path, {}))

    async def set_metadata(self, path: str, metadata: dict[str, str]) -> None:
        self.metadata.setdefault(path, {}).update(metadata)

    def public_url(self, path: str, token: str | None = None) -> str:
        url = f"http://test/files/{path}"
        return f"{url}?token={token}" if token else url

    def get_provider_name(self) -> str:
        return "memory-blob"


# ---------------------------------------------------------------------------
# LLM
# ---------------------------------------------------------------------------


class ScriptedLLMProvider(ILLMProvider):
    """LLM fake that answers from queues and records every call.

    Each queue entry is either a string (returned) or an exception
    instance (raised).  Empty queues fall back to ``default_text``.
    """

    def __init__(self, default_text: str = "Mock answer.") -> None:
        self.default_text = default_text
        self.completions: list[str | Exception] = []
        self.streams: list[list[str] | Exception] = []
        self.responses: list[str | Exception] = []
        self.file_search: list[str | Exception] = []
        self.speech_error: Exception | None = None
        self.calls: list[dict[str, Any]] = []

    @staticmethod
    def _next(queue: list, default: Any) -> Any:
        item = queue.pop(0) if queue else default
        if isinstance(item, Exception):
            raise item
        return item

    async def complete(
        self,
        messages: list[LLMMessage],
        model: str,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> ChatCompletionResult:
        self.calls.append(
            {
                "api": "complete",
                "messages": messages,
                "model": model,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "json_mode": json_mode,
            }
        )
        return ChatCompletionResult(text=self._next(self.completions, self.default_text), model=model)

    async def stream(
        self,
        messages: list[LLMMessage],
        model: str,
        temperature: float = 0.7,
    ) -> AsyncIterator[str]:
        self.calls.append({"api": "stream", "messages": messages, "model": model, "temperature": temperature})
        script = self.streams.pop(0) if self.streams else [self.default_text]
        if isinstance(script, Exception):
            raise script
        for delta in script:
            if isinstance(delta, Exception):
                raise delta
            yield delta

    async def respond(
        self,
        messages: list[LLMMessage],
        model: str,
        web_search: bool = False,
        temperature: float | None = None,
    ) -> ResponsesResult:
        self.calls.append({"api": "respond", "messages": messages, "model": model, "web_search": web_search})
        text = self._next(self.responses, self.default_text)
        return ResponsesResult(text=text, model=model, tools_used=["web_search_call"] if web_search else [])

    async def respond_with_file_search(
        self,
        question: str,
        vector_store_id: str,
        model: str,
        instructions: str = "",
    ) -> ResponsesResult:
        self.calls.append(
            {"api": "file_search", "question": question, "vector_store_id": vector_store_id, "model": model}
        )
        return ResponsesResult(text=self._next(self.file_search, self.default_text), model=model)

    async def synthesize_speech(self, text: str, model: str, voice: str) -> SpeechResult:
        self.calls.append({"api": "speech", "text": text, "model": model, "voice": voice})
        if self.speech_error is not None:
            raise self.speech_error
        return SpeechResult(audio=b"ID3-mock-audio", model=model, voice=voice)

    def get_provider_name(self) -> str:
        return "scripted-llm"

    def is_available(self) -> bool:
        return True

    def calls_for(self, api: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["api"] == api]


def llm_error(message: str = "boom") -> LLMError:
    return LLMError(message, provider_name="scripted")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def vector_index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex()


@pytest.fixture
def document_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def llm() -> ScriptedLLMProvider:
    return ScriptedLLMProvider()


def make_document(
    user_id: str = "user-1",
    document_id: str = "doc-1",
    storage_path: str | None = "documents/user-1/doc-1/notes.pdf",
    **fields: Any,
) -> Document:
    """Build a document record with sensible defaults."""
    fields.setdefault("type", DocumentType.PDF)
    fields.setdefault("title", "Cell Biology Notes")
    return Document(
        user_id=user_id,
        document_id=document_id,
        metadata=DocumentMetadata(storage_path=storage_path, file_name="notes.pdf", mime_type="application/pdf"),
        **fields,
    )


async def index_chunks(
    vector_index: InMemoryVectorIndex,
    document: Document,
    texts: list[str],
    embedding: MockEmbeddingProvider | None = None,
) -> None:
    """Store *texts* as chunks 0..n-1 of *document*, as ingestion would."""
    embedder = embedding or MockEmbeddingProvider()
    vectors = await embedder.embed(texts) if texts else []
    await vector_index.upsert(
        [
            VectorRecord(
                id=f"{document.document_id}_{index}",
                embedding=vector,
                metadata=ChunkMetadata(
                    user_id=document.user_id,
                    document_id=document.document_id,
                    chunk_index=index,
                    chunk=text,
                    title=document.title,
                ),
            )
            for index, (text, vector) in enumerate(zip(texts, vectors))
        ]
    )
