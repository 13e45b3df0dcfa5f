"""Abstract base class for the persistent document store.

The store holds Documents, Chats with their Messages, cached AI artifacts
and the user directory.  Updates are partial patches keyed by model field
names (``{"processing_status": ProcessingStatus.FAILED, ...}``).

The one operation with a concurrency contract is
:meth:`IDocumentStore.acquire_processing_lock`: a single atomic
read-modify-write, so of any number of concurrent callers for the same
document exactly one wins.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel

from notemind.models.artifacts import AIArtifact
from notemind.models.chat import Chat, ChatMessage
from notemind.models.document import Document
from notemind.models.user import UserProfile

_M = TypeVar("_M", bound=BaseModel)


def apply_patch(model: _M, fields: dict[str, Any]) -> _M:
    """Return a validated copy of *model* with *fields* replaced.

    ``model_copy(update=...)`` skips validation, which would let raw dicts
    into nested model fields; round-tripping through ``model_validate``
    keeps stored snapshots well-typed.
    """
    unknown = set(fields) - set(type(model).model_fields)
    if unknown:
        raise ValueError(f"Unknown fields for {type(model).__name__}: {sorted(unknown)}")
    return type(model).model_validate({**model.model_dump(), **fields})


# Concrete implementation: SQLiteDocumentStore (notemind/providers/store/)
class IDocumentStore(ABC):
    """Contract for document, chat, artifact and user persistence."""

    # -- Documents ------------------------------------------------------

    @abstractmethod
    async def get_document(self, user_id: str, document_id: str) -> Document | None:
        """Return the document, or None if it does not exist."""

    @abstractmethod
    async def put_document(self, document: Document) -> None:
        """Create or fully replace a document record."""

    @abstractmethod
    async def update_document(self, user_id: str, document_id: str, fields: dict[str, Any]) -> Document:
        """Patch a document and return the updated snapshot.

        Raises
        ------
        notemind.utils.errors.StorageError
            If the document does not exist.
        """

    @abstractmethod
    async def acquire_processing_lock(
        self,
        user_id: str,
        document_id: str,
        token: str,
        now: datetime,
    ) -> bool:
        """Atomically claim the processing lock of a document.

        Inside one transaction: read the current status; if the document
        is missing or already ``processing``/``completed`` return False;
        otherwise write ``processing_status=processing``,
        ``processing_lock={event: token, at: now}`` and
        ``processing_started_at=now`` and return True.
        """

    # -- Chats & messages -----------------------------------------------

    @abstractmethod
    async def create_chat(self, chat: Chat) -> None:
        """Persist a new chat."""

    @abstractmethod
    async def get_chat(self, user_id: str, chat_id: str) -> Chat | None:
        """Return the chat, or None."""

    @abstractmethod
    async def update_chat(self, user_id: str, chat_id: str, fields: dict[str, Any]) -> Chat:
        """Patch a chat and return the updated snapshot."""

    @abstractmethod
    async def add_message(self, user_id: str, message: ChatMessage) -> None:
        """Append a message to its chat."""

    @abstractmethod
    async def update_message(
        self,
        user_id: str,
        chat_id: str,
        message_id: str,
        fields: dict[str, Any],
    ) -> ChatMessage:
        """Patch a message in place."""

    @abstractmethod
    async def get_last_message(self, user_id: str, chat_id: str) -> ChatMessage | None:
        """Return the most recently appended message of a chat, or None."""

    @abstractmethod
    async def list_messages(self, user_id: str, chat_id: str, limit: int = 20) -> list[ChatMessage]:
        """Return the last *limit* messages in ascending (append) order."""

    # -- Artifacts ------------------------------------------------------

    @abstractmethod
    async def get_artifact(self, user_id: str, document_id: str, kind: str) -> AIArtifact | None:
        """Return the cached artifact, or None."""

    @abstractmethod
    async def put_artifact(self, artifact: AIArtifact) -> None:
        """Store an artifact, overwriting any previous one of the same kind."""

    # -- Users ----------------------------------------------------------

    @abstractmethod
    async def put_user(self, profile: UserProfile) -> None:
        """Create or replace a user profile."""

    @abstractmethod
    async def find_user_by_email(self, email: str) -> UserProfile | None:
        """Return the profile with this email (compared case-insensitively), or None."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
