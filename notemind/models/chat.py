"""Chat session and message models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(str, Enum):  # noqa: UP042
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ModelMode(str, Enum):  # noqa: UP042
    """Exactly one routing mode is active per chat turn."""

    DEFAULT = "default"
    THINK = "think"
    WEB_SEARCH = "web_search"


class Chat(BaseModel):
    """A chat session owned by one user."""

    model_config = ConfigDict(frozen=True)

    chat_id: str
    user_id: str
    title: str = "New Chat"
    language: str = "en"
    model: str = "gpt-4o-mini"
    context_doc_ids: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ChatMessage(BaseModel):
    """One message in a chat.

    Assistant messages start as ``content="", streaming=True`` placeholders
    and are patched in place until ``streaming`` flips to False.
    """

    model_config = ConfigDict(frozen=True)

    message_id: str
    chat_id: str
    role: MessageRole
    content: str = ""
    streaming: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ChatTurnRequest(BaseModel):
    """Input of a single chat turn."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    prompt: str
    chat_id: str | None = None
    doc_ids: list[str] = Field(default_factory=list)
    language: str = "en"
    think_mode: bool = False
    web_search: bool = False

    @property
    def mode(self) -> ModelMode:
        if self.web_search:
            return ModelMode.WEB_SEARCH
        if self.think_mode:
            return ModelMode.THINK
        return ModelMode.DEFAULT
