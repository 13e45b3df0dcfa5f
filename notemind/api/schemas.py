"""Pydantic request/response schemas for the notemind API.

Every callable endpoint answers with a :class:`CallableResponse`
envelope: ``success`` plus either ``data`` or ``error``.  Failures inside
a callable never surface as HTTP errors; they come back as
``success=false`` with the error message.

Request bodies carry ``user_id``.  When the caller also sends an
``X-User-Id`` header, the two must match.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class CallableResponse(BaseModel):
    """Envelope returned by every callable endpoint."""

    success: bool
    data: Any = None
    error: str | None = None


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class CreateChatRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    title: str = ""
    context_doc_ids: list[str] = Field(default_factory=list)
    language: str = "en"


class SendChatMessageRequest(BaseModel):
    """One chat turn.  ``web_search`` takes precedence over ``think_mode``."""

    user_id: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)
    chat_id: str | None = None
    doc_ids: list[str] = Field(default_factory=list)
    language: str = "en"
    think_mode: bool = False
    web_search: bool = False


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class UserScopedRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class QueryDocumentsRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    question: str = Field(..., min_length=1, max_length=4000)
    document_id: str | None = None
    top_k: int = Field(default=5, ge=1, le=50)


class GenerateSummaryRequest(UserScopedRequest):
    max_length: int = Field(default=500, ge=50, le=4000, description="Target length in words.")
    force: bool = False


class GenerateFlashcardsRequest(UserScopedRequest):
    count: int = Field(default=12, ge=1, le=100)
    force: bool = False


class GenerateQuizRequest(UserScopedRequest):
    count: int = Field(default=10, ge=1, le=100)
    difficulty: Literal["easy", "medium", "hard", "mixed"] = "mixed"
    force: bool = False


class GenerateMindMapRequest(UserScopedRequest):
    language: str = "English"
    force: bool = False


class EvaluateLongAnswerRequest(UserScopedRequest):
    user_answer: str = Field(..., min_length=1)
    reference_answer: str = Field(..., min_length=1)
    min_length: int | None = Field(default=None, description="Minimum answer length in characters (40..2000).")


class GeneratePodcastRequest(UserScopedRequest):
    voice: str = "alloy"
    force: bool = False


class DocumentTextRequest(UserScopedRequest):
    limit_chars: int | None = Field(default=None, ge=1)


class ResolveUserRequest(BaseModel):
    email: str = Field(..., min_length=3)


class DocumentUploadResponse(BaseModel):
    """Returned after a file upload created a document record."""

    document_id: str
    storage_path: str
    type: str
    status: str
