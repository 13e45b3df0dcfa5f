"""Typed results of language-model calls.

Each model API gets its own result type, chosen by the calling code:
chat completions produce :class:`ChatCompletionResult`, the responses API
(with or without tools) produces :class:`ResponsesResult`.  Providers
parse only the fields their API documents.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class LLMMessage(BaseModel):
    """A role/content pair sent to a model."""

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str


class ChatCompletionResult(BaseModel):
    """Result of a non-streaming chat-completions call."""

    model_config = ConfigDict(frozen=True)

    text: str
    model: str
    finish_reason: str | None = None
    total_tokens: int = 0


class ResponsesResult(BaseModel):
    """Result of a responses-API call."""

    model_config = ConfigDict(frozen=True)

    text: str
    model: str
    response_id: str | None = None
    tools_used: list[str] = Field(
        default_factory=list,
        description='Tool call types present in the output, e.g. "web_search_call".',
    )
    total_tokens: int = 0


class SpeechResult(BaseModel):
    """Synthesized audio."""

    model_config = ConfigDict(frozen=True)

    audio: bytes
    model: str
    voice: str
    content_type: str = "audio/mpeg"
