"""OpenAI LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.
Each public method targets exactly one OpenAI API and converts its
response into the matching typed result:

    complete()                  chat.completions (non-streaming) -> ChatCompletionResult
    stream()                    chat.completions (stream=True)   -> content deltas
    respond()                   responses (+ optional web_search) -> ResponsesResult
    respond_with_file_search()  responses + file_search tool     -> ResponsesResult
    synthesize_speech()         audio.speech                     -> SpeechResult

SDK exceptions are wrapped in :class:`LLMError` (or :class:`RateLimitError`)
with ``raise ... from exc`` so callers never import ``openai``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import httpx
import openai
import structlog

from notemind.config.settings import Settings
from notemind.interfaces.llm_provider import ILLMProvider
from notemind.models.llm import ChatCompletionResult, LLMMessage, ResponsesResult, SpeechResult
from notemind.utils.errors import LLMError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

# Reasoning models reject sampling parameters such as temperature.
_REASONING_MODEL_PREFIXES = ("o1", "o3", "o4")


def _is_reasoning_model(model: str) -> bool:
    return model.startswith(_REASONING_MODEL_PREFIXES)


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by the OpenAI API."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(settings.openai_timeout_seconds, connect=5.0),
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url
        if http_client is not None:
            client_kwargs["http_client"] = http_client

        self._client = openai.AsyncOpenAI(**client_kwargs)

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        messages: list[LLMMessage],
        model: str,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> ChatCompletionResult:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": [m.model_dump() for m in messages],
        }
        if not _is_reasoning_model(model):
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.APIError as exc:
            raise self._wrap(exc, "chat completion") from exc

        choice = response.choices[0]
        result = ChatCompletionResult(
            text=choice.message.content or "",
            model=response.model,
            finish_reason=choice.finish_reason,
            total_tokens=response.usage.total_tokens if response.usage else 0,
        )
        logger.info(
            "openai_completion",
            model=model,
            tokens=result.total_tokens,
            finish_reason=result.finish_reason,
        )
        return result

    async def stream(
        self,
        messages: list[LLMMessage],
        model: str,
        temperature: float = 0.7,
    ) -> AsyncIterator[str]:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": [m.model_dump() for m in messages],
            "stream": True,
        }
        if not _is_reasoning_model(model):
            kwargs["temperature"] = temperature

        try:
            stream = await self._client.chat.completions.create(**kwargs)
            async for event in stream:
                if not event.choices:
                    continue
                delta = event.choices[0].delta.content
                if delta:
                    yield delta
        except openai.APIError as exc:
            raise self._wrap(exc, "streaming completion") from exc

    async def respond(
        self,
        messages: list[LLMMessage],
        model: str,
        web_search: bool = False,
        temperature: float | None = None,
    ) -> ResponsesResult:
        kwargs: dict[str, Any] = {
            "model": model,
            "input": [{"role": m.role, "content": m.content} for m in messages],
        }
        if web_search:
            kwargs["tools"] = [{"type": "web_search"}]
        if temperature is not None and not _is_reasoning_model(model):
            kwargs["temperature"] = temperature

        try:
            response = await self._client.responses.create(**kwargs)
        except openai.APIError as exc:
            raise self._wrap(exc, "responses call") from exc

        result = self._to_responses_result(response, model)
        logger.info(
            "openai_response",
            model=model,
            web_search=web_search,
            tools_used=result.tools_used,
            tokens=result.total_tokens,
        )
        return result

    async def respond_with_file_search(
        self,
        question: str,
        vector_store_id: str,
        model: str,
        instructions: str = "",
    ) -> ResponsesResult:
        kwargs: dict[str, Any] = {
            "model": model,
            "input": question,
            "tools": [{"type": "file_search", "vector_store_ids": [vector_store_id]}],
        }
        if instructions:
            kwargs["instructions"] = instructions

        try:
            response = await self._client.responses.create(**kwargs)
        except openai.APIError as exc:
            raise self._wrap(exc, "file search") from exc

        result = self._to_responses_result(response, model)
        logger.info(
            "openai_file_search",
            model=model,
            vector_store_id=vector_store_id,
            tokens=result.total_tokens,
        )
        return result

    async def synthesize_speech(self, text: str, model: str, voice: str) -> SpeechResult:
        try:
            response = await self._client.audio.speech.create(
                model=model,
                voice=voice,
                input=text,
                response_format="mp3",
            )
        except openai.APIError as exc:
            raise self._wrap(exc, "speech synthesis") from exc

        audio = response.content
        logger.info("openai_speech", model=model, voice=voice, bytes=len(audio))
        return SpeechResult(audio=audio, model=model, voice=voice)

    def get_provider_name(self) -> str:
        return "openai"

    def is_available(self) -> bool:
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _to_responses_result(response: Any, model: str) -> ResponsesResult:
        """Read the documented fields of a responses-API ``Response``."""
        tools_used = [item.type for item in (response.output or []) if item.type.endswith("_call")]
        return ResponsesResult(
            text=response.output_text or "",
            model=response.model or model,
            response_id=response.id,
            tools_used=tools_used,
            total_tokens=response.usage.total_tokens if response.usage else 0,
        )

    def _wrap(self, exc: openai.APIError, operation: str) -> LLMError:
        if isinstance(exc, openai.RateLimitError):
            return RateLimitError(
                message=f"OpenAI rate limit during {operation}: {exc}",
                provider_name=self.get_provider_name(),
            )
        if isinstance(exc, openai.APITimeoutError):
            return LLMError(
                message=f"OpenAI {operation} timed out",
                provider_name=self.get_provider_name(),
            )
        return LLMError(
            message=f"OpenAI {operation} failed: {exc}",
            provider_name=self.get_provider_name(),
        )
