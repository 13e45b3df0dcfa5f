"""Abstract base class for language-model providers.

Each method targets exactly one model API and returns that API's typed
result (see :mod:`notemind.models.llm`).  Callers choose the API; the
provider never guesses the response shape.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from notemind.models.llm import ChatCompletionResult, LLMMessage, ResponsesResult, SpeechResult


# Concrete implementation: OpenAILLMProvider (notemind/providers/llm/)
class ILLMProvider(ABC):
    """Contract for chat completion, streaming, responses and speech calls."""

    @abstractmethod
    async def complete(
        self,
        messages: list[LLMMessage],
        model: str,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> ChatCompletionResult:
        """Run a non-streaming chat completion.

        With *json_mode* the model is constrained to a single JSON object.

        Raises
        ------
        notemind.utils.errors.LLMError
            On any API failure.
        """

    @abstractmethod
    def stream(
        self,
        messages: list[LLMMessage],
        model: str,
        temperature: float = 0.7,
    ) -> AsyncIterator[str]:
        """Yield content deltas of a streaming chat completion.

        Errors raised before the first delta mean the call failed outright;
        errors after that are a broken stream.  Both surface as
        :class:`~notemind.utils.errors.LLMError`.
        """

    @abstractmethod
    async def respond(
        self,
        messages: list[LLMMessage],
        model: str,
        web_search: bool = False,
        temperature: float | None = None,
    ) -> ResponsesResult:
        """Run a responses-API call, optionally with the web-search tool."""

    @abstractmethod
    async def respond_with_file_search(
        self,
        question: str,
        vector_store_id: str,
        model: str,
        instructions: str = "",
    ) -> ResponsesResult:
        """Answer *question* with the file-search tool bound to an external vector store."""

    @abstractmethod
    async def synthesize_speech(self, text: str, model: str, voice: str) -> SpeechResult:
        """Convert *text* to spoken audio."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured."""
