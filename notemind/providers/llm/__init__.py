"""Language-model provider implementations.

    OpenAILLMProvider: chat completions (batch + streaming), responses API
    with web-search / file-search tools, and text-to-speech.
"""

from notemind.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["OpenAILLMProvider"]
