"""Embedding provider implementations.

    OpenAIEmbeddingProvider: text-embedding-3-small at 1024 dimensions,
    batched 10 at a time with pacing and per-batch retries.
"""

from notemind.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider"]
