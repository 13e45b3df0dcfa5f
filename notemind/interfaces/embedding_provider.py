"""Abstract base class for text-embedding service providers.

Defines the contract for turning text into embedding vectors.  The OpenAI
adapter is the production implementation; tests substitute a deterministic
hash-based provider.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: OpenAIEmbeddingProvider (notemind/providers/embedding/)
class IEmbeddingProvider(ABC):
    """Contract for embedding services used by ingestion and retrieval."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            Text strings to embed.  Implementations batch internally and
            pace their calls.

        Returns
        -------
        list[list[float]]
            Vectors positionally matching *texts*, each of length
            :meth:`get_dimension`.

        Raises
        ------
        notemind.utils.errors.EmbeddingFailure
            If any batch still fails after retries.  Partial results are
            never returned.
        """

    @abstractmethod
    async def embed_query(self, text: str) -> list[float]:
        """Embed a single text, typically a retrieval query."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the vectors (constant per instance)."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai:text-embedding-3-small"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials present)."""
