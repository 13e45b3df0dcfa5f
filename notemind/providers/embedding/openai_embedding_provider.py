"""OpenAI embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Texts are sent in small batches (10 by default) with a pacing delay
between batches to bound payload size and request rate.  Each batch is
retried with linear backoff; once a batch exhausts its attempts the whole
``embed`` call fails with :class:`EmbeddingFailure`, never returning a
partial set of vectors.
"""

from __future__ import annotations

import asyncio

import httpx
import openai
import structlog

from notemind.config.settings import Settings
from notemind.interfaces.embedding_provider import IEmbeddingProvider
from notemind.utils.errors import EmbeddingFailure

logger = structlog.get_logger(logger_name=__name__)


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by the OpenAI embeddings API.

    Uses ``text-embedding-3-small`` reduced to 1024 dimensions by default,
    matching the vector index's configured dimension.

    Parameters
    ----------
    settings:
        Supplies the API key, optional base URL, model and dimensions.
    batch_size:
        Texts per embeddings request.
    batch_delay:
        Seconds to wait between consecutive batches.
    max_attempts:
        Attempts per batch before giving up.
    retry_backoff:
        Base backoff in seconds; attempt *n* waits ``retry_backoff * n``.
    http_client:
        Shared HTTP client; the SDK creates its own when omitted.
    """

    def __init__(
        self,
        settings: Settings,
        batch_size: int = 10,
        batch_delay: float = 0.2,
        max_attempts: int = 3,
        retry_backoff: float = 1.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {"api_key": self._api_key}
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url
        if http_client is not None:
            client_kwargs["http_client"] = http_client

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_embedding_model
        self._dimension = settings.openai_embedding_dimensions
        self._batch_size = max(1, batch_size)
        self._batch_delay = batch_delay
        self._max_attempts = max(1, max_attempts)
        self._retry_backoff = retry_backoff

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in paced batches; all or nothing."""
        if not texts:
            return []

        all_embeddings: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            if start > 0 and self._batch_delay > 0:
                await asyncio.sleep(self._batch_delay)
            batch = texts[start : start + self._batch_size]
            all_embeddings.extend(await self._embed_batch(batch, batch_number=start // self._batch_size))
        return all_embeddings

    async def embed_query(self, text: str) -> list[float]:
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return f"openai:{self._model}"

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _embed_batch(self, batch: list[str], batch_number: int) -> list[list[float]]:
        last_error: Exception | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                response = await self._client.embeddings.create(
                    input=batch,
                    model=self._model,
                    dimensions=self._dimension,
                    encoding_format="float",
                )
            except openai.APIError as exc:
                last_error = exc
                logger.warning(
                    "embedding_batch_retry",
                    model=self._model,
                    batch=batch_number,
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                    error=str(exc)[:200],
                )
                if attempt < self._max_attempts:
                    await asyncio.sleep(self._retry_backoff * attempt)
                continue

            vectors = [item.embedding for item in sorted(response.data, key=lambda item: item.index)]
            if len(vectors) != len(batch):
                raise EmbeddingFailure(
                    message=f"Expected {len(batch)} embeddings, received {len(vectors)}",
                    provider_name=self.get_provider_name(),
                )
            logger.debug(
                "openai_embedding_batch",
                model=self._model,
                batch=batch_number,
                batch_size=len(batch),
                tokens=response.usage.total_tokens if response.usage else None,
            )
            return vectors

        raise EmbeddingFailure(
            message=f"Embedding batch {batch_number} failed after {self._max_attempts} attempts: {last_error}",
            provider_name=self.get_provider_name(),
        ) from last_error
