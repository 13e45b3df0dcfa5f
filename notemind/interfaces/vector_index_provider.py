"""Abstract base class for the multi-tenant vector index.

Every operation is scoped by an explicit tenant (``user_id``) and, where
relevant, a ``document_id``.  Implementations must include the tenant
predicate in every filter they build: a query for user A never returns a
record whose metadata names user B, however similar it is.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from notemind.models.rag import VectorMatch, VectorRecord


# Concrete implementation: ChromaDBProvider (notemind/providers/vector_index/)
class IVectorIndexProvider(ABC):
    """Contract for storing and searching chunk vectors."""

    @abstractmethod
    async def upsert(self, records: list[VectorRecord]) -> int:
        """Insert or replace *records*, batching to respect payload limits.

        Returns
        -------
        int
            Number of records written.

        Raises
        ------
        notemind.utils.errors.VectorIndexError
            If a batch cannot be written.
        """

    @abstractmethod
    async def query(
        self,
        vector: list[float],
        top_k: int,
        user_id: str,
        document_id: str | None = None,
    ) -> list[VectorMatch]:
        """Return up to *top_k* matches ranked by descending similarity.

        Parameters
        ----------
        vector:
            Query embedding.
        top_k:
            Maximum number of matches.
        user_id:
            Tenant predicate; always applied.
        document_id:
            Optional restriction to a single document.
        """

    @abstractmethod
    async def fetch_by_ids(self, ids: list[str], user_id: str) -> list[VectorMatch]:
        """Fetch records by id, restricted to *user_id*.

        Results come back in no particular order; callers restore chunk
        order themselves.  Missing ids are silently absent.  Scores are 0.
        """

    @abstractmethod
    async def delete_by_document(self, document_id: str, user_id: str) -> None:
        """Delete every record of one document of one tenant."""

    @abstractmethod
    async def max_chunk_index(self, document_id: str, user_id: str) -> int | None:
        """Return the highest ``chunk_index`` stored for a document, or None.

        Only needed for documents indexed before ``chunk_count`` was
        persisted on the document record.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the index can be used."""
