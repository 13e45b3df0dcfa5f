"""ChromaDB vector index adapter.

Wraps a ChromaDB collection to implement :class:`IVectorIndexProvider`.
Vectors are always pre-computed by the embedding provider; the collection
uses cosine distance, so ``similarity = 1 - distance``.

The chunk text is stored as the Chroma *document* and surfaced again as
``ChunkMetadata.chunk``; the remaining metadata fields are stored flat.
Every read builds its ``where`` clause from the tenant first, and results
are checked against it again before being returned.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any

# Chroma reads this at import time; telemetry is never wanted here.
os.environ.setdefault("ANONYMIZED_TELEMETRY", "False")

import chromadb
import structlog

from notemind.interfaces.vector_index_provider import IVectorIndexProvider
from notemind.models.rag import MAX_METADATA_TEXT_CHARS, ChunkMetadata, VectorMatch, VectorRecord
from notemind.utils.errors import VectorIndexError

logger = structlog.get_logger(logger_name=__name__)

_SCAN_PAGE_SIZE = 5000


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Keeps ChromaDB from loading its default ONNX model.

    notemind always passes pre-computed embeddings, so this is never called.
    Chroma persists ``name``/``get_config`` with the collection and
    rebuilds the function through ``build_from_config``.
    """

    def __init__(self) -> None:
        pass

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError("notemind passes pre-computed embeddings to ChromaDB.")

    @staticmethod
    def name() -> str:
        return "noop_precomputed"

    def get_config(self) -> dict[str, Any]:
        return {}

    @staticmethod
    def build_from_config(config: dict[str, Any]) -> _NoopEmbeddingFunction:
        return _NoopEmbeddingFunction()


class ChromaDBProvider(IVectorIndexProvider):
    """Multi-tenant vector index backed by ChromaDB.

    Parameters
    ----------
    persist_directory:
        On-disk location of the persistent client.  Ignored when *client*
        is given.
    collection_name:
        Name of the collection holding every tenant's chunks.
    client:
        Pre-built ChromaDB client (e.g. ``chromadb.EphemeralClient()``).
    upsert_batch_size / upsert_delay:
        Records per upsert call and the pause between calls.
    fetch_batch_size:
        Ids per ``get`` call in :meth:`fetch_by_ids`.
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "notemind_chunks",
        client: Any | None = None,
        upsert_batch_size: int = 50,
        upsert_delay: float = 0.1,
        fetch_batch_size: int = 100,
    ) -> None:
        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        self._collection_name = collection_name
        self._collection = self._client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
            embedding_function=_NoopEmbeddingFunction(),
        )
        self._upsert_batch_size = max(1, upsert_batch_size)
        self._upsert_delay = upsert_delay
        self._fetch_batch_size = max(1, fetch_batch_size)

    # ------------------------------------------------------------------
    # IVectorIndexProvider implementation
    # ------------------------------------------------------------------

    async def upsert(self, records: list[VectorRecord]) -> int:
        if not records:
            return 0

        written = 0
        try:
            for start in range(0, len(records), self._upsert_batch_size):
                if start > 0 and self._upsert_delay > 0:
                    await asyncio.sleep(self._upsert_delay)
                batch = records[start : start + self._upsert_batch_size]
                self._collection.upsert(
                    ids=[r.id for r in batch],
                    embeddings=[r.embedding for r in batch],
                    documents=[r.metadata.chunk[:MAX_METADATA_TEXT_CHARS] for r in batch],
                    metadatas=[self._to_chroma_metadata(r.metadata) for r in batch],
                )
                written += len(batch)
        except Exception as exc:
            raise VectorIndexError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.debug("chromadb_upsert", count=written)
        return written

    async def query(
        self,
        vector: list[float],
        top_k: int,
        user_id: str,
        document_id: str | None = None,
    ) -> list[VectorMatch]:
        if top_k <= 0:
            return []
        try:
            available = self._collection.count()
            if available == 0:
                return []
            results = self._collection.query(
                query_embeddings=[vector],
                n_results=min(top_k, available),
                where=self._tenant_filter(user_id, document_id),
                include=["documents", "metadatas", "distances"],
            )
        except Exception as exc:
            raise VectorIndexError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids = results["ids"][0] if results["ids"] else []
        documents = results["documents"][0] if results.get("documents") else [""] * len(ids)
        metadatas = results["metadatas"][0] if results.get("metadatas") else [{}] * len(ids)
        distances = results["distances"][0] if results.get("distances") else [1.0] * len(ids)

        matches: list[VectorMatch] = []
        for record_id, text, meta, distance in zip(ids, documents, metadatas, distances, strict=True):
            if not meta or meta.get("user_id") != user_id:
                continue
            matches.append(
                VectorMatch(
                    id=record_id,
                    score=1.0 - float(distance),
                    metadata=self._from_chroma_metadata(meta, text),
                )
            )

        logger.debug(
            "chromadb_query",
            user_id=user_id,
            document_id=document_id,
            results=len(matches),
            top_score=matches[0].score if matches else 0.0,
        )
        return matches

    async def fetch_by_ids(self, ids: list[str], user_id: str) -> list[VectorMatch]:
        if not ids:
            return []

        matches: list[VectorMatch] = []
        try:
            for start in range(0, len(ids), self._fetch_batch_size):
                batch = ids[start : start + self._fetch_batch_size]
                page = self._collection.get(
                    ids=batch,
                    where={"user_id": {"$eq": user_id}},
                    include=["documents", "metadatas"],
                )
                page_docs = page.get("documents") or [""] * len(page["ids"])
                page_meta = page.get("metadatas") or [{}] * len(page["ids"])
                for record_id, text, meta in zip(page["ids"], page_docs, page_meta, strict=True):
                    if not meta or meta.get("user_id") != user_id:
                        continue
                    matches.append(
                        VectorMatch(id=record_id, score=0.0, metadata=self._from_chroma_metadata(meta, text))
                    )
        except Exception as exc:
            raise VectorIndexError(
                message=f"ChromaDB fetch failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return matches

    async def delete_by_document(self, document_id: str, user_id: str) -> None:
        try:
            self._collection.delete(where=self._tenant_filter(user_id, document_id))
        except Exception as exc:
            raise VectorIndexError(
                message=f"ChromaDB delete failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info("chromadb_delete_by_document", document_id=document_id, user_id=user_id)

    async def max_chunk_index(self, document_id: str, user_id: str) -> int | None:
        highest: int | None = None
        offset = 0
        try:
            while True:
                page = self._collection.get(
                    where=self._tenant_filter(user_id, document_id),
                    include=["metadatas"],
                    limit=_SCAN_PAGE_SIZE,
                    offset=offset,
                )
                metadatas = page.get("metadatas") or []
                for meta in metadatas:
                    index = meta.get("chunk_index") if meta else None
                    if isinstance(index, int) and (highest is None or index > highest):
                        highest = index
                if len(metadatas) < _SCAN_PAGE_SIZE:
                    break
                offset += _SCAN_PAGE_SIZE
        except Exception as exc:
            raise VectorIndexError(
                message=f"ChromaDB scan failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return highest

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        try:
            self._collection.count()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _tenant_filter(user_id: str, document_id: str | None = None) -> dict[str, Any]:
        """Build a ``where`` clause; the tenant predicate is always present."""
        tenant = {"user_id": {"$eq": user_id}}
        if document_id is None:
            return tenant
        return {"$and": [tenant, {"document_id": {"$eq": document_id}}]}

    @staticmethod
    def _to_chroma_metadata(meta: ChunkMetadata) -> dict[str, str | int]:
        return {
            "user_id": meta.user_id,
            "document_id": meta.document_id,
            "chunk_index": meta.chunk_index,
            "title": meta.title,
            "file_name": meta.file_name,
            "timestamp": meta.timestamp,
        }

    @staticmethod
    def _from_chroma_metadata(meta: dict[str, Any], text: str | None) -> ChunkMetadata:
        return ChunkMetadata(
            user_id=str(meta.get("user_id", "")),
            document_id=str(meta.get("document_id", "")),
            chunk_index=int(meta.get("chunk_index", 0)),
            chunk=text or "",
            title=str(meta.get("title", "")),
            file_name=str(meta.get("file_name", "")),
            timestamp=str(meta.get("timestamp", "")),
        )
