"""Unit tests for the ChromaDB vector index adapter.

The ChromaDB client is mocked (one test uses an in-memory client); these
tests pin down the ``where`` clauses, the distance-to-score conversion,
metadata round-tripping and error wrapping.
"""

from __future__ import annotations

import uuid
import warnings
from unittest.mock import MagicMock

import chromadb
import pytest

from notemind.models.rag import ChunkMetadata, VectorRecord
from notemind.providers.vector_index.chromadb_provider import ChromaDBProvider, _NoopEmbeddingFunction
from notemind.utils.errors import VectorIndexError


def _record(index: int, user_id: str = "u1", document_id: str = "d1", text: str = "chunk text") -> VectorRecord:
    return VectorRecord(
        id=f"{document_id}_{index}",
        embedding=[0.1, 0.2, 0.3],
        metadata=ChunkMetadata(
            user_id=user_id,
            document_id=document_id,
            chunk_index=index,
            chunk=text,
            title="Doc",
            file_name="doc.pdf",
            timestamp="2025-03-01T12:00:00+00:00",
        ),
    )


def _meta(index: int, user_id: str = "u1", document_id: str = "d1") -> dict:
    return {
        "user_id": user_id,
        "document_id": document_id,
        "chunk_index": index,
        "title": "Doc",
        "file_name": "doc.pdf",
        "timestamp": "",
    }


class TestChromaDBProvider:
    @pytest.fixture()
    def collection(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture()
    def provider(self, collection: MagicMock) -> ChromaDBProvider:
        client = MagicMock()
        client.get_or_create_collection.return_value = collection
        return ChromaDBProvider(client=client, upsert_batch_size=2, upsert_delay=0, fetch_batch_size=2)

    def test_collection_uses_cosine_space(self) -> None:
        client = MagicMock()
        ChromaDBProvider(client=client, collection_name="chunks")
        kwargs = client.get_or_create_collection.call_args.kwargs
        assert kwargs["name"] == "chunks"
        assert kwargs["metadata"] == {"hnsw:space": "cosine"}

    # -- upsert ---------------------------------------------------------

    @pytest.mark.asyncio()
    async def test_upsert_batches(self, provider: ChromaDBProvider, collection: MagicMock) -> None:
        written = await provider.upsert([_record(0), _record(1), _record(2)])

        assert written == 3
        assert collection.upsert.call_count == 2
        first = collection.upsert.call_args_list[0].kwargs
        assert first["ids"] == ["d1_0", "d1_1"]
        assert first["documents"] == ["chunk text", "chunk text"]
        assert first["metadatas"][0]["user_id"] == "u1"
        assert first["metadatas"][1]["chunk_index"] == 1

    @pytest.mark.asyncio()
    async def test_upsert_empty_is_noop(self, provider: ChromaDBProvider, collection: MagicMock) -> None:
        assert await provider.upsert([]) == 0
        collection.upsert.assert_not_called()

    @pytest.mark.asyncio()
    async def test_upsert_failure_wrapped(self, provider: ChromaDBProvider, collection: MagicMock) -> None:
        collection.upsert.side_effect = RuntimeError("payload too large")
        with pytest.raises(VectorIndexError, match="payload too large"):
            await provider.upsert([_record(0)])

    # -- query ----------------------------------------------------------

    @pytest.mark.asyncio()
    async def test_query_filters_by_tenant_and_document(self, provider: ChromaDBProvider, collection: MagicMock) -> None:
        collection.count.return_value = 10
        collection.query.return_value = {
            "ids": [["d1_0", "d1_3"]],
            "documents": [["first", "fourth"]],
            "metadatas": [[_meta(0), _meta(3)]],
            "distances": [[0.1, 0.4]],
        }

        matches = await provider.query([0.1, 0.2, 0.3], top_k=6, user_id="u1", document_id="d1")

        kwargs = collection.query.call_args.kwargs
        assert kwargs["where"] == {"$and": [{"user_id": {"$eq": "u1"}}, {"document_id": {"$eq": "d1"}}]}
        assert kwargs["n_results"] == 6
        assert [m.id for m in matches] == ["d1_0", "d1_3"]
        assert matches[0].score == pytest.approx(0.9)
        assert matches[1].metadata.chunk == "fourth"
        assert matches[1].metadata.chunk_index == 3

    @pytest.mark.asyncio()
    async def test_query_without_document_filters_tenant_only(
        self, provider: ChromaDBProvider, collection: MagicMock
    ) -> None:
        collection.count.return_value = 3
        collection.query.return_value = {"ids": [[]], "documents": [[]], "metadatas": [[]], "distances": [[]]}

        await provider.query([0.0], top_k=10, user_id="u1")

        kwargs = collection.query.call_args.kwargs
        assert kwargs["where"] == {"user_id": {"$eq": "u1"}}
        assert kwargs["n_results"] == 3

    @pytest.mark.asyncio()
    async def test_query_drops_foreign_tenant_results(self, provider: ChromaDBProvider, collection: MagicMock) -> None:
        collection.count.return_value = 2
        collection.query.return_value = {
            "ids": [["d1_0", "d9_0"]],
            "documents": [["mine", "theirs"]],
            "metadatas": [[_meta(0), _meta(0, user_id="u2", document_id="d9")]],
            "distances": [[0.2, 0.0]],
        }

        matches = await provider.query([0.0], top_k=2, user_id="u1")

        assert [m.id for m in matches] == ["d1_0"]

    @pytest.mark.asyncio()
    async def test_query_empty_collection(self, provider: ChromaDBProvider, collection: MagicMock) -> None:
        collection.count.return_value = 0
        assert await provider.query([0.0], top_k=5, user_id="u1") == []
        collection.query.assert_not_called()

    @pytest.mark.asyncio()
    async def test_query_failure_wrapped(self, provider: ChromaDBProvider, collection: MagicMock) -> None:
        collection.count.return_value = 1
        collection.query.side_effect = RuntimeError("index corrupted")
        with pytest.raises(VectorIndexError):
            await provider.query([0.0], top_k=5, user_id="u1")

    # -- fetch / delete / scan ------------------------------------------

    @pytest.mark.asyncio()
    async def test_fetch_by_ids_batches_and_scopes(self, provider: ChromaDBProvider, collection: MagicMock) -> None:
        collection.get.side_effect = [
            {"ids": ["d1_1", "d1_0"], "documents": ["b", "a"], "metadatas": [_meta(1), _meta(0)]},
            {"ids": ["d1_2"], "documents": ["c"], "metadatas": [_meta(2)]},
        ]

        matches = await provider.fetch_by_ids(["d1_0", "d1_1", "d1_2"], user_id="u1")

        assert sorted(m.metadata.chunk_index for m in matches) == [0, 1, 2]
        assert all(m.score == 0.0 for m in matches)
        assert collection.get.call_args_list[0].kwargs["where"] == {"user_id": {"$eq": "u1"}}

    @pytest.mark.asyncio()
    async def test_delete_by_document(self, provider: ChromaDBProvider, collection: MagicMock) -> None:
        await provider.delete_by_document("d1", "u1")
        where = collection.delete.call_args.kwargs["where"]
        assert where == {"$and": [{"user_id": {"$eq": "u1"}}, {"document_id": {"$eq": "d1"}}]}

    @pytest.mark.asyncio()
    async def test_max_chunk_index(self, provider: ChromaDBProvider, collection: MagicMock) -> None:
        collection.get.return_value = {"ids": ["d1_0", "d1_7", "d1_3"], "metadatas": [_meta(0), _meta(7), _meta(3)]}
        assert await provider.max_chunk_index("d1", "u1") == 7

    @pytest.mark.asyncio()
    async def test_max_chunk_index_none_when_empty(self, provider: ChromaDBProvider, collection: MagicMock) -> None:
        collection.get.return_value = {"ids": [], "metadatas": []}
        assert await provider.max_chunk_index("d1", "u1") is None

    def test_is_available(self, provider: ChromaDBProvider, collection: MagicMock) -> None:
        assert provider.is_available() is True
        collection.count.side_effect = RuntimeError("gone")
        assert provider.is_available() is False


class TestNoopEmbeddingFunction:
    def test_config_round_trip(self) -> None:
        function = _NoopEmbeddingFunction()
        assert _NoopEmbeddingFunction.name() == "noop_precomputed"
        assert function.get_config() == {}
        assert isinstance(_NoopEmbeddingFunction.build_from_config(function.get_config()), _NoopEmbeddingFunction)

    def test_never_embeds(self) -> None:
        with pytest.raises(NotImplementedError):
            _NoopEmbeddingFunction()(["text"])

    def test_real_collection_without_embedding_function_warnings(self) -> None:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            provider = ChromaDBProvider(client=chromadb.EphemeralClient(), collection_name=f"t_{uuid.uuid4().hex}")

        assert provider.is_available() is True
        messages = [str(w.message).lower() for w in caught if issubclass(w.category, DeprecationWarning)]
        assert not [m for m in messages if "embedding" in m]
