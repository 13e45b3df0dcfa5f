"""Unit tests for QueryService routing."""

from __future__ import annotations

import pytest

from notemind.models.document import DocumentContent, DocumentMetadata
from notemind.services.query_service import (
    FILE_SEARCH_SOURCE_TEXT,
    NO_MATCHES_ANSWER,
    NOT_READY_ANSWER,
    QueryService,
    build_prompt,
)
from notemind.utils.errors import EmbeddingFailure, ValidationError
from tests.conftest import (
    InMemoryDocumentStore,
    InMemoryVectorIndex,
    MockEmbeddingProvider,
    ScriptedLLMProvider,
    index_chunks,
    llm_error,
    make_document,
)

_CHUNK = "Mitochondria produce ATP through oxidative phosphorylation."


@pytest.fixture()
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture()
def index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex()


def _service(store, index, llm, embedding=None) -> QueryService:
    return QueryService(store, embedding or MockEmbeddingProvider(), index, llm)


class TestQueryService:
    def test_build_prompt(self) -> None:
        prompt = build_prompt("Why?", "Because.")
        assert "Context:\nBecause.\n\nQuestion: Why?\n\nAnswer:" in prompt

    @pytest.mark.asyncio()
    @pytest.mark.parametrize(("question", "user_id"), [("", "user-1"), ("   ", "user-1"), ("What?", "")])
    async def test_missing_parameters(self, store, index, question: str, user_id: str) -> None:
        with pytest.raises(ValidationError):
            await _service(store, index, ScriptedLLMProvider()).query_documents(question, user_id)

    @pytest.mark.asyncio()
    async def test_index_route(self, store, index) -> None:
        document = make_document()
        await store.put_document(document)
        await index_chunks(index, document, [_CHUNK, "Ribosomes build proteins."])
        llm = ScriptedLLMProvider()
        llm.completions = ["ATP comes from mitochondria."]

        answer = await _service(store, index, llm).query_documents(_CHUNK, "user-1", top_k=5)

        assert answer.answer == "ATP comes from mitochondria."
        assert answer.sources[0].document_id == "doc-1"
        assert answer.sources[0].chunk == _CHUNK + "..."
        assert answer.sources[0].score == pytest.approx(1.0)
        assert 0.0 <= answer.confidence <= 95.0
        (call,) = llm.calls_for("complete")
        assert call["temperature"] == 0.1
        assert f"[Source: Cell Biology Notes] {_CHUNK}" in call["messages"][1].content
        assert index.queries == [{"top_k": 5, "user_id": "user-1", "document_id": None}]

    @pytest.mark.asyncio()
    async def test_no_matches(self, store, index) -> None:
        llm = ScriptedLLMProvider()
        answer = await _service(store, index, llm).query_documents("Anything?", "user-1")
        assert answer.answer == NO_MATCHES_ANSWER
        assert answer.sources == []
        assert llm.calls == []

    @pytest.mark.asyncio()
    async def test_stored_text_route_for_unindexed_document(self, store, index) -> None:
        raw = "Photosynthesis converts light energy into chemical energy stored in glucose molecules. " * 4
        await store.put_document(make_document(content=DocumentContent(raw=raw)))
        llm = ScriptedLLMProvider()

        answer = await _service(store, index, llm).query_documents("What is photosynthesis?", "user-1", "doc-1")

        assert answer.confidence == 70.0
        (source,) = answer.sources
        assert source.score == 0.99
        assert source.chunk == raw[:200] + "..."

    @pytest.mark.asyncio()
    async def test_stored_text_too_short(self, store, index) -> None:
        await store.put_document(make_document(content=DocumentContent(raw="Short.")))
        llm = ScriptedLLMProvider()

        answer = await _service(store, index, llm).query_documents("What?", "user-1", "doc-1")

        assert answer.answer == NOT_READY_ANSWER
        assert llm.calls == []

    @pytest.mark.asyncio()
    async def test_file_search_route(self, store, index) -> None:
        await store.put_document(
            make_document().model_copy(update={"metadata": DocumentMetadata(vector_store_id="vs_123")})
        )
        llm = ScriptedLLMProvider()
        llm.file_search = ["From the file."]
        embedding = MockEmbeddingProvider()

        answer = await _service(store, index, llm, embedding).query_documents("What?", "user-1", "doc-1")

        assert answer.answer == "From the file."
        assert answer.confidence == 80.0
        assert answer.sources[0].chunk == FILE_SEARCH_SOURCE_TEXT
        assert llm.calls_for("file_search")[0]["vector_store_id"] == "vs_123"
        assert embedding.calls == []

    @pytest.mark.asyncio()
    async def test_file_search_failure_falls_through(self, store, index) -> None:
        document = make_document().model_copy(update={"metadata": DocumentMetadata(vector_store_id="vs_123")})
        await store.put_document(document)
        await index_chunks(index, document, [_CHUNK])
        llm = ScriptedLLMProvider()
        llm.file_search = [llm_error("file search down")]

        answer = await _service(store, index, llm).query_documents(_CHUNK, "user-1", "doc-1")

        assert answer.answer == "Mock answer."
        assert answer.sources[0].document_id == "doc-1"
        assert len(llm.calls_for("complete")) == 1

    @pytest.mark.asyncio()
    async def test_embedding_failure_propagates(self, store, index) -> None:
        service = _service(store, index, ScriptedLLMProvider(), MockEmbeddingProvider(fail_all=True))
        with pytest.raises(EmbeddingFailure):
            await service.query_documents("What?", "user-1")
