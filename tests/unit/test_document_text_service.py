"""Unit tests for DocumentTextService."""

from __future__ import annotations

import pytest

from notemind.models.document import DocumentContent
from notemind.services.chunk_reader import DocumentChunkReader
from notemind.services.document_text_service import DocumentTextService
from notemind.utils.errors import ValidationError
from tests.conftest import InMemoryDocumentStore, InMemoryVectorIndex, index_chunks, make_document


class TestDocumentTextService:
    @pytest.mark.asyncio()
    async def test_joins_indexed_chunks(self) -> None:
        store, index = InMemoryDocumentStore(), InMemoryVectorIndex()
        document = make_document(chunk_count=2, content=DocumentContent(raw="stored copy"))
        await store.put_document(document)
        await index_chunks(index, document, ["First chunk of text.", "Second chunk of text."])

        result = await DocumentTextService(store, DocumentChunkReader(index)).get_text("doc-1", "user-1")

        assert result.source == "index"
        assert result.text == "First chunk of text.\n\nSecond chunk of text."
        assert result.chunk_count == 2
        assert result.truncated is False

    @pytest.mark.asyncio()
    async def test_falls_back_to_stored_text(self) -> None:
        store, index = InMemoryDocumentStore(), InMemoryVectorIndex()
        await store.put_document(make_document(content=DocumentContent(raw="Stored raw text of the document.")))

        result = await DocumentTextService(store, DocumentChunkReader(index)).get_text("doc-1", "user-1")

        assert result.source == "store"
        assert result.text == "Stored raw text of the document."
        assert result.chunk_count == 0

    @pytest.mark.asyncio()
    async def test_limit_marks_truncated(self) -> None:
        store, index = InMemoryDocumentStore(), InMemoryVectorIndex()
        await store.put_document(make_document(content=DocumentContent(raw="abcdefghijklmnopqrstuvwxyz")))

        result = await DocumentTextService(store, DocumentChunkReader(index)).get_text(
            "doc-1", "user-1", limit_chars=5
        )

        assert result.text == "abcde"
        assert result.truncated is True

    @pytest.mark.asyncio()
    async def test_nothing_available(self) -> None:
        store, index = InMemoryDocumentStore(), InMemoryVectorIndex()
        await store.put_document(make_document())

        result = await DocumentTextService(store, DocumentChunkReader(index)).get_text("doc-1", "user-1")

        assert result.source == "none"
        assert result.text == ""

    @pytest.mark.asyncio()
    async def test_missing_document(self) -> None:
        service = DocumentTextService(InMemoryDocumentStore(), DocumentChunkReader(InMemoryVectorIndex()))
        with pytest.raises(ValidationError):
            await service.get_text("nope", "user-1")
