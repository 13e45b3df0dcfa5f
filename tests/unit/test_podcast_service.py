"""Unit tests for PodcastService."""

from __future__ import annotations

import pytest

from notemind.models.artifacts import PODCAST_KIND, AIArtifact
from notemind.models.document import DocumentContent
from notemind.services.chunk_reader import DocumentChunkReader
from notemind.services.podcast_service import TOKEN_METADATA_KEY, PodcastService, podcast_path
from notemind.services.summarizer import Summarizer
from notemind.utils.errors import LLMError, ValidationError
from tests.conftest import (
    FIXED_NOW,
    InMemoryBlobStore,
    InMemoryDocumentStore,
    InMemoryVectorIndex,
    ScriptedLLMProvider,
    llm_error,
    make_document,
)

_SUMMARY = "## Overview\nCells divide by mitosis into two identical daughter cells."


def _service(store, blobs, llm) -> PodcastService:
    summarizer = Summarizer(store, DocumentChunkReader(InMemoryVectorIndex()), llm, clock=lambda: FIXED_NOW)
    return PodcastService(store, blobs, llm, summarizer, clock=lambda: FIXED_NOW)


class TestPodcastService:
    def test_podcast_path(self) -> None:
        assert podcast_path("u1", "d1", "nova") == "podcasts/u1/d1/nova.mp3"

    @pytest.mark.asyncio()
    async def test_reads_existing_summary(self) -> None:
        store, blobs, llm = InMemoryDocumentStore(), InMemoryBlobStore(), ScriptedLLMProvider()
        await store.put_document(make_document(summary=_SUMMARY))

        result = await _service(store, blobs, llm).generate("doc-1", "user-1", voice="nova")

        (speech,) = llm.calls_for("speech")
        assert speech["text"] == _SUMMARY
        assert speech["voice"] == "nova"
        assert speech["model"] == "gpt-4o-mini-tts"
        path = "podcasts/user-1/doc-1/nova.mp3"
        assert result.audio_path == path
        assert blobs.objects[path] == b"ID3-mock-audio"
        assert blobs.content_types[path] == "audio/mpeg"
        token = blobs.metadata[path][TOKEN_METADATA_KEY]
        assert result.audio_url == f"http://test/files/{path}?token={token}"
        artifact = store.artifacts[("user-1", "doc-1", PODCAST_KIND)]
        assert artifact.content["audio_path"] == path
        assert artifact.size == len(b"ID3-mock-audio")

    @pytest.mark.asyncio()
    async def test_generates_summary_when_missing(self) -> None:
        store, blobs, llm = InMemoryDocumentStore(), InMemoryBlobStore(), ScriptedLLMProvider()
        await store.put_document(make_document(content=DocumentContent(raw="Cells divide.")))
        llm.completions = ["A generated summary that is long enough to be read aloud."]

        await _service(store, blobs, llm).generate("doc-1", "user-1")

        assert llm.calls_for("speech")[0]["text"] == "A generated summary that is long enough to be read aloud."

    @pytest.mark.asyncio()
    async def test_no_content_raises(self) -> None:
        store, blobs, llm = InMemoryDocumentStore(), InMemoryBlobStore(), ScriptedLLMProvider()
        await store.put_document(make_document())

        with pytest.raises(ValidationError, match="No content"):
            await _service(store, blobs, llm).generate("doc-1", "user-1")
        assert llm.calls_for("speech") == []
        assert blobs.objects == {}

    @pytest.mark.asyncio()
    async def test_cache_hit_reuses_token(self) -> None:
        store, blobs, llm = InMemoryDocumentStore(), InMemoryBlobStore(), ScriptedLLMProvider()
        await store.put_document(make_document(summary=_SUMMARY))
        service = _service(store, blobs, llm)

        first = await service.generate("doc-1", "user-1")
        second = await service.generate("doc-1", "user-1")

        assert second.cached is True
        assert second.audio_url == first.audio_url
        assert second.voice == "alloy"
        assert len(llm.calls_for("speech")) == 1

    @pytest.mark.asyncio()
    async def test_cache_mints_token_when_missing(self) -> None:
        store, blobs, llm = InMemoryDocumentStore(), InMemoryBlobStore(), ScriptedLLMProvider()
        await store.put_document(make_document())
        path = podcast_path("user-1", "doc-1", "alloy")
        await blobs.upload(path, b"audio", "audio/mpeg")
        await store.put_artifact(
            AIArtifact(
                document_id="doc-1",
                user_id="user-1",
                kind=PODCAST_KIND,
                content={"audio_path": path, "voice": "alloy"},
            )
        )

        result = await _service(store, blobs, llm).generate("doc-1", "user-1")

        token = blobs.metadata[path][TOKEN_METADATA_KEY]
        assert token
        assert result.audio_url.endswith(f"?token={token}")

    @pytest.mark.asyncio()
    async def test_stale_artifact_regenerates(self) -> None:
        store, blobs, llm = InMemoryDocumentStore(), InMemoryBlobStore(), ScriptedLLMProvider()
        await store.put_document(make_document(summary=_SUMMARY))
        await store.put_artifact(
            AIArtifact(
                document_id="doc-1",
                user_id="user-1",
                kind=PODCAST_KIND,
                content={"audio_path": "podcasts/user-1/doc-1/gone.mp3", "voice": "alloy"},
            )
        )

        result = await _service(store, blobs, llm).generate("doc-1", "user-1")

        assert result.cached is False
        assert len(llm.calls_for("speech")) == 1

    @pytest.mark.asyncio()
    async def test_speech_failure_propagates(self) -> None:
        store, blobs, llm = InMemoryDocumentStore(), InMemoryBlobStore(), ScriptedLLMProvider()
        await store.put_document(make_document(summary=_SUMMARY))
        llm.speech_error = llm_error("tts down")

        with pytest.raises(LLMError, match="tts down"):
            await _service(store, blobs, llm).generate("doc-1", "user-1")
        assert store.artifacts == {}

    @pytest.mark.asyncio()
    async def test_missing_document(self) -> None:
        service = _service(InMemoryDocumentStore(), InMemoryBlobStore(), ScriptedLLMProvider())
        with pytest.raises(ValidationError):
            await service.generate("nope", "user-1")
