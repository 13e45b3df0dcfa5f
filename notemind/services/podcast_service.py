"""Spoken-summary ("podcast") generation.

Reads the document summary aloud with a TTS model, stores the MP3 in the
blob store under ``podcasts/{user_id}/{document_id}/{voice}.mp3`` and
caches where it lives as the ``podcast_v1`` artifact.  Download URLs
carry a token kept in the blob's metadata.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from notemind.interfaces.blob_store import IBlobStore
from notemind.interfaces.document_store import IDocumentStore
from notemind.interfaces.llm_provider import ILLMProvider
from notemind.models.artifacts import PODCAST_KIND, AIArtifact, PodcastResult
from notemind.services.summarizer import NO_CONTENT_SUMMARY, Summarizer
from notemind.utils.errors import ValidationError
from notemind.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

TOKEN_METADATA_KEY = "downloadToken"

_MIN_SUMMARY_CHARS = 40
_TTS_INPUT_CHARS = 4_000


def podcast_path(user_id: str, document_id: str, voice: str) -> str:
    return f"podcasts/{user_id}/{document_id}/{voice}.mp3"


class PodcastService:
    """Turns document summaries into cached MP3 audio."""

    def __init__(
        self,
        document_store: IDocumentStore,
        blob_store: IBlobStore,
        llm: ILLMProvider,
        summarizer: Summarizer,
        tts_model: str = "gpt-4o-mini-tts",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = document_store
        self._blobs = blob_store
        self._llm = llm
        self._summarizer = summarizer
        self._tts_model = tts_model
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def generate(
        self,
        document_id: str,
        user_id: str,
        voice: str = "alloy",
        force: bool = False,
    ) -> PodcastResult:
        """Return the podcast for a document, synthesizing it when needed.

        Raises
        ------
        ValidationError
            When the document is unknown or has no content to read.
        """
        voice = voice.strip() or "alloy"
        document = await self._store.get_document(user_id, document_id)
        if document is None:
            raise ValidationError(message=f"Document not found: {document_id}")

        if not force:
            cached = await self._cached(user_id, document_id)
            if cached is not None:
                return cached

        summary = (document.summary or "").strip()
        if len(summary) < _MIN_SUMMARY_CHARS:
            summary = (await self._summarizer.summarize(document_id, user_id, max_length=500)).summary.strip()
        if not summary or summary == NO_CONTENT_SUMMARY:
            raise ValidationError(message="No content available for podcast")

        tts_input = summary[:_TTS_INPUT_CHARS]
        speech = await self._llm.synthesize_speech(tts_input, self._tts_model, voice)

        path = podcast_path(user_id, document_id, voice)
        token = uuid.uuid4().hex
        await self._blobs.upload(
            path,
            speech.audio,
            speech.content_type,
            metadata={TOKEN_METADATA_KEY: token, "cacheControl": "public, max-age=3600"},
        )
        await self._store.put_artifact(
            AIArtifact(
                document_id=document_id,
                user_id=user_id,
                kind=PODCAST_KIND,
                content={"audio_path": path, "voice": voice, "summary": tts_input, "download_token": token},
                model=self._tts_model,
                size=len(speech.audio),
                updated_at=self._clock(),
            )
        )
        logger.info("podcast_generated", document_id=document_id, voice=voice, bytes=len(speech.audio))
        return PodcastResult(audio_path=path, audio_url=self._blobs.public_url(path, token), voice=voice)

    async def _cached(self, user_id: str, document_id: str) -> PodcastResult | None:
        artifact = await self._store.get_artifact(user_id, document_id, PODCAST_KIND)
        if artifact is None or not isinstance(artifact.content, dict):
            return None
        path = artifact.content.get("audio_path")
        if not path or not await self._blobs.exists(path):
            return None

        metadata = await self._blobs.get_metadata(path)
        token = metadata.get(TOKEN_METADATA_KEY)
        if not token:
            token = uuid.uuid4().hex
            await self._blobs.set_metadata(path, {TOKEN_METADATA_KEY: token})

        logger.info("podcast_cache_hit", document_id=document_id)
        return PodcastResult(
            audio_path=path,
            audio_url=self._blobs.public_url(path, token),
            voice=artifact.content.get("voice", ""),
            cached=True,
        )
