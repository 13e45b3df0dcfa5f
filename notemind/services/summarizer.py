"""Map-reduce document summarization.

Large documents do not fit a single prompt, so the summary is built in
two passes:

  MAP     -- ordered chunks are packed into parts of at most
             ``part_chars`` characters; each part gets a short bullet
             summary (at most ``max_parts`` of them).
  REDUCE  -- the joined bullet summaries (capped) are merged into one
             markdown summary of roughly ``max_length`` words.

When either pass fails, or the index holds no chunks, the stored raw or
processed text is summarized in one call instead.  When that is missing
too, a fixed sentinel is returned; summarization never raises for
content problems.

Results are cached as the ``summary`` artifact and mirrored onto
``Document.summary`` so topic classification and podcasts can use them.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from notemind.interfaces.document_store import IDocumentStore
from notemind.interfaces.llm_provider import ILLMProvider
from notemind.models.artifacts import SUMMARY_KIND, AIArtifact, SummaryResult
from notemind.models.document import Document
from notemind.models.llm import LLMMessage
from notemind.services.chunk_reader import DocumentChunkReader
from notemind.utils.errors import LLMError, ValidationError, VectorIndexError
from notemind.utils.logging import get_logger
from notemind.utils.text import strip_code_fences

logger: structlog.BoundLogger = get_logger(__name__)

NO_CONTENT_SUMMARY = "No content available for summary."

_MAP_SYSTEM_PROMPT = "You summarize document sections. Produce a concise bullet summary of the section's key points."
_FALLBACK_SYSTEM_PROMPT = "You are an expert summarizer. Produce clear, well-structured markdown. No code fences."


def _reduce_system_prompt(max_length: int) -> str:
    return (
        "You are an expert summarizer. Create a professional, RICH markdown summary of the "
        f"entire document (~{max_length} words).\n"
        "Output Requirements:\n"
        "- Start with a paragraph summarizing the document.\n"
        "- Use hierarchical headings (##, ###) to group concepts.\n"
        "- Use a mix of paragraphs, bullet lists and numbered lists for key points and procedures.\n"
        "- Bold important terms and labels (e.g., **Definition:**).\n"
        '- Include a short "Key Takeaways" section near the end as a bulleted list.\n'
        "- Avoid redundancy and filler. No preamble like 'Here is the summary'.\n"
        "- Do NOT wrap the entire response in code fences.\n"
        "Return valid markdown only."
    )


def pack_parts(chunks: list[str], part_chars: int) -> list[str]:
    """Concatenate chunks into parts no longer than *part_chars*.

    Chunks are joined with a single space, which counts toward the limit.
    A part is closed before the chunk that would overflow it; only a
    chunk that is longer than the limit on its own is cut.
    """
    parts: list[str] = []
    buffer = ""
    for chunk in chunks:
        if buffer and len(buffer) + 1 + len(chunk) > part_chars:
            parts.append(buffer)
            buffer = ""
        if buffer:
            buffer += " " + chunk
        else:
            buffer = chunk[:part_chars]
    if buffer:
        parts.append(buffer)
    return parts


class Summarizer:
    """Builds and caches document summaries.

    Parameters
    ----------
    document_store:
        Documents and the artifact cache.
    chunk_reader:
        Ordered chunk access.
    llm:
        Language-model provider.
    model:
        Chat model used for every pass.
    default_chunk_count:
        Chunk count assumed when it cannot be resolved.
    max_chunks / part_chars / max_parts:
        Map-pass limits.
    reduce_input_chars / fallback_input_chars:
        Input caps for the reduce and single-shot fallback calls.
    """

    def __init__(
        self,
        document_store: IDocumentStore,
        chunk_reader: DocumentChunkReader,
        llm: ILLMProvider,
        model: str = "gpt-4o-mini",
        default_chunk_count: int = 300,
        max_chunks: int = 200,
        part_chars: int = 6_000,
        max_parts: int = 12,
        reduce_input_chars: int = 8_000,
        fallback_input_chars: int = 8_000,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = document_store
        self._chunks = chunk_reader
        self._llm = llm
        self._model = model
        self._default_chunk_count = default_chunk_count
        self._max_chunks = max_chunks
        self._part_chars = part_chars
        self._max_parts = max_parts
        self._reduce_input_chars = reduce_input_chars
        self._fallback_input_chars = fallback_input_chars
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def summarize(
        self,
        document_id: str,
        user_id: str,
        max_length: int = 500,
        force: bool = False,
    ) -> SummaryResult:
        """Return the document summary, generating it unless cached."""
        document = await self._store.get_document(user_id, document_id)
        if document is None:
            raise ValidationError(message=f"Document not found: {document_id}")

        if not force:
            cached = await self._store.get_artifact(user_id, document_id, SUMMARY_KIND)
            if cached is not None and isinstance(cached.content, str) and cached.content.strip():
                logger.info("summary_cache_hit", document_id=document_id)
                return SummaryResult(summary=cached.content, cached=True, fallback=cached.fallback)

        log = logger.bind(user_id=user_id, document_id=document_id)
        parts = 0
        summary: str | None = None
        fallback = False
        try:
            chunks = await self._chunks.ordered_chunks(
                document,
                max_chunks=self._max_chunks,
                default_count=self._default_chunk_count,
            )
            part_texts = pack_parts(chunks, self._part_chars)
            parts = len(part_texts)
            if part_texts:
                summary = await self._map_reduce(part_texts, max_length)
        except (LLMError, VectorIndexError) as exc:
            log.warning("summary_map_reduce_failed", error=str(exc))

        if not summary:
            fallback = True
            summary = await self._summarize_stored_text(document, max_length)
            if summary is None:
                log.info("summary_no_content")
                return SummaryResult(summary=NO_CONTENT_SUMMARY, fallback=True, parts=parts)

        await self._store.update_document(user_id, document_id, {"summary": summary})
        await self._store.put_artifact(
            AIArtifact(
                document_id=document_id,
                user_id=user_id,
                kind=SUMMARY_KIND,
                content=summary,
                model=self._model,
                size=len(summary),
                fallback=fallback,
                updated_at=self._clock(),
            )
        )
        log.info("summary_generated", parts=parts, fallback=fallback, chars=len(summary))
        return SummaryResult(summary=summary, fallback=fallback, parts=parts)

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    async def _map_reduce(self, parts: list[str], max_length: int) -> str:
        parts = parts[: self._max_parts]
        partials: list[str] = []
        for number, part in enumerate(parts, start=1):
            result = await self._llm.complete(
                [
                    LLMMessage(role="system", content=_MAP_SYSTEM_PROMPT),
                    LLMMessage(role="user", content=f"Section {number} of {len(parts)} (truncate if noisy):\n\n{part}"),
                ],
                self._model,
                temperature=0.2,
                max_tokens=300,
            )
            partial = result.text.strip()
            if partial:
                partials.append(partial)

        if not partials:
            return ""

        synthesis_input = "\n\n".join(partials)[: self._reduce_input_chars]
        result = await self._llm.complete(
            [
                LLMMessage(role="system", content=_reduce_system_prompt(max_length)),
                LLMMessage(role="user", content=synthesis_input),
            ],
            self._model,
            temperature=0.25,
            max_tokens=math.ceil(max_length * 1.6),
        )
        return strip_code_fences(result.text).strip()

    async def _summarize_stored_text(self, document: Document, max_length: int) -> str | None:
        text = (document.content.raw or document.content.processed or "")[: self._fallback_input_chars]
        if not text.strip():
            return None
        prompt = (
            f"Summarize the following document into ~{max_length} words using markdown with headings, "
            "bullets, numbered lists, and a Key Takeaways section. Maintain factuality.\n\n"
            f"{text}"
        )
        try:
            result = await self._llm.complete(
                [
                    LLMMessage(role="system", content=_FALLBACK_SYSTEM_PROMPT),
                    LLMMessage(role="user", content=prompt),
                ],
                self._model,
                temperature=0.25,
                max_tokens=math.ceil(max_length * 1.6),
            )
        except LLMError as exc:
            logger.warning("summary_fallback_failed", document_id=document.document_id, error=str(exc))
            return None
        return strip_code_fences(result.text).strip() or None
