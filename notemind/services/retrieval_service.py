"""Multi-document retrieval and context packing for chat turns.

Given a question and a set of document ids, the engine:

  1. EMBED   -- embeds the question once.
  2. QUERY   -- asks the vector index for ``per_doc_limit * 2`` nearest
                chunks per document, always filtered by the caller's
                ``user_id``.  A failing document is logged and skipped.
  3. DEDUP   -- keeps at most ``per_doc_limit`` distinct chunk positions
                per document (a re-indexed chunk can surface twice).
  4. RANK    -- stable-sorts all survivors by score, descending.
  5. PACK    -- renders ``DOC {id} | {title}`` blocks with whitespace-
                normalized, capped snippets and adds them greedily until
                the next block (separator included) would exceed the
                budget.

The packed ``context`` string is empty when nothing survived, so callers
can skip the context system message altogether.
"""

from __future__ import annotations

import structlog

from notemind.interfaces.embedding_provider import IEmbeddingProvider
from notemind.interfaces.vector_index_provider import IVectorIndexProvider
from notemind.models.rag import ContextBlock, RetrievalResult, VectorMatch
from notemind.services.ingestion.chunker import parse_chunk_index
from notemind.utils.errors import EmbeddingFailure, VectorIndexError
from notemind.utils.logging import get_logger
from notemind.utils.text import normalize_whitespace

logger: structlog.BoundLogger = get_logger(__name__)

BLOCK_SEPARATOR = "\n\n---\n\n"


def confidence(scores: list[float]) -> float:
    """Mean similarity scaled to 0..95; 0 for no scores."""
    if not scores:
        return 0.0
    mean = sum(scores) / len(scores)
    return max(0.0, min(mean * 100.0, 95.0))


def render_block(block: ContextBlock) -> str:
    return f"DOC {block.document_id} | {block.title}\n{block.text}"


class RetrievalEngine:
    """Retrieves and packs document context for one question.

    Parameters
    ----------
    embedding_provider:
        Embeds the question.
    vector_index:
        Per-document nearest-neighbour queries.
    max_documents:
        Documents beyond this many are ignored.
    max_context_chars:
        Budget for the packed context, separators included.
    snippet_chars:
        Cap on each normalized chunk snippet.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        vector_index: IVectorIndexProvider,
        max_documents: int = 8,
        max_context_chars: int = 12_000,
        snippet_chars: int = 1_000,
    ) -> None:
        self._embedding = embedding_provider
        self._index = vector_index
        self._max_documents = max_documents
        self._max_context_chars = max_context_chars
        self._snippet_chars = snippet_chars

    async def retrieve(
        self,
        query: str,
        user_id: str,
        document_ids: list[str],
        per_doc_limit: int = 3,
    ) -> RetrievalResult:
        """Return ranked, deduplicated and budget-packed context for *query*."""
        doc_ids = list(dict.fromkeys(document_ids))[: self._max_documents]
        if not doc_ids or not query.strip():
            return RetrievalResult()

        vector = await self._embedding.embed_query(query)

        candidates: list[ContextBlock] = []
        for document_id in doc_ids:
            try:
                matches = await self._index.query(
                    vector,
                    top_k=per_doc_limit * 2,
                    user_id=user_id,
                    document_id=document_id,
                )
            except (VectorIndexError, EmbeddingFailure) as exc:
                logger.warning("retrieval_document_failed", document_id=document_id, error=str(exc))
                continue
            candidates.extend(self._dedupe(document_id, matches, per_doc_limit))

        # sorted() is stable: ties keep document-then-rank order
        ranked = sorted(candidates, key=lambda block: block.score, reverse=True)
        blocks = self._pack(ranked)
        context = BLOCK_SEPARATOR.join(render_block(block) for block in blocks)

        logger.info(
            "retrieval_complete",
            user_id=user_id,
            documents=len(doc_ids),
            candidates=len(ranked),
            packed=len(blocks),
            context_chars=len(context),
        )
        return RetrievalResult(blocks=blocks, context=context, candidates=len(ranked))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _dedupe(self, document_id: str, matches: list[VectorMatch], limit: int) -> list[ContextBlock]:
        seen: set[int] = set()
        blocks: list[ContextBlock] = []
        for match in matches:
            if match.metadata.document_id != document_id:
                continue
            index = parse_chunk_index(match.id)
            if index is None:
                index = match.metadata.chunk_index
            if index in seen:
                continue
            seen.add(index)
            blocks.append(
                ContextBlock(
                    document_id=document_id,
                    chunk_index=index,
                    title=match.metadata.title or document_id,
                    text=normalize_whitespace(match.metadata.chunk)[: self._snippet_chars],
                    score=match.score,
                )
            )
            if len(seen) >= limit:
                break
        return blocks

    def _pack(self, ranked: list[ContextBlock]) -> list[ContextBlock]:
        packed: list[ContextBlock] = []
        used = 0
        for block in ranked:
            if not block.text:
                continue
            cost = len(render_block(block)) + (len(BLOCK_SEPARATOR) if packed else 0)
            if used + cost > self._max_context_chars:
                break
            packed.append(block)
            used += cost
        return packed
