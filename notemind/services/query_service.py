"""Single-shot question answering over a user's indexed documents.

Unlike a chat turn, a query has no history and returns its answer with
provenance in one response.  Three routes, tried in order:

  1. FILE SEARCH  -- when the targeted document carries an external
                     ``vector_store_id``, the model answers with the
                     file-search tool bound to that store.
  2. INDEX        -- the question is embedded and the local vector index
                     supplies the ``top_k`` nearest chunks.
  3. STORED TEXT  -- when the index has nothing for a targeted document,
                     its stored summary/raw/processed text is used as the
                     context instead.

A failure on route 1 falls through to route 2.
"""

from __future__ import annotations

import structlog

from notemind.interfaces.document_store import IDocumentStore
from notemind.interfaces.embedding_provider import IEmbeddingProvider
from notemind.interfaces.llm_provider import ILLMProvider
from notemind.interfaces.vector_index_provider import IVectorIndexProvider
from notemind.models.document import Document
from notemind.models.llm import LLMMessage
from notemind.models.rag import QueryAnswer, SourceReference, VectorMatch
from notemind.services.retrieval_service import confidence
from notemind.utils.errors import LLMError, ValidationError
from notemind.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

NO_MATCHES_ANSWER = "I couldn't find any relevant information in your documents to answer this question."
NOT_READY_ANSWER = (
    "I couldn't find enough context from this document yet. Try again after processing "
    "finishes or ensure the document has accessible text."
)
NO_ANSWER = "I couldn't generate an answer."
FILE_SEARCH_SOURCE_TEXT = "Retrieved via OpenAI Vector Store file search"

_SYSTEM_PROMPT = (
    "You are a helpful AI assistant that answers questions based on provided document context. "
    "Always base your answers on the given context and cite sources when possible. "
    "If the context doesn't contain enough information to answer the question, say so clearly. "
    "Keep your answers concise but comprehensive."
)
_FILE_SEARCH_INSTRUCTIONS = (
    "You are a helpful assistant that answers questions based strictly on the provided documents. "
    "Use the file_search tool to find relevant information and ground your answers only on "
    "retrieved content. If you cannot find the information in the documents, say so clearly."
)

_STORED_CONTEXT_CHARS = 24_000
_MIN_STORED_CONTEXT_CHARS = 80
_SOURCE_PREVIEW_CHARS = 200


def build_prompt(question: str, context: str) -> str:
    return (
        "Please answer the following question using only the provided context. "
        "If the context doesn't contain enough information to answer the question, please say so.\n\n"
        f"Context:\n{context}\n\nQuestion: {question}\n\nAnswer:"
    )


class QueryService:
    """Answers one question against a user's documents.

    Parameters
    ----------
    document_store / embedding_provider / vector_index / llm:
        Collaborators.
    model:
        Chat model used for the answer and for file search.
    """

    def __init__(
        self,
        document_store: IDocumentStore,
        embedding_provider: IEmbeddingProvider,
        vector_index: IVectorIndexProvider,
        llm: ILLMProvider,
        model: str = "gpt-4o-mini",
    ) -> None:
        self._store = document_store
        self._embedding = embedding_provider
        self._index = vector_index
        self._llm = llm
        self._model = model

    async def query_documents(
        self,
        question: str,
        user_id: str,
        document_id: str | None = None,
        top_k: int = 5,
    ) -> QueryAnswer:
        """Answer *question* from the caller's documents.

        Raises
        ------
        ValidationError
            When question or user id is missing.
        EmbeddingFailure, VectorIndexError, LLMError
            When the index route fails.
        """
        if not question or not question.strip() or not user_id:
            raise ValidationError(message="Missing required parameters: question and user_id")

        logger.info("query_started", user_id=user_id, document_id=document_id, top_k=top_k)

        document: Document | None = None
        if document_id:
            document = await self._store.get_document(user_id, document_id)
            if document is not None and document.metadata.vector_store_id:
                answer = await self._try_file_search(question, document)
                if answer is not None:
                    return answer

        vector = await self._embedding.embed_query(question)
        matches = await self._index.query(vector, top_k=top_k, user_id=user_id, document_id=document_id)

        if not matches:
            if document is not None:
                return await self._answer_from_stored_text(question, document)
            return QueryAnswer(answer=NO_MATCHES_ANSWER)

        context = "\n\n".join(f"[Source: {m.metadata.title}] {m.metadata.chunk}" for m in matches)
        answer = await self._generate(question, context)
        logger.info("query_complete", user_id=user_id, route="index", matches=len(matches))
        return QueryAnswer(
            answer=answer,
            sources=[self._source(match) for match in matches],
            confidence=confidence([match.score for match in matches]),
        )

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    async def _try_file_search(self, question: str, document: Document) -> QueryAnswer | None:
        vector_store_id = document.metadata.vector_store_id or ""
        logger.info("query_routed_to_file_search", document_id=document.document_id, vector_store_id=vector_store_id)
        try:
            result = await self._llm.respond_with_file_search(
                question,
                vector_store_id,
                self._model,
                instructions=_FILE_SEARCH_INSTRUCTIONS,
            )
        except LLMError as exc:
            logger.warning("file_search_failed", document_id=document.document_id, error=str(exc))
            return None
        return QueryAnswer(
            answer=result.text or NO_ANSWER,
            sources=[
                SourceReference(
                    document_id=document.document_id,
                    title=document.title or "Document",
                    chunk=FILE_SEARCH_SOURCE_TEXT,
                    score=1.0,
                )
            ],
            confidence=80.0,
        )

    async def _answer_from_stored_text(self, question: str, document: Document) -> QueryAnswer:
        context = (document.summary or document.content.raw or document.content.processed or "")
        context = context[:_STORED_CONTEXT_CHARS]
        if len(context) < _MIN_STORED_CONTEXT_CHARS:
            return QueryAnswer(answer=NOT_READY_ANSWER)

        answer = await self._generate(question, context)
        preview = context[:_SOURCE_PREVIEW_CHARS] + ("..." if len(context) > _SOURCE_PREVIEW_CHARS else "")
        logger.info("query_complete", user_id=document.user_id, route="stored_text")
        return QueryAnswer(
            answer=answer,
            sources=[
                SourceReference(
                    document_id=document.document_id,
                    title=document.title or "Document",
                    chunk=preview,
                    score=0.99,
                )
            ],
            confidence=70.0,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _generate(self, question: str, context: str) -> str:
        result = await self._llm.complete(
            [
                LLMMessage(role="system", content=_SYSTEM_PROMPT),
                LLMMessage(role="user", content=build_prompt(question, context)),
            ],
            self._model,
            temperature=0.1,
            max_tokens=1000,
        )
        return result.text or NO_ANSWER

    @staticmethod
    def _source(match: VectorMatch) -> SourceReference:
        return SourceReference(
            document_id=match.metadata.document_id,
            title=match.metadata.title,
            chunk=match.metadata.chunk[:_SOURCE_PREVIEW_CHARS] + "...",
            score=match.score,
        )
