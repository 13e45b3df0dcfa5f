"""Chat turn orchestration with incremental answer persistence.

A turn moves through these states::

    prepare -> user message persisted (deduplicated)
            -> assistant placeholder {content: "", streaming: True}
            -> streaming flushes (content grows, streaming stays True)
            -> final flush {streaming: False}

The final flush happens exactly once per turn, whatever path the turn
takes: primary model, fallback model, or the fixed apology text.
Readers polling the message therefore always end on a terminal record.

Model routing is decided once per turn by :attr:`ChatTurnRequest.mode`:
web search uses the responses API with the ``web_search`` tool, think
mode uses the responses API with a reasoning model, everything else
streams chat completions.  Non-streaming answers are replayed in small
slices so readers see the same incremental behaviour.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

import structlog
from pydantic import BaseModel, ConfigDict, Field

from notemind.interfaces.document_store import IDocumentStore
from notemind.interfaces.llm_provider import ILLMProvider
from notemind.models.chat import Chat, ChatMessage, ChatTurnRequest, MessageRole, ModelMode
from notemind.models.llm import LLMMessage
from notemind.services.retrieval_service import RetrievalEngine
from notemind.utils.errors import LLMError, NotemindError, StorageError, ValidationError
from notemind.utils.logging import get_logger, log_context

logger: structlog.BoundLogger = get_logger(__name__)

DEFAULT_TITLE = "New Chat"
EMPTY_ANSWER = "I'm sorry, I couldn't generate a response."
ERROR_ANSWER = "I'm sorry, an error occurred generating the response."

BASE_INSTRUCTION = (
    "You are a helpful AI assistant. Prefer grounded answers using provided document "
    "context blocks when present. If context insufficient, say so and optionally ask "
    "for more info. Keep responses concise and clear. Use markdown when helpful."
)
WEB_SEARCH_ADDENDUM = (
    "\n\nWeb browsing is permitted via the web_search tool. Use it when the question "
    "requires up-to-date or external information. Summarize findings and cite source "
    "domains briefly (e.g., example.com)."
)
CONTEXT_PREFIX = (
    "Retrieved document context (do not fabricate beyond this unless using general "
    "knowledge cautiously):\n\n"
)

_TITLE_CHARS = 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def derive_title(prompt: str) -> str:
    return prompt.strip()[:_TITLE_CHARS] or DEFAULT_TITLE


class PreparedTurn(BaseModel):
    """Everything :meth:`AnswerGenerator.generate` needs for one turn."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    chat_id: str
    message_id: str = Field(description="Id of the assistant placeholder message.")
    prompt: str
    mode: ModelMode
    model: str
    temperature: float
    messages: list[LLMMessage]
    retitle: bool = Field(default=False, description="Derive the chat title from the prompt when done.")


class _AssistantMessageWriter:
    """Persists a growing assistant message and closes it exactly once."""

    def __init__(
        self,
        store: IDocumentStore,
        user_id: str,
        chat_id: str,
        message_id: str,
        clock: Callable[[], datetime],
    ) -> None:
        self._store = store
        self._user_id = user_id
        self._chat_id = chat_id
        self._message_id = message_id
        self._clock = clock
        self._content = ""
        self._finished = False
        self.flushes = 0

    @property
    def content(self) -> str:
        return self._content

    @property
    def finished(self) -> bool:
        return self._finished

    def append(self, delta: str) -> None:
        self._content += delta

    def replace(self, text: str) -> None:
        self._content = text

    async def flush(self) -> None:
        """Intermediate flush; storage hiccups are logged, not raised."""
        if self._finished:
            return
        try:
            await self._write(streaming=True)
        except StorageError as exc:
            logger.warning("chat_flush_failed", chat_id=self._chat_id, error=str(exc))

    async def finish(self, text: str | None = None) -> None:
        """Final flush.  Later calls are no-ops."""
        if self._finished:
            return
        if text is not None:
            self._content = text
        await self._write(streaming=False)

    async def _write(self, streaming: bool) -> None:
        now = self._clock()
        await self._store.update_message(
            self._user_id,
            self._chat_id,
            self._message_id,
            {"content": self._content, "streaming": streaming, "updated_at": now},
        )
        self.flushes += 1
        if not streaming:
            self._finished = True
        # The message write is what readers poll; the chat timestamp is secondary.
        try:
            await self._store.update_chat(self._user_id, self._chat_id, {"updated_at": now})
        except StorageError as exc:
            logger.warning("chat_touch_failed", chat_id=self._chat_id, error=str(exc))


class AnswerGenerator:
    """Runs chat turns: context assembly, model routing and persistence.

    Parameters
    ----------
    document_store:
        Chats and messages live here.
    llm:
        Language-model provider.
    retrieval:
        Builds document context from the chat's active documents.
    chat_model / think_model / web_search_model / fallback_model:
        Model names per routing mode; the fallback is used once after a
        hard failure of the primary call.
    history_limit:
        Messages of history sent to the model.
    max_context_docs:
        Cap on ``doc_ids`` stored on a chat and used for retrieval.
    flush_interval:
        Minimum seconds between streaming flushes.
    replay_slice_chars / replay_delay:
        Slice size and pause used to replay non-streamed answers.
    """

    def __init__(
        self,
        document_store: IDocumentStore,
        llm: ILLMProvider,
        retrieval: RetrievalEngine,
        chat_model: str = "gpt-4o-mini",
        think_model: str = "o3-mini",
        web_search_model: str = "gpt-4.1",
        fallback_model: str = "gpt-4o-mini",
        history_limit: int = 20,
        max_context_docs: int = 8,
        flush_interval: float = 0.25,
        replay_slice_chars: int = 48,
        replay_delay: float = 0.024,
        clock: Callable[[], datetime] | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = document_store
        self._llm = llm
        self._retrieval = retrieval
        self._models = {
            ModelMode.DEFAULT: chat_model,
            ModelMode.THINK: think_model,
            ModelMode.WEB_SEARCH: web_search_model,
        }
        self._fallback_model = fallback_model
        self._history_limit = history_limit
        self._max_context_docs = max_context_docs
        self._flush_interval = flush_interval
        self._replay_slice_chars = max(1, replay_slice_chars)
        self._replay_delay = replay_delay
        self._clock = clock or _utcnow
        self._monotonic = monotonic

    def model_for(self, mode: ModelMode) -> str:
        return self._models[mode]

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    async def create_chat(
        self,
        user_id: str,
        title: str = "",
        context_doc_ids: list[str] | None = None,
        language: str = "en",
    ) -> Chat:
        """Create an empty chat session."""
        if not user_id:
            raise ValidationError(message="user_id is required")
        now = self._clock()
        chat = Chat(
            chat_id=uuid.uuid4().hex,
            user_id=user_id,
            title=derive_title(title),
            language=language or "en",
            model=self._models[ModelMode.DEFAULT],
            context_doc_ids=list(context_doc_ids or [])[: self._max_context_docs],
            created_at=now,
            updated_at=now,
        )
        await self._store.create_chat(chat)
        logger.info("chat_created", user_id=user_id, chat_id=chat.chat_id)
        return chat

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def send_message(self, request: ChatTurnRequest) -> str:
        """Run a whole turn and return the chat id."""
        turn = await self.prepare_turn(request)
        await self.generate(turn)
        return turn.chat_id

    async def prepare_turn(self, request: ChatTurnRequest) -> PreparedTurn:
        """Persist the user side of a turn and the assistant placeholder.

        Raises
        ------
        ValidationError
            On a blank prompt or an unknown chat id.
        """
        if not request.user_id or not request.prompt.strip():
            raise ValidationError(message="Missing required parameters: user_id and prompt")

        user_id = request.user_id
        mode = request.mode
        model = self._models[mode]
        doc_ids = list(request.doc_ids)[: self._max_context_docs]
        chat = await self._open_chat(request, model, doc_ids)

        last = await self._store.get_last_message(user_id, chat.chat_id)
        if last is not None and last.role == MessageRole.USER and last.content == request.prompt:
            logger.info("chat_user_message_duplicate", chat_id=chat.chat_id)
        else:
            await self._store.add_message(
                user_id,
                ChatMessage(
                    message_id=uuid.uuid4().hex,
                    chat_id=chat.chat_id,
                    role=MessageRole.USER,
                    content=request.prompt,
                    created_at=self._clock(),
                ),
            )

        history = await self._store.list_messages(user_id, chat.chat_id, limit=self._history_limit)
        active_docs = doc_ids or chat.context_doc_ids[: self._max_context_docs]
        system_prompt = await self._system_prompt(request.prompt, user_id, active_docs, mode)

        messages = [LLMMessage(role="system", content=system_prompt)]
        messages.extend(
            LLMMessage(role=message.role.value, content=message.content)
            for message in history
            if message.role != MessageRole.SYSTEM
        )

        placeholder = ChatMessage(
            message_id=uuid.uuid4().hex,
            chat_id=chat.chat_id,
            role=MessageRole.ASSISTANT,
            content="",
            streaming=True,
            created_at=self._clock(),
        )
        await self._store.add_message(user_id, placeholder)

        return PreparedTurn(
            user_id=user_id,
            chat_id=chat.chat_id,
            message_id=placeholder.message_id,
            prompt=request.prompt,
            mode=mode,
            model=model,
            temperature=0.2 if request.think_mode else 0.7,
            messages=messages,
            retitle=last is None and chat.title == DEFAULT_TITLE,
        )

    async def generate(self, turn: PreparedTurn) -> str:
        """Produce and persist the assistant answer for a prepared turn.

        Returns the final persisted content.  The placeholder always ends
        with ``streaming=False``.
        """
        with log_context(user_id=turn.user_id, chat_id=turn.chat_id, message_id=turn.message_id):
            writer = _AssistantMessageWriter(self._store, turn.user_id, turn.chat_id, turn.message_id, self._clock)
            log = logger.bind(mode=turn.mode.value, model=turn.model)
            try:
                try:
                    if turn.mode == ModelMode.DEFAULT:
                        await self._stream_answer(turn, writer)
                    else:
                        await self._respond_answer(turn, writer)
                except LLMError as exc:
                    log.error("chat_generation_failed", error=str(exc))
                    await self._fallback_answer(turn, writer, log)
            finally:
                if not writer.finished:
                    await writer.finish(ERROR_ANSWER)

            if turn.retitle:
                await self._store.update_chat(turn.user_id, turn.chat_id, {"title": derive_title(turn.prompt)})

            log.info("chat_turn_completed", answer_chars=len(writer.content), flushes=writer.flushes)
            return writer.content

    # ------------------------------------------------------------------
    # Generation paths
    # ------------------------------------------------------------------

    async def _stream_answer(self, turn: PreparedTurn, writer: _AssistantMessageWriter) -> None:
        last_flush = self._monotonic()
        async for delta in self._llm.stream(turn.messages, turn.model, temperature=turn.temperature):
            if delta:
                writer.append(delta)
            now = self._monotonic()
            if now - last_flush > self._flush_interval:
                await writer.flush()
                last_flush = now
        await writer.finish(writer.content or EMPTY_ANSWER)

    async def _respond_answer(self, turn: PreparedTurn, writer: _AssistantMessageWriter) -> None:
        result = await self._llm.respond(
            turn.messages,
            turn.model,
            web_search=turn.mode == ModelMode.WEB_SEARCH,
        )
        await self._replay(result.text or EMPTY_ANSWER, writer)

    async def _fallback_answer(self, turn: PreparedTurn, writer: _AssistantMessageWriter, log) -> None:
        try:
            result = await self._llm.complete(turn.messages, self._fallback_model, temperature=turn.temperature)
        except LLMError as exc:
            log.error("chat_fallback_failed", fallback_model=self._fallback_model, error=str(exc))
            await writer.finish(ERROR_ANSWER)
            return
        log.info("chat_fallback_used", fallback_model=self._fallback_model)
        await writer.finish(result.text or EMPTY_ANSWER)

    async def _replay(self, text: str, writer: _AssistantMessageWriter) -> None:
        size = self._replay_slice_chars
        writer.replace("")
        for start in range(0, len(text), size):
            writer.append(text[start : start + size])
            await writer.flush()
            await asyncio.sleep(self._replay_delay)
        await writer.finish(text)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _open_chat(self, request: ChatTurnRequest, model: str, doc_ids: list[str]) -> Chat:
        now = self._clock()
        if request.chat_id is None:
            chat = Chat(
                chat_id=uuid.uuid4().hex,
                user_id=request.user_id,
                title=derive_title(request.prompt),
                language=request.language or "en",
                model=model,
                context_doc_ids=doc_ids,
                created_at=now,
                updated_at=now,
            )
            await self._store.create_chat(chat)
            logger.info("chat_created", user_id=request.user_id, chat_id=chat.chat_id)
            return chat

        if await self._store.get_chat(request.user_id, request.chat_id) is None:
            raise ValidationError(message=f"Chat not found: {request.chat_id}")
        fields: dict = {"updated_at": now, "language": request.language or "en", "model": model}
        if doc_ids:
            fields["context_doc_ids"] = doc_ids
        return await self._store.update_chat(request.user_id, request.chat_id, fields)

    async def _system_prompt(self, prompt: str, user_id: str, doc_ids: list[str], mode: ModelMode) -> str:
        instruction = BASE_INSTRUCTION
        if mode == ModelMode.WEB_SEARCH:
            instruction += WEB_SEARCH_ADDENDUM
        if not doc_ids:
            return instruction

        try:
            retrieved = await self._retrieval.retrieve(prompt, user_id, doc_ids)
        except NotemindError as exc:
            logger.warning("chat_retrieval_failed", user_id=user_id, error=str(exc))
            return instruction
        if retrieved.is_empty:
            return instruction
        return f"{instruction}\n\n{CONTEXT_PREFIX}{retrieved.context}"
