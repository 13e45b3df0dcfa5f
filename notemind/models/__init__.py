"""notemind domain models.

    - document.py  - Document record, processing status/lock, write events
    - chat.py      - Chat sessions, messages, chat-turn requests
    - rag.py       - Vector records, matches, packed retrieval context
    - llm.py       - Typed results of each language-model API
    - artifacts.py - Cached summaries, flashcards, quizzes, mind maps,
                     podcasts; long-answer grades
    - user.py      - User directory profile
"""

from __future__ import annotations

from notemind.models.artifacts import (
    AIArtifact,
    DocumentText,
    Flashcard,
    LongAnswerEvaluation,
    MindMapNode,
    MindMapResult,
    PodcastResult,
    QuizQuestion,
    SummaryResult,
)
from notemind.models.chat import Chat, ChatMessage, ChatTurnRequest, MessageRole, ModelMode
from notemind.models.document import (
    Document,
    DocumentContent,
    DocumentMetadata,
    DocumentType,
    DocumentWriteEvent,
    IngestionResult,
    ProcessingLock,
    ProcessingStatus,
)
from notemind.models.llm import ChatCompletionResult, LLMMessage, ResponsesResult, SpeechResult
from notemind.models.rag import (
    ChunkMetadata,
    ContextBlock,
    QueryAnswer,
    RetrievalResult,
    SourceReference,
    VectorMatch,
    VectorRecord,
)
from notemind.models.user import UserProfile

__all__ = [
    "AIArtifact",
    "Chat",
    "ChatCompletionResult",
    "ChatMessage",
    "ChatTurnRequest",
    "ChunkMetadata",
    "ContextBlock",
    "Document",
    "DocumentContent",
    "DocumentMetadata",
    "DocumentText",
    "DocumentType",
    "DocumentWriteEvent",
    "Flashcard",
    "IngestionResult",
    "LLMMessage",
    "LongAnswerEvaluation",
    "MessageRole",
    "MindMapNode",
    "MindMapResult",
    "ModelMode",
    "PodcastResult",
    "ProcessingLock",
    "ProcessingStatus",
    "QueryAnswer",
    "QuizQuestion",
    "ResponsesResult",
    "RetrievalResult",
    "SourceReference",
    "SpeechResult",
    "SummaryResult",
    "UserProfile",
    "VectorMatch",
    "VectorRecord",
]
