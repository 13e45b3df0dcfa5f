"""Generated study artifacts and their cache record."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

SUMMARY_KIND = "summary"
FLASHCARDS_KIND = "flashcards_v1"
PODCAST_KIND = "podcast_v1"
MINDMAP_KIND = "mindmap_v1"

QuizDifficulty = Literal["easy", "medium", "hard"]
Verdict = Literal["correct", "incorrect", "insufficient"]


def quiz_kind(difficulty: str, count: int) -> str:
    """Artifact key of a quiz for one difficulty/count combination."""
    return f"quiz_v1_{difficulty}_{count}"


class AIArtifact(BaseModel):
    """Cached generated content for one document and one kind.

    Regeneration overwrites the stored artifact; it is never appended to.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    user_id: str
    kind: str
    content: Any
    model: str = ""
    version: int = 1
    size: int = 0
    fallback: bool = Field(default=False, description="Generated from stored text instead of indexed chunks.")
    updated_at: datetime | None = None


class Flashcard(BaseModel):
    model_config = ConfigDict(frozen=True)

    front: str
    back: str
    category: str = "Concept"


class QuizQuestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    question: str
    options: list[str] = Field(min_length=4, max_length=4)
    correct_answer: int = Field(ge=0, le=3)
    explanation: str = ""
    difficulty: QuizDifficulty = "medium"
    category: str = "General"


class SummaryResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    summary: str
    cached: bool = False
    fallback: bool = False
    parts: int = 0


class PodcastResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    audio_path: str
    audio_url: str
    voice: str
    cached: bool = False


class DocumentText(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    source: Literal["index", "store", "none"]
    chunk_count: int = 0
    truncated: bool = False


class LongAnswerEvaluation(BaseModel):
    """Grade of a free-text answer against a reference answer."""

    model_config = ConfigDict(frozen=True)

    verdict: Verdict
    score: float = Field(ge=0, le=100)
    reasoning: str = ""
    key_points: list[str] = Field(default_factory=list)
    missing_points: list[str] = Field(default_factory=list)


class MindMapNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    children: list[MindMapNode] = Field(default_factory=list)


class MindMapResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    root: MindMapNode
    cached: bool = False
    fallback: bool = False
