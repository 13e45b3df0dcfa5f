"""Flashcard, quiz and mind-map generation plus long-answer grading.

The document generators follow the same pattern:

  1. CACHE    -- serve the stored artifact unless ``force`` is set.
  2. CONTEXT  -- join the first N ordered chunks and cap the result.
                 With no chunks, fall back to the stored summary / raw /
                 processed text when there is enough of it.
  3. GENERATE -- ask the model for raw JSON (an array of items, or one
                 mind-map object in JSON mode).
  4. PARSE    -- salvage the JSON from any surrounding prose, then
                 validate and normalize every item; invalid items are
                 dropped rather than failing the batch.
  5. CACHE    -- persist non-empty results as the artifact.

An unparseable model answer yields an empty result, not an error.

Long answers are graded against a reference answer in JSON mode; when
that call fails or its output does not parse, the grade is requested
once more as plain text and the JSON object is cut out of the reply.
"""

from __future__ import annotations

import json
import math
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import structlog

from notemind.interfaces.document_store import IDocumentStore
from notemind.interfaces.llm_provider import ILLMProvider
from notemind.models.artifacts import (
    FLASHCARDS_KIND,
    MINDMAP_KIND,
    AIArtifact,
    Flashcard,
    LongAnswerEvaluation,
    MindMapNode,
    MindMapResult,
    QuizQuestion,
    quiz_kind,
)
from notemind.models.document import Document
from notemind.models.llm import LLMMessage
from notemind.services.chunk_reader import DocumentChunkReader
from notemind.utils.errors import LLMError, ValidationError
from notemind.utils.logging import get_logger
from notemind.utils.text import strip_code_fences

logger: structlog.BoundLogger = get_logger(__name__)

_DIFFICULTIES = ("easy", "medium", "hard")
_MIN_FALLBACK_CHARS = 120
_VERDICTS = ("correct", "incorrect", "insufficient")
_MINDMAP_MAX_DEPTH = 6
_MINDMAP_TITLE_WORDS = 6


def extract_json_array(raw: str) -> list[Any] | None:
    """Parse the outermost JSON array in *raw*; None when there is none."""
    text = strip_code_fences(raw)
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end <= start:
        return None
    try:
        parsed = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, list) else None


def extract_json_object(raw: str) -> dict[str, Any] | None:
    """Parse the outermost JSON object in *raw*; None when there is none."""
    text = strip_code_fences(raw)
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        parsed = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def normalize_flashcards(items: list[Any], count: int) -> list[Flashcard]:
    cards: list[Flashcard] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        front, back = item.get("front"), item.get("back")
        if not isinstance(front, str) or not isinstance(back, str) or not front.strip() or not back.strip():
            continue
        category = str(item.get("category") or "Concept").strip()[:40] or "Concept"
        cards.append(Flashcard(front=front.strip()[:200], back=back.strip()[:600], category=category))
        if len(cards) >= count:
            break
    return cards


def _correct_answer(item: dict[str, Any]) -> int | None:
    value = item.get("correctAnswer", item.get("correct_answer"))
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def normalize_quiz(items: list[Any], count: int) -> list[QuizQuestion]:
    """Keep well-formed multiple-choice questions.

    A question needs text, exactly four options and an answer index in
    0..3.  Unknown difficulties become ``medium``.
    """
    questions: list[QuizQuestion] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        question, options = item.get("question"), item.get("options")
        if not isinstance(question, str) or not question.strip():
            continue
        if not isinstance(options, list) or len(options) != 4:
            continue
        answer = _correct_answer(item)
        if answer is None or not 0 <= answer <= 3:
            continue
        difficulty = item.get("difficulty")
        questions.append(
            QuizQuestion(
                id=str(item.get("id") or len(questions) + 1),
                question=question.strip()[:300],
                options=[str(option).strip()[:150] for option in options],
                correct_answer=answer,
                explanation=str(item.get("explanation") or "").strip()[:400],
                difficulty=difficulty if difficulty in _DIFFICULTIES else "medium",
                category=str(item.get("category") or "General").strip()[:40] or "General",
            )
        )
        if len(questions) >= count:
            break
    return questions


def _mind_map_node(item: Any, depth: int) -> MindMapNode | None:
    if not isinstance(item, dict):
        return None
    title = " ".join(str(item.get("title") or "").split()[:_MINDMAP_TITLE_WORDS])
    if not title:
        return None
    children: list[MindMapNode] = []
    if depth < _MINDMAP_MAX_DEPTH and isinstance(item.get("children"), list):
        for child in item["children"]:
            node = _mind_map_node(child, depth + 1)
            if node is not None:
                children.append(node)
    return MindMapNode(title=title, children=children)


def normalize_mind_map(payload: dict[str, Any]) -> MindMapNode | None:
    """Build the node tree under ``root``, at most six levels deep.

    Titles are cut to six words; untitled nodes are dropped along with
    their subtrees.
    """
    return _mind_map_node(payload.get("root", payload), 1)


def count_nodes(node: MindMapNode) -> int:
    return 1 + sum(count_nodes(child) for child in node.children)


def min_answer_chars(min_length: int | None) -> int:
    """Shortest answer worth grading: *min_length* (default 120) kept within 40..2000."""
    return max(40, min(2000, min_length or 120))


def _clamp_score(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(score):
        return 0.0
    return max(0.0, min(100.0, score))


def _string_list(value: Any) -> list[str]:
    return [str(item) for item in value] if isinstance(value, list) else []


def normalize_evaluation(payload: dict[str, Any]) -> LongAnswerEvaluation:
    """Coerce a model grade: unknown verdicts become ``incorrect``, scores are clamped to 0..100."""
    verdict = str(payload.get("verdict") or "incorrect").strip().lower()
    if verdict not in _VERDICTS:
        verdict = "incorrect"
    return LongAnswerEvaluation(
        verdict=verdict,
        score=_clamp_score(payload.get("score")),
        reasoning=str(payload.get("reasoning") or ""),
        key_points=_string_list(payload.get("keyPoints", payload.get("key_points"))),
        missing_points=_string_list(payload.get("missingPoints", payload.get("missing_points"))),
    )


def _flashcard_prompt(count: int) -> str:
    return (
        "You are an expert educator generating high-quality spaced-repetition flashcards from source material. "
        "Guidelines:\n"
        f"- Produce exactly {count} diverse flashcards unless material is too small "
        "(then produce as many as reasonable, minimum 3).\n"
        "- Vary categories among Definition, Concept, Process, Fact, Application, Comparison, "
        "Cause/Effect, Example.\n"
        "- FRONT should be a concise question (max 110 chars) or cloze deletion using {{blank}}.\n"
        "- BACK should be a clear, factual answer (1-3 sentences or bullet list <= 220 chars).\n"
        "- Avoid trivia; focus on core ideas, relationships, and important details.\n"
        "- If original text contains another language, keep answer in that language but translate "
        "key term in parentheses if helpful.\n"
        '- Output ONLY raw JSON array of {"front","back","category"} objects, no commentary, no code fences.'
    )


def _quiz_prompt(count: int, difficulty: str) -> str:
    if difficulty == "mixed":
        difficulty_line = "Mix difficulty levels (easy, medium, hard) across questions."
    else:
        difficulty_line = f"Focus on {difficulty} difficulty level questions."
    return (
        "You are an expert educator generating high-quality multiple-choice quiz questions from source "
        "material. Guidelines:\n"
        f"- Produce exactly {count} diverse quiz questions unless material is too small "
        "(then produce as many as reasonable, minimum 3).\n"
        "- Each question must have exactly 4 options (A, B, C, D) with only one correct answer.\n"
        "- Vary categories among Definition, Concept, Process, Fact, Application, Analysis, Synthesis, "
        "Evaluation.\n"
        f"- {difficulty_line}\n"
        "- Questions should be clear and unambiguous (max 200 chars).\n"
        "- Options should be plausible but only one correct (max 120 chars each).\n"
        "- Explanations should clarify why the answer is correct and others are wrong (max 300 chars).\n"
        "- Avoid trivial questions; focus on understanding, application, and critical thinking.\n"
        "- Output ONLY raw JSON array, no commentary, no code fences.\n"
        '- Format: [{"id":"1","question":"...","options":["A","B","C","D"],"correctAnswer":0,'
        '"explanation":"...","category":"...","difficulty":"easy|medium|hard"}]'
    )


_MINDMAP_SYSTEM_PROMPT = (
    "You create hierarchical JSON mind map structures. Return STRICT JSON only in this shape: "
    '{"root": {"title": string, "children": [{"title": string, "children": [...] }]}}. '
    "Depth max 6, each node max 6 words. No extraneous fields."
)

_EVALUATION_SYSTEM_PROMPT = (
    "You are a fair, strict grader for long-form answers. Grade SEMANTICALLY: consider meaning, core logic, "
    "and conceptual correctness, not phrasing or style. An answer is CORRECT if it captures the essential "
    "ideas, steps, and reasoning even with different wording. Mark INCORRECT if key logic is wrong or major "
    "concepts are missing. Mark INSUFFICIENT if the response is too short or vague for a long question. "
    "Respond ONLY with strict JSON."
)
_EVALUATION_SCHEMA_HINT = (
    '{"verdict":"correct|incorrect|insufficient","score":0-100,"reasoning":"short explanation",'
    '"keyPoints":["..."],"missingPoints":["..."]}'
)
_UNPARSED_GRADE: dict[str, Any] = {"verdict": "incorrect", "score": 0, "reasoning": "Failed to parse model output"}


class StudyMaterialService:
    """Generates and caches flashcards, quizzes and mind maps; grades long answers.

    Parameters
    ----------
    document_store:
        Documents and the artifact cache.
    chunk_reader:
        Ordered chunk access.
    llm:
        Language-model provider.
    model:
        Chat model used for generation.
    default_chunk_count:
        Chunk count assumed when it cannot be resolved.
    fallback_chars:
        Cap on stored text used when the index has no chunks.
    """

    def __init__(
        self,
        document_store: IDocumentStore,
        chunk_reader: DocumentChunkReader,
        llm: ILLMProvider,
        model: str = "gpt-4o-mini",
        default_chunk_count: int = 300,
        fallback_chars: int = 18_000,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = document_store
        self._chunks = chunk_reader
        self._llm = llm
        self._model = model
        self._default_chunk_count = default_chunk_count
        self._fallback_chars = fallback_chars
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Flashcards
    # ------------------------------------------------------------------

    async def generate_flashcards(
        self,
        document_id: str,
        user_id: str,
        count: int = 12,
        force: bool = False,
    ) -> list[Flashcard]:
        document = await self._require_document(user_id, document_id)

        if not force:
            cached = await self._cached_items(user_id, document_id, FLASHCARDS_KIND)
            if cached:
                logger.info("flashcards_cache_hit", document_id=document_id, count=len(cached))
                return [Flashcard.model_validate(item) for item in cached[:count]]

        context, fallback = await self._context(document, max_chunks=120, max_chars=24_000)
        if not context:
            logger.warning("flashcards_no_content", document_id=document_id)
            return []

        if fallback:
            messages = [
                LLMMessage(role="system", content="You produce concise educational flashcards as valid JSON array only."),
                LLMMessage(
                    role="user",
                    content=f"Generate {count} JSON flashcards from the following text "
                    f'(objects with "front", "back", "category"). Text:\n\n{context}',
                ),
            ]
            result = await self._llm.complete(messages, self._model, temperature=0.4, max_tokens=1400)
        else:
            messages = [
                LLMMessage(role="system", content=_flashcard_prompt(count)),
                LLMMessage(role="user", content=f"Source Content (truncated):\n{context}\n\nGenerate flashcards now."),
            ]
            result = await self._llm.complete(messages, self._model, temperature=0.35, max_tokens=1600)

        items = extract_json_array(result.text)
        if items is None:
            logger.warning("flashcards_parse_failed", document_id=document_id, raw=result.text[:500])
            return []

        cards = normalize_flashcards(items, count)
        if cards:
            await self._cache(document, FLASHCARDS_KIND, [card.model_dump() for card in cards], fallback)
        logger.info("flashcards_generated", document_id=document_id, count=len(cards), fallback=fallback)
        return cards

    # ------------------------------------------------------------------
    # Quiz
    # ------------------------------------------------------------------

    async def generate_quiz(
        self,
        document_id: str,
        user_id: str,
        count: int = 10,
        difficulty: str = "mixed",
        force: bool = False,
    ) -> list[QuizQuestion]:
        if difficulty not in (*_DIFFICULTIES, "mixed"):
            raise ValidationError(message=f"Unknown difficulty: {difficulty}")
        document = await self._require_document(user_id, document_id)
        kind = quiz_kind(difficulty, count)

        if not force:
            cached = await self._cached_items(user_id, document_id, kind)
            if cached:
                logger.info("quiz_cache_hit", document_id=document_id, count=len(cached), difficulty=difficulty)
                return [QuizQuestion.model_validate(item) for item in cached[:count]]

        context, fallback = await self._context(document, max_chunks=100, max_chars=20_000)
        if not context:
            logger.warning("quiz_no_content", document_id=document_id)
            return []

        if fallback:
            messages = [
                LLMMessage(
                    role="system",
                    content="You produce educational quiz questions as valid JSON array only. "
                    "Each question should have 4 options with one correct answer.",
                ),
                LLMMessage(
                    role="user",
                    content=f"Generate {count} multiple-choice quiz questions from the following text. "
                    "Return as JSON array with id, question, options (4 choices), correctAnswer (0-3 index), "
                    f"explanation, category, and difficulty. Text:\n\n{context}",
                ),
            ]
            result = await self._llm.complete(messages, self._model, temperature=0.4, max_tokens=2000)
        else:
            messages = [
                LLMMessage(role="system", content=_quiz_prompt(count, difficulty)),
                LLMMessage(role="user", content=f"Source Content (truncated):\n{context}\n\nGenerate quiz questions now."),
            ]
            result = await self._llm.complete(messages, self._model, temperature=0.3, max_tokens=2200)

        items = extract_json_array(result.text)
        if items is None:
            logger.warning("quiz_parse_failed", document_id=document_id, raw=result.text[:500])
            return []

        questions = normalize_quiz(items, count)
        if questions:
            await self._cache(document, kind, [question.model_dump() for question in questions], fallback)
        logger.info("quiz_generated", document_id=document_id, count=len(questions), difficulty=difficulty)
        return questions

    # ------------------------------------------------------------------
    # Mind map
    # ------------------------------------------------------------------

    async def generate_mind_map(
        self,
        document_id: str,
        user_id: str,
        language: str = "English",
        force: bool = False,
    ) -> MindMapResult:
        document = await self._require_document(user_id, document_id)

        if not force:
            cached = await self._store.get_artifact(user_id, document_id, MINDMAP_KIND)
            if cached is not None and isinstance(cached.content, dict) and cached.content.get("title"):
                logger.info("mindmap_cache_hit", document_id=document_id)
                return MindMapResult(
                    root=MindMapNode.model_validate(cached.content), cached=True, fallback=cached.fallback
                )

        placeholder = MindMapNode(title=document.title or "Mind Map")
        context, fallback = await self._context(document, max_chunks=60, max_chars=12_000)
        if not context:
            logger.warning("mindmap_no_content", document_id=document_id)
            return MindMapResult(root=placeholder, fallback=True)

        messages = [
            LLMMessage(role="system", content=_MINDMAP_SYSTEM_PROMPT),
            LLMMessage(
                role="user",
                content=f"Prompt: {document.title or 'Document outline'}\nLanguage: {language or 'English'}\n"
                f"Mode: document\n\nSource Content (truncated):\n{context}",
            ),
        ]
        result = await self._llm.complete(messages, self._model, temperature=0.7, max_tokens=800, json_mode=True)

        payload = extract_json_object(result.text)
        root = normalize_mind_map(payload) if payload is not None else None
        if root is None:
            logger.warning("mindmap_parse_failed", document_id=document_id, raw=result.text[:500])
            return MindMapResult(root=placeholder, fallback=True)

        nodes = count_nodes(root)
        await self._cache(document, MINDMAP_KIND, root.model_dump(), fallback, size=nodes)
        logger.info("mindmap_generated", document_id=document_id, nodes=nodes, fallback=fallback)
        return MindMapResult(root=root, fallback=fallback)

    # ------------------------------------------------------------------
    # Long-answer grading
    # ------------------------------------------------------------------

    async def evaluate_long_answer(
        self,
        user_answer: str,
        reference_answer: str,
        min_length: int | None = None,
    ) -> LongAnswerEvaluation:
        """Grade *user_answer* against *reference_answer* by meaning, not wording.

        Answers shorter than :func:`min_answer_chars` are ``insufficient``
        without a model call.  A grade that cannot be parsed at all comes
        back as ``incorrect`` with score 0.
        """
        if not user_answer or not reference_answer:
            raise ValidationError(message="Missing required parameters: userAnswer, referenceAnswer")

        min_chars = min_answer_chars(min_length)
        answer = user_answer.strip()
        if len(answer) < min_chars:
            return LongAnswerEvaluation(
                verdict="insufficient", score=0, reasoning=f"Answer too brief (min ~{min_chars} chars)"
            )

        prompt = (
            f"Reference Answer:\n{reference_answer}\n\nStudent Answer:\n{answer}\n\n"
            f"Return JSON in this shape: {_EVALUATION_SCHEMA_HINT}. Score reflects semantic coverage (not style)."
        )
        payload = await self._grade(prompt)
        evaluation = normalize_evaluation(payload if payload is not None else _UNPARSED_GRADE)
        logger.info("long_answer_evaluated", verdict=evaluation.verdict, score=evaluation.score, chars=len(answer))
        return evaluation

    async def _grade(self, prompt: str) -> dict[str, Any] | None:
        system = LLMMessage(role="system", content=_EVALUATION_SYSTEM_PROMPT)
        try:
            result = await self._llm.complete(
                [system, LLMMessage(role="user", content=prompt)],
                self._model,
                temperature=0.0,
                max_tokens=350,
                json_mode=True,
            )
            payload = json.loads(result.text or "{}")
        except (LLMError, json.JSONDecodeError) as exc:
            logger.warning("evaluation_json_mode_failed", error=str(exc))
        else:
            if isinstance(payload, dict):
                return payload
            logger.warning("evaluation_json_mode_failed", error="model returned non-object JSON")

        try:
            result = await self._llm.complete(
                [system, LLMMessage(role="user", content=prompt + "\nReturn compact JSON only.")],
                self._model,
                temperature=0.0,
                max_tokens=350,
            )
        except LLMError as exc:
            logger.error("evaluation_fallback_failed", error=str(exc))
            return None
        payload = extract_json_object(result.text)
        if payload is None:
            logger.error("evaluation_fallback_parse_failed", raw=result.text[:500])
        return payload

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require_document(self, user_id: str, document_id: str) -> Document:
        document = await self._store.get_document(user_id, document_id)
        if document is None:
            raise ValidationError(message=f"Document not found: {document_id}")
        return document

    async def _cached_items(self, user_id: str, document_id: str, kind: str) -> list[Any]:
        artifact = await self._store.get_artifact(user_id, document_id, kind)
        if artifact is None or not isinstance(artifact.content, list):
            return []
        return artifact.content

    async def _context(self, document: Document, max_chunks: int, max_chars: int) -> tuple[str, bool]:
        """Return ``(context, from_stored_text)``; empty context means nothing usable."""
        chunks = await self._chunks.ordered_chunks(
            document,
            max_chunks=max_chunks,
            default_count=self._default_chunk_count,
        )
        if chunks:
            return "\n\n".join(chunks)[:max_chars], False

        stored = (document.summary or document.content.raw or document.content.processed or "")
        stored = stored[: self._fallback_chars]
        if len(stored) > _MIN_FALLBACK_CHARS:
            return stored, True
        return "", True

    async def _cache(
        self,
        document: Document,
        kind: str,
        content: list[dict[str, Any]] | dict[str, Any],
        fallback: bool,
        size: int | None = None,
    ) -> None:
        await self._store.put_artifact(
            AIArtifact(
                document_id=document.document_id,
                user_id=document.user_id,
                kind=kind,
                content=content,
                model=self._model,
                size=len(content) if size is None else size,
                fallback=fallback,
                updated_at=self._clock(),
            )
        )
