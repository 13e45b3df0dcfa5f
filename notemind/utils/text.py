"""Small text helpers shared by ingestion, retrieval and generation."""

from __future__ import annotations

import re

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse every whitespace run to a single space and strip the ends."""
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def clean_extracted_text(text: str) -> str:
    """Tidy text coming out of PDF/DOCX/PPTX extraction.

    Form feeds and runs of whitespace become single spaces.  Paragraph
    structure is not preserved; the chunker only cares about words.
    """
    return normalize_whitespace((text or "").replace("\f", " "))


def truncate(text: str | None, limit: int) -> str:
    """Return at most *limit* characters of *text* (``""`` for None)."""
    if not text:
        return ""
    return text[:limit]


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```), if any."""
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = re.sub(r"^```[a-zA-Z]*\s*", "", stripped)
        stripped = re.sub(r"\s*```$", "", stripped)
    return stripped.strip()
