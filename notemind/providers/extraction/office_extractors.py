"""DOCX, PPTX and plain-text extraction.

DOCX goes through python-docx.  PPTX is read straight from the slide XML
inside the zip archive (``ppt/slides/slideN.xml``), keeping a
``--- Slide N ---`` marker per slide so chunks stay attributable.
"""

from __future__ import annotations

import html
import io
import re
import zipfile

import structlog
from docx import Document as DocxDocument

from notemind.interfaces.text_extractor import ITextExtractor
from notemind.models.document import DocumentType
from notemind.utils.errors import ExtractionError
from notemind.utils.text import clean_extracted_text, normalize_whitespace

logger = structlog.get_logger(logger_name=__name__)

_SLIDE_PATH_RE = re.compile(r"^ppt/slides/slide(\d+)\.xml$")
_TEXT_RUN_RE = re.compile(r"<a:t[^>]*>([\s\S]*?)</a:t>")
_CDATA_RE = re.compile(r"<!\[CDATA\[(.*?)\]\]>")
_SLIDE_LABEL_RE = re.compile(r"\bSlide\s+\d+\b", re.IGNORECASE)


class DocxTextExtractor(ITextExtractor):
    """Extracts paragraph text from Word documents."""

    def extract(self, data: bytes) -> str:
        try:
            doc = DocxDocument(io.BytesIO(data))
        except Exception as exc:
            raise ExtractionError(
                message=f"Failed to read DOCX: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        text = "\n\n".join(para.text for para in doc.paragraphs if para.text.strip())
        cleaned = clean_extracted_text(text)
        logger.info("docx_text_extracted", paragraphs=len(doc.paragraphs), characters=len(cleaned))
        return cleaned

    def supported_types(self) -> frozenset[DocumentType]:
        return frozenset({DocumentType.DOCX})

    def get_provider_name(self) -> str:
        return "python-docx"


class PptxTextExtractor(ITextExtractor):
    """Extracts slide text runs from PowerPoint decks."""

    def extract(self, data: bytes) -> str:
        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as exc:
            raise ExtractionError(
                message=f"Failed to read PPTX: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        slides: list[tuple[int, str]] = []
        with archive:
            for name in archive.namelist():
                match = _SLIDE_PATH_RE.match(name)
                if match:
                    xml = archive.read(name).decode("utf-8", errors="replace")
                    slides.append((int(match.group(1)), xml))
        slides.sort(key=lambda item: item[0])

        parts: list[str] = []
        for index, xml in slides:
            runs = [html.unescape(_CDATA_RE.sub(r"\1", run)) for run in _TEXT_RUN_RE.findall(xml)]
            text = normalize_whitespace(_SLIDE_LABEL_RE.sub("", " ".join(runs)))
            if text:
                parts.append(f"--- Slide {index} ---\n{text}")

        # Slide markers are kept as words; clean_extracted_text flattens newlines.
        cleaned = clean_extracted_text("\n\n".join(parts))
        logger.info("pptx_text_extracted", slides=len(slides), characters=len(cleaned))
        return cleaned

    def supported_types(self) -> frozenset[DocumentType]:
        return frozenset({DocumentType.PPTX})

    def get_provider_name(self) -> str:
        return "pptx-xml"


class PlainTextExtractor(ITextExtractor):
    """Decodes UTF-8 text, replacing undecodable bytes."""

    def extract(self, data: bytes) -> str:
        return clean_extracted_text(data.decode("utf-8", errors="replace"))

    def supported_types(self) -> frozenset[DocumentType]:
        return frozenset({DocumentType.TEXT, DocumentType.NOTE})

    def get_provider_name(self) -> str:
        return "plain-text"
