"""PDF text extraction using PyMuPDF (fitz), with per-page OCR fallback.

Pages with a text layer are read directly.  Pages without one (scans) are
rendered to PNG and handed to an OCR callable when one is configured.  An
OCR failure affects only its page: the page is replaced by a
``[OCR failed for page N]`` marker and extraction continues.
"""

from __future__ import annotations

import io
from collections.abc import Callable

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import pytesseract
import structlog
from PIL import Image

from notemind.interfaces.text_extractor import ITextExtractor
from notemind.models.document import DocumentType
from notemind.utils.errors import ExtractionError
from notemind.utils.text import clean_extracted_text

logger = structlog.get_logger(logger_name=__name__)

OcrFunc = Callable[[bytes], str]

_OCR_DPI = 200


def tesseract_ocr(png_bytes: bytes) -> str:
    """OCR a rendered page image with Tesseract."""
    with Image.open(io.BytesIO(png_bytes)) as image:
        return pytesseract.image_to_string(image)


def ocr_failure_marker(page_number: int) -> str:
    return f"[OCR failed for page {page_number}]"


class PDFTextExtractor(ITextExtractor):
    """Extracts the text of every page of a PDF.

    Parameters
    ----------
    ocr:
        Callable turning PNG bytes into text, used for pages without a
        text layer.  ``None`` disables OCR; such pages are then skipped.
    """

    def __init__(self, ocr: OcrFunc | None = tesseract_ocr) -> None:
        self._ocr = ocr

    def extract(self, data: bytes) -> str:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise ExtractionError(
                message=f"Failed to open PDF: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        parts: list[str] = []
        ocr_pages = 0
        ocr_failures = 0
        try:
            page_count = len(doc)
            for page_index in range(page_count):
                page = doc[page_index]
                text = page.get_text("text").strip()
                if text:
                    parts.append(text)
                    continue
                if self._ocr is None:
                    continue

                ocr_pages += 1
                page_text = self._ocr_page(page, page_index + 1)
                if page_text is None:
                    ocr_failures += 1
                    parts.append(ocr_failure_marker(page_index + 1))
                elif page_text:
                    parts.append(page_text)
        finally:
            doc.close()

        cleaned = clean_extracted_text("\n".join(parts))
        logger.info(
            "pdf_text_extracted",
            pages=page_count,
            ocr_pages=ocr_pages,
            ocr_failures=ocr_failures,
            characters=len(cleaned),
        )
        return cleaned

    def _ocr_page(self, page: fitz.Page, page_number: int) -> str | None:
        """OCR one page; None means OCR failed for this page only."""
        try:
            pixmap = page.get_pixmap(dpi=_OCR_DPI)
            return self._ocr(pixmap.tobytes("png")).strip()
        except Exception as exc:
            logger.warning("pdf_page_ocr_failed", page=page_number, error=str(exc)[:200])
            return None

    def supported_types(self) -> frozenset[DocumentType]:
        return frozenset({DocumentType.PDF})

    def get_provider_name(self) -> str:
        return "pymupdf"
