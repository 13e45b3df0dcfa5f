"""Text extractors keyed by document type."""

from notemind.interfaces.text_extractor import ITextExtractor
from notemind.models.document import DocumentType
from notemind.providers.extraction.office_extractors import (
    DocxTextExtractor,
    PlainTextExtractor,
    PptxTextExtractor,
)
from notemind.providers.extraction.pdf_extractor import OcrFunc, PDFTextExtractor, tesseract_ocr


def build_extractors(ocr: OcrFunc | None = tesseract_ocr) -> dict[DocumentType, ITextExtractor]:
    """Return one extractor per supported document type."""
    extractors: list[ITextExtractor] = [
        PDFTextExtractor(ocr=ocr),
        DocxTextExtractor(),
        PptxTextExtractor(),
        PlainTextExtractor(),
    ]
    return {doc_type: extractor for extractor in extractors for doc_type in extractor.supported_types()}


__all__ = [
    "DocxTextExtractor",
    "PDFTextExtractor",
    "PlainTextExtractor",
    "PptxTextExtractor",
    "build_extractors",
    "tesseract_ocr",
]
