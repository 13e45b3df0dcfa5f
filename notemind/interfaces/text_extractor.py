"""Abstract base class for document text extraction."""

from __future__ import annotations

from abc import ABC, abstractmethod

from notemind.models.document import DocumentType


# Concrete implementations: notemind/providers/extraction/
class ITextExtractor(ABC):
    """Contract for turning a source file's bytes into plain text."""

    @abstractmethod
    def extract(self, data: bytes) -> str:
        """Return the cleaned text of *data*.

        Raises
        ------
        notemind.utils.errors.ExtractionError
            If the file cannot be parsed at all.  Recoverable per-page
            problems (e.g. a failed OCR page) are replaced by a placeholder
            marker instead.
        """

    @abstractmethod
    def supported_types(self) -> frozenset[DocumentType]:
        """Document types this extractor handles."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this extractor."""
