"""Custom exception hierarchy for notemind.

All application exceptions inherit from :class:`NotemindError`, which
carries an optional ``provider_name`` so error handlers can tell which
external service (e.g. "openai", "chromadb", "sqlite") caused a failure.

    NotemindError  (base)
    +-- EmbeddingFailure    (embedding batch failed after retries)
    +-- VectorIndexError    (upsert / query / fetch / delete failed)
    +-- LLMError            (any language-model call failure)
    |   +-- RateLimitError  (provider rate-limit exceeded)
    +-- StorageError        (document store or blob store failure)
    +-- ExtractionError     (PDF / DOCX / PPTX / TXT text extraction)
    +-- IngestionError      (fatal-to-run ingestion condition)
    +-- ValidationError     (caller mistakes: missing params, user mismatch)
    +-- ConfigurationError  (startup / missing config)

Helpers (embedding batches, index calls) raise these; orchestrating
services catch them at their boundary and decide whether to skip, fall
back, or fail the run.  The HTTP layer turns anything left into a
``{success: false, error}`` body.
"""


class NotemindError(Exception):
    """Base exception for all notemind errors.

    ``__str__`` prefixes the provider name in brackets for log scanning,
    e.g. ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


class EmbeddingFailure(NotemindError):
    """Raised when an embedding batch fails after batch-level retries.

    Never accompanied by partial results: a failed batch fails the whole
    ``embed`` call.
    """

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class VectorIndexError(NotemindError):
    """Raised when a vector-index operation fails."""

    def __init__(
        self,
        message: str = "Vector index operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(NotemindError):
    """Raised when a language-model call fails or returns nothing usable."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(LLMError):
    """Raised when a provider rate limit is exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StorageError(NotemindError):
    """Raised when the document store or blob store fails."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionError(NotemindError):
    """Raised when text cannot be extracted from a source file."""

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IngestionError(NotemindError):
    """Raised for conditions that abort an ingestion run.

    Missing storage reference, download failure, and too little extracted
    text all end the run with ``status=failed``.
    """

    def __init__(
        self,
        message: str = "Document ingestion failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ValidationError(NotemindError):
    """Raised for caller mistakes.  Surfaced as ``success=false`` with no side effects."""

    def __init__(
        self,
        message: str = "Invalid request",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(NotemindError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
