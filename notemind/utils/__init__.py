"""Utility modules for notemind.

- **errors** -- exception hierarchy rooted at NotemindError.
- **logging** -- structlog setup: coloured console output in development,
  JSON in production.
- **similarity** -- cosine similarity for topic classification.
- **text** -- whitespace normalization and extraction clean-up.
"""

from notemind.utils.errors import (
    ConfigurationError,
    EmbeddingFailure,
    ExtractionError,
    IngestionError,
    LLMError,
    NotemindError,
    RateLimitError,
    StorageError,
    ValidationError,
    VectorIndexError,
)
from notemind.utils.logging import configure_logging, get_logger, log_context
from notemind.utils.similarity import cosine_scores, cosine_similarity
from notemind.utils.text import clean_extracted_text, normalize_whitespace

__all__ = [
    "ConfigurationError",
    "EmbeddingFailure",
    "ExtractionError",
    "IngestionError",
    "LLMError",
    "NotemindError",
    "RateLimitError",
    "StorageError",
    "ValidationError",
    "VectorIndexError",
    "clean_extracted_text",
    "configure_logging",
    "cosine_scores",
    "cosine_similarity",
    "get_logger",
    "log_context",
    "normalize_whitespace",
]
