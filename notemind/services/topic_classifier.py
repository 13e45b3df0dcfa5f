"""Embedding-based topic tagging against a fixed taxonomy.

Every label in :data:`notemind.config.topics.TOPICS` is embedded once as
``"{label}: {description}"``.  A document is classified by embedding a
digest of its title, summary, content and file metadata and ranking the
labels by cosine similarity:

  - up to ``max_labels`` labels scoring at least ``threshold`` win;
  - when none reaches the threshold, the single best label is used, so
    every classifiable document gets at least one topic.

Label vectors live in an injectable :class:`TopicLabelCache` rather than
module state, so tests (and a model change) can reset them.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from notemind.config.topics import PLACEHOLDER_TAG, TOPICS, label_inputs
from notemind.interfaces.document_store import IDocumentStore
from notemind.interfaces.embedding_provider import IEmbeddingProvider
from notemind.models.document import Document
from notemind.utils.errors import EmbeddingFailure, ValidationError
from notemind.utils.logging import get_logger
from notemind.utils.similarity import cosine_scores

logger: structlog.BoundLogger = get_logger(__name__)

MIN_CLASSIFIABLE_CHARS = 10


def select_text_for_classification(document: Document) -> str:
    """Join the parts of a document that say what it is about."""
    meta = " ".join(
        part
        for part in (document.type.value, document.metadata.file_name, document.metadata.mime_type)
        if part
    )
    pieces = [
        document.title[:200],
        (document.summary or "")[:4000],
        (document.content.processed or "")[:4000],
        (document.content.raw or "")[:4000],
        meta,
    ]
    return "\n".join(piece for piece in pieces if piece)


def merge_tags(existing: list[str] | None, new: list[str]) -> list[str]:
    """Ordered union of *existing* and *new* without the upload placeholder."""
    merged = list(dict.fromkeys([*(existing or []), *new]))
    return [tag for tag in merged if tag != PLACEHOLDER_TAG]


def should_reclassify(before: dict[str, Any] | None, after: dict[str, Any] | None) -> bool:
    """Whether a document write changed what the document is about.

    True for creations, for the transition into ``completed``, and for
    changes of title, summary or raw content.
    """
    if after is None:
        return False
    if before is None:
        return True
    if before.get("processing_status") != "completed" and after.get("processing_status") == "completed":
        return True
    if (before.get("title") or "") != (after.get("title") or ""):
        return True
    if (before.get("summary") or "") != (after.get("summary") or ""):
        return True
    before_raw = (before.get("content") or {}).get("raw") or ""
    after_raw = (after.get("content") or {}).get("raw") or ""
    return before_raw != after_raw


class TopicLabelCache:
    """Label embeddings computed lazily, exactly once per cache.

    Concurrent first callers wait on the same lock; only one of them
    calls the embedding provider.  A failed initialization leaves the
    cache empty so the next call tries again.
    """

    def __init__(self, embedding_provider: IEmbeddingProvider, topics: dict[str, str] | None = None) -> None:
        self._embedding = embedding_provider
        self._topics = topics if topics is not None else TOPICS
        self._labels: list[str] = []
        self._vectors: list[list[float]] = []
        self._lock = asyncio.Lock()

    @property
    def labels(self) -> list[str]:
        return list(self._labels)

    @property
    def vectors(self) -> list[list[float]]:
        return list(self._vectors)

    @property
    def initialized(self) -> bool:
        return bool(self._vectors)

    async def init_once(self) -> None:
        if self._vectors:
            return
        async with self._lock:
            if self._vectors:
                return
            pairs = label_inputs(self._topics)
            vectors = await self._embedding.embed([text for _, text in pairs])
            self._labels = [label for label, _ in pairs]
            self._vectors = vectors
            logger.info("topic_labels_embedded", labels=len(self._labels))

    def reset(self) -> None:
        self._labels = []
        self._vectors = []


class TopicClassifier:
    """Assigns taxonomy labels to documents and persists them as tags.

    Parameters
    ----------
    embedding_provider:
        Embeds document digests.
    label_cache:
        Shared label vectors.
    document_store:
        Needed only by :meth:`classify_and_tag`.
    threshold / max_labels:
        Minimum score and maximum number of labels returned.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        label_cache: TopicLabelCache,
        document_store: IDocumentStore | None = None,
        threshold: float = 0.25,
        max_labels: int = 3,
    ) -> None:
        self._embedding = embedding_provider
        self._labels = label_cache
        self._store = document_store
        self._threshold = threshold
        self._max_labels = max_labels

    async def classify(self, document: Document) -> list[str]:
        """Return the document's topic labels, best first.

        Embedding failures are logged and yield ``[]``.
        """
        text = select_text_for_classification(document)
        if len(text) < MIN_CLASSIFIABLE_CHARS:
            return []

        try:
            await self._labels.init_once()
            vector = await self._embedding.embed_query(text)
        except EmbeddingFailure as exc:
            logger.warning("topic_classification_failed", document_id=document.document_id, error=str(exc))
            return []

        scored = sorted(
            zip(self._labels.labels, cosine_scores(vector, self._labels.vectors)),
            key=lambda pair: pair[1],
            reverse=True,
        )
        if not scored:
            return []

        top = [label for label, score in scored if score >= self._threshold][: self._max_labels]
        labels = top or [scored[0][0]]
        logger.debug("topics_classified", document_id=document.document_id, labels=labels, best=scored[0][1])
        return labels

    async def classify_and_tag(self, user_id: str, document_id: str) -> list[str]:
        """Classify a stored document and persist the merged tags."""
        if self._store is None:
            raise ValidationError(message="TopicClassifier has no document store")
        document = await self._store.get_document(user_id, document_id)
        if document is None:
            raise ValidationError(message=f"Document not found: {document_id}")

        topics = await self.classify(document)
        tags = merge_tags(document.tags, topics)
        if tags != document.tags:
            await self._store.update_document(user_id, document_id, {"tags": tags})
        logger.info("document_tagged", user_id=user_id, document_id=document_id, tags=tags)
        return tags
