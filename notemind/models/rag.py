"""Vector index and retrieval data models.

A chunk is never stored as its own entity: it lives in the vector index as
a :class:`VectorRecord` whose id is ``f"{document_id}_{chunk_index}"`` and
whose metadata carries the (capped) chunk text for display and prompting.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

# Chunk text kept on the index record; the index rejects oversized metadata.
MAX_METADATA_TEXT_CHARS = 40_000


class ChunkMetadata(BaseModel):
    """Metadata stored with every chunk vector."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(description="Owning tenant.  Every query filters on it.")
    document_id: str
    chunk_index: int = Field(ge=0)
    chunk: str = Field(default="", description="Chunk text, capped at 40,000 characters.")
    title: str = ""
    file_name: str = ""
    timestamp: str = Field(default="", description="ISO-8601 time the chunk was indexed.")


class VectorRecord(BaseModel):
    """A record to upsert into the vector index."""

    model_config = ConfigDict(frozen=True)

    id: str
    embedding: list[float]
    metadata: ChunkMetadata


class VectorMatch(BaseModel):
    """One ranked match returned by a vector-index query."""

    model_config = ConfigDict(frozen=True)

    id: str
    score: float = Field(description="Similarity score; higher is more similar.")
    metadata: ChunkMetadata


class ContextBlock(BaseModel):
    """A packed piece of retrieval context."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    chunk_index: int
    title: str
    text: str = Field(description="Whitespace-normalized, capped snippet.")
    score: float


class RetrievalResult(BaseModel):
    """Ranked, deduplicated, budget-packed context for a query."""

    model_config = ConfigDict(frozen=True)

    blocks: list[ContextBlock] = Field(default_factory=list)
    context: str = Field(default="", description="Blocks rendered and joined; empty when nothing survived.")
    candidates: int = Field(default=0, description="Unique candidates before packing.")

    @property
    def is_empty(self) -> bool:
        return not self.blocks


class SourceReference(BaseModel):
    """Provenance entry returned alongside a single-answer query."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    title: str
    chunk: str
    score: float


class QueryAnswer(BaseModel):
    """Answer of the single-shot (non-chat) RAG query path."""

    model_config = ConfigDict(frozen=True)

    answer: str
    sources: list[SourceReference] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=95.0)
