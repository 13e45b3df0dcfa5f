"""Abstract interfaces (ports) for every external collaborator.

Services depend only on these ABCs; concrete adapters live under
``notemind/providers/`` and are wired together in ``notemind/main.py``.
Tests swap in in-memory fakes through the same seams.

    IEmbeddingProvider    - text → vectors (OpenAI embeddings)
    IVectorIndexProvider  - tenant-scoped vector upsert/query/fetch/delete (ChromaDB)
    ILLMProvider          - chat, streaming, responses, file search, speech (OpenAI)
    IDocumentStore        - documents, chats, messages, artifacts, users (SQLite)
    IBlobStore            - source files and generated audio (local filesystem)
    ITextExtractor        - bytes → text (PyMuPDF, python-docx, ...)
"""

from notemind.interfaces.blob_store import IBlobStore
from notemind.interfaces.document_store import IDocumentStore
from notemind.interfaces.embedding_provider import IEmbeddingProvider
from notemind.interfaces.llm_provider import ILLMProvider
from notemind.interfaces.text_extractor import ITextExtractor
from notemind.interfaces.vector_index_provider import IVectorIndexProvider

__all__ = [
    "IBlobStore",
    "IDocumentStore",
    "IEmbeddingProvider",
    "ILLMProvider",
    "ITextExtractor",
    "IVectorIndexProvider",
]
