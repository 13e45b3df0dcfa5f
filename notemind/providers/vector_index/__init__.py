"""Vector index implementations.

    ChromaDBProvider: local persistent ChromaDB collection, cosine space,
    one collection shared by all tenants with metadata filters.
"""

from notemind.providers.vector_index.chromadb_provider import ChromaDBProvider

__all__ = ["ChromaDBProvider"]
