"""Concrete adapters for the interfaces in ``notemind.interfaces``.

    embedding/     OpenAI embeddings
    vector_index/  ChromaDB
    llm/           OpenAI chat, responses and speech
    store/         SQLite document store
    blob/          local filesystem blob store
    extraction/    PyMuPDF, python-docx, PPTX and plain-text extractors
"""
