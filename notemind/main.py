"""notemind FastAPI application entry point.

Wires together all providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml`` and configures
structured logging before the first request.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from notemind.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from notemind.api.routes import files_router
from notemind.api.routes import router as api_router
from notemind.config.loader import load_config
from notemind.config.settings import Settings
from notemind.interfaces.blob_store import IBlobStore
from notemind.interfaces.document_store import IDocumentStore
from notemind.interfaces.embedding_provider import IEmbeddingProvider
from notemind.interfaces.llm_provider import ILLMProvider
from notemind.interfaces.vector_index_provider import IVectorIndexProvider
from notemind.models.document import DocumentType
from notemind.providers.blob.local_blob_store import LocalBlobStore
from notemind.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from notemind.providers.extraction import build_extractors
from notemind.providers.llm.openai_provider import OpenAILLMProvider
from notemind.providers.store.sqlite_document_store import SQLiteDocumentStore
from notemind.providers.vector_index.chromadb_provider import ChromaDBProvider
from notemind.services.answer_generator import AnswerGenerator
from notemind.services.chunk_reader import DocumentChunkReader
from notemind.services.document_text_service import DocumentTextService
from notemind.services.ingestion.chunker import TextChunker
from notemind.services.ingestion.coordinator import IngestionCoordinator
from notemind.services.podcast_service import PodcastService
from notemind.services.query_service import QueryService
from notemind.services.retrieval_service import RetrievalEngine
from notemind.services.study_materials import StudyMaterialService
from notemind.services.summarizer import Summarizer
from notemind.services.topic_classifier import TopicClassifier, TopicLabelCache
from notemind.utils.logging import configure_logging, get_logger

APP_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider construction
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings, http_client: httpx.AsyncClient) -> ILLMProvider:
    return OpenAILLMProvider(settings=app_settings, http_client=http_client)


def _build_embedding_provider(
    app_settings: Settings,
    app_config: dict[str, Any],
    http_client: httpx.AsyncClient,
) -> IEmbeddingProvider:
    embedding = app_config["embedding"]
    return OpenAIEmbeddingProvider(
        settings=app_settings,
        batch_size=embedding["batch_size"],
        batch_delay=embedding["batch_delay_seconds"],
        max_attempts=embedding["max_attempts"],
        retry_backoff=embedding["retry_backoff_seconds"],
        http_client=http_client,
    )


def _build_vector_index(app_settings: Settings, app_config: dict[str, Any]) -> IVectorIndexProvider:
    index = app_config["vector_index"]
    return ChromaDBProvider(
        persist_directory=app_settings.chromadb_persist_dir,
        collection_name=app_settings.chromadb_collection,
        upsert_batch_size=index["upsert_batch_size"],
        upsert_delay=index["upsert_delay_seconds"],
        fetch_batch_size=index["fetch_batch_size"],
    )


def _build_document_store(app_settings: Settings) -> IDocumentStore:
    return SQLiteDocumentStore(db_path=app_settings.document_db_path)


def _build_blob_store(app_settings: Settings) -> IBlobStore:
    return LocalBlobStore(
        root_dir=app_settings.blob_root_dir,
        public_base_url=app_settings.blob_public_base_url,
    )


# ---------------------------------------------------------------------------
# Full DI assembly for the FastAPI application
# ---------------------------------------------------------------------------


def _build_all(app_settings: Settings, app_config: dict[str, Any]) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    # -- Shared resources --
    http_client = httpx.AsyncClient(timeout=app_settings.openai_timeout_seconds)

    # -- Providers --
    llm = _build_llm_provider(app_settings, http_client)
    embedding = _build_embedding_provider(app_settings, app_config, http_client)
    vector_index = _build_vector_index(app_settings, app_config)
    document_store = _build_document_store(app_settings)
    blob_store = _build_blob_store(app_settings)

    models = app_config["llm"]
    ingestion_cfg = app_config["ingestion"]
    retrieval_cfg = app_config["retrieval"]
    chat_cfg = app_config["chat"]
    summary_cfg = app_config["summary"]
    topics_cfg = app_config["topics"]

    # -- Ingestion --
    coordinator = IngestionCoordinator(
        document_store=document_store,
        blob_store=blob_store,
        extractors=build_extractors(),
        embedding_provider=embedding,
        vector_index=vector_index,
        chunker=TextChunker(
            window_size=ingestion_cfg["window_size"],
            overlap=ingestion_cfg["overlap"],
        ),
        max_chars=ingestion_cfg["max_chars"],
        min_text_length=ingestion_cfg["min_text_length"],
        raw_content_chars=ingestion_cfg["raw_content_chars"],
        progress_every=ingestion_cfg["progress_every"],
        chunk_delay=ingestion_cfg["chunk_delay_seconds"],
        ingestible_types=frozenset(DocumentType(kind) for kind in ingestion_cfg["ingestible_types"]),
    )

    # -- Retrieval + chat --
    retrieval = RetrievalEngine(
        embedding_provider=embedding,
        vector_index=vector_index,
        max_documents=retrieval_cfg["max_documents"],
        max_context_chars=retrieval_cfg["max_context_chars"],
        snippet_chars=retrieval_cfg["snippet_chars"],
    )
    answer_generator = AnswerGenerator(
        document_store=document_store,
        llm=llm,
        retrieval=retrieval,
        chat_model=models["chat_model"],
        think_model=models["think_model"],
        web_search_model=models["web_search_model"],
        fallback_model=models["fallback_model"],
        history_limit=chat_cfg["history_limit"],
        max_context_docs=retrieval_cfg["max_documents"],
        flush_interval=chat_cfg["flush_interval_seconds"],
        replay_slice_chars=chat_cfg["replay_slice_chars"],
        replay_delay=chat_cfg["replay_delay_seconds"],
    )
    query_service = QueryService(
        document_store=document_store,
        embedding_provider=embedding,
        vector_index=vector_index,
        llm=llm,
        model=models["chat_model"],
    )

    # -- Derived artifacts --
    chunk_reader = DocumentChunkReader(vector_index)
    summarizer = Summarizer(
        document_store=document_store,
        chunk_reader=chunk_reader,
        llm=llm,
        model=models["chat_model"],
        default_chunk_count=summary_cfg["default_chunk_count"],
        max_chunks=summary_cfg["max_chunks"],
        part_chars=summary_cfg["part_chars"],
        max_parts=summary_cfg["max_parts"],
    )
    study_materials = StudyMaterialService(
        document_store=document_store,
        chunk_reader=chunk_reader,
        llm=llm,
        model=models["chat_model"],
        default_chunk_count=summary_cfg["default_chunk_count"],
    )
    podcast_service = PodcastService(
        document_store=document_store,
        blob_store=blob_store,
        llm=llm,
        summarizer=summarizer,
        tts_model=models["tts_model"],
    )
    document_text_service = DocumentTextService(document_store, chunk_reader)

    # -- Topics --
    topic_classifier = TopicClassifier(
        embedding_provider=embedding,
        label_cache=TopicLabelCache(embedding),
        document_store=document_store,
        threshold=topics_cfg["threshold"],
        max_labels=topics_cfg["max_labels"],
    )

    provider_registry = {
        "llm": llm.is_available(),
        "embedding": embedding.is_available(),
        "vector_index": vector_index.is_available(),
        "document_store": document_store.get_provider_name(),
        "blob_store": blob_store.get_provider_name(),
    }

    return {
        "http_client": http_client,
        "document_store": document_store,
        "blob_store": blob_store,
        "ingestion_coordinator": coordinator,
        "answer_generator": answer_generator,
        "query_service": query_service,
        "summarizer": summarizer,
        "study_materials": study_materials,
        "podcast_service": podcast_service,
        "document_text_service": document_text_service,
        "topic_classifier": topic_classifier,
        "provider_registry": provider_registry,
        "version": APP_VERSION,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = _build_all(settings, config)

    for key, value in components.items():
        setattr(application.state, key, value)

    await components["document_store"].initialize()

    _logger.info(
        "app_startup",
        version=APP_VERSION,
        environment=settings.app_env,
        providers=components["provider_registry"],
    )

    yield

    # -- Shutdown: close shared httpx client --
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("app_shutdown", message="HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="notemind API",
        version=APP_VERSION,
        description=(
            "Upload study documents, index them for retrieval, chat with them, "
            "and generate summaries, flashcards, quizzes and audio overviews."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=settings.get_cors_origins())

    # -- Routes --
    application.include_router(api_router)
    application.include_router(files_router)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "notemind.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
