"""Unit tests for the factory functions in notemind/main.py.

The ChromaDB client is patched out so no index is created on disk; the
remaining providers are cheap to construct against a temporary directory.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest
from fastapi import FastAPI

from notemind.config.loader import DEFAULTS, load_config
from notemind.config.settings import Settings
from notemind.models.document import DocumentType


def _settings(tmp_path: Path, **overrides) -> Settings:
    defaults = {
        "openai_api_key": "sk-test-key",
        "openai_base_url": "",
        "document_db_path": str(tmp_path / "notemind.db"),
        "blob_root_dir": str(tmp_path / "blobs"),
        "blob_public_base_url": "http://files.test/",
        "app_env": "test",
    }
    defaults.update(overrides)
    return Settings(**defaults)


class TestProviderFactories:
    def test_llm_provider_shares_http_client(self, tmp_path: Path) -> None:
        from notemind.main import _build_llm_provider
        from notemind.providers.llm.openai_provider import OpenAILLMProvider

        http_client = httpx.AsyncClient()
        with patch("notemind.providers.llm.openai_provider.openai.AsyncOpenAI") as client_cls:
            provider = _build_llm_provider(_settings(tmp_path), http_client)

        assert isinstance(provider, OpenAILLMProvider)
        assert client_cls.call_args.kwargs["http_client"] is http_client

    def test_embedding_provider_unavailable_without_key(self, tmp_path: Path) -> None:
        from notemind.main import _build_embedding_provider

        provider = _build_embedding_provider(
            _settings(tmp_path, openai_api_key=""),
            load_config(str(tmp_path / "absent.yaml"), settings=_settings(tmp_path)),
            httpx.AsyncClient(),
        )

        assert provider.is_available() is False

    def test_vector_index_uses_settings(self, tmp_path: Path) -> None:
        from notemind.main import _build_vector_index

        settings = _settings(tmp_path, chromadb_persist_dir=str(tmp_path / "chroma"), chromadb_collection="c1")
        with patch("notemind.main.ChromaDBProvider") as chroma_cls:
            _build_vector_index(settings, {"vector_index": DEFAULTS["vector_index"]})

        kwargs = chroma_cls.call_args.kwargs
        assert kwargs["persist_directory"] == str(tmp_path / "chroma")
        assert kwargs["collection_name"] == "c1"
        assert kwargs["upsert_batch_size"] == 50
        assert kwargs["fetch_batch_size"] == 100

    def test_blob_store_url(self, tmp_path: Path) -> None:
        from notemind.main import _build_blob_store

        store = _build_blob_store(_settings(tmp_path))

        assert store.public_url("a/b.mp3", "tok") == "http://files.test/a/b.mp3?token=tok"


class TestBuildAll:
    @pytest.fixture()
    def components(self, tmp_path: Path) -> dict:
        from notemind.main import _build_all

        settings = _settings(tmp_path)
        config = load_config(str(tmp_path / "absent.yaml"), settings=settings)
        config["ingestion"]["ingestible_types"] = ["pdf", "docx"]
        with patch("notemind.main.ChromaDBProvider", return_value=MagicMock()):
            return _build_all(settings, config)

    def test_all_components_present(self, components: dict) -> None:
        expected = {
            "http_client",
            "document_store",
            "blob_store",
            "ingestion_coordinator",
            "answer_generator",
            "query_service",
            "summarizer",
            "study_materials",
            "podcast_service",
            "document_text_service",
            "topic_classifier",
            "provider_registry",
            "version",
        }
        assert expected <= set(components)

    def test_provider_registry(self, components: dict) -> None:
        registry = components["provider_registry"]
        assert registry["llm"] is True
        assert registry["embedding"] is True
        assert registry["document_store"] == "sqlite"
        assert registry["blob_store"] == "local_blob"

    def test_ingestible_types_from_config(self, components: dict) -> None:
        coordinator = components["ingestion_coordinator"]
        assert coordinator._ingestible_types == frozenset({DocumentType.PDF, DocumentType.DOCX})


class TestCreateApp:
    def test_routes_registered(self) -> None:
        from notemind.main import create_app

        application = create_app()

        assert isinstance(application, FastAPI)
        paths = {route.path for route in application.routes}
        assert "/api/v1/health" in paths
        assert "/files/{path:path}" in paths
