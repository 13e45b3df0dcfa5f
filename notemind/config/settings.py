"""Application settings loaded from environment variables via pydantic-settings.

Every field maps to an upper-cased environment variable
(``openai_api_key`` ← ``OPENAI_API_KEY``) and may also come from a local
``.env`` file.  Tunables that are not secrets (batch sizes, delays,
budgets) live in ``config/config.yaml`` and are merged by
:func:`notemind.config.loader.load_config`.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """notemind application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === OpenAI ===
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_chat_model: str = "gpt-4o-mini"
    openai_think_model: str = "o3-mini"
    openai_web_search_model: str = "gpt-4.1"
    openai_fallback_model: str = "gpt-4o-mini"
    openai_embedding_model: str = "text-embedding-3-small"
    openai_embedding_dimensions: int = 1024
    openai_tts_model: str = "gpt-4o-mini-tts"
    openai_timeout_seconds: float = 60.0

    # === Vector index ===
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "notemind_chunks"

    # === Persistence ===
    document_db_path: str = "data/notemind.db"
    blob_root_dir: str = "data/blobs"
    blob_public_base_url: str = "http://localhost:8000/files"

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    cors_allowed_origins: str = "*"

    def get_cors_origins(self) -> list[str]:
        """Split the comma-separated CORS origin list."""
        return [origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip()]
