"""
Application Configuration

Centralized settings for the grounded chat pipeline using Pydantic
BaseSettings. All values are loaded from environment variables or a
``.env`` file.

Credentials for the external services (``HF_TOKEN``,
``GENERATION_API_KEY``) are optional at load time. The clients that need
them raise ``ServiceUnavailable`` on first use instead, so the package can
be imported by tests and tooling without a full deployment environment.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with environment variable binding.

    Required env vars (no defaults):
        POSTGRES_USER, POSTGRES_PASSWORD, POSTGRES_DB

    Groups:
        Database, Logging, Embedding service, Generation service,
        Pipeline tuning, Object storage.
    """

    PROJECT_NAME: str = "Grounded Chat RAG"

    # Database
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str

    DB_POOL_SIZE: int = 5
    DB_ECHO: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"

    # Embedding service
    EMBEDDING_BACKEND: str = "huggingface"  # "huggingface" | "local"
    EMBEDDING_MODEL: str = "sentence-transformers/all-MiniLM-L6-v2"
    EMBEDDING_DIMENSION: int = 384
    HF_TOKEN: str | None = None
    HF_INFERENCE_URL: str = "https://router.huggingface.co/hf-inference/models"
    EMBEDDING_TIMEOUT: float = 30.0

    # Generation service (OpenAI-compatible chat completions)
    GENERATION_BASE_URL: str = "https://api.groq.com/openai/v1"
    GENERATION_API_KEY: str | None = None
    GENERATION_MODEL: str = "llama-3.1-8b-instant"
    GENERATION_TEMPERATURE: float = 0.3
    GENERATION_TIMEOUT: float = 60.0

    # Pipeline
    CHUNK_SIZE: int = 800
    CHUNK_OVERLAP: int = 100
    RETRIEVAL_TOP_K: int = 5
    CONTEXT_MAX_SOURCES: int = 5
    MIN_EXTRACTED_CHARS: int = 1
    INGEST_CONCURRENCY: int = 1

    # Object storage
    STORAGE_ROOT: str = "./data/uploads"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",  # Silently ignore unknown env vars
    )

    @property
    def DATABASE_URL(self) -> str:
        """Async PostgreSQL connection string using asyncpg driver."""
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


settings = Settings()  # type: ignore[call-arg]
