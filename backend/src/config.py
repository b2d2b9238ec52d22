"""Runtime settings for the InvoiceLearn service.

Values come from environment variables (optionally a .env file) through
pydantic-settings; defaults target a local SQLite development setup.
"""

from typing import List, Optional
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Service settings, one attribute per environment variable.

    Notable variables:
        DATABASE_URL: SQLAlchemy connection string for the record store
        OPENAI_API_KEY: OpenAI API key (enables the openai providers)
        ANTHROPIC_API_KEY: Anthropic API key (enables the anthropic provider)
        PARSING_STRATEGY: Default extraction strategy name
        PROVIDER_ORDER: Comma-separated LLM provider preference
        PROVIDER_TIMEOUT_SECONDS: Upper bound for a single provider attempt
        PATTERN_REBUILD_LIMIT: Correction records scanned by a pattern rebuild
        LOG_LEVEL: Root log level name
        LOG_JSON: Emit JSON log lines (default True)
    """

    # Database
    DATABASE_URL: str = "sqlite:///./invoicelearn.db"

    # AI Providers
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_TEXT_MODEL: str = "gpt-4o-mini"
    OPENAI_ACCURATE_MODEL: str = "gpt-4o"
    ANTHROPIC_API_KEY: Optional[str] = None
    ANTHROPIC_MODEL: str = "claude-3-5-sonnet-20241022"

    # Extraction
    PARSING_STRATEGY: str = "hybrid"
    PROVIDER_ORDER: str = "anthropic,openai,openai-accurate"
    PROVIDER_TIMEOUT_SECONDS: float = 30.0
    MAX_UPLOAD_SIZE_BYTES: int = 10 * 1024 * 1024  # 10 MB

    # Learning
    PATTERN_REBUILD_LIMIT: int = 100
    SUGGESTION_LIMIT: int = 5

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    ENVIRONMENT: str = "development"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8080"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    @property
    def provider_order(self) -> List[str]:
        """PROVIDER_ORDER split into provider names."""
        return [name.strip() for name in self.PROVIDER_ORDER.split(",") if name.strip()]

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings, read once; ``get_settings.cache_clear()`` forces a reload."""
    return Settings()
