from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache
from typing import Literal


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/teleflow"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10
    SLOW_QUERY_THRESHOLD_MS: int = 500

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Convert postgresql:// to postgresql+asyncpg:// for async support."""
        if v and v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    # CORS / links
    FRONTEND_URL: str = "http://localhost:5173"
    PUBLIC_APP_URL: str = "http://localhost:5173"

    # Audience estimation
    ESTIMATE_DEBOUNCE_MS: int = 500
    ESTIMATE_PREVIEW_LIMIT: int = 50
    # "live" aggregates billing/usage recency, "column" reads profiles.status
    ACTIVE_STATUS_SOURCE: Literal["live", "column"] = "live"

    # Post-purchase workflow
    WORKFLOW_FALLBACK_DELAY_SECONDS: float = 10.0
    NOTIFICATION_BUFFER_SIZE: int = 200

    # Email (Brevo)
    BREVO_API_KEY: str | None = None
    EMAIL_FROM_ADDRESS: str = "campaigns@teleflow.local"
    EMAIL_FROM_NAME: str = "TeleFlow Campaigns"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    DOCS_ENABLED: bool = True

    @property
    def sqlalchemy_echo(self) -> bool:
        """SQL echo only outside production."""
        return self.DEBUG and self.ENVIRONMENT != "production"

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
