"""Application configuration using pydantic-settings."""
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Local document store
    database_url: str = "sqlite+aiosqlite:///./pagekeeper.db"
    # Seconds a writer waits on a locked SQLite file before failing
    db_busy_timeout: float = Field(default=30.0, validation_alias="DB_BUSY_TIMEOUT")

    # Value of the "index link-followed pages" preference when it was never set
    index_links_default: bool = Field(default=False, validation_alias="INDEX_LINKS_DEFAULT")

    # Page content fetching (full page materialization)
    fetch_timeout: float = Field(default=10.0, validation_alias="FETCH_TIMEOUT")

    default_list_page_size: int = Field(default=20, validation_alias="DEFAULT_LIST_PAGE_SIZE")

    analytics_enabled: bool = Field(default=True, validation_alias="ANALYTICS_ENABLED")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:5173",
        validation_alias="CORS_ORIGINS",
    )

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        if not self.cors_origins_str:
            return []
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
