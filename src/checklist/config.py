"""Configuration management backed by pydantic-settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    db_host: str = "db"
    db_port: int = 5432
    db_user: str = "checklist"
    db_password: str = "checklist"
    db_name: str = "checklistdb"
    db_pool_min_size: int = 1
    db_pool_max_size: int = 5

    # Redis (change feed)
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_db: int = 0
    change_channel_prefix: str = "checklist:changes"

    # Tables
    items_table: str = "checklist_item"
    results_table: str = "checklist_result"

    # Checklist behaviour
    cache_freshness_seconds: float = 300.0
    quota_pass_threshold: int = 4
    max_retakes: int = 3
    seed_missing_checklists: bool = True

    # Application
    log_level: str = "INFO"

    @property
    def database_url(self) -> str:
        """Build PostgreSQL connection string."""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def redis_url(self) -> str:
        """Build Redis connection string."""
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"


# Global settings instance
settings = Settings()
