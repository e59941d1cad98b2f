"""Application Configuration — CAMPUS_* environment variables, validated once.

Invariants:
    - get_settings() is cached: one Settings instance per process
    - Retry and paging bounds are validated at load, not at first use
    - store_backend selects the SQL store or the in-process memory store

Design Decisions:
    - Every setting has a default, so a bare checkout runs against docker-compose
    - CAMPUS_ env prefix: settings never collide with unrelated process variables
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="CAMPUS_", case_sensitive=False,
    )

    # Store
    store_backend: Literal["sql", "memory"] = "sql"

    # Database
    database_url: str = "postgresql+asyncpg://campus:campus@db:5432/campus"

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted Postgres hands out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Enrollment
    enrollment_max_attempts: int = Field(default=5, ge=1, le=50)
    enrollment_base_delay_ms: int = Field(default=20, ge=0)
    enrollment_max_delay_ms: int = Field(default=1000, ge=0)
    cascade_batch_size: int = Field(default=500, ge=1, le=500)

    # Paging
    default_page_size: int = Field(default=10, ge=1)
    max_page_size: int = Field(default=100, ge=1)

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
