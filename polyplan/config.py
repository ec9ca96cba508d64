"""
Application configuration from environment variables.
"""
from functools import lru_cache
from typing import Any
from urllib.parse import quote_plus

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Polyhouse Planner API"
    debug: bool = False

    # Database (used when result_store_backend is "database")
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "polyhouse_planner"
    db_username: str = "postgres"
    db_password: str = ""

    # CORS - allowed origins for cross-origin requests
    cors_origins: list[str] = [
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3000",  # Alternative dev server
    ]

    # Result store
    result_store_backend: str = "memory"  # "memory" or "database"
    result_ttl_s: int = 3600
    result_store_max_entries: int = 256

    # Planning
    planning_timeout_s: float = 60.0
    # Finished background jobs stay pollable this long, up to a count
    job_ttl_s: int = 3600
    job_max_finished: int = 256
    # Stored user defaults merged under every request override (JSON)
    planner_defaults: dict[str, Any] = {}

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from comma-separated string or list."""
        if isinstance(v, str) and not v.lstrip().startswith("["):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("result_store_backend")
    @classmethod
    def check_backend(cls, v: str) -> str:
        if v not in ("memory", "database"):
            raise ValueError("result_store_backend must be 'memory' or 'database'")
        return v

    @property
    def database_url(self) -> str:
        """Construct async database URL for SQLAlchemy."""
        # URL-encode the password to handle special characters
        encoded_password = quote_plus(self.db_password)
        return (
            f"postgresql+asyncpg://{self.db_username}:{encoded_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
