"""Configuration settings for the gigmarket API."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # JWT
    jwt_secret_key: str  # Required - no default for security
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24  # 1 day

    # Storage: SQLite file path; unset means in-memory (dev/tests)
    database_path: str | None = None

    # Matching: use a model from ANTHROPIC_API_KEY / OPENAI_API_KEY when present
    enable_ai_matching: bool = True

    # App
    debug: bool = False
    log_level: str = "INFO"
    rate_limit_enabled: bool = True
    # CORS: Allowed origins for cross-origin requests
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
