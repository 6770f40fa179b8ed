"""Application configuration module."""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Storage settings
    STORAGE_BACKEND: str = "memory"
    DATABASE_URL: str = "sqlite+aiosqlite:///./exam_engine.db"
    SQL_ECHO: bool = False
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    LOG_FILE: str = ""

    # Optional JSON list of questions loaded into the Question Store at startup
    QUESTION_SEED_FILE: str = ""

    # Assessment rules
    TIME_LIMIT_GRACE_MINUTES: int = 1
    OVERRIDE_ROLES: List[str] = ["admin"]

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100
    ATTEMPTS_PAGE_SIZE: int = 50

    # Background sweep
    SWEEP_INTERVAL_SECONDS: int = 0
    SWEEP_EXPIRE_ATTEMPTS: bool = False

    # API settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Exam Engine"
    CORS_ORIGINS: List[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


# Create global settings instance
settings = Settings()
