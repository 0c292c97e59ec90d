"""Centralized application settings loaded from environment variables."""

from pydantic_settings import BaseSettings
from typing import List, Optional
from pathlib import Path


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./snippetbase.db"
    SECRET_KEY: str = "change-me-to-a-random-secret-key"
    DEBUG: bool = True
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]
    LOG_LEVEL: str = "INFO"

    # JWT
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    # Used to build links inside notification/email payloads
    APP_HOST: str = "http://localhost:3000"

    # Background jobs
    JOB_MAX_ATTEMPTS: int = 5
    JOB_BACKOFF_BASE_SECONDS: float = 2.0
    JOB_BACKOFF_MAX_SECONDS: float = 600.0
    JOB_LOCK_TIMEOUT_SECONDS: int = 900
    WORKER_POLL_INTERVAL_SECONDS: float = 2.0
    WORKER_BATCH_SIZE: int = 20
    RECONCILE_LOOKBACK_MINUTES: int = 60

    # Outbound collaborators. Empty URL means "log and skip".
    EMAIL_API_URL: str = ""
    EMAIL_API_KEY: str = ""
    SEARCH_API_URL: str = ""
    SEARCH_API_KEY: str = ""
    SEARCH_INDEX_NAME: str = "snippetbase"
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # Admins of this organization operate the instance-wide /api/admin routes.
    # Unset means any organization admin may (single-tenant installs).
    OPERATOR_ORGANIZATION_ID: Optional[int] = None

    class Config:
        # Load backend/.env regardless of the process cwd.
        env_file = str(Path(__file__).resolve().parents[1] / ".env")


settings = Settings()
