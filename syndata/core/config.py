"""
Application configuration using Pydantic Settings.
Loads from environment variables / .env file.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "SynDataGen API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    MAX_REQUEST_BODY_BYTES: int = 2_000_000

    # MongoDB
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB_NAME: str = "syndatagen"

    # JWT
    JWT_SECRET_KEY: str = "your-super-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 1 day

    # Session cookie (mirrors the bearer token for browser clients)
    SESSION_COOKIE_NAME: str = "syndata_session"
    SESSION_COOKIE_SECURE: bool = False

    # Google OAuth
    GOOGLE_CLIENT_ID: str = ""

    # Admin console
    ADMIN_API_KEY: str = ""

    # AWS
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "us-east-1"
    PROJECT_BUCKETS_ENABLED: bool = False
    PROJECT_BUCKET_PREFIX: str = "syndatagen"
    SERVICE_ACCOUNT_SECRET_PREFIX: str = "syndatagen/customers"
    SERVICE_ACCOUNT_PATH: str = "/syndatagen/customers/"

    # Data generation pipeline
    PIPELINE_BASE_URL: str = ""  # empty -> in-process stub pipeline
    PIPELINE_API_TOKEN: str = ""
    PIPELINE_TIMEOUT_SECONDS: float = 30.0
    PIPELINE_MAX_RETRIES: int = 3
    PIPELINE_WEBHOOK_SECRET: str = ""

    # Jobs
    JOB_TYPES: List[str] = ["tabular", "timeseries", "text", "image"]
    JOBS_MAX_CONFIG_BYTES: int = 20_000
    JOBS_PER_HOUR: int = 20
    JOBS_MAX_CONCURRENT: int = 5
    JOBS_DISPATCH_MODE: str = "celery"  # "celery" | "inline"
    JOBS_SYNC_INTERVAL_SECONDS: int = 60

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_QUEUE_PREFIX: str = "syndata-"
    CELERY_TASK_TIME_LIMIT: int = 0
    CELERY_TASK_SOFT_TIME_LIMIT: int = 0

    # OpenAI (dataset chat)
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    DATASET_PREVIEW_ROWS: int = 200
    DATASET_PREVIEW_MAX_BYTES: int = 5 * 1024 * 1024

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
