"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
No sensitive values should be hardcoded here.
"""

from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    PROJECT_NAME: str = "Video Encoding Backend"
    VERSION: str = "0.1.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Database - REQUIRED
    DATABASE_URL: str

    # Redis - REQUIRED (Celery broker and periodic task locks)
    REDIS_URL: str

    # Storage Configuration
    # STORAGE_BACKEND: local, s3, minio
    STORAGE_BACKEND: str = "local"

    # Local Storage (when STORAGE_BACKEND=local)
    LOCAL_STORAGE_PATH: str = "./storage"

    # S3/MinIO/Compatible Storage (when STORAGE_BACKEND=s3 or minio)
    # Buckets are named by ENCODED_CONTAINER and RAW_CONTAINER below
    STORAGE_REGION: str = ""
    STORAGE_ACCESS_KEY: str = ""
    STORAGE_SECRET_KEY: str = ""
    STORAGE_ENDPOINT_URL: Optional[str] = None  # Required for MinIO
    STORAGE_USE_SSL: bool = True

    # Public URL construction for encoded output
    STORAGE_ACCOUNT_NAME: str = ""
    ENCODED_CONTAINER: str = "videos-encoded"
    RAW_CONTAINER: str = "videos-raw"
    CDN_ENDPOINT: Optional[str] = None  # e.g. https://cdn.example.com

    # Encoding queue
    ENCODING_MAX_CONCURRENT: int = 2
    ENCODING_MAX_ATTEMPTS: int = 3
    ENCODING_DEFAULT_PRIORITY: int = 10
    ENCODING_JOB_RETENTION_HOURS: int = 24
    ENCODING_POLL_INTERVAL_SECONDS: float = 5.0
    ENCODING_SHUTDOWN_WAIT_SECONDS: float = 60.0
    ENCODING_WORKER_ENABLED: bool = True

    # Encoding provider
    ENCODING_PROVIDER_API_URL: str = "https://api.coconut.co/v2/jobs"
    ENCODING_PROVIDER_API_KEY: str = ""
    ENCODING_PROVIDER_TIMEOUT_SECONDS: float = 30.0
    ENCODING_HLS_VARIANTS: list[str] = ["mp4:720p::maxrate=2500k", "mp4:360p::maxrate=600k"]
    ENCODING_WEBHOOK_BASE_URL: str = "http://localhost:8000"
    ENCODING_WEBHOOK_SECRET: str = ""
    ENCODING_OPERATOR_API_KEY: str = ""  # X-API-Key for /encoding operator routes

    # Encoding watchdog
    WATCHDOG_INTERVAL_SECONDS: float = 300.0
    WATCHDOG_STUCK_MINUTES: int = 30
    WATCHDOG_TIMEOUT_MINUTES: int = 60

    # Scheduled publishing (Celery beat by default, or in the API process)
    PUBLISH_IN_PROCESS: bool = False
    PUBLISH_INTERVAL_SECONDS: float = 60.0
    STUCK_SCHEDULE_INTERVAL_SECONDS: float = 900.0
    PERIODIC_TASK_LOCK_TTL_SECONDS: int = 900

    # Queue housekeeping
    QUEUE_CLEANUP_INTERVAL_SECONDS: float = 3600.0
    QUEUE_STATS_INTERVAL_SECONDS: float = 60.0

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
