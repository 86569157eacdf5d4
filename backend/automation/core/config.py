from typing import List, Dict, Any, Optional
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, validate_default=True
    )

    # App Settings
    PROJECT_NAME: str = "Workflow Automation Engine"
    PROJECT_DESCRIPTION: str = "Multi-step workflow automation with resumable executions and cron scheduling"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # CORS Settings
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Database Settings
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "workflow_automation"
    POSTGRES_PORT: str = "5432"
    DATABASE_URI: Optional[str] = None
    DATABASE_ECHO: bool = False

    @field_validator("DATABASE_URI", mode="before")
    def assemble_db_connection(cls, v: Optional[str], values: Any) -> str:
        if isinstance(v, str) and v:
            return v

        return (
            f"postgresql+asyncpg://{values.data['POSTGRES_USER']}:{values.data['POSTGRES_PASSWORD']}"
            f"@{values.data['POSTGRES_SERVER']}:{values.data['POSTGRES_PORT']}/{values.data['POSTGRES_DB']}"
        )

    # Redis Settings (for Celery)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: Optional[str] = None
    REDIS_URI: Optional[str] = None

    @field_validator("REDIS_URI", mode="before")
    def assemble_redis_connection(cls, v: Optional[str], values: Any) -> str:
        if isinstance(v, str) and v:
            return v

        if values.data.get("REDIS_PASSWORD"):
            return f"redis://:{values.data['REDIS_PASSWORD']}@{values.data['REDIS_HOST']}:{values.data['REDIS_PORT']}/0"

        return f"redis://{values.data['REDIS_HOST']}:{values.data['REDIS_PORT']}/0"

    # Celery Settings
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_TASK_ALWAYS_EAGER: bool = False
    TASK_MAX_RETRIES: int = 3
    TASK_RETRY_BACKOFF_MAX: int = 600

    @field_validator("CELERY_BROKER_URL", mode="before")
    def assemble_celery_broker_url(cls, v: Optional[str], values: Any) -> str:
        if isinstance(v, str) and v:
            return v

        return values.data["REDIS_URI"]

    # Scheduler Settings
    SCHEDULER_ENABLED: bool = False
    SCHEDULER_INTERVAL_SECONDS: int = 60
    SCHEDULER_DEBOUNCE_SECONDS: int = 120

    # Reference data cache used by step handlers
    REFERENCE_CACHE_TTL_SECONDS: int = 300

    # "package.module:factory" building the document store used by check_documents
    DOCUMENT_PROVIDER: Optional[str] = None


# Create settings instance
settings = Settings()
