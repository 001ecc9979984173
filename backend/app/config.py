"""Application configuration."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Settings
    APP_NAME: str = "DB Processor"
    APP_VERSION: str = "1.0.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Deployment identity (used to namespace handler references)
    REGION: str = "local"
    ACCOUNT: str = "000000000000"
    HANDLER_NAMESPACE: str = ""

    # Orchestration
    WORKFLOW_NAME: str = "db-processor"
    DEFAULT_TASK_TIMEOUT: float = 3600.0
    MAX_CONCURRENT_RUNS: int = 4
    RUN_HISTORY_LIMIT: int = 100

    # Remote command channel
    COMMAND_CHANNEL: str = "celery"  # celery, http, local
    COMMAND_TIMEOUT_SECONDS: int = 3600
    COMMAND_RETRY_PRESET: str = "none"  # none, transient, patient, fixed
    COMMAND_ACK_GRACE_SECONDS: float = 60.0
    DEFAULT_WORKER_TARGET: str = ""
    WORKER_CONTAINER_LABEL: str = "name=openlawnz"
    WORKER_OPERATION_COMMAND: str = "node /usr/src/app/run.js {operation}"
    WORKER_AGENT_URL: str = "http://localhost:8080"

    # Redis (Celery broker / result backend)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Run history database
    DATABASE_URL: str = "sqlite+aiosqlite:///./runs.db"
    SQLALCHEMY_ECHO: bool = False

    # Dataset parameters handed to task handlers
    DB_HOST: str = "localhost"
    DB_USER: str = "postgres"
    DB_NAME: str = "openlawnz_db"
    DB_PASS: str = ""
    PORT: str = "5432"

    # Trigger webhook
    WEBHOOK_SECRET: str = ""

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def handler_namespace(self) -> str:
        """Prefix for handler references, derived from region/account when unset."""
        if self.HANDLER_NAMESPACE:
            return self.HANDLER_NAMESPACE
        return f"handler:{self.REGION}:{self.ACCOUNT}"

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings.

    Uses caching to ensure settings are loaded only once.

    Returns:
        Settings object with all configuration values
    """
    return Settings()
