"""Application configuration."""

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = "keyescrow"

    # Database
    database_url: str = "postgresql+asyncpg://localhost/keyescrow"
    run_migrations: bool = True

    @property
    def async_database_url(self) -> str:
        """Convert DATABASE_URL to async format for SQLAlchemy."""
        url = self.database_url
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif url.startswith("sqlite:///"):
            url = url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        return url

    # Upper bound for a single protocol operation, in seconds
    operation_timeout: float = 10.0

    # Request headers
    device_id_header: str = "X-Device-ID"
    client_version_header: str = "X-Client-Version"
    request_type_header: str = "R-Type"

    # Advisory policy returned to agents on registration
    heartbeat_interval: int = 300
    retry_initial_delay: int = 10
    retry_max_delay: int = 300
    retry_backoff_factor: int = 2
    retry_max_retries: int = 5
    register_checkin_seconds: int = 300
    key_submission_checkin_seconds: int = 3600

    # App settings
    debug: bool = False
    environment: str = "development"

    @model_validator(mode="after")
    def validate_timeouts(self) -> "Settings":
        """Reject non-positive operation timeouts."""
        if self.operation_timeout <= 0:
            raise ValueError("OPERATION_TIMEOUT must be a positive number of seconds")
        if self.retry_initial_delay > self.retry_max_delay:
            logger.warning(
                "RETRY_INITIAL_DELAY is larger than RETRY_MAX_DELAY; "
                "agents will clamp to the maximum on the first retry"
            )
        return self

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
