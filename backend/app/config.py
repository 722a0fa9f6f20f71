"""Application configuration."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Settings
    APP_NAME: str = "Workflow Automation Engine"
    APP_VERSION: str = "1.0.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Database Settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./workflow_engine.db"
    SQLALCHEMY_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Redis (Celery broker for worker deployments)
    REDIS_URL: str = "redis://localhost:6379/0"

    # CORS Settings
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Outbound email (send_email action)
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    EMAIL_FROM_ADDRESS: str = "no-reply@localhost"

    # Workflow retries
    WORKFLOW_MAX_RETRIES: int = 3
    WORKFLOW_RETRY_DELAYS_SECONDS: list[int] = [60, 300, 900]  # 1min, 5min, 15min

    # Retry sweeper
    RETRY_SWEEPER_IN_PROCESS: bool = True  # False when Celery beat runs the sweep
    RETRY_SWEEP_INTERVAL_SECONDS: int = 300
    RETRY_SWEEP_STARTUP_DELAY_SECONDS: int = 30
    RETRY_SWEEP_BATCH_SIZE: int = 50

    # Webhook action
    WEBHOOK_TIMEOUT_SECONDS: float = 30.0
    WEBHOOK_ALLOW_PRIVATE_NETWORKS: bool = False

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
    def cors_origins_list(self) -> list[str]:
        """Parse ALLOWED_ORIGINS string into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings.

    Uses caching to ensure settings are loaded only once.

    Returns:
        Settings object with all configuration values
    """
    return Settings()
