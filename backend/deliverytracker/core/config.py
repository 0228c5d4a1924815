"""Application configuration loaded from environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed settings exposed via dependency injection throughout the app."""

    # Read .env with BOM tolerance; case-sensitive keys
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8-sig",
        case_sensitive=True,
    )

    APP_NAME: str = "Delivery Tracker API"
    ENV: str = "dev"  # dev | staging | prod
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True  # plain text lines when false, for local runs

    # CORS
    CORS_ALLOWED_ORIGINS: list[str] = Field(default_factory=list)

    # Remote store (hosted Postgres)
    DB_HOST: str = "127.0.0.1"
    DB_PORT: int = 5432
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""  # set via env/.env
    DB_NAME: str = "postgres"
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800
    DB_SSL: bool = True

    # Every remote call is bounded; a timeout counts as the remote being unavailable.
    REMOTE_TIMEOUT_SEC: float = 10.0
    REMOTE_RETRY_ATTEMPTS: int = 2
    REMOTE_RETRY_BASE_DELAY: float = 0.1
    REMOTE_RETRY_JITTER: float = 0.05

    # Local cache (optional - falls back to process memory without Redis)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None
    REDIS_ENABLED: bool = True
    CACHE_KEY_PREFIX: str = "mci"

    # Owners kept warm in memory; the least recently used is evicted beyond this.
    ORCHESTRATOR_CACHE_SIZE: int = 256

    # Pending write replay
    RETRY_QUEUE_MAX_ATTEMPTS: int = 5
    RETRY_QUEUE_BASE_DELAY: float = 2.0

    # Completion dates are rendered for operators in this offset (PHT by default).
    DISPLAY_UTC_OFFSET_HOURS: int = 8

    # Rate limit for the batch import endpoint. See deliverytracker.core.rate_limit.
    IMPORT_UPLOAD_RATE: str = "5/minute"
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024  # 5 MB

    @property
    def DATABASE_URL(self) -> str:
        return (
            f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


settings = Settings()
